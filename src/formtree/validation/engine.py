"""
Validation engine.

Runs validator chains for the fields of a context. Per field, validators run
in declaration order and the first failure stops the chain; async predicates
are awaited before the next validator of the same field, while different
fields validate concurrently. Only fields that are not conditionally hidden
are validated; access-hidden fields are.

Every run takes a per-path sequence number. Writing a value bumps the
sequence of that path (and of every path inside or around it), so a run
that finishes after its field changed is discarded instead of overwriting a
newer result.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from formtree.core.path_utils import is_related
from formtree.core.types import FORM_ERROR_KEY
from formtree.exceptions import InvalidPathError

if TYPE_CHECKING:
    from formtree.runtime.context import FormContext
    from formtree.validation.validators import ValidatorDescriptor

logger = logging.getLogger(__name__)

# Outcome of one chain: None passed, a message failed, _STALE superseded
_STALE = object()


async def run_chain(
    validators: Iterable["ValidatorDescriptor"],
    value: Any,
    ctx: Any,
    action: str | None,
    path: str = "",
) -> str | None:
    """
    Run a validator chain against one value.

    Params:
        validators: Descriptors in declaration order
        value: The value being validated
        ctx: Context handed to the predicates
        action: Current action for skip/only scoping
        path: Field path, for logging

    Returns:
        The message of the first failing validator, or None when all pass.
        A predicate that raises counts as failing with its own message.
    """
    for validator in validators:
        if not validator.applies_to(action):
            continue
        try:
            result = validator.predicate(value, ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.exception("Validator '%s' on %s raised", validator.kind, path or "<value>")
            return validator.message
        if not result:
            return validator.message
    return None


class ValidationEngine:
    """
    Validates fields, lists and whole-form checks of one context.

    Params:
        ctx: The owning context
        form_validators: Whole-form checks ``handler(ctx)`` run only when all
            fields passed; each may return False or a message to fail
    """

    def __init__(self, ctx: "FormContext", form_validators: Iterable[Callable[..., Any]] = ()):
        self._ctx = ctx
        self._form_validators = list(form_validators)
        self._sequence: defaultdict[str, int] = defaultdict(int)
        self._in_flight: dict[str, int] = {}

    # =========================================================================
    # SEQUENCING
    # =========================================================================

    def invalidate(self, paths: Iterable[str]) -> None:
        """Supersede in-flight runs of every path related to ``paths``."""
        paths = list(dict.fromkeys(paths))
        if not paths:
            return
        known = set(self._sequence) | set(self._in_flight)
        for changed in paths:
            for path in [changed, *(p for p in known if p != changed and is_related(p, changed))]:
                self._sequence[path] += 1
                if self._in_flight.pop(path, None) is not None:
                    logger.debug("Validation of %s superseded by a change", path)

    def invalidate_all(self) -> None:
        for path in list(self._sequence):
            self._sequence[path] += 1
        self._in_flight.clear()

    def is_pending(self, path: str) -> bool:
        return path in self._in_flight

    def _begin(self, path: str) -> int:
        self._sequence[path] += 1
        sequence = self._sequence[path]
        self._in_flight[path] = sequence
        return sequence

    def _finish(self, path: str, sequence: int) -> bool:
        """Close a run; False when it was superseded."""
        if self._sequence[path] != sequence:
            return False
        if self._in_flight.get(path) == sequence:
            del self._in_flight[path]
        return True

    # =========================================================================
    # SINGLE PATHS
    # =========================================================================

    def _default_action(self, action: str | None) -> str:
        return action if action is not None else self._ctx.mode.value

    async def validate_path(self, path: str, action: str | None = None) -> bool | None:
        """
        Validate one field or list path and record its error.

        Returns:
            True/False for the outcome, None when the run was superseded

        Raises:
            InvalidPathError: If ``path`` is neither a field nor a list
        """
        action = self._default_action(action)
        if self._ctx.model.list_node(path) is not None:
            outcome = await self._run_list(path, action)
        elif self._ctx.model.field(path) is not None:
            outcome = await self._run_field(path, action)
        else:
            raise InvalidPathError(path, "is not a field or list of this form")
        if outcome is _STALE:
            return None
        return outcome is None

    async def _run_field(self, path: str, action: str) -> Any:
        if self._ctx.visibility.state(path).conditionally_hidden:
            self._ctx.clear_field_error(path)
            return None

        node = self._ctx.model.field(path)
        field_ctx = self._field_context(path)
        sequence = self._begin(path)
        message = await run_chain(node.validators, self._ctx.get_value(path), field_ctx, action, path)
        if not self._finish(path, sequence):
            return _STALE
        self._record(path, message)
        return message

    async def _run_list(self, path: str, action: str) -> Any:
        if self._ctx.visibility.state(path).conditionally_hidden:
            self._ctx.clear_field_error(path)
            return None

        node = self._ctx.model.list_node(path)
        sequence = self._begin(path)
        message = await run_chain(node.validators, self._ctx.get_value(path) or [], self._ctx, action, path)
        if not self._finish(path, sequence):
            return _STALE
        self._record(path, message)
        return message

    def _field_context(self, path: str) -> Any:
        for list_node, _ in self._ctx.model.iter_lists():
            prefix = f"{list_node.path}["
            if path.startswith(prefix):
                index = int(path[len(prefix):].split("]", 1)[0])
                return self._ctx.item_context(list_node.path, index)
        return self._ctx

    def _record(self, path: str, message: str | None) -> None:
        if message is None:
            self._ctx.clear_field_error(path)
        else:
            self._ctx.set_field_error(path, message)

    # =========================================================================
    # WHOLE FORM
    # =========================================================================

    async def validate(self, action: str | None = None) -> bool:
        """
        Validate every field and list that is not conditionally hidden.

        A field edited while its check was running is checked again against
        its current value (together with fields the edit made visible), up
        to ``max_revalidation_rounds`` times; one that is still being
        superseded after that counts as failed. Whole-form
        checks run only when every field passed.

        Returns:
            True if no field, list or whole-form check failed
        """
        action = self._default_action(action)
        resolved = self._ctx.visibility
        self._ctx.clear_field_error(FORM_ERROR_KEY)

        for path in list(self._ctx.get_errors()):
            if path != FORM_ERROR_KEY and resolved.state(path).conditionally_hidden:
                self._ctx.clear_field_error(path)

        field_paths = resolved.validatable_fields()
        list_paths = resolved.validatable_lists()
        outcomes = await asyncio.gather(
            *(self._run_field(path, action) for path in field_paths),
            *(self._run_list(path, action) for path in list_paths),
        )
        results = dict(zip([*field_paths, *list_paths], outcomes))

        for _ in range(self._ctx.settings.max_revalidation_rounds):
            current = self._ctx.visibility
            stale = [path for path, outcome in results.items() if outcome is _STALE]
            stale += [
                path
                for path in [*current.validatable_fields(), *current.validatable_lists()]
                if path not in results
            ]
            if not stale:
                break
            logger.debug("Form %s: re-validating %s after concurrent edits", self._ctx.model.form_id, stale)
            rerun = await asyncio.gather(*(self._rerun(path, action) for path in stale))
            results.update(zip(stale, rerun))

        failed = [path for path, outcome in results.items() if outcome is not None]
        if failed:
            logger.debug("Form %s: validation failed for %s", self._ctx.model.form_id, failed)
            return False

        message = await self._run_form_validators()
        if message is not None:
            self._ctx.set_field_error(FORM_ERROR_KEY, message)
            return False
        return True

    async def _rerun(self, path: str, action: str) -> Any:
        # the edit may have removed the path (list item) or shown new ones
        resolved = self._ctx.visibility
        if path in resolved.lists:
            return await self._run_list(path, action)
        if path in resolved.fields:
            return await self._run_field(path, action)
        return None

    async def _run_form_validators(self) -> str | None:
        failure = self._ctx.settings.validator_failure_message
        for handler in self._form_validators:
            try:
                result = handler(self._ctx)
                if inspect.isawaitable(result):
                    result = await result
            except Exception:
                logger.exception("Form-level validation handler raised")
                return failure
            if result is False:
                return failure
            if isinstance(result, str) and result:
                return result
        return None
