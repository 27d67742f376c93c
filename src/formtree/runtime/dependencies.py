"""
Dependency/change propagation.

Bindings observe a source path and react when it changes: a handler is
called with the new value, and/or the binding's target is cleared or reset.
Reactions may write further values; those writes are applied immediately but
propagated breadth-first in the next pass, never re-entrantly. A burst that
is still producing changes after ``max_propagation_passes`` passes is a
programming error in the form definition and raises
``PropagationLimitError``.
"""

import inspect
import logging
import re
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from formtree.core.path_utils import MISSING, get_by_path, is_related, same_value
from formtree.exceptions import PropagationLimitError
from formtree.structure.model import DependencyBinding, absolute_item_path

if TYPE_CHECKING:
    from formtree.runtime.context import FormContext

logger = logging.getLogger(__name__)

_ITEM_INDEX = re.compile(r"^\[(\d+)\](?:\.(.+))?$")


class DependencyPropagator:
    """
    Runs dependency bindings for a burst of changes.

    Params:
        ctx: The owning context; reactions read and write through it
        bindings: Bindings compiled into the form, in declaration order
    """

    def __init__(self, ctx: "FormContext", bindings: list[DependencyBinding]):
        self._ctx = ctx
        self._bindings: list[DependencyBinding] = list(bindings)
        self._queue: dict[str, Any] = {}
        self.running = False

    def register(self, binding: DependencyBinding) -> None:
        self._bindings.append(binding)

    def unregister(self, binding: DependencyBinding) -> None:
        if binding in self._bindings:
            self._bindings.remove(binding)

    def enqueue(self, path: str, previous: Any = MISSING) -> None:
        """
        Schedule ``path`` for the next pass; repeated paths coalesce.

        ``previous`` is the value before the write. A coalesced path keeps
        the value it had when first scheduled.
        """
        previous = self._queue.pop(path, previous)
        self._queue[path] = previous

    def run(self, changed: Mapping[str, Any]) -> list[str]:
        """
        Propagate ``changed`` until no binding produces a further change.

        Params:
            changed: Paths already written by the caller, mapped to their
                value before the write

        Returns:
            Every path changed during the burst, the initial ones included

        Raises:
            PropagationLimitError: When the pass ceiling is exceeded
        """
        limit = self._ctx.settings.max_propagation_passes
        current = dict(changed)
        all_changed = list(current)
        passes = 0
        self.running = True
        try:
            while current:
                passes += 1
                if passes > limit:
                    raise PropagationLimitError(limit, list(current))
                self._queue = {}
                logger.debug("Propagation pass %d: %s", passes, list(current))
                for path, previous in current.items():
                    self._fire(path, previous)
                current = self._queue
                all_changed.extend(current)
        finally:
            self.running = False
            self._queue = {}
        return all_changed

    def _fire(self, path: str, previous: Any) -> None:
        for binding in list(self._bindings):
            if binding.list_path is None:
                if is_related(binding.source, path):
                    self._react(binding, binding.source, binding.target, self._ctx)
                continue
            for index, source, added in list(self._match_items(binding, path, previous)):
                target = absolute_item_path(binding.list_path, index, binding.target)
                handler_ctx = self._ctx.item_context(binding.list_path, index)
                self._react(binding, source, target, handler_ctx, added=added)

    def _match_items(
        self, binding: DependencyBinding, path: str, previous: Any
    ) -> Iterator[tuple[int, str, bool]]:
        """
        Resolve a template binding against a change.

        A change inside one item matches that item. A write of the whole list
        (or of an object holding it) matches every item whose source value
        differs from the item previously at that index; items that did not
        exist before match as ``added``.

        Yields:
            ``(index, absolute source path, added)``
        """
        list_path = binding.list_path
        if not is_related(path, list_path):
            return
        if len(path) > len(list_path):
            found = _ITEM_INDEX.match(path[len(list_path):])
            if found is None:
                return
            index, relative = int(found.group(1)), found.group(2)
            source = absolute_item_path(list_path, index, binding.source)
            if relative is not None:
                if is_related(binding.source, relative):
                    yield index, source, False
            elif previous is MISSING or previous is None:
                yield index, source, True
            elif not same_value(get_by_path(previous, binding.source), self._ctx.get_value(source)):
                yield index, source, False
            return

        if path == list_path:
            old_items = previous
        else:
            old_items = get_by_path(previous, list_path[len(path):].lstrip("."), MISSING)
        if not isinstance(old_items, list):
            old_items = []
        for index in range(len(self._ctx.get_value(list_path) or ())):
            source = absolute_item_path(list_path, index, binding.source)
            old_item = old_items[index] if index < len(old_items) else MISSING
            if old_item is MISSING:
                yield index, source, True
            elif not same_value(get_by_path(old_item, binding.source), self._ctx.get_value(source)):
                yield index, source, False

    def _react(
        self, binding: DependencyBinding, source: str, target: str, handler_ctx: Any, added: bool = False
    ) -> None:
        value = self._ctx.get_value(source)
        if binding.only_if_truthy and not value:
            return
        # a new item has no previous value to clear or reset from
        if binding.clear and not added:
            field_node = self._ctx.model.field(target)
            self._ctx.clear_field_error(target)
            self._ctx.set_value(target, field_node.default if field_node is not None else None)
        if binding.reset and not added:
            self._ctx.clear_field_error(target)
            self._ctx.set_value(target, self._ctx.get_initial_value(target))
        if binding.handler is not None:
            result = binding.handler(value, handler_ctx)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(
                    f"Dependency handler on '{source}' returned an awaitable; "
                    "dependency handlers must be synchronous"
                )
