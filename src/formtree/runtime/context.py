"""
Runtime context of one form rendering session.

``FormContext`` owns the live form data, the error map and the engine
collaborators (propagator, resolver, validation engine). It is the object
validators, visibility predicates, dependency handlers and lifecycle hooks
receive. Inside list templates they receive an ``ItemContext`` instead: a
slice of the root context addressing one list item by relative paths.

Every value write goes through ``set_value``, which runs the change through
dependency propagation and a resolver pass before returning, so the context
is always settled when control returns to the caller.
"""

import copy
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from attrs import field, frozen
from pydantic import BaseModel

from formtree.config import EngineSettings, get_settings
from formtree.core.path_utils import (
    MISSING,
    get_by_path,
    is_related,
    item_path,
    join_path,
    remap_item_paths,
    same_value,
    set_by_path,
)
from formtree.core.types import ErrorMap, FormMode, HiddenBy
from formtree.exceptions import InvalidPathError, PropagationLimitError
from formtree.runtime.dependencies import DependencyPropagator
from formtree.runtime.lists import ListManager
from formtree.runtime.visibility import ResolverPass, VisibilityResolver
from formtree.structure.model import DependencyBinding, FormModel
from formtree.validation.engine import ValidationEngine

logger = logging.getLogger(__name__)


@frozen
class UserContext:
    """The current user's identity and capabilities."""

    id: Any = None
    roles: frozenset[str] = field(default=frozenset(), converter=frozenset)
    permissions: frozenset[str] = field(default=frozenset(), converter=frozenset)
    attributes: Mapping[str, Any] = field(factory=dict)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return any(role in self.roles for role in roles)

    def has_all_roles(self, roles: Iterable[str]) -> bool:
        return all(role in self.roles for role in roles)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def has_any_permission(self, permissions: Iterable[str]) -> bool:
        return any(permission in self.permissions for permission in permissions)

    def has_all_permissions(self, permissions: Iterable[str]) -> bool:
        return all(permission in self.permissions for permission in permissions)


@frozen
class FormHooks:
    """Optional host collaborators. Unset hooks are logged and ignored."""

    notify: Callable[..., Any] | None = None
    navigate: Callable[..., Any] | None = None
    open: Callable[..., Any] | None = None
    close: Callable[..., Any] | None = None


def _deep_merge(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _copy_out(value: Any) -> Any:
    return copy.deepcopy(value) if isinstance(value, (dict, list)) else value


def _realign(items: list[Any], mapping: dict[int, int | None], count: int) -> list[Any]:
    """Previous items re-indexed to their new positions; MISSING marks inserted slots."""
    origin = {new: old for old, new in mapping.items() if new is not None}
    aligned = []
    for index in range(count):
        if index in origin:
            aligned.append(items[origin[index]])
        elif index in mapping or index >= len(items):
            aligned.append(MISSING)
        else:
            aligned.append(items[index])
    return aligned


def _entity_data(entity: Any) -> dict[str, Any]:
    if entity is None:
        return {}
    if isinstance(entity, BaseModel):
        return entity.model_dump()
    if isinstance(entity, Mapping):
        return copy.deepcopy(dict(entity))
    raise TypeError(
        f"Form entity must be a mapping or a pydantic model, got {type(entity).__name__}"
    )


class FormContext:
    """
    Live state of one form session.

    Params:
        model: The compiled form
        entity: Initial data (mapping or pydantic model), merged over the
            model's default values
        mode: What the form is used for; also the default validation action
        user: Current user capabilities
        hooks: Host collaborators for notify/navigate/open/close
        settings: Engine settings (defaults to ``get_settings()``)
        validate_handlers: Whole-form checks run after field validation
    """

    def __init__(
        self,
        model: FormModel,
        *,
        entity: Any = None,
        mode: FormMode | str = FormMode.NEW,
        user: UserContext | None = None,
        hooks: FormHooks | None = None,
        settings: EngineSettings | None = None,
        validate_handlers: Iterable[Callable[..., Any]] = (),
    ):
        self.model = model
        self.settings = settings or get_settings()
        self._mode = FormMode(mode)
        self.user = user or UserContext()
        self.hooks = hooks or FormHooks()
        self.entity = entity
        self.is_submitting = False

        self._data: dict[str, Any] = _deep_merge(
            copy.deepcopy(model.default_values), _entity_data(entity)
        )
        self._errors: ErrorMap = {}
        self._touched: set[str] = set()
        self._active_index: dict[str, int] = {}

        self._propagator = DependencyPropagator(self, model.all_bindings())
        self._resolver = VisibilityResolver(model)
        self._validation = ValidationEngine(self, validate_handlers)
        self.visibility: ResolverPass = ResolverPass()

        self._initial: dict[str, Any] = copy.deepcopy(self._data)
        self._settle({})
        self.commit_initial()

    # =========================================================================
    # VALUES
    # =========================================================================

    @property
    def mode(self) -> FormMode:
        return self._mode

    @mode.setter
    def mode(self, mode: FormMode | str) -> None:
        self.set_mode(mode)

    def get_value(self, path: str, default: Any = None) -> Any:
        """
        Read the value at ``path``; ``default`` when any segment is missing.

        Mappings and lists are returned as copies: mutating them does not
        change the form until they are written back with ``set_value``.
        """
        return _copy_out(get_by_path(self._data, path, default))

    def set_value(self, path: str, value: Any) -> None:
        """
        Write ``value`` at ``path`` and settle the form.

        Writing a value equal to the current one (and of the same type) is
        not a change. Outside a propagation burst the change runs through
        dependency handlers and a resolver pass before this returns; calls
        made from inside a handler are written immediately and propagated in
        the next pass.

        Raises:
            InvalidPathError: If the path is malformed or cannot be written
            PropagationLimitError: If dependency handlers keep changing values
        """
        self._change(path, value, get_by_path(self._data, path, MISSING))

    def _change(self, path: str, value: Any, previous: Any) -> None:
        if not self._write(path, value):
            return
        if self._propagator.running:
            self._propagator.enqueue(path, previous)
            return
        self._settle({path: previous})

    def get_form_data(self) -> dict[str, Any]:
        """A deep copy of the current form data."""
        return copy.deepcopy(self._data)

    def get_initial_value(self, path: str, default: Any = None) -> Any:
        return _copy_out(get_by_path(self._initial, path, default))

    def is_dirty(self) -> bool:
        return self._data != self._initial

    def is_field_dirty(self, path: str) -> bool:
        return not same_value(get_by_path(self._data, path), get_by_path(self._initial, path))

    def touch(self, path: str) -> None:
        """Mark ``path`` as visited (blurred) by the user."""
        self._touched.add(path)

    def is_touched(self, path: str) -> bool:
        return path in self._touched

    def reset_field(self, path: str) -> None:
        """Restore the pristine value of ``path`` and drop its errors and touched state."""
        self._clear_errors_under(path)
        self._untouch_under(path)
        self.set_value(path, get_by_path(self._initial, path))

    def _write(self, path: str, value: Any) -> bool:
        if same_value(get_by_path(self._data, path), value):
            return False
        set_by_path(self._data, path, copy.deepcopy(value))
        return True

    def _settle(self, changed: dict[str, Any]) -> None:
        limit = self.settings.max_propagation_passes
        touched: list[str] = []
        for _ in range(limit):
            touched.extend(self._propagator.run(changed))
            self.visibility = self._resolver.resolve(self)
            changed = self._apply_clears(self.visibility)
            if not changed:
                break
        else:
            raise PropagationLimitError(limit, list(changed))
        self._validation.invalidate(touched)

    def _refresh(self) -> None:
        """Re-resolve after a state change that wrote no value."""
        if not self._propagator.running:
            self._settle({})

    def _apply_clears(self, resolved: ResolverPass) -> dict[str, Any]:
        changed = {}
        for path, empty in resolved.cleared:
            self._clear_errors_under(path)
            self._untouch_under(path)
            previous = get_by_path(self._data, path, MISSING)
            if self._write(path, empty):
                logger.debug("Cleared conditionally hidden %s", path)
                changed[path] = previous
        return changed

    # =========================================================================
    # STATE QUERIES
    # =========================================================================

    def is_visible(self, path: str) -> bool:
        return self.visibility.state(path).visible

    def is_disabled(self, path: str) -> bool:
        return path in self.visibility.disabled

    def is_read_only(self, path: str) -> bool:
        return path in self.visibility.read_only

    # =========================================================================
    # STATE CONTROLS
    # =========================================================================

    def hide_field_by_condition(self, path: str) -> None:
        """
        Hide a field or list as if a conditional rule failed.

        The value is cleared and validation skips the path until
        ``show_field`` is called.

        Raises:
            InvalidPathError: If ``path`` is neither a field nor a list
        """
        self._resolver.override_field(self._known_path(path), HiddenBy.CONDITIONAL)
        self._refresh()

    def hide_field_by_access(self, path: str) -> None:
        """Hide a field or list as if an access rule failed; the value is kept."""
        self._resolver.override_field(self._known_path(path), HiddenBy.ACCESS)
        self._refresh()

    def show_field(self, path: str) -> None:
        """Drop an imperative hide; the declared rules apply again."""
        self._resolver.override_field(self._known_path(path), None)
        self._refresh()

    def hide_section_by_condition(self, key: str) -> None:
        """Hide a section and everything in it, clearing the values."""
        self._resolver.override_section(self._known_section(key), HiddenBy.CONDITIONAL)
        self._refresh()

    def hide_section_by_access(self, key: str) -> None:
        self._resolver.override_section(self._known_section(key), HiddenBy.ACCESS)
        self._refresh()

    def show_section(self, key: str) -> None:
        self._resolver.override_section(self._known_section(key), None)
        self._refresh()

    def disable_field(self, path: str) -> None:
        """Disable a field regardless of its disable rule."""
        self._resolver.override_disabled(self._known_path(path), True)
        self._refresh()

    def enable_field(self, path: str) -> None:
        """Enable a field regardless of its disable rule."""
        self._resolver.override_disabled(self._known_path(path), False)
        self._refresh()

    def set_read_only(self, read_only: bool = True) -> None:
        """
        Force the whole form read-only (or editable), overriding the form's
        read-only rule. A form in view mode stays read-only.
        """
        self._resolver.read_only_override = bool(read_only)
        self._refresh()

    def set_mode(self, mode: FormMode | str) -> None:
        """Switch the form mode and re-resolve the rules depending on it."""
        self._mode = FormMode(mode)
        self._refresh()

    def _known_path(self, path: str) -> str:
        if self.model.field(path) is None and self.model.list_node(path) is None:
            raise InvalidPathError(path, "is not a field or list of this form")
        return path

    def _known_section(self, key: str) -> str:
        if self.model.section(key) is None:
            raise InvalidPathError(key, "is not a section of this form")
        return key

    # =========================================================================
    # ERRORS
    # =========================================================================

    def get_errors(self) -> ErrorMap:
        return {path: list(messages) for path, messages in self._errors.items()}

    def get_field_error(self, path: str) -> str | None:
        messages = self._errors.get(path)
        return messages[0] if messages else None

    def get_field_errors(self, path: str) -> list[str]:
        return list(self._errors.get(path, ()))

    def set_field_error(self, path: str, message: str | list[str]) -> None:
        self._errors[path] = [message] if isinstance(message, str) else list(message)

    def clear_field_error(self, path: str) -> None:
        self._errors.pop(path, None)

    def clear_errors(self) -> None:
        self._errors.clear()

    def _clear_errors_under(self, path: str) -> None:
        for key in [key for key in self._errors if is_related(path, key) and len(key) >= len(path)]:
            del self._errors[key]

    def _untouch_under(self, path: str) -> None:
        self._touched = {
            key for key in self._touched if not (is_related(path, key) and len(key) >= len(path))
        }

    @property
    def is_valid(self) -> bool:
        return not self._errors

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def validate(self, action: str | None = None) -> bool:
        """
        Validate every field that is not conditionally hidden.

        Params:
            action: Submission intent used for skip/only scoping; defaults to
                the form mode

        Returns:
            True if no field and no whole-form check produced an error
        """
        return await self._validation.validate(action)

    async def validate_field(self, path: str, action: str | None = None) -> bool | None:
        """Validate one field or list; None when superseded by a newer change."""
        return await self._validation.validate_path(path, action)

    def is_pending(self, path: str) -> bool:
        """Whether a validation run for ``path`` is still in flight."""
        return self._validation.is_pending(path)

    # =========================================================================
    # LISTS & DEPENDENCIES
    # =========================================================================

    def list(self, path: str) -> ListManager:
        """
        List operations for the list field at ``path``.

        Raises:
            InvalidPathError: If ``path`` is not a declared list
        """
        list_node = self.model.list_node(path)
        if list_node is None:
            raise InvalidPathError(path, "is not a list field of this form")
        return ListManager(self, list_node)

    def item_context(self, list_path: str, index: int) -> "ItemContext":
        return ItemContext(self, list_path, index)

    def depends_on(
        self,
        source: str,
        handler: Callable[..., Any] | None = None,
        *,
        target: str | None = None,
        clear: bool = False,
        reset: bool = False,
        only_if_truthy: bool = False,
    ) -> Callable[[], None]:
        """
        Register a dependency at runtime.

        Returns:
            A callable removing the binding again
        """
        binding = DependencyBinding(
            source=source,
            target=target or source,
            handler=handler,
            clear=clear,
            reset=reset,
            only_if_truthy=only_if_truthy,
        )
        self._propagator.register(binding)
        return lambda: self._propagator.unregister(binding)

    def get_active_index(self, list_path: str) -> int:
        return self._active_index.get(list_path, 0)

    def set_active_index(self, list_path: str, index: int) -> None:
        self._active_index[list_path] = index

    def _remap_list(self, list_path: str, mapping: dict[int, int | None]) -> None:
        """Move per-item errors and resolver history after a reorder."""
        self._errors = remap_item_paths(self._errors, list_path, mapping)
        self._touched = set(remap_item_paths(dict.fromkeys(self._touched), list_path, mapping))
        self._resolver.remap_list(list_path, mapping)

    def _commit_list(self, list_path: str, items: Sequence[Any], mapping: dict[int, int | None]) -> None:
        """Write a rebuilt list; ``mapping`` is old index -> new index (None when removed)."""
        previous = get_by_path(self._data, list_path, MISSING)
        if mapping:
            self._remap_list(list_path, mapping)
            if isinstance(previous, list):
                previous = _realign(previous, mapping, len(items))
        self._change(list_path, items, previous)

    # =========================================================================
    # LIFECYCLE SUPPORT
    # =========================================================================

    def commit_initial(self) -> None:
        """Take the current data as the pristine state (after loading)."""
        self._initial = copy.deepcopy(self._data)

    def reset(self) -> None:
        """Restore the pristine data and clear errors and interaction state."""
        self._data = copy.deepcopy(self._initial)
        self._errors.clear()
        self._touched.clear()
        self._active_index.clear()
        self._resolver.forget()
        self._validation.invalidate_all()
        self._settle({})

    # =========================================================================
    # HOST HOOKS
    # =========================================================================

    def _call_hook(self, name: str, *args, **kwargs) -> Any:
        hook = getattr(self.hooks, name)
        if hook is None:
            logger.warning("Form %s: no '%s' hook configured; call ignored", self.model.form_id, name)
            return None
        return hook(*args, **kwargs)

    def notify(self, message: str, level: str = "info") -> Any:
        return self._call_hook("notify", message, level)

    def navigate(self, target: str, **params) -> Any:
        return self._call_hook("navigate", target, **params)

    def open(self, target: Any, **params) -> Any:
        return self._call_hook("open", target, **params)

    def close(self, result: Any = None) -> Any:
        return self._call_hook("close", result)


class ItemContext:
    """
    Context slice for one list item.

    ``get_value``/``set_value`` take paths relative to the item; use
    ``root`` for absolute paths (sibling items, outer fields). Everything
    else delegates to the root context.
    """

    def __init__(self, root: FormContext, list_path: str, index: int):
        self.root = root
        self.list_path = list_path
        self.index = index

    @property
    def item_path(self) -> str:
        return item_path(self.list_path, self.index)

    @property
    def item(self) -> dict[str, Any]:
        return copy.deepcopy(self.root.get_value(self.item_path, {}))

    def path(self, relative_path: str) -> str:
        return join_path(self.item_path, relative_path)

    def get_value(self, path: str, default: Any = None) -> Any:
        return self.root.get_value(self.path(path), default)

    def set_value(self, path: str, value: Any) -> None:
        self.root.set_value(self.path(path), value)

    def get_field_error(self, path: str) -> str | None:
        return self.root.get_field_error(self.path(path))

    def is_visible(self, path: str) -> bool:
        return self.root.is_visible(self.path(path))

    def __getattr__(self, name: str) -> Any:
        return getattr(self.root, name)

    def __repr__(self) -> str:
        return f"ItemContext({self.item_path!r})"
