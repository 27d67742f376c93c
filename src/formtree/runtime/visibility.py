"""
Visibility & access resolution.

Every node carries two predicate families with different data retention:

- conditional rules (``visible_by_condition`` / ``hide_by_condition``): a
  node hidden this way has its value cleared on the transition and is
  skipped by validation;
- access rules (``visible_by_access`` / ``hide_by_access``): a node hidden
  this way keeps its value and is still validated.

A node is shown only when its own predicates and those of every ancestor
hold. When both families fail, the conditional outcome wins. Disable and
read-only rules are evaluated in the same pass.
"""

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from attrs import field, frozen

from formtree.core.path_utils import item_path, remap_item_paths
from formtree.core.types import FormMode, HiddenBy
from formtree.exceptions import PredicateError
from formtree.structure.model import (
    FieldNode,
    FormModel,
    ObjectNode,
    RowNode,
    VisibilityRules,
)

if TYPE_CHECKING:
    from formtree.runtime.context import FormContext

logger = logging.getLogger(__name__)


@frozen
class VisibilityState:
    """Resolved visibility of one node."""

    hidden_by: HiddenBy | None = None

    @property
    def visible(self) -> bool:
        return self.hidden_by is None

    @property
    def conditionally_hidden(self) -> bool:
        return self.hidden_by == HiddenBy.CONDITIONAL

    @property
    def access_hidden(self) -> bool:
        return self.hidden_by == HiddenBy.ACCESS


VISIBLE = VisibilityState()
CONDITIONAL = VisibilityState(HiddenBy.CONDITIONAL)
ACCESS = VisibilityState(HiddenBy.ACCESS)


@frozen
class ResolverPass:
    """
    Result of one resolver pass.

    ``fields`` covers every field path, list items expanded to
    ``items[i].name``. ``cleared`` holds ``(path, empty_value)`` pairs for
    nodes that became conditionally hidden in this pass.
    """

    fields: dict[str, VisibilityState] = field(factory=dict)
    lists: dict[str, VisibilityState] = field(factory=dict)
    sections: dict[str, VisibilityState] = field(factory=dict)
    objects: dict[str, VisibilityState] = field(factory=dict)
    rows: dict[str, VisibilityState] = field(factory=dict)
    components: dict[str, VisibilityState] = field(factory=dict)
    disabled: frozenset[str] = frozenset()
    read_only: frozenset[str] = frozenset()
    cleared: tuple[tuple[str, Any], ...] = ()

    def state(self, path: str) -> VisibilityState:
        """State of a field or list path; unknown paths are visible."""
        if path in self.fields:
            return self.fields[path]
        return self.lists.get(path, VISIBLE)

    def visible_fields(self) -> list[str]:
        return [path for path, state in self.fields.items() if state.visible]

    def validatable_fields(self) -> list[str]:
        """Field paths validation runs on: everything not conditionally hidden."""
        return [path for path, state in self.fields.items() if not state.conditionally_hidden]

    def validatable_lists(self) -> list[str]:
        return [path for path, state in self.lists.items() if not state.conditionally_hidden]


def _combine(rules: VisibilityRules, ctx: Any, inherited: VisibilityState, node: str) -> VisibilityState:
    if inherited.conditionally_hidden:
        return inherited
    for predicate in rules.conditional:
        if not _evaluate(predicate, ctx, node, "conditional"):
            return CONDITIONAL
    if inherited.access_hidden:
        return inherited
    for predicate in rules.access:
        if not _evaluate(predicate, ctx, node, "access"):
            return ACCESS
    return VISIBLE


def _override(state: VisibilityState, hidden_by: HiddenBy | None) -> VisibilityState:
    if hidden_by is None or state.conditionally_hidden:
        return state
    return CONDITIONAL if hidden_by == HiddenBy.CONDITIONAL else ACCESS


def _evaluate(predicate, ctx: Any, node: str, rule: str) -> bool:
    try:
        return bool(predicate(ctx))
    except Exception as e:
        raise PredicateError(node, rule, e) from e


class VisibilityResolver:
    """
    Computes a ResolverPass for a context and tracks transitions.

    The resolver remembers the previous state of every field and list path;
    a path whose state becomes conditionally hidden, from any other state
    or from not existing yet, is reported in ``ResolverPass.cleared``.

    Imperative overrides (``override_field``, ``override_section``,
    ``override_disabled``, ``read_only_override``) are combined with the
    declared rules on every pass; a conditional outcome still wins.
    """

    def __init__(self, model: FormModel):
        self._model = model
        self._previous: dict[str, VisibilityState] = {}
        self._field_overrides: dict[str, HiddenBy] = {}
        self._section_overrides: dict[str, HiddenBy] = {}
        self._disabled_overrides: dict[str, bool] = {}
        self.read_only_override: bool | None = None

    def override_field(self, path: str, hidden_by: HiddenBy | None) -> None:
        """Hide a field or list path by ``hidden_by``; None removes the override."""
        if hidden_by is None:
            self._field_overrides.pop(path, None)
        else:
            self._field_overrides[path] = hidden_by

    def override_section(self, key: str, hidden_by: HiddenBy | None) -> None:
        if hidden_by is None:
            self._section_overrides.pop(key, None)
        else:
            self._section_overrides[key] = hidden_by

    def override_disabled(self, path: str, disabled: bool) -> None:
        self._disabled_overrides[path] = disabled

    def forget(self) -> None:
        """Drop transition history (next pass treats every node as new)."""
        self._previous = {}

    def remap_list(self, list_path: str, mapping: dict[int, int | None]) -> None:
        self._previous = remap_item_paths(self._previous, list_path, mapping)
        self._field_overrides = remap_item_paths(self._field_overrides, list_path, mapping)
        self._disabled_overrides = remap_item_paths(self._disabled_overrides, list_path, mapping)

    def resolve(self, ctx: "FormContext") -> ResolverPass:
        """
        Evaluate every rule of the model against ``ctx``.

        Raises:
            PredicateError: If any visibility, access, disable or read-only
                predicate raises
        """
        fields: dict[str, VisibilityState] = {}
        lists: dict[str, VisibilityState] = {}
        sections: dict[str, VisibilityState] = {}
        objects: dict[str, VisibilityState] = {}
        rows: dict[str, VisibilityState] = {}
        components: dict[str, VisibilityState] = {}
        disabled: set[str] = set()
        read_only: set[str] = set()

        form_read_only = ctx.mode == FormMode.VIEW
        if not form_read_only:
            if self.read_only_override is not None:
                form_read_only = self.read_only_override
            elif self._model.read_only_rule is not None:
                form_read_only = _evaluate(self._model.read_only_rule, ctx, self._model.form_id, "read_only")

        def visit_row(row: RowNode, row_key: str, inherited: VisibilityState, row_ctx: Any, prefix: str | None) -> None:
            row_state = _combine(row.visibility, row_ctx, inherited, row_key)
            rows[row_key] = row_state
            for child in row.children:
                if isinstance(child, FieldNode):
                    path = child.path if prefix is None else f"{prefix}.{child.path}"
                    fields[path] = _override(
                        _combine(child.visibility, row_ctx, row_state, path), self._field_overrides.get(path)
                    )
                    is_disabled = self._disabled_overrides.get(path)
                    if is_disabled is None:
                        is_disabled = child.disable_rule is not None and _evaluate(
                            child.disable_rule, row_ctx, path, "disable"
                        )
                    if is_disabled:
                        disabled.add(path)
                    if form_read_only or child.display or (
                        child.read_only_rule is not None
                        and _evaluate(child.read_only_rule, row_ctx, path, "read_only")
                    ):
                        read_only.add(path)
                else:
                    key = child.key if prefix is None else f"{prefix}/{child.key}"
                    components[key] = _combine(child.visibility, row_ctx, row_state, key)

        for section in self._model.sections:
            section_state = _override(
                _combine(section.visibility, ctx, VISIBLE, section.key), self._section_overrides.get(section.key)
            )
            sections[section.key] = section_state
            for child in section.children:
                if isinstance(child, RowNode):
                    visit_row(child, child.key, section_state, ctx, None)
                elif isinstance(child, ObjectNode):
                    object_state = _combine(child.visibility, ctx, section_state, child.path)
                    objects[child.path] = object_state
                    for row in child.rows:
                        visit_row(row, row.key, object_state, ctx, None)
                else:
                    list_state = _override(
                        _combine(child.visibility, ctx, section_state, child.path), self._field_overrides.get(child.path)
                    )
                    lists[child.path] = list_state
                    for index in range(len(ctx.get_value(child.path) or ())):
                        item_ctx = ctx.item_context(child.path, index)
                        prefix = item_path(child.path, index)
                        for row in child.item_rows:
                            visit_row(row, f"{prefix}/{row.key}", list_state, item_ctx, prefix)

        cleared = list(self._transitions(fields, lists))
        self._previous = {**fields, **lists}
        if cleared:
            logger.debug("Form %s: clearing %s", self._model.form_id, [path for path, _ in cleared])
        return ResolverPass(
            fields=fields,
            lists=lists,
            sections=sections,
            objects=objects,
            rows=rows,
            components=components,
            disabled=frozenset(disabled),
            read_only=frozenset(read_only),
            cleared=tuple(cleared),
        )

    def _transitions(
        self, fields: dict[str, VisibilityState], lists: dict[str, VisibilityState]
    ) -> Iterator[tuple[str, Any]]:
        cleared_lists = []
        for path, state in lists.items():
            if state.conditionally_hidden and not self._was_conditional(path):
                cleared_lists.append(f"{path}[")
                yield path, []
        for path, state in fields.items():
            if path.startswith(tuple(cleared_lists)):
                continue
            if state.conditionally_hidden and not self._was_conditional(path):
                yield path, self._empty_value(path)

    def _was_conditional(self, path: str) -> bool:
        previous = self._previous.get(path)
        return previous is not None and previous.conditionally_hidden

    def _empty_value(self, path: str) -> Any:
        node = self._model.field(path)
        return node.default if node is not None else None

