"""
Render snapshot.

A snapshot is the immutable, renderer-facing view of a settled context:
the model tree with each node's resolved visibility, disabled/read-only
flags, resolved component capability, props, value, errors and layout
ratio. Hidden nodes are included with ``visible=False``; whether to render
them is up to the rendering layer.
"""

from fractions import Fraction
from typing import TYPE_CHECKING, Any, Union

from attrs import frozen

from formtree.core.path_utils import item_path
from formtree.core.types import FormMode, HiddenBy, ListDisplayMode
from formtree.runtime.components import resolve_reference
from formtree.structure.model import FieldNode, ListNode, ObjectNode, RowNode

if TYPE_CHECKING:
    from formtree.runtime.context import FormContext


@frozen
class FieldSnapshot:
    path: str
    label: str | None
    placeholder: str | None
    component: Any
    props: dict[str, Any]
    value: Any
    errors: tuple[str, ...]
    visible: bool
    hidden_by: HiddenBy | None
    disabled: bool
    read_only: bool
    width: Fraction
    col_span: int | None = None
    pending: bool = False


@frozen
class ComponentSnapshot:
    key: str
    component: Any
    props: dict[str, Any]
    visible: bool
    width: Fraction
    col_span: int | None = None


@frozen
class RowSnapshot:
    key: str
    visible: bool
    children: tuple[Union[FieldSnapshot, ComponentSnapshot], ...]


@frozen
class ObjectSnapshot:
    path: str
    title: str | None
    visible: bool
    collapsible: bool
    collapsed: bool
    rows: tuple[RowSnapshot, ...]


@frozen
class ListItemSnapshot:
    index: int
    label: str
    rows: tuple[RowSnapshot, ...]
    errors: dict[str, list[str]]


@frozen
class ListSnapshot:
    path: str
    visible: bool
    hidden_by: HiddenBy | None
    display_mode: ListDisplayMode
    component: Any
    items: tuple[ListItemSnapshot, ...]
    errors: tuple[str, ...]
    can_add: bool
    can_remove: bool
    active_index: int


@frozen
class SectionSnapshot:
    key: str
    title: str
    visible: bool
    collapsible: bool
    collapsed: bool
    children: tuple[Union[RowSnapshot, ObjectSnapshot, ListSnapshot], ...]


@frozen
class FormSnapshot:
    form_id: str
    mode: FormMode
    sections: tuple[SectionSnapshot, ...]
    errors: dict[str, list[str]]
    is_dirty: bool
    is_submitting: bool

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def field(self, path: str) -> FieldSnapshot | None:
        """Find a field snapshot by absolute path (list items included)."""
        for row in self._rows():
            for child in row.children:
                if isinstance(child, FieldSnapshot) and child.path == path:
                    return child
        return None

    def _rows(self):
        for section in self.sections:
            for child in section.children:
                if isinstance(child, RowSnapshot):
                    yield child
                elif isinstance(child, ObjectSnapshot):
                    yield from child.rows
                else:
                    for item in child.items:
                        yield from item.rows


def _props(props: Any, ctx: Any) -> dict[str, Any]:
    if props is None:
        return {}
    if callable(props):
        return dict(props(ctx))
    return dict(props)


def _tab_label(node: ListNode, item: Any, index: int, ctx: Any) -> str:
    if callable(node.tab_label):
        return str(node.tab_label(item, index, ctx))
    return f"{node.tab_label or 'Item'} {index + 1}"


def build_snapshot(ctx: "FormContext", resolver: Any) -> FormSnapshot:
    """
    Build the render snapshot of a settled context.

    Params:
        ctx: The context to snapshot
        resolver: ComponentResolver or ``token -> capability`` function

    Raises:
        ComponentResolutionError: If a component token is not registered
    """
    resolved = ctx.visibility
    errors = ctx.get_errors()

    def row_snapshot(row: RowNode, row_key: str, row_ctx: Any, prefix: str | None) -> RowSnapshot:
        ratios = row.width_ratios()
        children = []
        for child, width in zip(row.children, ratios):
            if isinstance(child, FieldNode):
                path = child.path if prefix is None else f"{prefix}.{child.path}"
                state = resolved.state(path)
                children.append(
                    FieldSnapshot(
                        path=path,
                        label=child.label,
                        placeholder=child.placeholder,
                        component=resolve_reference(resolver, child.component_ref),
                        props=_props(child.props, row_ctx),
                        value=ctx.get_value(path),
                        errors=tuple(errors.get(path, ())),
                        visible=state.visible,
                        hidden_by=state.hidden_by,
                        disabled=path in resolved.disabled,
                        read_only=path in resolved.read_only,
                        width=width,
                        col_span=child.col_span,
                        pending=ctx.is_pending(path),
                    )
                )
            else:
                key = child.key if prefix is None else f"{prefix}/{child.key}"
                state = resolved.components.get(key)
                children.append(
                    ComponentSnapshot(
                        key=key,
                        component=resolve_reference(resolver, child.component_ref),
                        props=_props(child.props, row_ctx),
                        visible=state is None or state.visible,
                        width=width,
                        col_span=child.col_span,
                    )
                )
        state = resolved.rows.get(row_key)
        return RowSnapshot(key=row_key, visible=state is None or state.visible, children=tuple(children))

    def list_snapshot(node: ListNode) -> ListSnapshot:
        manager = ctx.list(node.path)
        items = []
        for index, item in enumerate(manager.get_all()):
            prefix = item_path(node.path, index)
            item_ctx = ctx.item_context(node.path, index)
            items.append(
                ListItemSnapshot(
                    index=index,
                    label=_tab_label(node, item, index, item_ctx),
                    rows=tuple(row_snapshot(row, f"{prefix}/{row.key}", item_ctx, prefix) for row in node.item_rows),
                    errors=manager.item_errors(index),
                )
            )
        state = resolved.state(node.path)
        return ListSnapshot(
            path=node.path,
            visible=state.visible,
            hidden_by=state.hidden_by,
            display_mode=node.display_mode,
            component=resolve_reference(resolver, node.custom_component),
            items=tuple(items),
            errors=tuple(errors.get(node.path, ())),
            can_add=manager.can_add(),
            can_remove=manager.can_remove(),
            active_index=manager.active_index,
        )

    sections = []
    for section in ctx.model.sections:
        children: list[Any] = []
        for child in section.children:
            if isinstance(child, RowNode):
                children.append(row_snapshot(child, child.key, ctx, None))
            elif isinstance(child, ObjectNode):
                state = resolved.objects.get(child.path)
                children.append(
                    ObjectSnapshot(
                        path=child.path,
                        title=child.title,
                        visible=state is None or state.visible,
                        collapsible=child.collapsible,
                        collapsed=child.default_collapsed,
                        rows=tuple(row_snapshot(row, row.key, ctx, None) for row in child.rows),
                    )
                )
            else:
                children.append(list_snapshot(child))
        state = resolved.sections.get(section.key)
        sections.append(
            SectionSnapshot(
                key=section.key,
                title=section.title,
                visible=state is None or state.visible,
                collapsible=section.collapsible,
                collapsed=section.default_collapsed,
                children=tuple(children),
            )
        )

    return FormSnapshot(
        form_id=ctx.model.form_id,
        mode=ctx.mode,
        sections=tuple(sections),
        errors=errors,
        is_dirty=ctx.is_dirty(),
        is_submitting=ctx.is_submitting,
    )
