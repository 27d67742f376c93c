"""
Declarative form model.

Immutable tree produced by the builder: FormModel -> SectionNode ->
RowNode / ObjectNode / ListNode -> FieldNode / ComponentNode. List nodes
hold a row template that is instantiated once per list item at runtime.
Nodes are frozen pydantic models; the small value objects they carry
(visibility rules, dependency bindings) are attrs frozen classes.
"""

from collections.abc import Callable, Iterator
from fractions import Fraction
from typing import Any, Union

from attrs import evolve, frozen
from pydantic import Field

from formtree.core.path_utils import join_path
from formtree.core.tree_node import ModelNode
from formtree.core.types import ListDisplayMode
from formtree.validation.validators import ValidatorDescriptor


@frozen
class VisibilityRules:
    """
    Visibility predicates of one node, split by retention policy.

    Every stored predicate is normalized so that ``True`` means "visible":
    ``hide_by_condition(p)`` is stored as ``not p(ctx)``. A node is shown
    only when every predicate in both families holds.
    """

    conditional: tuple[Callable[..., bool], ...] = ()
    access: tuple[Callable[..., bool], ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.conditional and not self.access

    def add_conditional(self, predicate: Callable[..., bool]) -> "VisibilityRules":
        return evolve(self, conditional=(*self.conditional, predicate))

    def add_access(self, predicate: Callable[..., bool]) -> "VisibilityRules":
        return evolve(self, access=(*self.access, predicate))


@frozen
class DependencyBinding:
    """
    A handler reacting to changes of ``source``.

    ``target`` is the field that declared the binding; ``clear`` and
    ``reset`` act on it. Bindings declared inside a list template carry the
    list path and are matched against every item (``items[i].<source>``).
    """

    source: str
    target: str
    handler: Callable[..., Any] | None = None
    clear: bool = False
    reset: bool = False
    only_if_truthy: bool = False
    list_path: str | None = None


class FieldNode(ModelNode):
    """A single bound input. ``path`` is absolute, or item-relative inside a list template."""

    name: str
    path: str
    component_ref: Any = None
    label: str | None = None
    placeholder: str | None = None
    props: Any = None
    validators: tuple[ValidatorDescriptor, ...] = ()
    visibility: VisibilityRules = Field(default_factory=VisibilityRules)
    disable_rule: Callable[..., bool] | None = None
    read_only_rule: Callable[..., bool] | None = None
    dependencies: tuple[DependencyBinding, ...] = ()
    default: Any = None
    col_span: int | None = None
    display: bool = False


class ComponentNode(ModelNode):
    """A non-field element of a row (buttons, text, custom widgets)."""

    key: str
    component_ref: Any
    props: Any = None
    visibility: VisibilityRules = Field(default_factory=VisibilityRules)
    col_span: int | None = None


class RowNode(ModelNode):
    """Ordered fields and components laid out horizontally."""

    key: str
    children: tuple[FieldNode | ComponentNode, ...] = ()
    layout: tuple[float, ...] | None = None
    visibility: VisibilityRules = Field(default_factory=VisibilityRules)

    @property
    def fields(self) -> tuple[FieldNode, ...]:
        return tuple(child for child in self.children if isinstance(child, FieldNode))

    def width_ratios(self) -> list[Fraction]:
        """
        Share of the row width taken by each child.

        With a layout, child ``i`` gets ``layout[i] / sum(layout)``; without
        one, children share the row equally.

        Returns:
            One exact ratio per child, summing to 1 (empty for an empty row)
        """
        if not self.children:
            return []
        if self.layout is None:
            return [Fraction(1, len(self.children))] * len(self.children)
        weights = [Fraction(weight).limit_denominator() for weight in self.layout]
        total = sum(weights)
        return [weight / total for weight in weights]


class ObjectNode(ModelNode):
    """A nested object: its fields live under ``path``."""

    name: str
    path: str
    title: str | None = None
    rows: tuple[RowNode, ...] = ()
    collapsible: bool = False
    default_collapsed: bool = False
    visibility: VisibilityRules = Field(default_factory=VisibilityRules)


class ListNode(ModelNode):
    """An array-valued field whose items share one row template."""

    name: str
    path: str
    item_rows: tuple[RowNode, ...] = ()
    min_items: int = 0
    max_items: int | None = None
    display_mode: ListDisplayMode = ListDisplayMode.ROWS
    custom_component: Any = None
    defaults: Any = None
    validators: tuple[ValidatorDescriptor, ...] = ()
    visibility: VisibilityRules = Field(default_factory=VisibilityRules)
    tab_label: Any = None

    def item_fields(self) -> Iterator[tuple[FieldNode, RowNode]]:
        """Template fields (item-relative paths) with their row."""
        for row in self.item_rows:
            for node in row.fields:
                yield node, row

    def item_field(self, relative_path: str) -> FieldNode | None:
        for node, _ in self.item_fields():
            if node.path == relative_path:
                return node
        return None


SectionChild = Union[RowNode, ObjectNode, ListNode]


class SectionNode(ModelNode):
    """A titled group of rows, nested objects and lists."""

    key: str
    title: str = ""
    children: tuple[SectionChild, ...] = ()
    collapsible: bool = False
    default_collapsed: bool = False
    visibility: VisibilityRules = Field(default_factory=VisibilityRules)


class FormModel(ModelNode):
    """
    The compiled, immutable form definition.

    Built once per Form instance by ``FormBuilder.build()``. Lookup helpers
    walk the tree on demand; forms are small enough that no index is kept.
    """

    form_id: str
    sections: tuple[SectionNode, ...] = ()
    read_only_rule: Callable[..., bool] | None = None
    default_values: dict[str, Any] = Field(default_factory=dict)
    entity_type: Any = None

    def iter_fields(self) -> Iterator[tuple[FieldNode, tuple[ModelNode, ...]]]:
        """
        Walk every field outside list templates.

        Yields:
            (field, ancestors) where ancestors run from the section down to
            the field's row
        """
        for section in self.sections:
            for child in section.children:
                if isinstance(child, RowNode):
                    for node in child.fields:
                        yield node, (section, child)
                elif isinstance(child, ObjectNode):
                    for row in child.rows:
                        for node in row.fields:
                            yield node, (section, child, row)

    def iter_lists(self) -> Iterator[tuple[ListNode, tuple[ModelNode, ...]]]:
        """Walk every list node with its ancestors (the section)."""
        for section in self.sections:
            for child in section.children:
                if isinstance(child, ListNode):
                    yield child, (section,)

    def iter_rows(self) -> Iterator[tuple[RowNode, tuple[ModelNode, ...]]]:
        """Walk every row outside list templates with its ancestors."""
        for section in self.sections:
            for child in section.children:
                if isinstance(child, RowNode):
                    yield child, (section,)
                elif isinstance(child, ObjectNode):
                    for row in child.rows:
                        yield row, (section, child)

    def iter_components(self) -> Iterator[tuple[ComponentNode, tuple[ModelNode, ...]]]:
        for row, ancestors in self.iter_rows():
            for child in row.children:
                if isinstance(child, ComponentNode):
                    yield child, (*ancestors, row)

    def field(self, path: str) -> FieldNode | None:
        """Look up a field by absolute path (list item paths included)."""
        for node, _ in self.iter_fields():
            if node.path == path:
                return node
        for list_node, _ in self.iter_lists():
            prefix = f"{list_node.path}["
            if path.startswith(prefix) and "]." in path:
                relative = path.split("].", 1)[1]
                return list_node.item_field(relative)
        return None

    def list_node(self, path: str) -> ListNode | None:
        for list_node, _ in self.iter_lists():
            if list_node.path == path:
                return list_node
        return None

    def section(self, key: str) -> SectionNode | None:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    def field_paths(self) -> list[str]:
        return [node.path for node, _ in self.iter_fields()]

    def all_bindings(self) -> list[DependencyBinding]:
        """Dependency bindings in declaration order, list templates included."""
        bindings: list[DependencyBinding] = []
        for section in self.sections:
            for child in section.children:
                rows: tuple[RowNode, ...]
                if isinstance(child, RowNode):
                    rows = (child,)
                elif isinstance(child, ObjectNode):
                    rows = child.rows
                else:
                    rows = child.item_rows
                for row in rows:
                    for node in row.fields:
                        bindings.extend(node.dependencies)
        return bindings


def absolute_item_path(list_path: str, index: int, relative_path: str) -> str:
    """Absolute path of a template field for one list item."""
    return join_path(f"{list_path}[{index}]", relative_path)
