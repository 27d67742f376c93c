"""
Fluent builder that compiles a form definition into a FormModel.

The builder is an explicit typed stack machine: ``add_*`` calls push a frame
for the node under construction, modifiers apply to the frame on top, and
``end_*`` calls pop it after checking it is the expected kind. Mismatched
nesting, layout/child-count mismatches and duplicate field names are
construction errors raised while the form is being built, so an invalid
tree never reaches the runtime.

Example:
    model = (
        FormBuilder("customer")
        .add_section("Address")
            .add_row()
                .add_field("address.street").label("Street").required().end_field()
                .add_field("address.city").label("City").end_field()
                .layout([2, 1])
            .end_row()
        .end_section()
        .build()
    )
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from formtree.config import get_settings
from formtree.core.path_utils import join_path, validate_path_format
from formtree.core.types import ComponentRef, ListDisplayMode, PropsValue, ValidationMode
from formtree.exceptions import (
    BuilderNestingError,
    DuplicateFieldError,
    ErrorContext,
    LayoutMismatchError,
    PathValidationError,
)
from formtree.structure.model import (
    ComponentNode,
    DependencyBinding,
    FieldNode,
    FormModel,
    ListNode,
    ObjectNode,
    RowNode,
    SectionNode,
    VisibilityRules,
)
from formtree.validation.validators import ValidatorDescriptor, Validators

logger = logging.getLogger(__name__)

DEFAULT_SECTION_KEY = "__default__"

# Which frame kinds may directly contain which
_ALLOWED_PARENTS: dict[str, frozenset[str]] = {
    "section": frozenset({"form"}),
    "row": frozenset({"form", "section", "object", "list"}),
    "object": frozenset({"section"}),
    "list": frozenset({"form", "section"}),
    "field": frozenset({"row"}),
    "component": frozenset({"row"}),
}

_VISIBILITY_TARGETS = frozenset({"section", "row", "object", "list", "field", "component"})


@dataclass
class _Frame:
    """A node under construction."""

    kind: str
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list[Any] = field(default_factory=list)
    prefix: str | None = None  # path prefix applied to fields declared inside
    list_path: str | None = None  # set inside list templates
    field_names: set[str] = field(default_factory=set)  # duplicate detection scope
    layout_count: int | None = None
    visibility: VisibilityRules = field(default_factory=VisibilityRules)


class FormBuilder:
    """Coordinator for assembling a FormModel through chained calls.

    Responsibilities:
    - Maintain the stack of open frames and check every push/pop
    - Compute absolute field paths from object/include prefixes
    - Enforce per-scope field name uniqueness and row layout consistency
    - Freeze the finished tree into a FormModel on ``build()``

    All methods return the builder itself, scoped to whatever frame is on
    top of the stack after the call.
    """

    def __init__(self, form_id: str, entity_type: type | None = None):
        self._form_id = form_id
        self._entity_type = entity_type
        self._stack: list[_Frame] = [_Frame(kind="form")]
        self._direct_children: list[Any] = []
        self._read_only_rule: Callable[..., bool] | None = None
        self._default_values: dict[str, Any] = {}
        self._list_paths: set[str] = set()
        self._section_keys: set[str] = set()
        self._row_counter = 0
        self._component_counter = 0
        self._built = False

    # =========================================================================
    # STACK MACHINE
    # =========================================================================

    @property
    def _top(self) -> _Frame:
        return self._stack[-1]

    @property
    def depth(self) -> int:
        """Number of open scopes below the form itself."""
        return len(self._stack) - 1

    def _error_context(self, call: str, node_path: str | None = None) -> ErrorContext:
        return ErrorContext(
            form_id=self._form_id,
            node_path=node_path,
            builder_call=call,
            frame_stack=tuple(frame.kind for frame in self._stack),
        )

    def _nesting_error(self, message: str, call: str) -> BuilderNestingError:
        return BuilderNestingError(
            message, self._error_context(call), get_settings().error_level
        )

    def _check_open(self, call: str) -> None:
        if self._built:
            raise self._nesting_error("Form has already been built", call)

    def _push(self, kind: str, call: str, **frame_kwargs) -> _Frame:
        self._check_open(call)
        allowed = _ALLOWED_PARENTS[kind]
        if self._top.kind not in allowed:
            raise self._nesting_error(
                f"Cannot add a {kind} inside a {self._top.kind} "
                f"(allowed in: {', '.join(sorted(allowed))})",
                call,
            )
        parent = self._top
        frame_kwargs.setdefault("prefix", parent.prefix)
        frame_kwargs.setdefault("list_path", parent.list_path)
        frame = _Frame(kind=kind, **frame_kwargs)
        self._stack.append(frame)
        return frame

    def _pop(self, kind: str | None, call: str) -> _Frame:
        self._check_open(call)
        if len(self._stack) == 1:
            raise self._nesting_error(f"{call}() called with no open scope", call)
        if kind is not None and self._top.kind != kind:
            raise self._nesting_error(
                f"{call}() called while a {self._top.kind} is open", call
            )
        return self._stack.pop()

    def _require(self, call: str, kinds: Iterable[str]) -> _Frame:
        self._check_open(call)
        kinds = frozenset(kinds)
        if self._top.kind not in kinds:
            raise self._nesting_error(
                f"{call}() does not apply to a {self._top.kind} "
                f"(applies to: {', '.join(sorted(kinds))})",
                call,
            )
        return self._top

    def _scope_frame(self) -> _Frame:
        """Nearest frame owning the field-name uniqueness scope (list or form)."""
        for frame in reversed(self._stack):
            if frame.kind in ("list", "form"):
                return frame
        return self._stack[0]

    def _attach(self, node: Any) -> None:
        parent = self._top
        if parent.kind == "form":
            self._direct_children.append(node)
        else:
            parent.children.append(node)

    # =========================================================================
    # ADD / END
    # =========================================================================

    def add_section(self, title: str, key: str | None = None) -> "FormBuilder":
        """Open a section. ``key`` defaults to the title."""
        section_key = key or title
        if section_key in self._section_keys:
            raise DuplicateFieldError(
                section_key,
                f"form '{self._form_id}' sections",
                self._error_context("add_section", section_key),
                get_settings().error_level,
            )
        self._section_keys.add(section_key)
        frame = self._push("section", "add_section")
        frame.attrs.update(key=section_key, title=title)
        return self

    def end_section(self) -> "FormBuilder":
        frame = self._pop("section", "end_section")
        self._attach(
            SectionNode(
                key=frame.attrs["key"],
                title=frame.attrs.get("title", ""),
                children=tuple(frame.children),
                collapsible=frame.attrs.get("collapsible", False),
                default_collapsed=frame.attrs.get("default_collapsed", False),
                visibility=frame.visibility,
            )
        )
        return self

    def add_row(self) -> "FormBuilder":
        self._push("row", "add_row")
        return self

    def end_row(self) -> "FormBuilder":
        frame = self._pop("row", "end_row")
        self._row_counter += 1
        key = f"row-{self._row_counter}"
        layout = frame.attrs.get("layout")
        if layout is not None and frame.layout_count != len(frame.children):
            raise LayoutMismatchError(
                f"Row has {len(frame.children)} children but layout() was declared "
                f"for {frame.layout_count}; children were added after layout()",
                self._error_context("end_row", key),
                get_settings().error_level,
            )
        self._attach(
            RowNode(
                key=key,
                children=tuple(frame.children),
                layout=layout,
                visibility=frame.visibility,
            )
        )
        return self

    def add_field(self, name: str) -> "FormBuilder":
        """
        Open a field bound to ``name``.

        ``name`` is relative to the enclosing object/include prefix, or to the
        list item inside a list template.

        Raises:
            PathValidationError: If ``name`` is not a valid path
            DuplicateFieldError: If the resolved path already exists in scope
        """
        try:
            validate_path_format(name, "field name")
        except ValueError as e:
            raise PathValidationError(
                str(name), str(e), self._error_context("add_field"), get_settings().error_level
            ) from e

        frame = self._push("field", "add_field")
        path = join_path(frame.prefix, name)
        scope = self._scope_frame()
        if path in scope.field_names:
            self._stack.pop()
            where = f"list '{scope.list_path}'" if scope.kind == "list" else f"form '{self._form_id}'"
            raise DuplicateFieldError(
                path, where, self._error_context("add_field", path), get_settings().error_level
            )
        scope.field_names.add(path)
        frame.attrs.update(name=name, path=path, validators=[], dependencies=[])
        return self

    def end_field(self) -> "FormBuilder":
        frame = self._pop("field", "end_field")
        attrs = frame.attrs
        self._attach(
            FieldNode(
                name=attrs["name"],
                path=attrs["path"],
                component_ref=attrs.get("component_ref"),
                label=attrs.get("label"),
                placeholder=attrs.get("placeholder"),
                props=attrs.get("props"),
                validators=tuple(attrs["validators"]),
                visibility=frame.visibility,
                disable_rule=attrs.get("disable_rule"),
                read_only_rule=attrs.get("read_only_rule"),
                dependencies=tuple(attrs["dependencies"]),
                default=attrs.get("default"),
                col_span=attrs.get("col_span"),
                display=attrs.get("display", False),
            )
        )
        return self

    def add_component(self, component_ref: ComponentRef) -> "FormBuilder":
        """Open a non-field row element rendered by ``component_ref``."""
        frame = self._push("component", "add_component")
        frame.attrs["component_ref"] = component_ref
        return self

    def end_component(self) -> "FormBuilder":
        frame = self._pop("component", "end_component")
        self._component_counter += 1
        self._attach(
            ComponentNode(
                key=f"component-{self._component_counter}",
                component_ref=frame.attrs["component_ref"],
                props=frame.attrs.get("props"),
                visibility=frame.visibility,
                col_span=frame.attrs.get("col_span"),
            )
        )
        return self

    def add_object(self, name: str, title: str | None = None) -> "FormBuilder":
        """Open a nested object; fields inside are stored under ``name.``."""
        try:
            validate_path_format(name, "object name")
        except ValueError as e:
            raise PathValidationError(
                str(name), str(e), self._error_context("add_object"), get_settings().error_level
            ) from e
        parent_prefix = self._top.prefix
        frame = self._push("object", "add_object", prefix=join_path(parent_prefix, name))
        frame.attrs.update(name=name, path=frame.prefix, title=title)
        return self

    def end_object(self) -> "FormBuilder":
        frame = self._pop("object", "end_object")
        self._attach(
            ObjectNode(
                name=frame.attrs["name"],
                path=frame.attrs["path"],
                title=frame.attrs.get("title"),
                rows=tuple(frame.children),
                collapsible=frame.attrs.get("collapsible", False),
                default_collapsed=frame.attrs.get("default_collapsed", False),
                visibility=frame.visibility,
            )
        )
        return self

    def add_list(
        self,
        name: str,
        *,
        min_items: int = 0,
        max_items: int | None = None,
        display_mode: ListDisplayMode | str = ListDisplayMode.ROWS,
    ) -> "FormBuilder":
        """
        Open a list bound to the array at ``name``.

        Rows added inside form the item template; their field paths are
        relative to each item.
        """
        try:
            validate_path_format(name, "list name")
        except ValueError as e:
            raise PathValidationError(
                str(name), str(e), self._error_context("add_list"), get_settings().error_level
            ) from e
        path = join_path(self._top.prefix, name)
        if path in self._list_paths or path in self._stack[0].field_names:
            raise DuplicateFieldError(
                path,
                f"form '{self._form_id}'",
                self._error_context("add_list", path),
                get_settings().error_level,
            )
        frame = self._push("list", "add_list", prefix=None, list_path=path)
        self._list_paths.add(path)
        self._stack[0].field_names.add(path)
        frame.attrs.update(name=name, path=path, validators=[], display_mode=ListDisplayMode(display_mode))
        self._set_bounds(frame, min_items, max_items, "add_list")
        return self

    def end_list(self) -> "FormBuilder":
        frame = self._pop("list", "end_list")
        attrs = frame.attrs
        if attrs["display_mode"] == ListDisplayMode.CUSTOM and attrs.get("custom_component") is None:
            raise BuilderNestingError(
                "Custom list display requires a component",
                self._error_context("end_list", attrs["path"]),
                get_settings().error_level,
            )
        self._attach(
            ListNode(
                name=attrs["name"],
                path=attrs["path"],
                item_rows=tuple(frame.children),
                min_items=attrs["min_items"],
                max_items=attrs["max_items"],
                display_mode=attrs["display_mode"],
                custom_component=attrs.get("custom_component"),
                defaults=attrs.get("defaults"),
                validators=tuple(attrs["validators"]),
                visibility=frame.visibility,
                tab_label=attrs.get("tab_label"),
            )
        )
        return self

    def end(self) -> "FormBuilder":
        """Close whatever scope is on top of the stack."""
        closers = {
            "section": self.end_section,
            "row": self.end_row,
            "field": self.end_field,
            "component": self.end_component,
            "object": self.end_object,
            "list": self.end_list,
        }
        if len(self._stack) == 1:
            raise self._nesting_error("end() called with no open scope", "end")
        return closers[self._top.kind]()

    def include(self, section_class: type["FormSection"], prefix: str, title: str | None = None) -> "FormBuilder":
        """
        Include a reusable section with every field path under ``prefix``.

        Example:
            form.include(AddressSection, "home_address", "Home Address")
            form.include(AddressSection, "work_address", "Work Address")
        """
        section = section_class()
        section_title = title if title is not None else section.title
        self.add_section(section_title, key=section.key or f"{prefix}:{section_title}")
        self._top.prefix = join_path(self._top.prefix, prefix)
        section.configure(self)
        return self.end_section()

    # =========================================================================
    # FORM-LEVEL SETTINGS
    # =========================================================================

    def set_read_only(self, rule: bool | Callable[..., bool]) -> "FormBuilder":
        """Make every field read-only, always or when ``rule(ctx)`` holds."""
        self._check_open("set_read_only")
        self._read_only_rule = rule if callable(rule) else (lambda ctx, _flag=bool(rule): _flag)
        return self

    def set_default_values(self, values: dict[str, Any]) -> "FormBuilder":
        """Values merged under the entity when a session loads."""
        self._check_open("set_default_values")
        self._default_values = dict(values)
        return self

    # =========================================================================
    # FIELD MODIFIERS
    # =========================================================================

    def label(self, text: str) -> "FormBuilder":
        self._require("label", {"field"}).attrs["label"] = text
        return self

    def placeholder(self, text: str) -> "FormBuilder":
        self._require("placeholder", {"field"}).attrs["placeholder"] = text
        return self

    def component(self, component_ref: ComponentRef) -> "FormBuilder":
        """Set the widget used to render the field (token or capability)."""
        frame = self._require("component", {"field", "list"})
        if frame.kind == "list":
            frame.attrs["custom_component"] = component_ref
            frame.attrs["display_mode"] = ListDisplayMode.CUSTOM
        else:
            frame.attrs["component_ref"] = component_ref
        return self

    def props(self, props: PropsValue) -> "FormBuilder":
        """Extra props for the adapter: a mapping or ``ctx -> mapping``."""
        self._require("props", {"field", "component"}).attrs["props"] = props
        return self

    def rules(self, *validators: ValidatorDescriptor) -> "FormBuilder":
        """Append validators; they run in declaration order."""
        frame = self._require("rules", {"field", "list"})
        for validator in validators:
            if not isinstance(validator, ValidatorDescriptor):
                raise self._nesting_error(
                    f"rules() expects ValidatorDescriptor, got {type(validator).__name__}",
                    "rules",
                )
        frame.attrs["validators"].extend(validators)
        return self

    def required(self, message: str | None = None, **scoping) -> "FormBuilder":
        """Shortcut for ``rules(Validators.required(message))``."""
        return self.rules(Validators.required(message, **scoping))

    def disable(self, rule: Callable[..., bool]) -> "FormBuilder":
        """Disable the field when ``rule(ctx)`` holds. Validation still runs."""
        self._require("disable", {"field"}).attrs["disable_rule"] = rule
        return self

    def read_only(self, rule: bool | Callable[..., bool] = True) -> "FormBuilder":
        """Make the field read-only, always or when ``rule(ctx)`` holds."""
        frame = self._require("read_only", {"field"})
        frame.attrs["read_only_rule"] = rule if callable(rule) else (lambda ctx, _flag=bool(rule): _flag)
        return self

    def default(self, value: Any) -> "FormBuilder":
        """Empty value restored when the field is cleared by a conditional hide."""
        self._require("default", {"field"}).attrs["default"] = value
        return self

    def col_span(self, span: int) -> "FormBuilder":
        self._require("col_span", {"field", "component"}).attrs["col_span"] = span
        return self

    def display(self, is_display: bool = True) -> "FormBuilder":
        """Render the field as read-only display text."""
        self._require("display", {"field"}).attrs["display"] = is_display
        return self

    def depends_on(
        self,
        sources: str | Sequence[str],
        handler: Callable[..., Any] | None = None,
        *,
        clear: bool = False,
        reset: bool = False,
        only_if_truthy: bool = False,
    ) -> "FormBuilder":
        """
        React to changes of other fields.

        Params:
            sources: Absolute path or paths observed (item-relative inside
                list templates)
            handler: Called as ``handler(new_value, ctx)`` on every change
            clear: Clear this field when a source changes
            reset: Restore this field's initial value when a source changes
            only_if_truthy: Skip the reaction when the new value is falsy
        """
        frame = self._require("depends_on", {"field"})
        if isinstance(sources, str):
            sources = [sources]
        for source in sources:
            try:
                validate_path_format(source, "dependency source")
            except ValueError as e:
                raise PathValidationError(
                    str(source), str(e), self._error_context("depends_on"), get_settings().error_level
                ) from e
            frame.attrs["dependencies"].append(
                DependencyBinding(
                    source=source,
                    target=frame.attrs["path"],
                    handler=handler,
                    clear=clear,
                    reset=reset,
                    only_if_truthy=only_if_truthy,
                    list_path=frame.list_path,
                )
            )
        return self

    # =========================================================================
    # VISIBILITY MODIFIERS
    # =========================================================================

    def visible_by_condition(self, predicate: Callable[..., bool]) -> "FormBuilder":
        """Show only while ``predicate(ctx)`` holds; hidden values are cleared."""
        frame = self._require("visible_by_condition", _VISIBILITY_TARGETS)
        frame.visibility = frame.visibility.add_conditional(predicate)
        return self

    def hide_by_condition(self, predicate: Callable[..., bool]) -> "FormBuilder":
        """Hide while ``predicate(ctx)`` holds; hidden values are cleared."""
        frame = self._require("hide_by_condition", _VISIBILITY_TARGETS)
        frame.visibility = frame.visibility.add_conditional(lambda ctx: not predicate(ctx))
        return self

    def visible_by_access(self, predicate: Callable[..., bool]) -> "FormBuilder":
        """Show only while ``predicate(ctx)`` holds; hidden values are kept and validated."""
        frame = self._require("visible_by_access", _VISIBILITY_TARGETS)
        frame.visibility = frame.visibility.add_access(predicate)
        return self

    def hide_by_access(self, predicate: Callable[..., bool]) -> "FormBuilder":
        """Hide while ``predicate(ctx)`` holds; hidden values are kept and validated."""
        frame = self._require("hide_by_access", _VISIBILITY_TARGETS)
        frame.visibility = frame.visibility.add_access(lambda ctx: not predicate(ctx))
        return self

    # =========================================================================
    # ROW / SECTION / LIST MODIFIERS
    # =========================================================================

    def layout(self, weights: Sequence[float]) -> "FormBuilder":
        """
        Declare relative child widths for the current row.

        Must be called after every child was added: the number of weights
        has to equal the number of children, and adding a child afterwards
        fails when the row is closed.

        Raises:
            LayoutMismatchError: On count mismatch or non-positive weights
        """
        frame = self._require("layout", {"row"})
        weights = tuple(weights)
        if len(weights) != len(frame.children):
            raise LayoutMismatchError(
                f"layout() has {len(weights)} weights but the row has "
                f"{len(frame.children)} children",
                self._error_context("layout"),
                get_settings().error_level,
            )
        if any(isinstance(w, bool) or not isinstance(w, (int, float)) or w <= 0 for w in weights):
            raise LayoutMismatchError(
                f"layout() weights must be positive numbers, got {list(weights)}",
                self._error_context("layout"),
                get_settings().error_level,
            )
        frame.attrs["layout"] = weights
        frame.layout_count = len(frame.children)
        return self

    def collapsible(self, collapsible: bool = True) -> "FormBuilder":
        self._require("collapsible", {"section", "object"}).attrs["collapsible"] = collapsible
        return self

    def collapsed(self, collapsed: bool = True) -> "FormBuilder":
        """Start collapsed (implies collapsible)."""
        frame = self._require("collapsed", {"section", "object"})
        frame.attrs["default_collapsed"] = collapsed
        if collapsed:
            frame.attrs["collapsible"] = True
        return self

    def title(self, text: str) -> "FormBuilder":
        self._require("title", {"section", "object"}).attrs["title"] = text
        return self

    def min(self, count: int) -> "FormBuilder":
        frame = self._require("min", {"list"})
        self._set_bounds(frame, count, frame.attrs["max_items"], "min")
        return self

    def max(self, count: int) -> "FormBuilder":
        frame = self._require("max", {"list"})
        self._set_bounds(frame, frame.attrs["min_items"], count, "max")
        return self

    def display_mode(self, mode: ListDisplayMode | str) -> "FormBuilder":
        self._require("display_mode", {"list"}).attrs["display_mode"] = ListDisplayMode(mode)
        return self

    def defaults(self, values: dict[str, Any] | Callable[..., dict[str, Any]]) -> "FormBuilder":
        """Item defaults: a mapping or ``(ctx, index) -> mapping``."""
        self._require("defaults", {"list"}).attrs["defaults"] = values
        return self

    def tab_label(self, label: str | Callable[..., str]) -> "FormBuilder":
        """Tab caption for tabbed lists: text or ``(item, index, ctx) -> str``."""
        self._require("tab_label", {"list"}).attrs["tab_label"] = label
        return self

    def _set_bounds(self, frame: _Frame, min_items: int, max_items: int | None, call: str) -> None:
        if min_items < 0 or (max_items is not None and max_items < min_items):
            raise BuilderNestingError(
                f"Invalid list bounds min={min_items}, max={max_items}",
                self._error_context(call, frame.attrs.get("path")),
                get_settings().error_level,
            )
        frame.attrs["min_items"] = min_items
        frame.attrs["max_items"] = max_items

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> FormModel:
        """
        Freeze the definition into a FormModel.

        Rows and lists declared directly on the form are collected into an
        untitled default section placed first.

        Raises:
            BuilderNestingError: If any scope is still open or the form was
                already built
            PathValidationError: If an entity type is bound and a path does
                not resolve through it
        """
        self._check_open("build")
        if len(self._stack) > 1:
            open_kinds = [frame.kind for frame in self._stack[1:]]
            raise self._nesting_error(
                f"build() called with open scopes: {', '.join(open_kinds)}", "build"
            )

        sections: list[SectionNode] = []
        loose: list[Any] = []
        for node in self._direct_children:
            if isinstance(node, SectionNode):
                sections.append(node)
            else:
                loose.append(node)
        if loose:
            sections.insert(0, SectionNode(key=DEFAULT_SECTION_KEY, title="", children=tuple(loose)))

        model = FormModel(
            form_id=self._form_id,
            sections=tuple(sections),
            read_only_rule=self._read_only_rule,
            default_values=self._default_values,
            entity_type=self._entity_type,
        )

        if self._entity_type is not None:
            from formtree.structure.validation import validate_entity_paths

            validate_entity_paths(model)

        self._built = True
        logger.debug(
            "Built form %s: %d section(s), %d field(s)",
            self._form_id,
            len(model.sections),
            len(model.field_paths()),
        )
        return model


class FormSection:
    """
    A reusable block of rows included into forms with a path prefix.

    Subclass and override ``configure``; call only row-level builder methods
    (``add_row`` / ``add_object`` / ``add_list``) inside it.

    Example:
        class AddressSection(FormSection):
            title = "Address"

            def configure(self, form):
                (form.add_row()
                    .add_field("street").label("Street").end_field()
                    .add_field("city").label("City").end_field()
                    .layout([2, 1])
                 .end_row())
    """

    title: str = ""
    key: str | None = None

    def configure(self, form: FormBuilder) -> None:
        raise NotImplementedError


class Form:
    """
    Base class for form definitions.

    Subclass, override ``configure`` to declare the tree, and override any
    lifecycle hook. Hooks may be plain functions or coroutine functions; the
    session awaits whatever they return. The model is compiled once in the
    constructor and never changes afterwards.

    Example:
        class CustomerForm(Form):
            form_id = "customer"

            def configure(self, form):
                (form.add_row()
                    .add_field("name").label("Name").required().end_field()
                 .end_row())

            async def on_submit(self, ctx, action):
                await save(ctx.get_form_data())
    """

    form_id: str | None = None
    entity_type: type | None = None
    validation_mode: ValidationMode | None = None

    def __init__(self):
        self._load_handlers: list[Callable[..., Any]] = []
        self._submit_handlers: list[Callable[..., Any]] = []
        self._validate_handlers: list[Callable[..., Any]] = []
        builder = FormBuilder(self.form_id or type(self).__name__, self.entity_type)
        self.configure(builder)
        self.model: FormModel = builder.build()

    def configure(self, form: FormBuilder) -> None:
        """Declare sections, rows, fields and lists on ``form``."""
        raise NotImplementedError(f"{type(self).__name__} must implement configure()")

    # -------------------------------------------------------------------------
    # Extra handlers
    # -------------------------------------------------------------------------

    def add_load_handler(self, handler: Callable[..., Any]) -> None:
        """Run ``handler(ctx)`` after ``on_load``, in registration order."""
        self._load_handlers.append(handler)

    def add_submit_handler(self, handler: Callable[..., Any]) -> None:
        """Run ``handler(ctx, action)`` after ``on_submit``, in registration order."""
        self._submit_handlers.append(handler)

    def add_validate_handler(self, handler: Callable[..., Any]) -> None:
        """Run ``handler(ctx)`` as a whole-form check after ``on_validate``."""
        self._validate_handlers.append(handler)

    @property
    def load_handlers(self) -> list[Callable[..., Any]]:
        return [self.on_load, *self._load_handlers]

    @property
    def submit_handlers(self) -> list[Callable[..., Any]]:
        return [self.on_submit, *self._submit_handlers]

    @property
    def validate_handlers(self) -> list[Callable[..., Any]]:
        return [self.on_validate, *self._validate_handlers]

    # -------------------------------------------------------------------------
    # Lifecycle hooks
    # -------------------------------------------------------------------------

    def on_init(self, ctx) -> Any:
        """Called once the context is populated, before load handlers."""

    def on_load(self, ctx) -> Any:
        """Load data; may be a coroutine."""

    def on_field_change(self, path: str, value: Any, ctx) -> Any:
        """Called after every user change has propagated."""

    def on_validate(self, ctx) -> Any:
        """
        Whole-form check run only when every field passed.

        Returns:
            None/True to pass, False or an error message to fail
        """
        return None

    def on_before_submit(self, ctx, action: str | None) -> Any:
        """Return False to cancel the submission."""
        return None

    def on_submit(self, ctx, action: str | None) -> Any:
        """Submit handler; exceptions abort the submission."""

    def on_after_submit(self, ctx, result) -> Any:
        pass

    def on_validation_error(self, ctx, errors: dict[str, list[str]]) -> Any:
        pass

    def on_before_reset(self, ctx) -> Any:
        """Return False to cancel the reset."""
        return None

    def on_after_reset(self, ctx) -> Any:
        pass
