"""
Tests for the FormBuilder stack machine and the Form/FormSection bases.

Focus Areas:
1. Scope nesting: add_* / end_* pairing and allowed parents
2. Row layout consistency
3. Field name uniqueness per scope
4. Path prefixes from objects and included sections
5. Form subclasses and hook registration
"""

from fractions import Fraction

import pytest

from formtree.core import ListDisplayMode
from formtree.exceptions import (
    BuilderNestingError,
    DuplicateFieldError,
    ErrorLevel,
    LayoutMismatchError,
    PathValidationError,
)
from formtree.structure import (
    DEFAULT_SECTION_KEY,
    ComponentNode,
    FieldNode,
    Form,
    FormBuilder,
    FormSection,
    ListNode,
    ObjectNode,
    RowNode,
)
from formtree.validation import Validators


def simple_row(builder: FormBuilder, *names: str) -> FormBuilder:
    builder.add_row()
    for name in names:
        builder.add_field(name).end_field()
    return builder.end_row()


class TestScopeNesting:
    """Builder scopes must be closed in order."""

    def test_minimal_form(self):
        model = (
            FormBuilder("customer")
            .add_section("General")
            .add_row()
            .add_field("name").label("Name").end_field()
            .end_row()
            .end_section()
            .build()
        )

        assert model.form_id == "customer"
        assert [s.title for s in model.sections] == ["General"]
        node = model.field("name")
        assert isinstance(node, FieldNode)
        assert node.label == "Name"

    def test_end_without_matching_scope(self):
        builder = FormBuilder("f").add_section("S").add_row()

        with pytest.raises(BuilderNestingError) as exc:
            builder.end_section()

        assert "end_section() called while a row is open" in str(exc.value)

    def test_end_with_nothing_open(self):
        with pytest.raises(BuilderNestingError):
            FormBuilder("f").end_row()

    def test_field_outside_row_rejected(self):
        with pytest.raises(BuilderNestingError) as exc:
            FormBuilder("f").add_section("S").add_field("name")

        assert "Cannot add a field inside a section" in str(exc.value)

    def test_section_inside_section_rejected(self):
        with pytest.raises(BuilderNestingError):
            FormBuilder("f").add_section("A").add_section("B")

    def test_build_with_open_scopes(self):
        builder = FormBuilder("f").add_section("S").add_row()

        with pytest.raises(BuilderNestingError) as exc:
            builder.build()

        assert "section, row" in str(exc.value)

    def test_build_only_once(self):
        builder = FormBuilder("f")
        simple_row(builder, "name")
        builder.build()

        with pytest.raises(BuilderNestingError):
            builder.build()

    def test_generic_end_closes_top_scope(self):
        model = (
            FormBuilder("f")
            .add_section("S")
            .add_row()
            .add_field("name").end()
            .end()
            .end()
            .build()
        )

        assert model.field_paths() == ["name"]

    def test_modifier_on_wrong_frame(self):
        builder = FormBuilder("f").add_section("S").add_row()

        with pytest.raises(BuilderNestingError) as exc:
            builder.label("oops")

        assert "label() does not apply to a row" in str(exc.value)

    def test_developer_error_level_shows_frames(self, monkeypatch):
        from formtree.config import get_settings

        monkeypatch.setenv("FORMTREE_ERROR_LEVEL", "developer")
        get_settings.cache_clear()
        assert get_settings().error_level == ErrorLevel.DEVELOPER

        with pytest.raises(BuilderNestingError) as exc:
            FormBuilder("f").add_section("S").add_row().end_section()

        assert "open scopes: form > section > row" in str(exc.value)

    def test_rows_outside_sections_go_to_default_section(self):
        builder = FormBuilder("f").add_section("Named")
        simple_row(builder, "b")
        builder.end_section()
        simple_row(builder, "a")
        model = builder.build()

        assert [s.key for s in model.sections] == [DEFAULT_SECTION_KEY, "Named"]
        assert model.sections[0].title == ""
        assert model.field_paths() == ["a", "b"]


class TestLayout:
    """Row layout weights must match the row's children."""

    def test_layout_ratios(self):
        """layout([2, 1]) gives the first child 2/3 and the second 1/3."""
        model = (
            FormBuilder("f")
            .add_row()
            .add_field("street").end_field()
            .add_field("city").end_field()
            .layout([2, 1])
            .end_row()
            .build()
        )
        row = model.sections[0].children[0]

        assert isinstance(row, RowNode)
        assert row.width_ratios() == [Fraction(2, 3), Fraction(1, 3)]
        assert sum(row.width_ratios()) == 1

    def test_no_layout_means_equal_shares(self):
        model = simple_row(FormBuilder("f"), "a", "b", "c").build()
        row = model.sections[0].children[0]

        assert row.layout is None
        assert row.width_ratios() == [Fraction(1, 3)] * 3

    def test_layout_length_mismatch(self):
        builder = FormBuilder("f").add_row().add_field("a").end_field().add_field("b").end_field()

        with pytest.raises(LayoutMismatchError) as exc:
            builder.layout([1, 1, 1])

        assert "3 weights" in str(exc.value)
        assert "2 children" in str(exc.value)

    def test_child_added_after_layout(self):
        builder = (
            FormBuilder("f")
            .add_row()
            .add_field("a").end_field()
            .layout([1])
            .add_field("b").end_field()
        )

        with pytest.raises(LayoutMismatchError) as exc:
            builder.end_row()

        assert "added after layout()" in str(exc.value)

    @pytest.mark.parametrize("weights", [[0, 1], [-1, 2], [True, 1]])
    def test_non_positive_weights(self, weights):
        builder = FormBuilder("f").add_row().add_field("a").end_field().add_field("b").end_field()

        with pytest.raises(LayoutMismatchError):
            builder.layout(weights)

    def test_components_count_as_children(self):
        model = (
            FormBuilder("f")
            .add_row()
            .add_field("a").end_field()
            .add_component("divider").props({"thick": True}).end_component()
            .layout([3, 1])
            .end_row()
            .build()
        )
        row = model.sections[0].children[0]

        assert isinstance(row.children[1], ComponentNode)
        assert row.children[1].key == "component-1"
        assert row.width_ratios()[1] == Fraction(1, 4)


class TestFieldUniqueness:
    """Field names are unique per scope."""

    def test_duplicate_field_in_form(self):
        builder = FormBuilder("f")
        simple_row(builder, "name")

        with pytest.raises(DuplicateFieldError) as exc:
            simple_row(builder, "name")

        assert exc.value.name == "name"

    def test_duplicate_inside_row(self):
        builder = FormBuilder("f").add_row().add_field("a").end_field()

        with pytest.raises(DuplicateFieldError):
            builder.add_field("a")

    def test_same_name_in_list_template_and_form(self):
        """List templates are their own scope."""
        model = (
            FormBuilder("f")
            .add_row().add_field("name").end_field().end_row()
            .add_list("items")
            .add_row().add_field("name").end_field().end_row()
            .end_list()
            .build()
        )

        assert model.field("name") is not None
        assert model.list_node("items").item_field("name") is not None

    def test_duplicate_in_list_template(self):
        builder = FormBuilder("f").add_list("items").add_row().add_field("qty").end_field()

        with pytest.raises(DuplicateFieldError) as exc:
            builder.add_field("qty")

        assert "list 'items'" in str(exc.value)

    def test_duplicate_list(self):
        builder = FormBuilder("f").add_list("items").end_list()

        with pytest.raises(DuplicateFieldError):
            builder.add_list("items")

    def test_invalid_field_name(self):
        with pytest.raises(PathValidationError):
            FormBuilder("f").add_row().add_field("bad..name")

    def test_duplicate_section_key(self):
        builder = FormBuilder("f").add_section("A").end_section()

        with pytest.raises(DuplicateFieldError):
            builder.add_section("A")


class TestFieldModifiers:
    """Modifiers configure the field on top of the stack."""

    def test_field_configuration(self):
        def disable(ctx):
            return True

        model = (
            FormBuilder("f")
            .add_row()
            .add_field("email")
            .label("Email")
            .placeholder("you@example.com")
            .component("text")
            .props({"autocomplete": "email"})
            .required()
            .rules(Validators.email(), Validators.max_length(80))
            .disable(disable)
            .default("")
            .col_span(2)
            .end_field()
            .end_row()
            .build()
        )
        node = model.field("email")

        assert node.placeholder == "you@example.com"
        assert node.component_ref == "text"
        assert node.props == {"autocomplete": "email"}
        assert [v.kind for v in node.validators] == ["required", "email", "max_length"]
        assert node.disable_rule is disable
        assert node.default == ""
        assert node.col_span == 2

    def test_rules_rejects_non_descriptors(self):
        builder = FormBuilder("f").add_row().add_field("a")

        with pytest.raises(BuilderNestingError):
            builder.rules(lambda value, ctx: True)

    def test_visibility_rules_are_normalized(self):
        """hide_by_condition(p) is stored as the inverse of p."""
        model = (
            FormBuilder("f")
            .add_row()
            .add_field("a")
            .hide_by_condition(lambda ctx: ctx == "hide")
            .visible_by_access(lambda ctx: ctx == "ok")
            .end_field()
            .end_row()
            .build()
        )
        rules = model.field("a").visibility

        assert len(rules.conditional) == 1
        assert rules.conditional[0]("hide") is False
        assert rules.conditional[0]("show") is True
        assert rules.access[0]("ok") is True

    def test_depends_on_bindings(self):
        def handler(value, ctx):
            pass

        model = (
            FormBuilder("f")
            .add_row()
            .add_field("country").end_field()
            .add_field("state").depends_on("country", clear=True).end_field()
            .add_field("city").depends_on(["country", "state"], handler).end_field()
            .end_row()
            .build()
        )

        bindings = model.all_bindings()
        assert [(b.source, b.target) for b in bindings] == [
            ("country", "state"),
            ("country", "city"),
            ("state", "city"),
        ]
        assert bindings[0].clear
        assert bindings[1].handler is handler


class TestObjectsAndLists:
    """Nested objects prefix paths; lists hold item templates."""

    def test_object_prefixes_paths(self):
        model = (
            FormBuilder("f")
            .add_section("S")
            .add_object("address", "Address")
            .collapsed()
            .add_row()
            .add_field("street").end_field()
            .end_row()
            .end_object()
            .end_section()
            .build()
        )
        obj = model.sections[0].children[0]

        assert isinstance(obj, ObjectNode)
        assert obj.title == "Address"
        assert obj.collapsible and obj.default_collapsed
        assert model.field_paths() == ["address.street"]
        assert model.field("address.street").name == "street"

    def test_list_configuration(self):
        model = (
            FormBuilder("f")
            .add_list("items", min_items=1, max_items=3)
            .display_mode("tabs")
            .defaults({"qty": 1})
            .tab_label("Line")
            .rules(Validators.min_items(1))
            .add_row()
            .add_field("qty").end_field()
            .end_row()
            .end_list()
            .build()
        )
        node = model.list_node("items")

        assert isinstance(node, ListNode)
        assert (node.min_items, node.max_items) == (1, 3)
        assert node.display_mode == ListDisplayMode.TABS
        assert node.defaults == {"qty": 1}
        assert node.item_field("qty").path == "qty"
        assert model.field("items[2].qty") is node.item_field("qty")

    def test_list_template_paths_are_item_relative(self):
        model = (
            FormBuilder("f")
            .add_section("S")
            .add_object("order")
            .end_object()
            .add_list("lines")
            .add_row().add_field("product.name").end_field().end_row()
            .end_list()
            .end_section()
            .build()
        )

        assert model.list_node("lines").item_field("product.name") is not None

    def test_invalid_list_bounds(self):
        with pytest.raises(BuilderNestingError):
            FormBuilder("f").add_list("items", min_items=3, max_items=1)

        with pytest.raises(BuilderNestingError):
            FormBuilder("f").add_list("items").min(-1)

    def test_custom_display_requires_component(self):
        builder = FormBuilder("f").add_list("items").display_mode(ListDisplayMode.CUSTOM)

        with pytest.raises(BuilderNestingError):
            builder.end_list()

    def test_list_component_sets_custom_display(self):
        model = FormBuilder("f").add_list("items").component("kanban").end_list().build()
        node = model.list_node("items")

        assert node.display_mode == ListDisplayMode.CUSTOM
        assert node.custom_component == "kanban"


class AddressSection(FormSection):
    title = "Address"

    def configure(self, form):
        (
            form.add_row()
            .add_field("street").end_field()
            .add_field("city").end_field()
            .layout([2, 1])
            .end_row()
        )


class TestIncludedSections:
    """Reusable sections are included under a path prefix."""

    def test_include_twice_with_prefixes(self):
        builder = FormBuilder("f")
        builder.include(AddressSection, "home", "Home Address")
        builder.include(AddressSection, "work")
        model = builder.build()

        assert [s.title for s in model.sections] == ["Home Address", "Address"]
        assert model.field_paths() == ["home.street", "home.city", "work.street", "work.city"]

    def test_include_same_prefix_twice_is_duplicate(self):
        builder = FormBuilder("f")
        builder.include(AddressSection, "home", "Home")

        with pytest.raises(DuplicateFieldError):
            builder.include(AddressSection, "home", "Home again")


class TestFormClass:
    """Form subclasses compile their model once."""

    def test_form_compiles_model(self, customer_form):
        assert customer_form.model.form_id == "customer"
        assert "company" in customer_form.model.field_paths()

    def test_form_id_defaults_to_class_name(self):
        class ContactForm(Form):
            def configure(self, form):
                simple_row(form, "email")

        assert ContactForm().model.form_id == "ContactForm"

    def test_configure_is_required(self):
        with pytest.raises(NotImplementedError):
            Form()

    def test_extra_handlers_follow_hooks(self):
        def extra_load(ctx):
            pass

        class ContactForm(Form):
            def configure(self, form):
                self.add_load_handler(extra_load)
                simple_row(form, "email")

        form = ContactForm()

        assert form.load_handlers == [form.on_load, extra_load]
        assert form.submit_handlers == [form.on_submit]

    def test_form_read_only_flag(self):
        model = FormBuilder("f").set_read_only(True).build()

        assert model.read_only_rule(None) is True
