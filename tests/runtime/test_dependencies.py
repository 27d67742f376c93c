"""
Tests for dependency propagation.

Bindings react to source changes; writes made by reactions are propagated
breadth-first, and a burst that never settles hits the pass ceiling.
"""

import pytest

from formtree.config import EngineSettings
from formtree.exceptions import PropagationLimitError
from formtree.runtime import FormContext, ItemContext


class TestClearAndReset:
    """Declarative clear/reset reactions."""

    def test_country_change_clears_state(self, customer_form):
        ctx = FormContext(customer_form.model, entity={"country": "US", "state": "CA"})

        ctx.set_value("country", "CA")
        assert ctx.get_value("state") == ""

        ctx.set_value("state", "ON")
        ctx.set_value("country", "US")
        assert ctx.get_value("state") == ""

    def test_same_value_is_not_a_change(self, customer_form):
        ctx = FormContext(customer_form.model, entity={"country": "US", "state": "CA"})

        ctx.set_value("country", "US")

        assert ctx.get_value("state") == "CA"

    def test_clear_drops_target_error(self, customer_form):
        ctx = FormContext(customer_form.model, entity={"country": "US", "state": "??"})
        ctx.set_field_error("state", "Unknown state")

        ctx.set_value("country", "CA")

        assert ctx.get_field_error("state") is None

    def test_reset_restores_initial_value(self, make_context):
        def configure(form):
            (
                form.add_row()
                .add_field("customer").end_field()
                .add_field("discount").depends_on("customer", reset=True).end_field()
                .end_row()
            )

        ctx = make_context(configure, entity={"customer": "a", "discount": 5})
        ctx.set_value("discount", 20)

        ctx.set_value("customer", "b")

        assert ctx.get_value("discount") == 5

    def test_nested_source_change_triggers_parent_binding(self, make_context):
        calls = []

        def configure(form):
            (
                form.add_row()
                .add_field("address.city").end_field()
                .add_field("distance").depends_on("address", lambda value, ctx: calls.append(value)).end_field()
                .end_row()
            )

        ctx = make_context(configure)
        ctx.set_value("address.city", "Oslo")

        assert calls == [{"city": "Oslo"}]


class TestHandlers:
    """Handler reactions."""

    def test_handler_receives_new_value_and_context(self, make_context):
        seen = []

        def configure(form):
            (
                form.add_row()
                .add_field("quantity").end_field()
                .add_field("total")
                .depends_on("quantity", lambda value, ctx: ctx.set_value("total", value * ctx.get_value("price")))
                .end_field()
                .end_row()
            )

        ctx = make_context(configure, entity={"price": 3})
        ctx.depends_on("total", lambda value, ctx: seen.append(value))

        ctx.set_value("quantity", 4)

        assert ctx.get_value("total") == 12
        assert seen == [12]

    def test_multiple_sources(self, make_context):
        calls = []

        def configure(form):
            (
                form.add_row()
                .add_field("summary").depends_on(["first", "last"], lambda value, ctx: calls.append(value)).end_field()
                .end_row()
            )

        ctx = make_context(configure)
        ctx.set_value("first", "Ada")
        ctx.set_value("last", "Lovelace")

        assert calls == ["Ada", "Lovelace"]

    def test_only_if_truthy(self, make_context):
        calls = []

        def configure(form):
            (
                form.add_row()
                .add_field("details")
                .depends_on("enabled", lambda value, ctx: calls.append(value), only_if_truthy=True)
                .end_field()
                .end_row()
            )

        ctx = make_context(configure, entity={"enabled": True})
        ctx.set_value("enabled", False)
        ctx.set_value("enabled", True)

        assert calls == [True]

    def test_async_handler_is_rejected(self, make_context):
        async def handler(value, ctx):
            pass

        def configure(form):
            form.add_row().add_field("b").depends_on("a", handler).end_field().end_row()

        ctx = make_context(configure)

        with pytest.raises(TypeError, match="must be synchronous"):
            ctx.set_value("a", 1)

    def test_handler_exception_propagates(self, make_context):
        def handler(value, ctx):
            raise RuntimeError("boom")

        def configure(form):
            form.add_row().add_field("b").depends_on("a", handler).end_field().end_row()

        ctx = make_context(configure)

        with pytest.raises(RuntimeError, match="boom"):
            ctx.set_value("a", 1)


class TestBreadthFirstPropagation:
    """Writes inside handlers are propagated in the next pass."""

    def test_downstream_handlers_run_after_current_pass(self, make_context):
        order = []

        def set_b(value, ctx):
            ctx.set_value("b", value + 1)

        def record_c(value, ctx):
            order.append(("c", value))

        def record_d(value, ctx):
            order.append(("d", ctx.get_value("b")))

        def configure(form):
            (
                form.add_row()
                .add_field("b").depends_on("a", set_b).end_field()
                .add_field("c").depends_on("b", record_c).end_field()
                .add_field("d").depends_on("a", record_d).end_field()
                .end_row()
            )

        ctx = make_context(configure)
        ctx.set_value("a", 1)

        # d sees b's new value immediately, c only runs in the second pass
        assert order == [("d", 2), ("c", 2)]

    def test_toggling_cycle_hits_pass_ceiling(self, make_context):
        def flip(target):
            return lambda value, ctx: ctx.set_value(target, not ctx.get_value(target))

        def configure(form):
            (
                form.add_row()
                .add_field("a").depends_on("b", flip("a")).end_field()
                .add_field("b").depends_on("a", flip("b")).end_field()
                .end_row()
            )

        ctx = make_context(configure, entity={"a": False, "b": False}, settings=EngineSettings(max_propagation_passes=5))

        with pytest.raises(PropagationLimitError) as exc:
            ctx.set_value("a", True)

        assert exc.value.limit == 5
        assert exc.value.pending_paths

    def test_converging_chain_settles(self, make_context):
        def configure(form):
            (
                form.add_row()
                .add_field("b").depends_on("a", lambda v, ctx: ctx.set_value("b", min(v, 3))).end_field()
                .add_field("a").depends_on("b", lambda v, ctx: ctx.set_value("a", v)).end_field()
                .end_row()
            )

        ctx = make_context(configure, entity={"a": 0, "b": 0})
        ctx.set_value("a", 10)

        assert ctx.get_value("a") == 3
        assert ctx.get_value("b") == 3


class TestTemplateBindings:
    """Bindings declared inside list templates apply per item."""

    def test_binding_fires_for_changed_item_only(self, make_context):
        contexts = []

        def line_total(value, item):
            contexts.append(item)
            item.set_value("total", value * item.get_value("price"))

        def configure(form):
            (
                form.add_list("lines")
                .add_row()
                .add_field("qty").end_field()
                .add_field("price").end_field()
                .add_field("total").depends_on("qty", line_total).end_field()
                .end_row()
                .end_list()
            )

        entity = {"lines": [{"qty": 1, "price": 2, "total": 2}, {"qty": 1, "price": 5, "total": 5}]}
        ctx = make_context(configure, entity=entity)

        ctx.set_value("lines[1].qty", 3)

        assert ctx.get_value("lines[1].total") == 15
        assert ctx.get_value("lines[0].total") == 2
        assert isinstance(contexts[0], ItemContext)
        assert contexts[0].index == 1

    def test_template_clear(self, make_context):
        def configure(form):
            (
                form.add_list("addresses")
                .add_row()
                .add_field("country").end_field()
                .add_field("state").default("").depends_on("country", clear=True).end_field()
                .end_row()
                .end_list()
            )

        entity = {"addresses": [{"country": "US", "state": "CA"}, {"country": "US", "state": "NY"}]}
        ctx = make_context(configure, entity=entity)

        ctx.set_value("addresses[0].country", "MX")

        assert ctx.get_value("addresses[0].state") == ""
        assert ctx.get_value("addresses[1].state") == "NY"


def line_items(form):
    (
        form.add_list("lines")
        .add_row()
        .add_field("qty").end_field()
        .add_field("price").end_field()
        .add_field("total")
        .depends_on("qty", lambda value, item: item.set_value("total", (value or 0) * item.get_value("price")))
        .end_field()
        .end_row()
        .end_list()
    )


def addresses(form):
    (
        form.add_list("addresses")
        .add_row()
        .add_field("country").end_field()
        .add_field("state").default("").depends_on("country", clear=True).end_field()
        .end_row()
        .end_list()
    )


class TestTemplateBindingsOnListWrites:
    """Whole-list and whole-item writes reach the bindings of changed items."""

    def test_list_update_fires_changed_item(self, make_context):
        ctx = make_context(line_items, entity={"lines": [{"qty": 1, "price": 2, "total": 2}]})

        ctx.list("lines").update(0, {"qty": 5})

        assert ctx.get_value("lines[0].total") == 10

    def test_whole_list_write_fires_changed_items_only(self, make_context):
        entity = {"lines": [{"qty": 1, "price": 2, "total": 2}, {"qty": 1, "price": 5, "total": 99}]}
        ctx = make_context(line_items, entity=entity)

        ctx.set_value("lines", [{"qty": 4, "price": 2, "total": 2}, {"qty": 1, "price": 5, "total": 99}])

        assert ctx.get_value("lines[0].total") == 8
        # qty of the second line did not change, so its total is left alone
        assert ctx.get_value("lines[1].total") == 99

    def test_item_replacement_fires(self, make_context):
        ctx = make_context(line_items, entity={"lines": [{"qty": 1, "price": 3, "total": 3}]})

        ctx.set_value("lines[0]", {"qty": 2, "price": 3, "total": 3})

        assert ctx.get_value("lines[0].total") == 6

    def test_list_set_fires(self, make_context):
        ctx = make_context(line_items, entity={"lines": [{"qty": 1, "price": 2, "total": 2}]})

        ctx.list("lines").set(0, {"qty": 3, "price": 2, "total": 0})

        assert ctx.get_value("lines[0].total") == 6

    def test_added_item_runs_handlers(self, make_context):
        ctx = make_context(line_items, entity={"lines": []})

        ctx.list("lines").add({"qty": 2, "price": 4})

        assert ctx.get_value("lines[0].total") == 8

    def test_added_item_is_not_cleared(self, make_context):
        ctx = make_context(addresses, entity={"addresses": []})

        ctx.list("addresses").add({"country": "US", "state": "CA"})

        assert ctx.get_value("addresses[0].state") == "CA"

    def test_shifted_items_keep_their_values(self, make_context):
        entity = {"addresses": [{"country": "US", "state": "CA"}, {"country": "MX", "state": "JAL"}]}
        ctx = make_context(addresses, entity=entity)

        ctx.list("addresses").add_first({"country": "CA", "state": "ON"})
        ctx.list("addresses").remove(0)
        ctx.list("addresses").swap(0, 1)

        assert ctx.get_value("addresses") == [
            {"country": "MX", "state": "JAL"},
            {"country": "US", "state": "CA"},
        ]


class TestRuntimeBindings:
    """ctx.depends_on registers bindings after construction."""

    def test_register_and_unregister(self, make_context):
        calls = []
        ctx = make_context(lambda form: form.add_row().add_field("name").end_field().end_row())

        unregister = ctx.depends_on("name", lambda value, ctx: calls.append(value))
        ctx.set_value("name", "Ada")
        unregister()
        ctx.set_value("name", "Grace")

        assert calls == ["Ada"]

    def test_runtime_clear_binding(self, make_context):
        def configure(form):
            form.add_row().add_field("kind").end_field().add_field("code").end_field().end_row()

        ctx = make_context(configure, entity={"kind": "a", "code": "X1"})
        ctx.depends_on("kind", target="code", clear=True)

        ctx.set_value("kind", "b")

        assert ctx.get_value("code") is None
