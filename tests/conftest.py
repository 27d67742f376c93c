"""
Shared test fixtures and utilities for the formtree test suite.
"""

import pytest

from formtree.config import get_settings
from formtree.runtime import FormContext, UserContext
from formtree.structure import Form, FormBuilder
from formtree.validation import Validators


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Make every test see default settings, independent of the environment.

    Tests that need different settings set ``FORMTREE_*`` variables with
    ``monkeypatch.setenv`` and call ``get_settings.cache_clear()``.
    """
    for name in (
        "MAX_PROPAGATION_PASSES",
        "MAX_REVALIDATION_ROUNDS",
        "DEFAULT_VALIDATION_MODE",
        "ERROR_LEVEL",
        "VALIDATOR_FAILURE_MESSAGE",
    ):
        monkeypatch.delenv(f"FORMTREE_{name}", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_context():
    """Factory compiling a builder callback into a live FormContext.

    Usage:
        def test_something(make_context):
            ctx = make_context(lambda form: form.add_row()...end_row(), entity={...})
    """

    def factory(configure, entity=None, **kwargs):
        builder = FormBuilder("test-form")
        configure(builder)
        return FormContext(builder.build(), entity=entity, **kwargs)

    return factory


@pytest.fixture
def admin_user():
    return UserContext(id=1, roles={"admin", "editor"}, permissions={"salary:read", "salary:write"})


@pytest.fixture
def guest_user():
    return UserContext(id=2, roles={"guest"})


class CustomerForm(Form):
    """Customer form used across runtime tests.

    - ``name`` required
    - ``customer_type`` switches the ``company`` field on (conditional)
    - ``salary`` visible only to users with ``salary:read`` (access)
    - ``country`` change clears ``state``
    """

    form_id = "customer"

    def configure(self, form):
        (
            form.add_section("General")
            .add_row()
            .add_field("name").label("Name").required().end_field()
            .add_field("customer_type").label("Type").end_field()
            .layout([2, 1])
            .end_row()
            .add_row()
            .add_field("company")
            .label("Company")
            .default("")
            .visible_by_condition(lambda ctx: ctx.get_value("customer_type") == "business")
            .required("Company is required")
            .end_field()
            .add_field("salary")
            .visible_by_access(lambda ctx: ctx.user.has_permission("salary:read"))
            .rules(Validators.min(0, "Salary must be positive"))
            .end_field()
            .end_row()
            .end_section()
            .add_section("Address")
            .add_row()
            .add_field("country").label("Country").end_field()
            .add_field("state").label("State").default("").depends_on("country", clear=True).end_field()
            .end_row()
            .end_section()
        )


@pytest.fixture
def customer_form():
    return CustomerForm()
