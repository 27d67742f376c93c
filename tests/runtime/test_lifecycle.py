"""
Tests for the lifecycle dispatcher: load, interaction, submit and reset.
"""

import asyncio

import pytest

from formtree.core import FormMode, ValidationMode
from formtree.exceptions import FormRuntimeError
from formtree.runtime import FormSession, SubmitResult
from formtree.structure import Form
from formtree.validation import Validators


class RecordingForm(Form):
    """Form recording every hook call into ``events``."""

    form_id = "recording"

    def __init__(self, **overrides):
        self.events = []
        self.overrides = overrides
        super().__init__()

    def configure(self, form):
        (
            form.add_row()
            .add_field("name").required("Name is required").end_field()
            .add_field("email").rules(Validators.email("Bad email")).end_field()
            .end_row()
        )

    def on_init(self, ctx):
        self.events.append("init")

    async def on_load(self, ctx):
        self.events.append("load")
        if "loaded_name" in self.overrides:
            ctx.set_value("name", self.overrides["loaded_name"])

    def on_field_change(self, path, value, ctx):
        self.events.append(("change", path, value))

    def on_before_submit(self, ctx, action):
        self.events.append(("before_submit", action))
        return self.overrides.get("allow_submit", True)

    async def on_submit(self, ctx, action):
        self.events.append(("submit", action))
        if "submit_error" in self.overrides:
            raise self.overrides["submit_error"]

    def on_after_submit(self, ctx, result):
        self.events.append(("after_submit", result.success))

    def on_validation_error(self, ctx, errors):
        self.events.append(("validation_error", sorted(errors)))

    def on_before_reset(self, ctx):
        self.events.append("before_reset")
        return self.overrides.get("allow_reset", True)

    def on_after_reset(self, ctx):
        self.events.append("after_reset")


class TestLoad:
    """Load populates the context and runs init/load hooks in order."""

    @pytest.mark.asyncio
    async def test_hook_order(self):
        form = RecordingForm()
        extra = []

        async def second_loader(ctx):
            extra.append(form.events[:])

        form.add_load_handler(second_loader)
        await FormSession(form).load({"name": "Ada"})

        assert form.events == ["init", "load"]
        assert extra == [["init", "load"]]

    @pytest.mark.asyncio
    async def test_loaded_values_are_pristine(self):
        session = FormSession(RecordingForm(loaded_name="Loaded"))

        ctx = await session.load()

        assert ctx.get_value("name") == "Loaded"
        assert not ctx.is_dirty()

    @pytest.mark.asyncio
    async def test_mode(self):
        ctx = await FormSession(RecordingForm()).load({"name": "Ada"}, mode="edit")

        assert ctx.mode == FormMode.EDIT

    def test_ctx_before_load(self):
        session = FormSession(RecordingForm())

        assert not session.is_loaded
        with pytest.raises(FormRuntimeError):
            session.ctx


class TestInteraction:
    """change/blur validate according to the validation mode."""

    @pytest.mark.asyncio
    async def test_on_submit_mode_does_not_validate_on_change(self):
        form = RecordingForm()
        session = FormSession(form)
        await session.load()

        await session.change("email", "bad")

        assert session.ctx.get_field_error("email") is None
        assert ("change", "email", "bad") in form.events

    @pytest.mark.asyncio
    async def test_on_change_mode(self):
        session = FormSession(RecordingForm(), validation_mode=ValidationMode.ON_CHANGE)
        await session.load()

        await session.change("email", "bad")
        assert session.ctx.get_field_error("email") == "Bad email"

        await session.change("email", "ada@example.com")
        assert session.ctx.get_field_error("email") is None

    @pytest.mark.asyncio
    async def test_on_blur_mode(self):
        session = FormSession(RecordingForm(), validation_mode="on_blur")
        await session.load()

        await session.change("email", "bad")
        assert session.ctx.get_field_error("email") is None

        await session.blur("email")
        assert session.ctx.get_field_error("email") == "Bad email"
        assert session.ctx.is_touched("email")

    @pytest.mark.asyncio
    async def test_form_level_validation_mode(self):
        class EagerForm(RecordingForm):
            validation_mode = ValidationMode.ON_CHANGE_AND_BLUR

        session = FormSession(EagerForm())
        await session.load()

        await session.change("name", "")
        await session.blur("name")

        assert session.ctx.get_field_error("name") == "Name is required"

    @pytest.mark.asyncio
    async def test_mode_from_settings(self, monkeypatch):
        from formtree.config import get_settings

        monkeypatch.setenv("FORMTREE_DEFAULT_VALIDATION_MODE", "on_change")
        get_settings.cache_clear()

        session = FormSession(RecordingForm())

        assert session.validation_mode == ValidationMode.ON_CHANGE


class TestSubmit:
    """Submit: veto, validation, handlers, after-submit."""

    @pytest.mark.asyncio
    async def test_success(self):
        form = RecordingForm()
        session = FormSession(form)
        await session.load({"name": "Ada"})

        result = await session.submit("publish")

        assert result == SubmitResult(success=True, action="publish")
        assert form.events[-3:] == [("before_submit", "publish"), ("submit", "publish"), ("after_submit", True)]
        assert not session.ctx.is_submitting

    @pytest.mark.asyncio
    async def test_veto(self):
        form = RecordingForm(allow_submit=False)
        session = FormSession(form)
        await session.load({"name": "Ada"})

        result = await session.submit()

        assert result.cancelled
        assert not result.success
        assert ("submit", None) not in form.events

    @pytest.mark.asyncio
    async def test_validation_error(self):
        form = RecordingForm()
        session = FormSession(form)
        await session.load({"email": "bad"})

        result = await session.submit()

        assert not result.success
        assert result.errors == {"name": ["Name is required"], "email": ["Bad email"]}
        assert ("validation_error", ["email", "name"]) in form.events
        assert not any(event[0] == "submit" for event in form.events if isinstance(event, tuple))

    @pytest.mark.asyncio
    async def test_handler_error_aborts_remaining_handlers(self):
        form = RecordingForm(submit_error=RuntimeError("save failed"))
        later = []
        form.add_submit_handler(lambda ctx, action: later.append(action))
        session = FormSession(form)
        await session.load({"name": "Ada"})

        result = await session.submit("save")

        assert not result.success
        assert isinstance(result.error, RuntimeError)
        assert later == []
        assert form.events[-1] == ("after_submit", False)

    @pytest.mark.asyncio
    async def test_extra_submit_handlers_run_in_order(self):
        form = RecordingForm()
        order = []
        form.add_submit_handler(lambda ctx, action: order.append("first"))
        form.add_submit_handler(lambda ctx, action: order.append("second"))
        session = FormSession(form)
        await session.load({"name": "Ada"})

        await session.submit()

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_on_validate_hook(self):
        class CheckedForm(RecordingForm):
            def on_validate(self, ctx):
                if ctx.get_value("name") == "root":
                    return "Reserved name"
                return None

        session = FormSession(CheckedForm())
        await session.load({"name": "root"})

        result = await session.submit()

        assert result.errors == {"__form__": ["Reserved name"]}

    @pytest.mark.asyncio
    async def test_value_changed_during_submit_is_rechecked(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def available(value, ctx):
            started.set()
            await release.wait()
            return value != "taken"

        class SignupForm(RecordingForm):
            def configure(self, form):
                (
                    form.add_row()
                    .add_field("username").rules(Validators.custom(available, "Username is taken")).end_field()
                    .end_row()
                )

        form = SignupForm()
        session = FormSession(form)
        await session.load({"username": "ada"})

        submitting = asyncio.create_task(session.submit())
        await started.wait()
        await session.change("username", "taken")
        release.set()
        result = await submitting

        assert not result.success
        assert result.errors == {"username": ["Username is taken"]}
        assert ("submit", None) not in form.events

    @pytest.mark.asyncio
    async def test_second_submit_while_submitting_is_cancelled(self):
        release = asyncio.Event()

        class SlowForm(RecordingForm):
            async def on_submit(self, ctx, action):
                self.events.append(("submit", action))
                await release.wait()

        form = SlowForm()
        session = FormSession(form)
        await session.load({"name": "Ada"})

        first = asyncio.create_task(session.submit("save"))
        while not session.ctx.is_submitting:
            await asyncio.sleep(0)
        second = await session.submit("save")
        release.set()

        assert second.cancelled
        assert not second.success
        assert (await first).success
        assert form.events.count(("submit", "save")) == 1
        assert form.events.count(("before_submit", "save")) == 1


class TestReset:
    """Reset restores the loaded values unless vetoed."""

    @pytest.mark.asyncio
    async def test_reset(self):
        form = RecordingForm()
        session = FormSession(form)
        await session.load({"name": "Ada"})
        await session.change("name", "Grace")

        assert await session.reset()

        assert session.ctx.get_value("name") == "Ada"
        assert not session.ctx.is_dirty()
        assert form.events[-2:] == ["before_reset", "after_reset"]

    @pytest.mark.asyncio
    async def test_reset_veto(self):
        session = FormSession(RecordingForm(allow_reset=False))
        await session.load({"name": "Ada"})
        await session.change("name", "Grace")

        assert not await session.reset()
        assert session.ctx.get_value("name") == "Grace"
