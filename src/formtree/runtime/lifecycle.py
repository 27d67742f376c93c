"""
Lifecycle dispatcher.

``FormSession`` drives one form instance through its lifecycle: load, the
interaction loop (change/blur), submit and reset. It owns the context and
calls the form's hooks in a fixed order; hooks may be plain functions or
coroutine functions.

Load: context populated -> initial resolver pass -> ``on_init`` -> load
handlers in registration order, each awaited before the next.
Submit: ``on_before_submit`` (may veto) -> full validation -> on failure
``on_validation_error``; on success submit handlers in registration order,
the first exception aborts the submission -> ``on_after_submit``.
"""

import inspect
import logging
from typing import Any

from attrs import field, frozen

from formtree.config import EngineSettings, get_settings
from formtree.core.types import ErrorMap, FormMode, ValidationMode
from formtree.exceptions import FormRuntimeError
from formtree.runtime.components import ComponentRegistry, ComponentResolver
from formtree.runtime.context import FormContext, FormHooks, UserContext
from formtree.runtime.snapshot import FormSnapshot, build_snapshot
from formtree.structure.builder import Form

logger = logging.getLogger(__name__)


async def call_hook(hook, *args) -> Any:
    """Call a sync or async hook and return its (awaited) result."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@frozen
class SubmitResult:
    """Outcome of ``FormSession.submit``."""

    success: bool
    action: str | None = None
    errors: ErrorMap = field(factory=dict)
    error: BaseException | None = None
    cancelled: bool = False


class FormSession:
    """
    One rendering session of a form.

    Params:
        form: The form definition
        user: Current user capabilities
        hooks: Host collaborators (notify/navigate/open/close)
        components: Component resolver used by ``snapshot()``
        settings: Engine settings (defaults to ``get_settings()``)
        validation_mode: When field validation runs during interaction;
            defaults to the form's mode, then to the settings
    """

    def __init__(
        self,
        form: Form,
        *,
        user: UserContext | None = None,
        hooks: FormHooks | None = None,
        components: ComponentResolver | None = None,
        settings: EngineSettings | None = None,
        validation_mode: ValidationMode | str | None = None,
    ):
        self.form = form
        self.user = user
        self.hooks = hooks
        self.components = components if components is not None else ComponentRegistry()
        self.settings = settings or get_settings()
        self.validation_mode = ValidationMode(
            validation_mode or form.validation_mode or self.settings.default_validation_mode
        )
        self._ctx: FormContext | None = None

    @property
    def ctx(self) -> FormContext:
        if self._ctx is None:
            raise FormRuntimeError(f"Form '{self.form.model.form_id}' has not been loaded")
        return self._ctx

    @property
    def is_loaded(self) -> bool:
        return self._ctx is not None

    async def load(self, entity: Any = None, mode: FormMode | str = FormMode.NEW) -> FormContext:
        """
        Create the context and run init/load hooks.

        Values written by load handlers become part of the pristine state.
        """
        self._ctx = FormContext(
            self.form.model,
            entity=entity,
            mode=mode,
            user=self.user,
            hooks=self.hooks,
            settings=self.settings,
            validate_handlers=self.form.validate_handlers,
        )
        await call_hook(self.form.on_init, self._ctx)
        for handler in self.form.load_handlers:
            await call_hook(handler, self._ctx)
        self._ctx.commit_initial()
        logger.debug("Loaded form %s in %s mode", self.form.model.form_id, self._ctx.mode.value)
        return self._ctx

    async def change(self, path: str, value: Any) -> None:
        """Apply a user edit: write, propagate, resolve, then validate per mode."""
        ctx = self.ctx
        ctx.set_value(path, value)
        await call_hook(self.form.on_field_change, path, value, ctx)
        if self.validation_mode.validates_on_change and self._is_form_path(path):
            await ctx.validate_field(path)

    async def blur(self, path: str) -> None:
        ctx = self.ctx
        ctx.touch(path)
        if self.validation_mode.validates_on_blur and self._is_form_path(path):
            await ctx.validate_field(path)

    def _is_form_path(self, path: str) -> bool:
        model = self.form.model
        return model.field(path) is not None or model.list_node(path) is not None

    async def submit(self, action: str | None = None) -> SubmitResult:
        """
        Validate and submit.

        Params:
            action: Submission intent ("draft", "publish", ...); scopes
                validators and is passed to every submit handler

        Returns:
            SubmitResult; a handler exception is logged and returned in
            ``error`` rather than raised. A submit started while another is
            still running is returned as cancelled without running any hook.
        """
        ctx = self.ctx
        if ctx.is_submitting:
            logger.debug("Submission of %s ignored: already submitting", self.form.model.form_id)
            return SubmitResult(success=False, action=action, cancelled=True)
        ctx.is_submitting = True
        try:
            if await call_hook(self.form.on_before_submit, ctx, action) is False:
                logger.debug("Submission of %s cancelled by on_before_submit", self.form.model.form_id)
                return SubmitResult(success=False, action=action, cancelled=True)

            if not await ctx.validate(action):
                errors = ctx.get_errors()
                await call_hook(self.form.on_validation_error, ctx, errors)
                return SubmitResult(success=False, action=action, errors=errors)

            result = SubmitResult(success=True, action=action)
            for handler in self.form.submit_handlers:
                try:
                    await call_hook(handler, ctx, action)
                except Exception as e:
                    logger.exception("Submit handler of %s failed", self.form.model.form_id)
                    result = SubmitResult(success=False, action=action, errors=ctx.get_errors(), error=e)
                    break
            await call_hook(self.form.on_after_submit, ctx, result)
            return result
        finally:
            ctx.is_submitting = False

    async def reset(self) -> bool:
        """Restore the loaded values; returns False when vetoed."""
        ctx = self.ctx
        if await call_hook(self.form.on_before_reset, ctx) is False:
            return False
        ctx.reset()
        await call_hook(self.form.on_after_reset, ctx)
        return True

    def snapshot(self) -> FormSnapshot:
        """Render snapshot of the current context."""
        return build_snapshot(self.ctx, self.components)
