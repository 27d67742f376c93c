"""
Core type definitions for formtree.

This module contains the enums and type aliases shared by the declarative
model, the builder and the runtime engine.
"""

from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from formtree.runtime.context import FormContext


class FormMode(str, Enum):
    """What the form is being used for."""

    NEW = "new"
    EDIT = "edit"
    VIEW = "view"


class ValidationMode(str, Enum):
    """When field-level validation runs during interaction."""

    ON_SUBMIT = "on_submit"
    ON_CHANGE = "on_change"
    ON_BLUR = "on_blur"
    ON_CHANGE_AND_BLUR = "on_change_and_blur"

    @property
    def validates_on_change(self) -> bool:
        return self in (ValidationMode.ON_CHANGE, ValidationMode.ON_CHANGE_AND_BLUR)

    @property
    def validates_on_blur(self) -> bool:
        return self in (ValidationMode.ON_BLUR, ValidationMode.ON_CHANGE_AND_BLUR)


class HiddenBy(str, Enum):
    """Which predicate family hid a node; decides data retention."""

    CONDITIONAL = "conditional"  # value cleared, validation skipped
    ACCESS = "access"  # value kept, validation still runs


class ListDisplayMode(str, Enum):
    """How a list's items are presented by the rendering layer."""

    ROWS = "rows"
    TABS = "tabs"
    TABLE = "table"
    CARDS = "cards"
    CUSTOM = "custom"


# An action is a named submission intent ("draft", "publish", ...)
Action = str

# Errors keyed by field path; whole-form errors use FORM_ERROR_KEY
ErrorMap = dict[str, list[str]]

FORM_ERROR_KEY = "__form__"

ContextPredicate = Callable[["FormContext"], bool]

ValidatorPredicate = Callable[[Any, "FormContext"], bool | Awaitable[bool]]

DependencyHandler = Callable[[Any, "FormContext"], None]

PropsValue = Mapping[str, Any] | Callable[["FormContext"], Mapping[str, Any]]

ListDefaults = Mapping[str, Any] | Callable[["FormContext", int], Mapping[str, Any]]

# Component references are string tokens or direct capabilities (classes, callables)
ComponentRef = str | Callable[..., Any] | type
