"""
Validator descriptors and the built-in validator factory.

A ``ValidatorDescriptor`` is a named rule: a sync or async predicate over
``(value, ctx)``, the message reported when it fails, and the action scoping
flags (``skip_on`` / ``validate_on``). ``Validators`` builds the common ones.
Built-in format validators treat an empty value as valid so they compose
with ``required``.
"""

import math
import re
from collections.abc import Iterable
from typing import Any

from attrs import field, frozen

from formtree.config import get_settings
from formtree.core.types import Action, ValidatorPredicate
from formtree.exceptions import ValidatorConfigError

DEFAULT_MESSAGES = {
    "required": "This field is required",
    "email": "Please enter a valid email address",
    "pattern": "Please enter a valid value",
    "min_length": "Must be at least {min} characters",
    "max_length": "Must be at most {max} characters",
    "min": "Must be at least {min}",
    "max": "Must be at most {max}",
    "url": "Please enter a valid URL",
    "numeric": "Please enter a valid number",
    "integer": "Please enter a whole number",
    "alphanumeric": "Please enter only letters and numbers",
    "phone": "Please enter a valid phone number",
    "min_items": "At least {min} item(s) required",
    "max_items": "At most {max} item(s) allowed",
}

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL = re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})([/\w .-]*)*/?$", re.IGNORECASE)
_ALPHANUMERIC = re.compile(r"^[a-zA-Z0-9]+$")
_PHONE = re.compile(r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$")


@frozen
class ValidatorDescriptor:
    """A named validation rule attached to a field or list."""

    kind: str
    predicate: ValidatorPredicate
    message: str
    skip_on: frozenset[Action] = field(default=frozenset(), converter=frozenset)
    validate_on: frozenset[Action] = field(default=frozenset(), converter=frozenset)

    def applies_to(self, action: Action | None) -> bool:
        """
        Decide whether this validator runs for ``action``.

        A validator is skipped when the action is in ``skip_on``, or when
        ``validate_on`` is non-empty and does not contain the action. With
        both sets empty it runs for every action.

        Params:
            action: The action being validated for

        Returns:
            True if the validator should run
        """
        if action in self.skip_on:
            return False
        if self.validate_on and action not in self.validate_on:
            return False
        return True


def is_empty(value: Any) -> bool:
    """Check if value is empty (None, blank string, empty list/tuple/set)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _create(
    kind: str,
    predicate: ValidatorPredicate,
    message: str,
    skip_on: Iterable[Action] | None,
    validate_on: Iterable[Action] | None,
) -> ValidatorDescriptor:
    if skip_on and validate_on:
        raise ValidatorConfigError(
            f"Validator '{kind}': cannot use both 'skip_on' and 'validate_on' together"
        )
    return ValidatorDescriptor(
        kind=kind,
        predicate=predicate,
        message=message,
        skip_on=skip_on or (),
        validate_on=validate_on or (),
    )


class Validators:
    """
    Factory for built-in validator descriptors.

    Every factory accepts an optional ``message`` overriding the default and
    the action scoping flags ``skip_on`` / ``validate_on`` (mutually
    exclusive).

    Example:
        Validators.required(skip_on=["draft"])
        Validators.min_length(3, "Too short")
        Validators.custom(lambda value, ctx: value == ctx.get_value("password"),
                          "Passwords must match")
    """

    @staticmethod
    def required(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        return _create(
            "required",
            lambda value, ctx: not is_empty(value),
            message or DEFAULT_MESSAGES["required"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def email(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        return _create(
            "email",
            lambda value, ctx: is_empty(value) or bool(_EMAIL.match(str(value))),
            message or DEFAULT_MESSAGES["email"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def pattern(
        regex: str | re.Pattern, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        """Value must match ``regex`` (search semantics, anchor it yourself)."""
        compiled = re.compile(regex) if isinstance(regex, str) else regex
        return _create(
            "pattern",
            lambda value, ctx: is_empty(value) or bool(compiled.search(str(value))),
            message or DEFAULT_MESSAGES["pattern"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def min_length(
        length: int, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        return _create(
            "min_length",
            lambda value, ctx: is_empty(value) or len(str(value)) >= length,
            (message or DEFAULT_MESSAGES["min_length"]).format(min=length),
            skip_on,
            validate_on,
        )

    @staticmethod
    def max_length(
        length: int, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        return _create(
            "max_length",
            lambda value, ctx: is_empty(value) or len(str(value)) <= length,
            (message or DEFAULT_MESSAGES["max_length"]).format(max=length),
            skip_on,
            validate_on,
        )

    @staticmethod
    def min(
        minimum: float, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        def predicate(value, ctx):
            if is_empty(value):
                return True
            number = _to_number(value)
            return number is not None and number >= minimum

        return _create(
            "min",
            predicate,
            (message or DEFAULT_MESSAGES["min"]).format(min=minimum),
            skip_on,
            validate_on,
        )

    @staticmethod
    def max(
        maximum: float, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        def predicate(value, ctx):
            if is_empty(value):
                return True
            number = _to_number(value)
            return number is not None and number <= maximum

        return _create(
            "max",
            predicate,
            (message or DEFAULT_MESSAGES["max"]).format(max=maximum),
            skip_on,
            validate_on,
        )

    @staticmethod
    def url(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        return _create(
            "url",
            lambda value, ctx: is_empty(value) or bool(_URL.match(str(value))),
            message or DEFAULT_MESSAGES["url"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def numeric(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        return _create(
            "numeric",
            lambda value, ctx: is_empty(value) or _to_number(value) is not None,
            message or DEFAULT_MESSAGES["numeric"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def integer(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        def predicate(value, ctx):
            if is_empty(value):
                return True
            number = _to_number(value)
            return number is not None and math.isfinite(number) and number.is_integer()

        return _create(
            "integer",
            predicate,
            message or DEFAULT_MESSAGES["integer"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def alphanumeric(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        return _create(
            "alphanumeric",
            lambda value, ctx: is_empty(value) or bool(_ALPHANUMERIC.match(str(value))),
            message or DEFAULT_MESSAGES["alphanumeric"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def phone(message: str | None = None, *, skip_on=None, validate_on=None) -> ValidatorDescriptor:
        return _create(
            "phone",
            lambda value, ctx: is_empty(value) or bool(_PHONE.match(str(value))),
            message or DEFAULT_MESSAGES["phone"],
            skip_on,
            validate_on,
        )

    @staticmethod
    def min_items(
        count: int, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        """List-level rule: the array holds at least ``count`` items."""
        return _create(
            "min_items",
            lambda value, ctx: len(value or ()) >= count,
            (message or DEFAULT_MESSAGES["min_items"]).format(min=count),
            skip_on,
            validate_on,
        )

    @staticmethod
    def max_items(
        count: int, message: str | None = None, *, skip_on=None, validate_on=None
    ) -> ValidatorDescriptor:
        """List-level rule: the array holds at most ``count`` items."""
        return _create(
            "max_items",
            lambda value, ctx: len(value or ()) <= count,
            (message or DEFAULT_MESSAGES["max_items"]).format(max=count),
            skip_on,
            validate_on,
        )

    @staticmethod
    def custom(
        predicate: ValidatorPredicate,
        message: str | None = None,
        *,
        skip_on=None,
        validate_on=None,
    ) -> ValidatorDescriptor:
        """
        Build a custom validator.

        The predicate receives ``(value, ctx)`` and may be a coroutine
        function; it can read other fields through ``ctx`` for cross-field
        checks.

        Params:
            predicate: Callable returning a bool or an awaitable bool
            message: Error reported when the predicate returns False or raises
            skip_on: Actions for which the validator is skipped
            validate_on: Actions the validator is restricted to

        Raises:
            ValidatorConfigError: If predicate is not callable or both scoping
                flags are given
        """
        if not callable(predicate):
            raise ValidatorConfigError("Validators.custom: predicate must be callable")
        return _create(
            "custom",
            predicate,
            message or get_settings().validator_failure_message,
            skip_on,
            validate_on,
        )
