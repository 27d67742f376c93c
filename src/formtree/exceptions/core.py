"""
Exception classes for form construction and runtime evaluation.

This module defines the two exception families raised by formtree:
construction errors (the form definition itself is malformed and the model
must not be used) and runtime guard errors (a programming error in the form
definition surfaced while evaluating it). Validation failures are never
exceptions; they live in the context error map.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorLevel(Enum):
    """Error message detail level for end users vs developers."""

    USER = "user"  # Node path and builder call only
    DEVELOPER = "developer"  # Adds the builder frame stack


@dataclass
class ErrorContext:
    """
    Context information for construction error messages.

    Captures where in a form definition an error occurred: which form, which
    node (by path or section key) and which builder call triggered it. The
    DEVELOPER level also shows the open builder frames at the time of the
    error.

    Params:
        form_id: Identifier of the form being built
        node_path: Field path, list path or section key of the offending node
        builder_call: The builder method that raised (e.g., "layout")
        frame_stack: Kinds of the open builder frames, outermost first
    """

    form_id: str | None = None
    node_path: str | None = None
    builder_call: str | None = None
    frame_stack: tuple[str, ...] = ()

    def format_location(self, error_level: ErrorLevel) -> str:
        """
        Format location information based on error level.

        Params:
            error_level: Whether to show USER or DEVELOPER level details

        Returns:
            Formatted location string with appropriate detail level
        """
        lines = []

        if self.form_id:
            if self.node_path:
                lines.append(f"  in form '{self.form_id}' at '{self.node_path}'")
            else:
                lines.append(f"  in form '{self.form_id}'")
        elif self.node_path:
            lines.append(f"  at '{self.node_path}'")

        if self.builder_call:
            lines.append(f"  call: {self.builder_call}()")

        if error_level == ErrorLevel.DEVELOPER and self.frame_stack:
            lines.append(f"  open scopes: {' > '.join(self.frame_stack)}")

        return "\n".join(lines)


class FormTreeError(Exception):
    """Base exception for all formtree errors."""

    pass


# =============================================================================
# CONSTRUCTION ERRORS
# =============================================================================


class ConstructionError(FormTreeError):
    """Raised when a form definition is malformed. Never reaches runtime."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        error_level: ErrorLevel = ErrorLevel.USER,
    ):
        """
        Initialize the exception.

        Params:
            message: Primary error description
            context: ErrorContext with builder location information
            error_level: Level of detail to show in error message
        """
        self.message = message
        self.context = context
        self.error_level = error_level

        if context:
            location_info = context.format_location(error_level)
            full_message = f"{message}\n{location_info}" if location_info else message
        else:
            full_message = message

        super().__init__(full_message)


class BuilderNestingError(ConstructionError):
    """Raised when builder scopes are opened or closed out of order."""

    pass


class LayoutMismatchError(ConstructionError):
    """Raised when a row layout does not match the row's children."""

    pass


class DuplicateFieldError(ConstructionError):
    """Raised when the same field name is declared twice in one scope."""

    def __init__(
        self,
        name: str,
        scope: str,
        context: ErrorContext | None = None,
        error_level: ErrorLevel = ErrorLevel.USER,
    ):
        """
        Initialize the exception.

        Params:
            name: The duplicated field name
            scope: Description of the enclosing scope
            context: ErrorContext with builder location information
            error_level: Level of detail to show in error message
        """
        self.name = name
        self.scope = scope
        super().__init__(
            f"Field '{name}' is declared more than once in {scope}",
            context,
            error_level,
        )


class ValidatorConfigError(ConstructionError):
    """Raised when a validator descriptor is configured inconsistently."""

    pass


class PathValidationError(ConstructionError):
    """Raised when a field path is malformed or does not fit the entity type."""

    def __init__(
        self,
        path: str,
        reason: str,
        context: ErrorContext | None = None,
        error_level: ErrorLevel = ErrorLevel.USER,
    ):
        """
        Initialize the exception.

        Params:
            path: The invalid path
            reason: Why the path is invalid
            context: ErrorContext with builder location information
            error_level: Level of detail to show in error message
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path '{path}': {reason}", context, error_level)


# =============================================================================
# RUNTIME GUARD ERRORS
# =============================================================================


class FormRuntimeError(FormTreeError):
    """Base class for guard errors raised while evaluating a form."""

    pass


class InvalidPathError(FormRuntimeError):
    """Raised when a runtime path cannot be parsed or traversed."""

    def __init__(self, path: str, reason: str):
        """
        Initialize the exception.

        Params:
            path: The path that could not be resolved
            reason: Why resolution failed
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot resolve path '{path}': {reason}")


class PropagationLimitError(FormRuntimeError):
    """Raised when dependency propagation does not settle within the pass ceiling."""

    def __init__(self, limit: int, pending_paths: list[str]):
        """
        Initialize the exception.

        Params:
            limit: The configured maximum number of propagation passes
            pending_paths: Paths still changing when the ceiling was hit
        """
        self.limit = limit
        self.pending_paths = pending_paths
        super().__init__(
            f"Dependency propagation did not settle after {limit} passes; "
            f"still changing: {', '.join(pending_paths)}"
        )


class ListIndexError(FormRuntimeError, IndexError):
    """Raised when a list operation receives an index outside the valid range."""

    def __init__(self, list_path: str, index: int, count: int, inclusive: bool = False):
        """
        Initialize the exception.

        Params:
            list_path: Path of the list field
            index: The offending index
            count: Current number of items
            inclusive: Whether ``index == count`` was allowed (insertions)
        """
        self.list_path = list_path
        self.index = index
        self.count = count
        upper = count if inclusive else count - 1
        super().__init__(
            f"Index {index} out of range for list '{list_path}' (valid: 0..{upper})"
        )


class ListBoundsError(FormRuntimeError):
    """Raised when a list operation would violate the list's min/max item bounds."""

    def __init__(self, list_path: str, operation: str, count: int, bound: int):
        """
        Initialize the exception.

        Params:
            list_path: Path of the list field
            operation: Name of the rejected operation
            count: Current number of items
            bound: The min or max bound that would be violated
        """
        self.list_path = list_path
        self.operation = operation
        self.count = count
        self.bound = bound
        super().__init__(
            f"Cannot {operation} on list '{list_path}': {count} item(s), bound is {bound}"
        )


class PredicateError(FormRuntimeError):
    """Raised when a visibility, access, disable or read-only predicate fails."""

    def __init__(self, node: str, rule: str, cause: BaseException):
        """
        Initialize the exception.

        Params:
            node: Path or key of the node whose rule failed
            rule: Which rule family failed (e.g., "conditional")
            cause: The original exception
        """
        self.node = node
        self.rule = rule
        self.cause = cause
        super().__init__(f"{rule} rule on '{node}' raised {type(cause).__name__}: {cause}")


class ComponentResolutionError(FormRuntimeError):
    """Raised when a component token has no registered capability."""

    def __init__(self, token: str, available: list[str]):
        """
        Initialize the exception.

        Params:
            token: The unresolved component token
            available: Tokens currently registered
        """
        self.token = token
        self.available = available
        super().__init__(
            f"Component '{token}' is not registered. Available components: {available}"
        )
