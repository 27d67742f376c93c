"""
formtree exception classes.

This package provides all exception types used throughout formtree for
consistent error handling and reporting.
"""

from formtree.exceptions.core import (
    BuilderNestingError,
    ComponentResolutionError,
    ConstructionError,
    DuplicateFieldError,
    ErrorContext,
    ErrorLevel,
    FormRuntimeError,
    FormTreeError,
    InvalidPathError,
    LayoutMismatchError,
    ListBoundsError,
    ListIndexError,
    PathValidationError,
    PredicateError,
    PropagationLimitError,
    ValidatorConfigError,
)

__all__ = [
    "FormTreeError",
    "ErrorContext",
    "ErrorLevel",
    "ConstructionError",
    "BuilderNestingError",
    "LayoutMismatchError",
    "DuplicateFieldError",
    "ValidatorConfigError",
    "PathValidationError",
    "FormRuntimeError",
    "InvalidPathError",
    "PropagationLimitError",
    "ListIndexError",
    "ListBoundsError",
    "PredicateError",
    "ComponentResolutionError",
]
