"""
Form validation components.

This package provides validator descriptors, the built-in validator factory
and the engine that runs validator chains against a live form context.
"""

from formtree.validation.validators import (
    DEFAULT_MESSAGES,
    ValidatorDescriptor,
    Validators,
    is_empty,
)
from formtree.validation.engine import ValidationEngine, run_chain

__all__ = [
    "DEFAULT_MESSAGES",
    "ValidatorDescriptor",
    "Validators",
    "is_empty",
    "ValidationEngine",
    "run_chain",
]
