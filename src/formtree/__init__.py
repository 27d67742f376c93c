"""
formtree - Declarative forms with a runtime evaluation engine

formtree compiles a fluent form definition into an immutable model and
evaluates it against live data: visibility and access rules, dependency
propagation, validation and list operations.
"""

from importlib.metadata import version

from formtree.runtime import FormContext, FormHooks, FormSession, SubmitResult, UserContext
from formtree.structure import Form, FormBuilder, FormSection
from formtree.validation import Validators

__version__ = version("formtree")

__all__ = [
    "__version__",
    "Form",
    "FormBuilder",
    "FormSection",
    "FormContext",
    "FormHooks",
    "FormSession",
    "SubmitResult",
    "UserContext",
    "Validators",
]
