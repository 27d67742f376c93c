"""
Form structure components.

This package provides the immutable declarative model, the fluent builder
that compiles it, the Form/FormSection base classes, and model checks
against a bound entity type.
"""

from formtree.structure.builder import DEFAULT_SECTION_KEY, Form, FormBuilder, FormSection
from formtree.structure.model import (
    ComponentNode,
    DependencyBinding,
    FieldNode,
    FormModel,
    ListNode,
    ObjectNode,
    RowNode,
    SectionNode,
    VisibilityRules,
    absolute_item_path,
)
from formtree.structure.validation import resolve_annotation, validate_entity_paths

__all__ = [
    "DEFAULT_SECTION_KEY",
    "Form",
    "FormBuilder",
    "FormSection",
    "ComponentNode",
    "DependencyBinding",
    "FieldNode",
    "FormModel",
    "ListNode",
    "ObjectNode",
    "RowNode",
    "SectionNode",
    "VisibilityRules",
    "absolute_item_path",
    "resolve_annotation",
    "validate_entity_paths",
]
