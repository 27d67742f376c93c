"""
Core formtree components.

This package provides the fundamental building blocks for formtree
including the model node base class, shared types and path utilities.
"""

from formtree.core.path_utils import (
    MISSING,
    format_path,
    get_by_path,
    has_path,
    is_related,
    item_path,
    join_path,
    parse_path,
    remap_item_paths,
    same_value,
    set_by_path,
    validate_path_format,
)
from formtree.core.tree_node import ModelNode
from formtree.core.types import (
    FORM_ERROR_KEY,
    Action,
    ComponentRef,
    ContextPredicate,
    ErrorMap,
    FormMode,
    HiddenBy,
    ListDisplayMode,
    ValidationMode,
)

__all__ = [
    "ModelNode",
    "FORM_ERROR_KEY",
    "Action",
    "ComponentRef",
    "ContextPredicate",
    "ErrorMap",
    "FormMode",
    "HiddenBy",
    "ListDisplayMode",
    "ValidationMode",
    "MISSING",
    "format_path",
    "get_by_path",
    "has_path",
    "is_related",
    "item_path",
    "join_path",
    "parse_path",
    "remap_item_paths",
    "same_value",
    "set_by_path",
    "validate_path_format",
]
