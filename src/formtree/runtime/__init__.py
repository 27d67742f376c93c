"""
Form runtime components.

This package provides the live form context, dependency propagation,
visibility resolution, list operations, component resolution, render
snapshots and the lifecycle dispatcher.
"""

from formtree.runtime.components import ComponentRegistry, ComponentResolver, resolve_reference
from formtree.runtime.context import FormContext, FormHooks, ItemContext, UserContext
from formtree.runtime.dependencies import DependencyPropagator
from formtree.runtime.lifecycle import FormSession, SubmitResult, call_hook
from formtree.runtime.lists import ListManager
from formtree.runtime.snapshot import (
    ComponentSnapshot,
    FieldSnapshot,
    FormSnapshot,
    ListItemSnapshot,
    ListSnapshot,
    ObjectSnapshot,
    RowSnapshot,
    SectionSnapshot,
    build_snapshot,
)
from formtree.runtime.visibility import ResolverPass, VisibilityResolver, VisibilityState

__all__ = [
    "ComponentRegistry",
    "ComponentResolver",
    "resolve_reference",
    "FormContext",
    "FormHooks",
    "ItemContext",
    "UserContext",
    "DependencyPropagator",
    "FormSession",
    "SubmitResult",
    "call_hook",
    "ListManager",
    "ComponentSnapshot",
    "FieldSnapshot",
    "FormSnapshot",
    "ListItemSnapshot",
    "ListSnapshot",
    "ObjectSnapshot",
    "RowSnapshot",
    "SectionSnapshot",
    "build_snapshot",
    "ResolverPass",
    "VisibilityResolver",
    "VisibilityState",
]
