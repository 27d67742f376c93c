"""
Core ModelNode base class for formtree.

This module contains the base class shared by every node of the declarative
form model (sections, rows, fields, components, lists).
"""

from pydantic import BaseModel, ConfigDict


class ModelNode(BaseModel):
    """
    Base class for all declarative form model nodes.

    Nodes are frozen once built: a form model is immutable for the lifetime
    of its Form instance, and rebuilding means constructing a new Form.
    Callables (predicates, handlers, component capabilities) are stored as-is.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)
