"""
Tests for the ModelNode base class.
"""

import pytest
from pydantic import ValidationError

from formtree.core import ModelNode


class SampleNode(ModelNode):
    name: str
    predicate: object = None


class TestModelNode:
    """Model nodes are frozen and accept arbitrary callables."""

    def test_nodes_are_frozen(self):
        """Assigning to a built node is rejected."""
        node = SampleNode(name="street")

        with pytest.raises(ValidationError):
            node.name = "city"

    def test_callables_stored_as_is(self):
        """Predicates keep their identity."""

        def predicate(ctx):
            return True

        node = SampleNode(name="street", predicate=predicate)
        assert node.predicate is predicate
