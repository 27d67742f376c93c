"""
List field operations.

A ``ListManager`` is a thin view over one declared list field of a context.
It never holds items itself: every mutation builds a new list and writes it
through the context like any other value write, so dependency propagation, the
resolver pass and validation invalidation apply to list edits exactly as to
field edits. Per-item errors and resolver history are re-indexed before the
write so they follow their items.
"""

import copy
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from formtree.core.path_utils import item_path
from formtree.exceptions import ListBoundsError, ListIndexError

if TYPE_CHECKING:
    from formtree.runtime.context import FormContext, ItemContext
    from formtree.structure.model import ListNode

logger = logging.getLogger(__name__)


class ListManager:
    """
    Operations on the list field ``node.path`` of ``ctx``.

    Index-based operations raise ``ListIndexError`` outside ``[0, count)``
    (insertions accept ``count``). Operations that would exceed
    ``max_items`` or drop below ``min_items`` raise ``ListBoundsError`` and
    leave the list unchanged.
    """

    def __init__(self, ctx: "FormContext", node: "ListNode"):
        self._ctx = ctx
        self._node = node

    @property
    def path(self) -> str:
        return self._node.path

    @property
    def min_items(self) -> int:
        return self._node.min_items

    @property
    def max_items(self) -> int | None:
        return self._node.max_items

    # =========================================================================
    # READS
    # =========================================================================

    def _items(self) -> list[Any]:
        return list(self._ctx.get_value(self.path) or [])

    def count(self) -> int:
        return len(self._items())

    def is_empty(self) -> bool:
        return self.count() == 0

    def get(self, index: int) -> Any:
        items = self._items()
        self._check_index(index, len(items))
        return copy.deepcopy(items[index])

    def get_all(self) -> list[Any]:
        return copy.deepcopy(self._items())

    def find(self, predicate: Callable[[Any], bool]) -> Any | None:
        """First item for which ``predicate(item)`` holds, else None."""
        for item in self._items():
            if predicate(item):
                return copy.deepcopy(item)
        return None

    def find_index(self, predicate: Callable[[Any], bool]) -> int:
        """Index of the first matching item, -1 when none matches."""
        for index, item in enumerate(self._items()):
            if predicate(item):
                return index
        return -1

    def can_add(self) -> bool:
        return self.max_items is None or self.count() < self.max_items

    def can_remove(self) -> bool:
        return self.count() > self.min_items

    # =========================================================================
    # INSERTION
    # =========================================================================

    def add(self, item: Mapping[str, Any] | None = None) -> int:
        """Append an item built from the list defaults; returns its index."""
        return self.add_at(self.count(), item)

    def add_last(self, item: Mapping[str, Any] | None = None) -> int:
        return self.add(item)

    def add_first(self, item: Mapping[str, Any] | None = None) -> int:
        return self.add_at(0, item)

    def add_at(self, index: int, item: Mapping[str, Any] | None = None) -> int:
        """
        Insert an item at ``index`` (``index == count`` appends).

        The new item is the list defaults (a mapping, or
        ``defaults(ctx, index)``) overlaid with ``item``.

        Returns:
            The index of the inserted item

        Raises:
            ListIndexError: If index is outside ``[0, count]``
            ListBoundsError: If the list already holds ``max_items`` items
        """
        items = self._items()
        self._check_index(index, len(items), inclusive=True)
        if self.max_items is not None and len(items) >= self.max_items:
            raise ListBoundsError(self.path, "add", len(items), self.max_items)

        new_item = self._build_item(index, item)
        mapping: dict[int, int | None] = {old: old + 1 for old in range(index, len(items))}
        items.insert(index, new_item)
        self._commit(items, mapping)
        self._ctx.set_active_index(self.path, index)
        logger.debug("Added item %d to %s", index, self.path)
        return index

    def _build_item(self, index: int, item: Mapping[str, Any] | None) -> Any:
        defaults = self._node.defaults
        if callable(defaults):
            defaults = defaults(self._ctx, index)
        base = copy.deepcopy(dict(defaults)) if defaults else {}
        if item is None:
            return base
        if not isinstance(item, Mapping):
            return copy.deepcopy(item)
        base.update(copy.deepcopy(dict(item)))
        return base

    # =========================================================================
    # REMOVAL
    # =========================================================================

    def remove(self, index: int) -> Any:
        """
        Remove and return the item at ``index``.

        Raises:
            ListIndexError: If index is outside ``[0, count)``
            ListBoundsError: If removal would drop below ``min_items``
        """
        items = self._items()
        self._check_index(index, len(items))
        if len(items) - 1 < self.min_items:
            raise ListBoundsError(self.path, "remove", len(items), self.min_items)

        removed = items.pop(index)
        mapping: dict[int, int | None] = {index: None}
        mapping.update({old: old - 1 for old in range(index + 1, len(items) + 1)})
        self._commit(items, mapping)

        active = self._ctx.get_active_index(self.path)
        if active >= len(items):
            self._ctx.set_active_index(self.path, max(len(items) - 1, 0))
        elif active > index:
            self._ctx.set_active_index(self.path, active - 1)
        return removed

    def remove_by_item(self, item: Any) -> bool:
        """
        Remove the first item equal to ``item``.

        Returns:
            True if an item was removed, False when none matched

        Raises:
            ListBoundsError: If removal would drop below ``min_items``
        """
        for index, existing in enumerate(self._items()):
            if existing == item:
                self.remove(index)
                return True
        return False

    def remove_first(self) -> Any:
        return self.remove(0)

    def remove_last(self) -> Any:
        return self.remove(self.count() - 1)

    def clear(self) -> None:
        """
        Remove every item.

        Raises:
            ListBoundsError: If the list has a minimum item count
        """
        count = self.count()
        if self.min_items > 0:
            raise ListBoundsError(self.path, "clear", count, self.min_items)
        self._commit([], {index: None for index in range(count)})
        self._ctx.set_active_index(self.path, 0)

    # =========================================================================
    # REPLACEMENT & REORDERING
    # =========================================================================

    def set(self, index: int, item: Any) -> None:
        """Replace the item at ``index``."""
        items = self._items()
        self._check_index(index, len(items))
        items[index] = copy.deepcopy(item)
        self._commit(items, {})

    def update(self, index: int, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` into the item at ``index``."""
        items = self._items()
        self._check_index(index, len(items))
        updated = copy.deepcopy(items[index]) if isinstance(items[index], dict) else {}
        updated.update(copy.deepcopy(dict(changes)))
        items[index] = updated
        self._commit(items, {})

    def move(self, from_index: int, to_index: int) -> None:
        """Move the item at ``from_index`` so it ends up at ``to_index``."""
        items = self._items()
        self._check_index(from_index, len(items))
        self._check_index(to_index, len(items))
        if from_index == to_index:
            return

        order = list(range(len(items)))
        order.insert(to_index, order.pop(from_index))
        mapping: dict[int, int | None] = {old: new for new, old in enumerate(order)}
        items = [items[old] for old in order]
        self._commit(items, mapping)

        active = self._ctx.get_active_index(self.path)
        self._ctx.set_active_index(self.path, mapping.get(active, active))

    def swap(self, index_a: int, index_b: int) -> None:
        """Exchange the items at ``index_a`` and ``index_b``."""
        items = self._items()
        self._check_index(index_a, len(items))
        self._check_index(index_b, len(items))
        if index_a == index_b:
            return
        items[index_a], items[index_b] = items[index_b], items[index_a]
        self._commit(items, {index_a: index_b, index_b: index_a})

    # =========================================================================
    # ITEM STATE
    # =========================================================================

    @property
    def active_index(self) -> int:
        """Selected item for tabbed display."""
        return self._ctx.get_active_index(self.path)

    def set_active(self, index: int) -> None:
        self._check_index(index, self.count())
        self._ctx.set_active_index(self.path, index)

    def item_context(self, index: int) -> "ItemContext":
        self._check_index(index, self.count())
        return self._ctx.item_context(self.path, index)

    def item_errors(self, index: int) -> dict[str, list[str]]:
        """Errors of one item, keyed by item-relative path."""
        prefix = f"{item_path(self.path, index)}."
        return {
            path[len(prefix):]: messages
            for path, messages in self._ctx.get_errors().items()
            if path.startswith(prefix)
        }

    def is_item_valid(self, index: int) -> bool:
        return not self.item_errors(index)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _check_index(self, index: int, count: int, inclusive: bool = False) -> None:
        upper = count if inclusive else count - 1
        if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index > upper:
            raise ListIndexError(self.path, index, count, inclusive)

    def _commit(self, items: list[Any], mapping: dict[int, int | None]) -> None:
        self._ctx._commit_list(self.path, items, mapping)
