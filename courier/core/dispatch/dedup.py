"""Bounded set of recently seen notification ids."""

from __future__ import annotations

from collections import OrderedDict

from courier.core.defaults import DEFAULT_DEDUP_CAPACITY


class RecentIdSet:
    """FIFO-bounded membership set.

    When full, adding a new id evicts the oldest inserted one. Re-adding an id
    that is already present does not refresh its position.
    """

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError('capacity must be >= 1')
        self.capacity = capacity
        self._ids: OrderedDict[str, None] = OrderedDict()

    def add(self, item_id: str) -> bool:
        """Record *item_id*. Returns False if it was already present."""
        if item_id in self._ids:
            return False
        self._ids[item_id] = None
        while len(self._ids) > self.capacity:
            self._ids.popitem(last=False)
        return True

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
