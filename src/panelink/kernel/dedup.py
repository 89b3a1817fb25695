from __future__ import annotations

from collections import OrderedDict
from typing import Hashable

DEFAULT_CAPACITY = 1000


class RecentIds:
    """Bounded set of recently seen ids; the oldest insertion is evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._items: "OrderedDict[Hashable, None]" = OrderedDict()

    def __contains__(self, item: Hashable) -> bool:
        return item in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, item: Hashable) -> bool:
        """Record `item`; False if it was already present."""
        if item in self._items:
            return False
        self._items[item] = None
        while len(self._items) > self.capacity:
            self._items.popitem(last=False)
        return True
