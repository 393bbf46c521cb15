# src/bot_core/ring_buffer.py
"""
Fixed-capacity ring buffer used for every capped history in the bot
(recent events, handler errors, combat history, mission progress log).

Eviction is oldest-first: appending to a full buffer drops the oldest item.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Append-only, capped sequence with oldest-first eviction."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"RingBuffer capacity must be positive, got {capacity}")
        self._items: Deque[T] = deque(maxlen=capacity)
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    @property
    def evicted(self) -> int:
        """Number of items dropped because the buffer was full."""
        return self._evicted

    def append(self, item: T) -> None:
        if len(self._items) == self.capacity:
            self._evicted += 1
        self._items.append(item)

    def last(self, n: int) -> List[T]:
        """Newest `n` items, oldest first."""
        if n <= 0:
            return []
        items = list(self._items)
        return items[-n:]

    def newest(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def to_list(self) -> List[T]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)
