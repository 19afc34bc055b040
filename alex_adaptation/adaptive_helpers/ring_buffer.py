# alex_adaptation/adaptive_helpers/ring_buffer.py
import logging
from collections import deque
from typing import Deque, Generic, Iterator, List, TypeVar

logger_ring_buffer = logging.getLogger(__name__)

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """
    Fixed-capacity history buffer. Appending to a full buffer evicts the
    oldest entry in O(1).
    """

    def __init__(self, capacity: int):
        if not isinstance(capacity, int) or capacity <= 0:
            logger_ring_buffer.warning(f"RingBuffer: capacity ({capacity}) must be a positive int. Defaulting to 1.")
            capacity = 1
        self.capacity: int = capacity
        self._items: Deque[T] = deque(maxlen=capacity)

    def append(self, item: T) -> None:
        self._items.append(item)

    def latest(self, n: int) -> List[T]:
        """Up to ``n`` most recent entries, oldest first."""
        if n <= 0:
            return []
        return list(self._items)[-n:]

    def last(self) -> T:
        if not self._items:
            raise IndexError("last() on empty RingBuffer")
        return self._items[-1]

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> List[T]:
        return list(self._items)

    def is_full(self) -> bool:
        return len(self._items) == self.capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self.capacity}, size={len(self._items)})"
