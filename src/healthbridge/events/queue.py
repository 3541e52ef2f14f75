"""Deduplicating in-process event queue."""

import threading
from collections import deque
from typing import Callable, Deque, Iterator, Optional, Set

import structlog

from ..core.config import OverflowPolicy
from ..core.errors import QueueFullError
from .models import QueueItem

logger = structlog.get_logger()


class EventQueue:
    """FIFO queue that accepts each event id at most once.

    Ids are remembered for the lifetime of the queue, including after their
    item has been dequeued or shed. ``max_size`` bounds the number of waiting
    items; ``None`` leaves the queue unbounded. ``on_shed`` is called with
    each item dropped by the ``drop_oldest`` policy, while the lock is held.
    """

    def __init__(self, max_size: Optional[int] = None,
                 overflow_policy: OverflowPolicy = OverflowPolicy.REJECT,
                 on_shed: Optional[Callable[[QueueItem], None]] = None):
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self.on_shed = on_shed
        self.shed_count = 0
        self._items: Deque[QueueItem] = deque()
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, on_shed: Optional[Callable[[QueueItem], None]] = None) -> "EventQueue":
        return cls(max_size=config.queue.max_size, overflow_policy=config.queue.overflow_policy,
                   on_shed=on_shed)

    def enqueue(self, item: QueueItem) -> bool:
        """Append ``item`` unless its id was seen before.

        Returns False for a duplicate. Raises QueueFullError when the queue
        is full and the overflow policy is ``reject``; the id is then not
        remembered, so the same item may be offered again later.
        """
        with self._lock:
            if item.id in self._seen:
                logger.debug(f"Duplicate event skipped: {item.id}")
                return False

            if self.max_size is not None and len(self._items) >= self.max_size:
                if self.overflow_policy is OverflowPolicy.REJECT:
                    raise QueueFullError(item.id, self.max_size)
                shed = self._items.popleft()
                self.shed_count += 1
                logger.warning(f"Queue full ({self.max_size}), shed oldest event {shed.id}")
                if self.on_shed is not None:
                    self.on_shed(shed)

            self._seen.add(item.id)
            self._items.append(item)
            return True

    def dequeue(self) -> Optional[QueueItem]:
        """Remove and return the oldest item, or None when empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def drain(self) -> Iterator[QueueItem]:
        """Dequeue until empty."""
        while True:
            item = self.dequeue()
            if item is None:
                return
            yield item

    def size(self) -> int:
        """Number of items waiting to be dequeued."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()

    @property
    def seen_count(self) -> int:
        with self._lock:
            return len(self._seen)
