from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from beacon.features.events.schema import Event


@dataclass(slots=True)
class QueuedEvent:
    event: Event
    enqueued_at: float  # clock seconds
    retries: int = 0


class EventQueue:
    """
    Bounded FIFO of undelivered events.

    - enqueue never blocks or fails; at capacity the oldest items are evicted
    - requeue_front puts retried items back at the head (they are the oldest)
    """

    def __init__(self, *, max_size: int, logger: Any | None = None) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = int(max_size)
        self._items: deque[QueuedEvent] = deque()
        self._logger = logger
        self.evicted_total = 0

    def __len__(self) -> int:
        return len(self._items)

    def size(self) -> int:
        return len(self._items)

    def enqueue(self, item: QueuedEvent) -> int:
        """Append one item; returns how many old items were evicted to make room."""
        evicted = 0
        if len(self._items) >= self.max_size:
            evicted = self._evict_front(len(self._items) - self.max_size + 1)
        self._items.append(item)
        return evicted

    def requeue_front(self, items: Iterable[QueuedEvent]) -> int:
        batch = list(items)
        if not batch:
            return 0
        self._items.extendleft(reversed(batch))
        overflow = len(self._items) - self.max_size
        return self._evict_front(overflow) if overflow > 0 else 0

    def drain_all(self) -> list[QueuedEvent]:
        items = list(self._items)
        self._items.clear()
        return items

    def peek_all(self) -> list[QueuedEvent]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def _evict_front(self, n: int) -> int:
        for _ in range(n):
            dropped = self._items.popleft()
            if self._logger is not None:
                self._logger.debug(
                    "queue full, evicted oldest event",
                    extra={"event_id": dropped.event.id, "event_type": dropped.event.type},
                )
        self.evicted_total += n
        return n
