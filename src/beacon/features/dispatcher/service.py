from __future__ import annotations

import itertools
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from beacon.core.clock import Clock, TimerHandle
from beacon.features.queue.service import EventQueue, QueuedEvent
from beacon.features.transport.service import Transport
from beacon.features.transport.wire import to_wire


@dataclass(frozen=True)
class FlushResult:
    batches: int = 0
    sent: int = 0
    failed_batches: int = 0
    requeued: int = 0  # scheduled for a retry
    dropped: int = 0  # out of retry attempts

    @property
    def ok(self) -> bool:
        return self.failed_batches == 0


class Dispatcher:
    """
    Drains the queue into batches and hands them to every transport.

    Failure policy per batch:
      - any exception (transform or send) fails the whole batch
      - each event's retries += 1
      - retries < retry_attempts -> back to the queue head after
        retry_delay_s * 2**retries
      - otherwise dropped and logged

    Retried events jump ahead of anything enqueued after them, so under
    sustained failure delivery order is not strictly FIFO.
    """

    def __init__(
        self,
        *,
        queue: EventQueue,
        transports: Sequence[Transport],
        clock: Clock,
        batch_size: int,
        retry_attempts: int,
        retry_delay_s: float,
        max_workers: int = 4,
        logger: Any | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if retry_attempts <= 0:
            raise ValueError("retry_attempts must be > 0")
        self._queue = queue
        self._transports: list[Transport] = list(transports)
        self._clock = clock
        self.batch_size = int(batch_size)
        self.retry_attempts = int(retry_attempts)
        self.retry_delay_s = float(retry_delay_s)
        self.max_workers = max(1, int(max_workers))
        self._logger = logger

        self._tokens = itertools.count(1)
        self._pending: dict[int, tuple[TimerHandle, list[QueuedEvent]]] = {}

        # lifetime counters
        self.sent_total = 0
        self.dropped_total = 0

    @property
    def transports(self) -> list[Transport]:
        return list(self._transports)

    def add_transport(self, transport: Transport) -> None:
        self._transports.append(transport)

    def pending_retries(self) -> int:
        return sum(len(items) for _, items in self._pending.values())

    def make_batches(self, items: Sequence[QueuedEvent]) -> list[list[QueuedEvent]]:
        n = self.batch_size
        return [list(items[i : i + n]) for i in range(0, len(items), n)]

    # ----------------------------
    # Flush
    # ----------------------------
    def flush(self, *, reason: str = "manual") -> FlushResult:
        items = self._queue.drain_all()
        if not items:
            return FlushResult()

        batches = self.make_batches(items)
        outcomes = self._send_all(batches)

        sent = failed = requeued = dropped = 0
        for batch, err in zip(batches, outcomes, strict=True):
            if err is None:
                sent += len(batch)
                continue
            failed += 1
            r, d = self._on_batch_failure(batch, err)
            requeued += r
            dropped += d

        self.sent_total += sent
        self.dropped_total += dropped
        result = FlushResult(
            batches=len(batches),
            sent=sent,
            failed_batches=failed,
            requeued=requeued,
            dropped=dropped,
        )
        if self._logger is not None:
            self._logger.debug(
                "flush",
                extra={
                    "reason": reason,
                    "num_events": len(items),
                    "num_batches": len(batches),
                    "dropped": dropped,
                },
            )
        return result

    def _send_batch(self, batch: list[QueuedEvent]) -> None:
        wire = [to_wire(q.event) for q in batch]
        for transport in self._transports:
            transport.send(wire)

    def _send_one(self, batch: list[QueuedEvent]) -> BaseException | None:
        try:
            self._send_batch(batch)
        except Exception as e:
            return e
        return None

    def _send_all(self, batches: list[list[QueuedEvent]]) -> list[BaseException | None]:
        if len(batches) == 1 or self.max_workers == 1:
            return [self._send_one(b) for b in batches]

        workers = min(self.max_workers, len(batches))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="beacon-send") as pool:
            futures = [pool.submit(self._send_batch, b) for b in batches]
            return [f.exception() for f in futures]

    # ----------------------------
    # Retry scheduling
    # ----------------------------
    def _on_batch_failure(self, batch: list[QueuedEvent], err: BaseException) -> tuple[int, int]:
        by_retries: dict[int, list[QueuedEvent]] = {}
        dropped: list[QueuedEvent] = []
        for q in batch:
            q.retries += 1
            if q.retries < self.retry_attempts:
                by_retries.setdefault(q.retries, []).append(q)
            else:
                dropped.append(q)

        if self._logger is not None:
            self._logger.debug(
                "batch send failed",
                extra={"num_events": len(batch), "error": repr(err)},
            )
            for q in dropped:
                self._logger.warning(
                    "event dropped after retry attempts exhausted",
                    extra={
                        "event_id": q.event.id,
                        "event_type": q.event.type,
                        "retries": q.retries,
                    },
                )

        for retries, items in sorted(by_retries.items()):
            self._schedule_retry(items, retries)

        return sum(len(v) for v in by_retries.values()), len(dropped)

    def _schedule_retry(self, items: list[QueuedEvent], retries: int) -> None:
        token = next(self._tokens)
        delay_s = self.retry_delay_s * (2**retries)
        handle = self._clock.call_later(delay_s, lambda: self._requeue(token))
        self._pending[token] = (handle, items)
        if self._logger is not None:
            self._logger.debug(
                "retry scheduled",
                extra={"num_events": len(items), "retries": retries, "delay_s": delay_s},
            )

    def _requeue(self, token: int) -> None:
        entry = self._pending.pop(token, None)
        if entry is None:
            return
        _, items = entry
        self._queue.requeue_front(items)

    def release_pending(self) -> int:
        """Cancel outstanding retry timers and put their events back right away."""
        if not self._pending:
            return 0
        released: list[QueuedEvent] = []
        for token in sorted(self._pending):
            handle, items = self._pending[token]
            handle.cancel()
            released.extend(items)
        self._pending.clear()
        self._queue.requeue_front(released)
        return len(released)

    def discard_pending(self) -> int:
        """Cancel outstanding retry timers and forget their events."""
        discarded = 0
        for handle, items in self._pending.values():
            handle.cancel()
            discarded += len(items)
        self._pending.clear()
        return discarded
