from __future__ import annotations

from datetime import UTC, datetime

import pytest

from beacon.features.events.schema import Event
from beacon.features.queue.service import EventQueue, QueuedEvent


def _q(i: int) -> QueuedEvent:
    event = Event(
        id=f"evt_{i}",
        anonymous_id="anon",
        session_id="sess",
        timestamp=datetime(2026, 1, 1, tzinfo=UTC),
        type="track",
        name="tick",
    )
    return QueuedEvent(event=event, enqueued_at=float(i))


def _ids(queue: EventQueue) -> list[str]:
    return [q.event.id for q in queue.peek_all()]


def test_overflow_evicts_oldest() -> None:
    queue = EventQueue(max_size=100)
    for i in range(150):
        queue.enqueue(_q(i))

    assert queue.size() == 100
    ids = _ids(queue)
    assert "evt_0" not in ids and "evt_49" not in ids
    assert ids[0] == "evt_50"
    assert ids[-1] == "evt_149"
    assert queue.evicted_total == 50


def test_enqueue_reports_evictions() -> None:
    queue = EventQueue(max_size=2)
    assert queue.enqueue(_q(0)) == 0
    assert queue.enqueue(_q(1)) == 0
    assert queue.enqueue(_q(2)) == 1


def test_requeue_front_keeps_batch_order_ahead_of_newer_items() -> None:
    queue = EventQueue(max_size=10)
    queue.enqueue(_q(5))
    queue.enqueue(_q(6))

    queue.requeue_front([_q(1), _q(2)])

    assert _ids(queue) == ["evt_1", "evt_2", "evt_5", "evt_6"]


def test_requeue_overflow_trims_from_head() -> None:
    queue = EventQueue(max_size=3)
    queue.enqueue(_q(5))
    queue.enqueue(_q(6))

    evicted = queue.requeue_front([_q(1), _q(2)])

    assert evicted == 1
    assert _ids(queue) == ["evt_2", "evt_5", "evt_6"]


def test_drain_all_empties_queue() -> None:
    queue = EventQueue(max_size=5)
    queue.enqueue(_q(1))
    queue.enqueue(_q(2))

    items = queue.drain_all()

    assert [q.event.id for q in items] == ["evt_1", "evt_2"]
    assert len(queue) == 0


def test_non_positive_capacity_rejected() -> None:
    with pytest.raises(ValueError):
        EventQueue(max_size=0)
