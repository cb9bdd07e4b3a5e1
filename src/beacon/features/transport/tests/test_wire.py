from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from beacon.features.events.schema import (
    ErrorData,
    Event,
    EventContext,
    PageProperties,
    ScreenSize,
)
from beacon.features.transport.wire import backend_event_type, iso_timestamp, to_wire


def _event(event_type: str, name: str | None = None, **kwargs) -> Event:
    return Event(
        id="evt_1",
        anonymous_id="anon_1",
        session_id="sess_1",
        timestamp=datetime(2026, 1, 1, 12, 30, 0, 123456, tzinfo=UTC),
        type=event_type,
        name=name,
        **kwargs,
    )


@pytest.mark.parametrize(
    ("event_type", "name", "expected"),
    [
        ("page", None, "page_view"),
        ("identify", None, "user_identify"),
        ("alias", None, "user_alias"),
        ("heatmap", "click", "heatmap_click"),
        ("session", "session_end", "session_update"),
        ("error", "custom_error", "error_event"),
        ("track", "button_clicked", "click"),
        ("track", "add_to_cart", "cart_add"),
        ("track", "funnel_step", "funnel_step"),
        ("track", None, "custom_event"),
        ("subscription", "trial_started", "trial_started"),
        ("payment", "payment_failed", "payment_failed"),
    ],
)
def test_backend_event_type(event_type: str, name: str | None, expected: str) -> None:
    assert backend_event_type(_event(event_type, name)) == expected


def test_iso_timestamp_is_millisecond_utc() -> None:
    assert iso_timestamp(datetime(2026, 1, 1, 12, 30, 0, 123456, tzinfo=UTC)) == (
        "2026-01-01T12:30:00.123Z"
    )
    assert iso_timestamp(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000Z"


def test_to_wire_serializes_context_into_properties() -> None:
    ctx = EventContext(
        page=PageProperties(url="https://shop.test/a", path="/a"),
        screen=ScreenSize(width=800, height=600),
        timezone="UTC",
        user_agent="pytest/1.0",
        error=ErrorData(message="boom"),
    )
    event = _event("error", "custom_error", user_id="u_1", properties={"k": "v"}, context=ctx)

    wire = to_wire(event)

    assert wire["event_id"] == "evt_1"
    assert wire["event_type"] == "error_event"
    assert wire["user_id"] == "u_1"
    assert wire["session_id"] == "sess_1"
    assert wire["user_agent"] == "pytest/1.0"
    assert wire["timestamp"] == "2026-01-01T12:30:00.123Z"

    props = wire["properties"]
    assert props["k"] == "v"
    assert json.loads(props["page"]) == {"path": "/a", "url": "https://shop.test/a"}
    assert json.loads(props["screen"]) == {"height": 600, "width": 800}
    assert json.loads(props["error"]) == {"message": "boom", "type": "custom"}
    assert json.loads(props["library"])["name"] == "beacon-telemetry"
    assert props["timezone"] == "UTC"
    assert "locale" not in props
    assert "heatmap" not in props


def test_to_wire_omits_missing_user() -> None:
    wire = to_wire(_event("track", "signup"))
    assert "user_id" not in wire
    assert "user_agent" not in wire
