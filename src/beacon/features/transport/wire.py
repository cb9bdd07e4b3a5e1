from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, TypeAlias

from beacon.features.events.schema import Event, json_dumps

WireEvent: TypeAlias = dict[str, Any]

# internal event type -> backend event type
EVENT_TYPE_MAP: dict[str, str] = {
    "page": "page_view",
    "identify": "user_identify",
    "alias": "user_alias",
    "heatmap": "heatmap_click",
    "session": "session_update",
    "error": "error_event",
}

# common track names -> backend names; anything else passes through
TRACK_EVENT_MAP: dict[str, str] = {
    "element_clicked": "click",
    "element_viewed": "view",
    "element_hovered": "hover",
    "button_clicked": "click",
    "link_clicked": "click",
    "form_submitted": "form_submit",
    "video_played": "video_play",
    "video_paused": "video_pause",
    "download": "file_download",
    "signup": "user_signup",
    "login": "user_login",
    "logout": "user_logout",
    "purchase": "purchase",
    "add_to_cart": "cart_add",
    "remove_from_cart": "cart_remove",
}

# types whose event name is the backend type
NAMED_TYPES = {"subscription", "payment"}

FALLBACK_EVENT_TYPE = "custom_event"


def backend_event_type(event: Event) -> str:
    if event.type == "track":
        if not event.name:
            return FALLBACK_EVENT_TYPE
        return TRACK_EVENT_MAP.get(event.name, event.name)
    if event.type in NAMED_TYPES:
        return event.name or FALLBACK_EVENT_TYPE
    return EVENT_TYPE_MAP.get(event.type, FALLBACK_EVENT_TYPE)


def iso_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_wire(event: Event) -> WireEvent:
    """
    Backend wire shape for one event.

    Context sub-records ride inside `properties` as JSON strings; keys whose
    value is None are left out, as the collector treats absent and null alike.
    """
    ctx = event.context
    props: dict[str, Any] = dict(event.properties)

    serialized = {
        "page": ctx.page,
        "screen": ctx.screen,
        "performance": ctx.performance,
        "heatmap": ctx.heatmap,
        "session": ctx.session,
        "error": ctx.error,
    }
    for key, record in serialized.items():
        if record is not None:
            props[key] = json_dumps(record)
    props["library"] = json_dumps(ctx.library)
    if ctx.timezone is not None:
        props["timezone"] = ctx.timezone
    if ctx.locale is not None:
        props["locale"] = ctx.locale

    wire: WireEvent = {
        "event_id": event.id,
        "event_type": backend_event_type(event),
        "user_id": event.user_id,
        "session_id": event.session_id,
        "timestamp": iso_timestamp(event.timestamp),
        "properties": {k: v for k, v in props.items() if v is not None},
        "user_agent": ctx.user_agent,
    }
    return {k: v for k, v in wire.items() if v is not None}
