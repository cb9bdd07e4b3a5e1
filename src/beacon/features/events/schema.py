from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from beacon.core.types import LIBRARY_NAME, LIBRARY_VERSION, Properties, PropertyValue

ALLOWED_EVENT_TYPES: set[str] = {
    "track",
    "page",
    "identify",
    "alias",
    "heatmap",
    "session",
    "error",
    "subscription",
    "payment",
}

PRIMITIVE_TYPES = (str, int, float, bool, type(None))


@dataclass(frozen=True, slots=True)
class PageProperties:
    title: str | None = None
    url: str | None = None
    path: str | None = None
    referrer: str | None = None
    search: str | None = None


@dataclass(frozen=True, slots=True)
class ScreenSize:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class LibraryInfo:
    name: str = LIBRARY_NAME
    version: str = LIBRARY_VERSION


@dataclass(frozen=True, slots=True)
class PerformanceData:
    load_time: float | None = None
    dom_ready: float | None = None
    first_paint: float | None = None
    first_contentful_paint: float | None = None
    largest_contentful_paint: float | None = None
    first_input_delay: float | None = None
    cumulative_layout_shift: float | None = None
    time_to_interactive: float | None = None


@dataclass(frozen=True, slots=True)
class HeatmapData:
    x: float
    y: float
    action: str  # "click" | "move" | "scroll"
    viewport_width: int
    viewport_height: int
    element: str | None = None
    selector: str | None = None


@dataclass(frozen=True, slots=True)
class ErrorData:
    message: str
    type: str = "custom"  # "custom" | "unhandled" | "network"
    stack: str | None = None
    filename: str | None = None
    lineno: int | None = None


@dataclass(frozen=True, slots=True)
class EventContext:
    library: LibraryInfo = LibraryInfo()
    page: PageProperties | None = None
    user_agent: str | None = None
    timezone: str | None = None
    locale: str | None = None
    screen: ScreenSize | None = None

    # optional embedded sub-records
    performance: PerformanceData | None = None
    heatmap: HeatmapData | None = None
    session: Mapping[str, Any] | None = None
    error: ErrorData | None = None


@dataclass(frozen=True, slots=True)
class Event:
    id: str
    anonymous_id: str
    session_id: str
    timestamp: datetime
    type: str

    user_id: str | None = None
    name: str | None = None
    properties: Properties = field(default_factory=dict)
    context: EventContext = EventContext()


def json_dumps(payload: Any) -> str | None:
    if payload is None:
        return None
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        payload = compact_dict(dataclasses.asdict(payload))
    # Stable JSON for deterministic outputs/diffs
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def compact_dict(d: Mapping[str, Any]) -> dict[str, Any]:
    """Drop None-valued keys."""
    return {k: v for k, v in d.items() if v is not None}


def normalize_value(value: Any) -> PropertyValue:
    if isinstance(value, PRIMITIVE_TYPES):
        return value
    if isinstance(value, Mapping | list | tuple) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    ):
        return json_dumps(value if not isinstance(value, tuple) else list(value))
    return str(value)


def normalize_properties(properties: Mapping[Any, Any] | None) -> Properties:
    """
    Restrict a property bag to primitive values.
    - nested mappings / sequences / dataclasses -> compact JSON strings
    - anything else -> str(value)
    """
    if not properties:
        return {}
    return {str(k): normalize_value(v) for k, v in properties.items()}
