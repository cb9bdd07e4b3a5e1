from __future__ import annotations

from typing import TypeAlias

# Closed set of values an event property may carry.
PropertyValue: TypeAlias = str | int | float | bool | None

Properties: TypeAlias = dict[str, PropertyValue]

LIBRARY_NAME = "beacon-telemetry"
LIBRARY_VERSION = "0.1.0"
