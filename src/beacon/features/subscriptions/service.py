from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from typing import Any

from beacon.core.types import Properties, PropertyValue

from .types import PaymentProperties, SubscriptionProperties

# emit(event_type, event_name, properties)
EmitFn = Callable[[str, str, dict[str, Any]], None]

LIFECYCLE_EVENTS: tuple[str, ...] = (
    "subscription_started",
    "subscription_upgraded",
    "subscription_downgraded",
    "subscription_canceled",
    "subscription_paused",
    "subscription_reactivated",
    "trial_started",
    "trial_converted",
    "trial_expired",
)


def flatten_subscription(sub: SubscriptionProperties, *, prefix: str = "") -> Properties:
    """Flat primitive bag for a subscription; None fields are omitted."""
    out: dict[str, PropertyValue] = {}
    for f in dataclasses.fields(sub):
        if f.name == "extra":
            continue
        value = getattr(sub, f.name)
        if value is not None:
            out[f"{prefix}{f.name}"] = value
    for key, value in sub.extra.items():
        out[f"{prefix}{key}"] = value
    return out


class SubscriptionTracker:
    """
    Keeps the latest known subscription and counts payment failures
    (the count feeds churn scoring).
    """

    def __init__(self, *, emit: EmitFn) -> None:
        self._emit = emit
        self._current: SubscriptionProperties | None = None
        self.payment_failures = 0

    @property
    def current(self) -> SubscriptionProperties | None:
        return self._current

    def update(self, sub: SubscriptionProperties) -> None:
        self._current = sub

    def track(
        self,
        event_name: str,
        sub: SubscriptionProperties | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        props: dict[str, Any] = {}
        if sub is not None:
            self.update(sub)
            props.update(flatten_subscription(sub))
        if properties:
            props.update(properties)
        self._emit("subscription", event_name, props)

    def track_lifecycle(
        self,
        event_name: str,
        sub: SubscriptionProperties,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        if event_name not in LIFECYCLE_EVENTS:
            raise ValueError(f"Unsupported subscription event {event_name!r}")
        self.track(event_name, sub, properties)

    def track_payment(
        self,
        payment: PaymentProperties,
        *,
        succeeded: bool,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        props: dict[str, Any] = {
            k: v for k, v in dataclasses.asdict(payment).items() if v is not None
        }
        props.setdefault("payment_status", "succeeded" if succeeded else "failed")
        if properties:
            props.update(properties)
        if not succeeded:
            self.payment_failures += 1
        self._emit("payment", "payment_succeeded" if succeeded else "payment_failed", props)
