from __future__ import annotations

from typing import Any

import pytest

from beacon.features.subscriptions.service import SubscriptionTracker, flatten_subscription
from beacon.features.subscriptions.types import PaymentProperties, SubscriptionProperties


class Emitted:
    def __init__(self) -> None:
        self.rows: list[tuple[str, str, dict[str, Any]]] = []

    def __call__(self, event_type: str, name: str, props: dict[str, Any]) -> None:
        self.rows.append((event_type, name, dict(props)))


def test_flatten_skips_none_and_merges_extra() -> None:
    sub = SubscriptionProperties(
        status="active", plan_name="Pro", mrr=4900, extra={"seats": 5}
    )

    assert flatten_subscription(sub) == {
        "status": "active",
        "plan_name": "Pro",
        "mrr": 4900,
        "seats": 5,
    }
    assert flatten_subscription(sub, prefix="subscription_")["subscription_mrr"] == 4900


def test_lifecycle_event_carries_flat_subscription() -> None:
    emitted = Emitted()
    tracker = SubscriptionTracker(emit=emitted)
    sub = SubscriptionProperties(status="trialing", plan_id="plan_pro", is_trial=True)

    tracker.track_lifecycle("trial_started", sub, {"source": "pricing"})

    assert emitted.rows == [
        (
            "subscription",
            "trial_started",
            {"status": "trialing", "plan_id": "plan_pro", "is_trial": True, "source": "pricing"},
        )
    ]
    assert tracker.current == sub


def test_unknown_lifecycle_event_rejected() -> None:
    tracker = SubscriptionTracker(emit=Emitted())
    with pytest.raises(ValueError):
        tracker.track_lifecycle("subscription_teleported", SubscriptionProperties(status="active"))


def test_payment_failures_are_counted() -> None:
    emitted = Emitted()
    tracker = SubscriptionTracker(emit=emitted)

    declined = PaymentProperties(amount=4900, failure_reason="card_declined")
    tracker.track_payment(declined, succeeded=False)
    tracker.track_payment(PaymentProperties(amount=4900), succeeded=True)
    tracker.track_payment(PaymentProperties(amount=4900), succeeded=False)

    assert tracker.payment_failures == 2
    assert [name for _, name, _ in emitted.rows] == [
        "payment_failed",
        "payment_succeeded",
        "payment_failed",
    ]
    etype, _, props = emitted.rows[0]
    assert etype == "payment"
    assert props == {"amount": 4900, "failure_reason": "card_declined", "payment_status": "failed"}
