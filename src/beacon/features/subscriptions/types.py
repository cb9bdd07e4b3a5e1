from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from beacon.core.types import PropertyValue

SUBSCRIPTION_STATUSES: set[str] = {
    "active",
    "trialing",
    "past_due",
    "canceled",
    "paused",
    "incomplete",
    "incomplete_expired",
    "unpaid",
}

PAYMENT_STATUSES: set[str] = {"succeeded", "failed", "pending", "refunded"}


@dataclass(frozen=True)
class SubscriptionProperties:
    """
    Billing state for the identified user. Amounts are in cents.
    Only the last 4 digits of a payment method are ever carried.
    """

    status: str
    plan_id: str | None = None
    plan_name: str | None = None
    plan_tier: str | None = None

    mrr: int | None = None
    arr: int | None = None
    ltv: int | None = None
    currency: str | None = None

    billing_interval: str | None = None  # day | week | month | year
    current_period_start: str | None = None
    current_period_end: str | None = None

    trial_start: str | None = None
    trial_end: str | None = None
    is_trial: bool | None = None

    payment_method_type: str | None = None
    payment_method_last4: str | None = None
    payment_method_brand: str | None = None

    cancel_at_period_end: bool | None = None
    canceled_at: str | None = None
    cancellation_reason: str | None = None

    provider: str | None = None
    provider_customer_id: str | None = None
    provider_subscription_id: str | None = None

    extra: dict[str, PropertyValue] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentProperties:
    amount: int | None = None  # cents
    currency: str | None = None
    payment_status: str | None = None
    failure_reason: str | None = None
    invoice_id: str | None = None
    charge_id: str | None = None


@dataclass(frozen=True)
class Detection:
    provider: str
    confidence: float  # 0..1
    subscription: SubscriptionProperties | None = None


class SubscriptionDetector(Protocol):
    """Host-side probe for the billing provider; None when nothing is found."""

    def detect(self) -> Detection | None: ...

