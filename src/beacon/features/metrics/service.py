from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

RISK_CATEGORIES: tuple[tuple[float, str], ...] = (
    (25.0, "low"),
    (50.0, "medium"),
    (75.0, "high"),
)


class SessionLike(Protocol):
    page_views: int
    clicks: int
    click_events: int
    scroll_events: int
    scroll_depth: float
    duration_s: float


def _clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return lo if x < lo else hi if x > hi else x


# ----------------------------
# Session metrics
# ----------------------------


def engagement_score(session: SessionLike) -> float:
    """
    0-100, higher = more engaged.

      clicks        x2    up to 25
      scroll depth  pct   up to 20
      minutes       x3    up to 30
      page views    x4    up to 20
      scroll events x0.5  up to 5
    """
    clicks = max(session.click_events, session.clicks)
    minutes = max(0.0, float(session.duration_s)) / 60.0

    score = 0.0
    score += min(clicks * 2.0, 25.0)
    score += min(max(float(session.scroll_depth), 0.0), 20.0)
    score += min(minutes * 3.0, 30.0)
    score += min(session.page_views * 4.0, 20.0)
    score += min(session.scroll_events * 0.5, 5.0)
    return _clamp(score)


def bounce_likelihood(session: SessionLike, elapsed_s: float | None = None) -> float:
    """
    0-100, higher = more likely to bounce. Starts at 100; engagement signals subtract.

    elapsed_s overrides session.duration_s as the time on site.
    """
    seconds = float(session.duration_s if elapsed_s is None else elapsed_s)

    score = 100.0
    if session.page_views > 1:
        score -= 30
    if session.click_events > 3:
        score -= 20
    if session.scroll_events > 5:
        score -= 15
    if session.scroll_depth > 50:
        score -= 15
    if seconds > 30:
        score -= 10
    if seconds > 120:
        score -= 10
    return _clamp(score)


# ----------------------------
# Churn risk
# ----------------------------


@dataclass(frozen=True)
class ChurnFactors:
    """Inputs to churn scoring. A missing factor contributes nothing."""

    engagement_score: float | None = None
    days_since_last_active: float | None = None
    feature_adoption_rate: float | None = None  # 0..1
    support_tickets: int | None = None
    negative_feedback_count: int | None = None
    payment_failures: int | None = None


@dataclass(frozen=True)
class ChurnRiskMetrics:
    risk_score: float
    risk_category: str
    factors: dict[str, Any] = field(default_factory=dict)
    predicted_churn_date: str | None = None
    intervention_recommended: bool = False


def _engagement_points(v: float) -> float:
    if v < 20:
        return 30
    if v < 40:
        return 20
    if v < 60:
        return 10
    return 0


def _inactivity_points(days: float) -> float:
    if days >= 30:
        return 40
    if days >= 14:
        return 30
    if days >= 7:
        return 20
    if days >= 3:
        return 10
    return 0


def _adoption_points(rate: float) -> float:
    if rate < 0.2:
        return 15
    if rate < 0.4:
        return 10
    if rate < 0.6:
        return 5
    return 0


def _support_points(tickets: int) -> float:
    if tickets >= 5:
        return 10
    if tickets >= 2:
        return 5
    return 0


def _feedback_points(count: int) -> float:
    if count >= 3:
        return 20
    if count >= 1:
        return 10
    return 0


def _payment_points(failures: int) -> float:
    if failures >= 3:
        return 30
    if failures >= 2:
        return 20
    if failures >= 1:
        return 10
    return 0


def risk_category(score: float) -> str:
    # bands are inclusive-low: 25 -> medium, 50 -> high, 75 -> critical
    for upper, name in RISK_CATEGORIES:
        if score < upper:
            return name
    return "critical"


def churn_risk(factors: ChurnFactors, *, now: datetime) -> ChurnRiskMetrics:
    score = 0.0
    if factors.engagement_score is not None:
        score += _engagement_points(float(factors.engagement_score))
    if factors.days_since_last_active is not None:
        score += _inactivity_points(float(factors.days_since_last_active))
    if factors.feature_adoption_rate is not None:
        score += _adoption_points(float(factors.feature_adoption_rate))
    if factors.support_tickets is not None:
        score += _support_points(int(factors.support_tickets))
    if factors.negative_feedback_count is not None:
        score += _feedback_points(int(factors.negative_feedback_count))
    if factors.payment_failures is not None:
        score += _payment_points(int(factors.payment_failures))
    score = _clamp(score)

    predicted: str | None = None
    if score > 50:
        days = max(7.0, 90.0 - score)
        predicted = (now + timedelta(days=days)).date().isoformat()

    return ChurnRiskMetrics(
        risk_score=score,
        risk_category=risk_category(score),
        factors={k: v for k, v in asdict(factors).items() if v is not None},
        predicted_churn_date=predicted,
        intervention_recommended=score > 60,
    )
