from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import simpy

from beacon.core.clock import SimClock
from beacon.features.onboarding.service import OnboardingTracker
from beacon.features.onboarding.types import OnboardingStep

STEPS = [
    OnboardingStep(name="profile", index=0, required=True),
    OnboardingStep(name="invite", index=1),
    OnboardingStep(name="integrate", index=2, required=True),
]


class FakePipeline:
    def __init__(self) -> None:
        self.env = simpy.Environment()
        self.clock = SimClock(self.env)
        self.rows: list[tuple[str, dict[str, Any]]] = []

    def track(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        self.rows.append((name, dict(properties or {})))

    def names(self) -> list[str]:
        return [n for n, _ in self.rows]


class WarnLog:
    def __init__(self) -> None:
        self.warnings: list[str] = []

    def warning(self, msg: str, **_kw) -> None:
        self.warnings.append(msg)


def test_completing_all_steps_completes_flow() -> None:
    pipeline = FakePipeline()
    tracker = OnboardingTracker(pipeline, STEPS)

    tracker.start()
    pipeline.env.run(until=10.0)
    tracker.complete_step("profile")
    tracker.complete_step("invite")
    pipeline.env.run(until=65.0)
    tracker.complete_step("integrate")

    assert pipeline.names() == [
        "onboarding_started",
        "onboarding_step_completed",
        "onboarding_step_completed",
        "onboarding_step_completed",
        "onboarding_completed",
    ]
    first = pipeline.rows[1][1]
    assert first["step_name"] == "profile"
    assert first["required"] is True
    assert first["time_since_start"] == 10000
    assert round(first["progress"], 2) == 33.33

    done = pipeline.rows[-1][1]
    assert done["completion_rate"] == 100.0
    assert done["duration_ms"] == 65000
    assert done["duration_seconds"] == 65


def test_required_steps_cannot_be_skipped() -> None:
    pipeline = FakePipeline()
    log = WarnLog()
    tracker = OnboardingTracker(pipeline, STEPS, logger=log)

    tracker.start()
    tracker.skip_step("profile")
    tracker.skip_step("invite", "later")

    assert pipeline.names() == ["onboarding_started", "onboarding_step_skipped"]
    assert pipeline.rows[-1][1]["reason"] == "later"
    assert log.warnings == ["required onboarding step cannot be skipped"]


def test_unknown_step_is_ignored() -> None:
    pipeline = FakePipeline()
    log = WarnLog()
    tracker = OnboardingTracker(pipeline, STEPS, logger=log)

    tracker.complete_step("nope")

    assert pipeline.rows == []
    assert log.warnings == ["unknown onboarding step ignored"]


def test_abandon_and_progress() -> None:
    pipeline = FakePipeline()
    tracker = OnboardingTracker(pipeline, STEPS)

    tracker.start()
    tracker.complete_step("invite")
    pipeline.env.run(until=5.0)

    progress = tracker.progress()
    assert progress.current_step == "invite"
    assert progress.current_step_index == 1
    assert progress.completed_steps == ("invite",)
    assert progress.duration_s == 5.0

    tracker.abandon("closed_tab")
    props = pipeline.rows[-1][1]
    assert pipeline.rows[-1][0] == "onboarding_abandoned"
    assert props["step_name"] == "invite"
    assert props["steps_completed"] == 1
    assert props["reason"] == "closed_tab"
    assert props["duration_ms"] == 5000


def test_progress_before_start() -> None:
    tracker = OnboardingTracker(FakePipeline(), STEPS)
    progress = tracker.progress()
    assert progress.current_step is None
    assert progress.current_step_index == -1
    assert progress.duration_s is None
    assert progress.progress_percent == 0.0
