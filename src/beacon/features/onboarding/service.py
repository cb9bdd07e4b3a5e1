from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .types import OnboardingProgress, OnboardingStep, Tracks


class OnboardingTracker:
    """
    Step-by-step onboarding progress on top of a pipeline.

    Steps may complete in any order; the current step is whichever was
    completed last. Completing the final outstanding step completes the flow.
    """

    def __init__(
        self,
        pipeline: Tracks,
        steps: Sequence[OnboardingStep],
        *,
        logger: Any | None = None,
    ) -> None:
        if not steps:
            raise ValueError("onboarding needs at least one step")
        self._pipeline = pipeline
        self._steps = {s.name: s for s in steps}
        self._by_index = {s.index: s for s in steps}
        self._logger = logger

        self._current_index = -1
        self._start_s: float | None = None
        self._completed: dict[str, None] = {}  # insertion-ordered set

    @property
    def total_steps(self) -> int:
        return len(self._steps)

    def is_step_completed(self, name: str) -> bool:
        return name in self._completed

    def start(self, properties: Mapping[str, Any] | None = None) -> None:
        self.reset()
        self._start_s = self._pipeline.clock.now()
        props: dict[str, Any] = {"total_steps": self.total_steps}
        if properties:
            props.update(properties)
        self._pipeline.track("onboarding_started", props)

    def complete_step(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        step = self._lookup(name)
        if step is None:
            return

        self._completed[name] = None
        self._current_index = step.index

        props: dict[str, Any] = {
            "step_name": name,
            "step_index": step.index,
            "required": step.required,
            "steps_completed": len(self._completed),
            "total_steps": self.total_steps,
            "progress": self._percent(),
            "time_since_start": self._elapsed_ms(),
        }
        if properties:
            props.update(properties)
        self._pipeline.track("onboarding_step_completed", props)

        if len(self._completed) == self.total_steps:
            self.complete()

    def skip_step(self, name: str, reason: str | None = None) -> None:
        step = self._lookup(name)
        if step is None:
            return
        if step.required:
            self._warn("required onboarding step cannot be skipped", name)
            return

        self._pipeline.track(
            "onboarding_step_skipped",
            {
                "step_name": name,
                "step_index": step.index,
                "reason": reason or "not_specified",
                "steps_completed": len(self._completed),
                "total_steps": self.total_steps,
            },
        )

    def complete(self, properties: Mapping[str, Any] | None = None) -> None:
        duration_ms = self._elapsed_ms() or 0
        props: dict[str, Any] = {
            "steps_completed": len(self._completed),
            "total_steps": self.total_steps,
            "completion_rate": self._percent(),
            "duration_ms": duration_ms,
            "duration_seconds": duration_ms // 1000,
        }
        if properties:
            props.update(properties)
        self._pipeline.track("onboarding_completed", props)

    def abandon(self, reason: str | None = None) -> None:
        self._pipeline.track(
            "onboarding_abandoned",
            {
                "step_name": self._current_name(),
                "step_index": self._current_index,
                "steps_completed": len(self._completed),
                "total_steps": self.total_steps,
                "progress": self._percent(),
                "duration_ms": self._elapsed_ms() or 0,
                "reason": reason or "not_specified",
            },
        )

    def progress(self) -> OnboardingProgress:
        duration_s = None
        if self._start_s is not None:
            duration_s = self._pipeline.clock.now() - self._start_s
        return OnboardingProgress(
            current_step=self._current_name(),
            current_step_index=self._current_index,
            completed_steps=tuple(self._completed),
            total_steps=self.total_steps,
            progress_percent=self._percent(),
            duration_s=duration_s,
        )

    def reset(self) -> None:
        self._current_index = -1
        self._start_s = None
        self._completed.clear()

    # ----------------------------
    # Helpers
    # ----------------------------
    def _lookup(self, name: str) -> OnboardingStep | None:
        step = self._steps.get(name)
        if step is None:
            self._warn("unknown onboarding step ignored", name)
        return step

    def _percent(self) -> float:
        return len(self._completed) / self.total_steps * 100.0

    def _elapsed_ms(self) -> int | None:
        if self._start_s is None:
            return None
        return int(round((self._pipeline.clock.now() - self._start_s) * 1000))

    def _current_name(self) -> str | None:
        step = self._by_index.get(self._current_index)
        return step.name if step is not None else None

    def _warn(self, msg: str, name: str) -> None:
        if self._logger is not None:
            self._logger.warning(msg, extra={"feature": "onboarding", "reason": name})
