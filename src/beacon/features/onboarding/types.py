from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from beacon.core.clock import Clock


@dataclass(frozen=True)
class OnboardingStep:
    name: str
    index: int
    required: bool = False


@dataclass(frozen=True)
class OnboardingProgress:
    current_step: str | None
    current_step_index: int
    completed_steps: tuple[str, ...]
    total_steps: int
    progress_percent: float
    duration_s: float | None


class Tracks(Protocol):
    """The slice of Pipeline the onboarding tracker needs."""

    clock: Clock

    def track(self, name: str, properties: Mapping[str, Any] | None = None) -> None: ...
