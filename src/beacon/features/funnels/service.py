from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from beacon.core.clock import Clock, TimerHandle

# emit(event_name, properties) -> enqueues a track event
EmitFn = Callable[[str, dict[str, Any]], None]

START_STEP = "start"


@dataclass
class FunnelState:
    name: str
    start_time: datetime
    start_s: float
    current_step: int = 0
    steps: list[str] = field(default_factory=list)
    timer: TimerHandle | None = field(default=None, repr=False)

    def elapsed_ms(self, now_s: float) -> int:
        return int(round((now_s - self.start_s) * 1000))


@dataclass(frozen=True)
class FunnelSnapshot:
    funnel_name: str
    current_step: int
    steps: tuple[str, ...]
    start_time: datetime
    time_in_funnel_s: float
    is_active: bool = True


class FunnelEngine:
    """
    Named step-progression state machines with abandonment timers.

    NotStarted -> Active -> {Completed | Abandoned}

    Every transition out of Active deletes the state and cancels its timer, so
    at most one live state exists per name.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        emit: EmitFn,
        abandonment_timeout_s: float = 300.0,
        typical_steps: int = 5,
        logger: Any | None = None,
    ) -> None:
        self._clock = clock
        self._emit = emit
        self.abandonment_timeout_s = float(abandonment_timeout_s)
        self.typical_steps = int(typical_steps)
        self._logger = logger
        self._states: dict[str, FunnelState] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._states

    def active_names(self) -> list[str]:
        return list(self._states)

    # ----------------------------
    # Transitions
    # ----------------------------
    def start(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        self._clear(name)

        state = FunnelState(
            name=name,
            start_time=self._clock.get_current_time(),
            start_s=self._clock.now(),
        )
        self._states[name] = state

        self.track_step(name, START_STEP, 0, properties)
        self._arm(state)
        self._debug("funnel started", name)

    def advance(self, name: str, step: str, properties: Mapping[str, Any] | None = None) -> None:
        state = self._states.get(name)
        if state is None:
            self._warn_unknown("advance", name)
            return

        state.current_step += 1
        state.steps.append(step)
        previous = state.steps[-2] if len(state.steps) > 1 else START_STEP

        props: dict[str, Any] = {
            "time_in_funnel": state.elapsed_ms(self._clock.now()),
            "previous_step": previous,
            "total_steps_completed": state.current_step,
        }
        if properties:
            props.update(properties)
        self.track_step(name, step, state.current_step, props)

        self._arm(state)
        self._debug("funnel advanced", name)

    def complete(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        state = self._states.get(name)
        if state is None:
            self._warn_unknown("complete", name)
            return

        props: dict[str, Any] = {
            "funnel_name": name,
            "total_steps_completed": state.current_step,
            "time_to_complete": state.elapsed_ms(self._clock.now()),
        }
        if properties:
            props.update(properties)
        self._emit("funnel_completed", props)

        self._clear(name)
        self._debug("funnel completed", name)

    def abandon(
        self,
        name: str,
        reason: str | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        state = self._states.get(name)
        if state is None:
            self._warn_unknown("abandon", name)
            return

        props: dict[str, Any] = {
            "funnel_name": name,
            "abandoned_at_step": state.current_step,
            "abandoned_step_name": state.steps[-1] if state.steps else START_STEP,
            "time_before_abandon": state.elapsed_ms(self._clock.now()),
            "abandon_reason": reason or "unknown",
            "steps_completed_count": len(state.steps),
            "steps_completed_names": ",".join(state.steps),
            "completion_percentage": self.completion_percentage(state.current_step),
        }
        if properties:
            props.update(properties)
        self._emit("funnel_abandoned", props)

        self._clear(name)
        self._debug("funnel abandoned", name, reason=props["abandon_reason"])

    def track_step(
        self,
        name: str,
        step: str,
        index: int,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        """Emit a funnel_step event. Stateless; usable without start()."""
        props: dict[str, Any] = {"funnel_name": name, "step_name": step, "step_index": index}
        if properties:
            props.update(properties)
        self._emit("funnel_step", props)

    # ----------------------------
    # Queries
    # ----------------------------
    def get_state(self, name: str) -> FunnelSnapshot | None:
        state = self._states.get(name)
        if state is None:
            return None
        return FunnelSnapshot(
            funnel_name=name,
            current_step=state.current_step,
            steps=tuple(state.steps),
            start_time=state.start_time,
            time_in_funnel_s=self._clock.now() - state.start_s,
        )

    def completion_percentage(self, current_step: int) -> float:
        # no funnel definitions; measured against a typical funnel length
        return min(100.0, current_step / self.typical_steps * 100.0)

    # ----------------------------
    # Timers / cleanup
    # ----------------------------
    def _arm(self, state: FunnelState) -> None:
        if state.timer is not None:
            state.timer.cancel()
        name = state.name
        state.timer = self._clock.call_later(
            self.abandonment_timeout_s, lambda: self._on_timeout(name, state)
        )

    def _on_timeout(self, name: str, state: FunnelState) -> None:
        # a restarted funnel owns a new state object; ignore stale timers
        if self._states.get(name) is state:
            self.abandon(name, "timeout")

    def _clear(self, name: str) -> None:
        state = self._states.pop(name, None)
        if state is not None and state.timer is not None:
            state.timer.cancel()

    def clear(self) -> None:
        for name in list(self._states):
            self._clear(name)

    # ----------------------------
    # Logging
    # ----------------------------
    def _warn_unknown(self, op: str, name: str) -> None:
        if self._logger is not None:
            self._logger.warning(
                f"funnel {op} ignored: not started",
                extra={"funnel_name": name, "feature": "funnels"},
            )

    def _debug(self, msg: str, name: str, **extra: Any) -> None:
        if self._logger is not None:
            self._logger.debug(msg, extra={"funnel_name": name, "feature": "funnels", **extra})
