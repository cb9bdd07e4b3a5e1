from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import simpy


class TimerHandle(Protocol):
    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...


class Clock(Protocol):
    """
    Time source and timer scheduler for the pipeline.

    All callbacks run on the clock's own thread of control; nothing in the
    pipeline needs locking as long as the host drives a single clock.
    """

    def now(self) -> float: ...
    def get_current_time(self) -> datetime: ...
    def call_later(self, delay_s: float, fn: Callable[[], None]) -> TimerHandle: ...
    def call_every(self, interval_s: float, fn: Callable[[], None]) -> TimerHandle: ...


class SimTimer:
    """
    A SimPy process that waits and then calls `fn` (once, or every interval).

    cancel() interrupts the waiting process. Calling it from inside the timer's
    own callback only flips the flag; SimPy forbids a process interrupting itself.
    """

    def __init__(
        self,
        env: simpy.Environment,
        delay_s: float,
        fn: Callable[[], None],
        *,
        repeat: bool = False,
    ) -> None:
        self._env = env
        self._delay_s = max(0.0, float(delay_s))
        self._fn = fn
        self._repeat = repeat
        self._cancelled = False
        self._started = False
        self._proc = env.process(self._run())

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return not self._proc.is_alive and not self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        # a process that has not started yet sees the flag on its first step
        if (
            self._started
            and self._proc.is_alive
            and self._env.active_process is not self._proc
        ):
            self._proc.interrupt("cancelled")

    def _run(self):
        self._started = True
        while not self._cancelled:
            try:
                yield self._env.timeout(self._delay_s)
            except simpy.Interrupt:
                return
            if self._cancelled:
                return
            self._fn()
            if not self._repeat:
                return


class SimClock:
    """
    Clock backed by a SimPy environment.

    - simpy.Environment: deterministic time for tests and replays
    - simpy.rt.RealtimeEnvironment(strict=False): wall-clock pacing for live hosts
    """

    def __init__(self, env: simpy.Environment, start_dt: datetime | None = None) -> None:
        self.env = env
        start = start_dt or datetime.now(UTC)
        self.start_dt = start if start.tzinfo else start.replace(tzinfo=UTC)

    def now(self) -> float:
        return float(self.env.now)

    def get_current_time(self) -> datetime:
        return self.start_dt + timedelta(seconds=float(self.env.now))

    def call_later(self, delay_s: float, fn: Callable[[], None]) -> SimTimer:
        return SimTimer(self.env, delay_s, fn)

    def call_every(self, interval_s: float, fn: Callable[[], None]) -> SimTimer:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        return SimTimer(self.env, interval_s, fn, repeat=True)

    def run(self, until: float | None = None) -> None:
        self.env.run(until=until)
