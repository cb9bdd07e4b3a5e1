from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from beacon.core.clock import Clock, TimerHandle
from beacon.core.ids import IdGenerator

from .attribution import detect_channel

# Signals that count as user activity and push the inactivity deadline out.
ACTIVITY_SIGNALS: frozenset[str] = frozenset(
    {"mousedown", "mousemove", "keypress", "scroll", "touchstart", "click"}
)

MAX_TRACKED_EVENT_NAMES = 100


@dataclass
class SessionRecord:
    session_id: str
    start_time: datetime
    start_s: float  # clock seconds at start; used for durations
    channel: str = "direct"

    end_time: datetime | None = None
    duration_s: float | None = None

    page_views: int = 0
    page_changes: int = 0
    clicks: int = 0
    click_events: int = 0
    scroll_events: int = 0
    scroll_depth: float = 0.0
    max_scroll_depth: float = 0.0

    is_active: bool = True
    engagement_score: float = 0.0
    bounce_likelihood: float = 0.0

    events: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        d = dataclasses.asdict(self)
        d.pop("start_s")
        for key in ("start_time", "end_time"):
            if d[key] is not None:
                d[key] = d[key].isoformat()
        return d


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Immutable view of a session at a point in time.

    duration_s is measured up to the last activity signal; elapsed_s runs
    up to now.
    """

    session_id: str
    start_time: datetime
    duration_s: float
    elapsed_s: float
    page_views: int
    clicks: int
    click_events: int
    scroll_events: int
    scroll_depth: float
    max_scroll_depth: float
    is_active: bool
    channel: str
    end_time: datetime | None = None
    engagement_score: float = 0.0
    bounce_likelihood: float = 0.0


class SessionTracker:
    """
    Aggregates counters for the current session and rotates it on inactivity.

    Lifecycle:
      - start() creates the first record and arms the inactivity timer
      - touch(signal) marks activity and re-arms the timer
      - timer fire -> end(): record sealed, on_end(record), fresh record with a new id
    """

    def __init__(
        self,
        *,
        clock: Clock,
        ids: IdGenerator,
        timeout_s: float,
        on_end: Callable[[SessionRecord], None] | None = None,
        logger: Any | None = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._clock = clock
        self._ids = ids
        self.timeout_s = float(timeout_s)
        self._on_end = on_end
        self._logger = logger
        self._timer: TimerHandle | None = None
        self._record = self._new_record()

    @property
    def current(self) -> SessionRecord:
        return self._record

    @property
    def session_id(self) -> str:
        return self._record.session_id

    def start(self) -> None:
        self.touch("mousedown")

    def _new_record(self) -> SessionRecord:
        return SessionRecord(
            session_id=self._ids.next_id("sess"),
            start_time=self._clock.get_current_time(),
            start_s=self._clock.now(),
        )

    # ----------------------------
    # Activity
    # ----------------------------
    def touch(self, signal: str) -> None:
        if signal not in ACTIVITY_SIGNALS:
            if self._logger is not None:
                self._logger.warning(
                    "unknown activity signal ignored", extra={"reason": signal}
                )
            return

        rec = self._record
        rec.is_active = True
        rec.end_time = self._clock.get_current_time()
        rec.duration_s = self._clock.now() - rec.start_s
        self._arm()

    def record_click(self) -> None:
        self._record.click_events += 1
        self._record.clicks = self._record.click_events
        self.touch("click")

    def record_scroll(self, depth_pct: float) -> None:
        rec = self._record
        depth = max(0.0, min(100.0, float(depth_pct)))
        rec.scroll_depth = depth
        rec.max_scroll_depth = max(rec.max_scroll_depth, depth)
        rec.scroll_events += 1
        self.touch("scroll")

    def record_page_view(self, *, url: str | None = None, referrer: str | None = None) -> None:
        rec = self._record
        if rec.page_views == 0:
            rec.channel = detect_channel(url, referrer)
        rec.page_views += 1
        rec.page_changes += 1

    def record_heatmap_click(self) -> None:
        self._record.clicks += 1

    def note_event(self, name: str) -> None:
        events = self._record.events
        if len(events) < MAX_TRACKED_EVENT_NAMES:
            events.append(name)

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def _arm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._clock.call_later(self.timeout_s, self.end)

    def cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def end(self) -> SessionRecord:
        """Seal the current session, hand it to on_end, and open a fresh one."""
        self.cancel_timer()

        sealed = self._record
        sealed.is_active = False
        sealed.end_time = self._clock.get_current_time()
        sealed.duration_s = self._clock.now() - sealed.start_s

        if self._logger is not None:
            self._logger.debug(
                "session ended",
                extra={"session_id": sealed.session_id, "duration_ms": sealed.duration_s * 1000},
            )
        # on_end runs before rotation so the session_end event carries the sealed id
        if self._on_end is not None:
            self._on_end(sealed)

        self._record = self._new_record()
        return sealed

    def snapshot(self) -> SessionSnapshot:
        rec = self._record
        if rec.is_active:
            # duration stops at the last activity signal; elapsed keeps running
            elapsed_s = self._clock.now() - rec.start_s
            duration_s = rec.duration_s or elapsed_s
        else:
            duration_s = rec.duration_s or 0.0
            elapsed_s = duration_s
        return SessionSnapshot(
            session_id=rec.session_id,
            start_time=rec.start_time,
            duration_s=duration_s,
            elapsed_s=elapsed_s,
            page_views=rec.page_views,
            clicks=rec.clicks,
            click_events=rec.click_events,
            scroll_events=rec.scroll_events,
            scroll_depth=rec.scroll_depth,
            max_scroll_depth=rec.max_scroll_depth,
            is_active=rec.is_active,
            channel=rec.channel,
            end_time=None if rec.is_active else rec.end_time,
            engagement_score=rec.engagement_score,
            bounce_likelihood=rec.bounce_likelihood,
        )
