from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from beacon.core.clock import Clock
from beacon.core.ids import IdGenerator

from .schema import (
    ALLOWED_EVENT_TYPES,
    ErrorData,
    Event,
    EventContext,
    HeatmapData,
    LibraryInfo,
    PageProperties,
    PerformanceData,
    ScreenSize,
    normalize_properties,
)


@dataclass(slots=True)
class Identity:
    """
    Who the events are about.
    anonymous_id is always present; user_id only after identify().
    """

    anonymous_id: str
    user_id: str | None = None


@dataclass(slots=True)
class HostContext:
    """
    Environment metadata stamped onto every event.
    `page` tracks the most recent page() call.
    """

    user_agent: str | None = None
    timezone: str | None = None
    locale: str | None = None
    screen: ScreenSize | None = None
    page: PageProperties | None = None
    library: LibraryInfo = LibraryInfo()


class EventFactory:
    def __init__(
        self,
        *,
        clock: Clock,
        ids: IdGenerator,
        identity: Identity,
        host: HostContext,
        session_id: Callable[[], str],
    ) -> None:
        self._clock = clock
        self._ids = ids
        self._identity = identity
        self._host = host
        self._session_id = session_id

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def host(self) -> HostContext:
        return self._host

    def create(
        self,
        event_type: str,
        name: str | None = None,
        properties: Mapping[str, Any] | None = None,
        *,
        performance: PerformanceData | None = None,
        heatmap: HeatmapData | None = None,
        session: Mapping[str, Any] | None = None,
        error: ErrorData | None = None,
    ) -> Event:
        """
        Stamp a raw (type, name, properties) tuple into a canonical Event.

        Property values are narrowed to primitives here, so everything past this
        point can rely on a flat, JSON-safe bag.
        """
        if event_type not in ALLOWED_EVENT_TYPES:
            raise ValueError(
                f"Unsupported event_type={event_type!r}. Allowed={sorted(ALLOWED_EVENT_TYPES)}"
            )

        context = EventContext(
            library=self._host.library,
            page=self._host.page,
            user_agent=self._host.user_agent,
            timezone=self._host.timezone,
            locale=self._host.locale,
            screen=self._host.screen,
            performance=performance,
            heatmap=heatmap,
            session=dict(session) if session is not None else None,
            error=error,
        )

        return Event(
            id=self._ids.next_id("evt"),
            anonymous_id=self._identity.anonymous_id,
            session_id=self._session_id(),
            timestamp=self._clock.get_current_time(),
            type=event_type,
            user_id=self._identity.user_id,
            name=name,
            properties=normalize_properties(properties),
            context=context,
        )
