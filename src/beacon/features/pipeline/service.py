from __future__ import annotations

import dataclasses
import traceback
from collections.abc import Mapping, Sequence
from typing import Any

from beacon.core.clock import Clock, TimerHandle
from beacon.core.config import PipelineConfig
from beacon.core.ids import IdGenerator, RandomIdGenerator
from beacon.features.dispatcher.service import Dispatcher, FlushResult
from beacon.features.events.schema import (
    ErrorData,
    Event,
    HeatmapData,
    PageProperties,
    PerformanceData,
    compact_dict,
)
from beacon.features.events.service import EventFactory, HostContext, Identity
from beacon.features.funnels.service import FunnelEngine, FunnelSnapshot
from beacon.features.metrics.service import (
    ChurnFactors,
    ChurnRiskMetrics,
    bounce_likelihood,
    churn_risk,
    engagement_score,
)
from beacon.features.queue.service import EventQueue, QueuedEvent
from beacon.features.sessions.service import SessionRecord, SessionSnapshot, SessionTracker
from beacon.features.subscriptions.service import SubscriptionTracker, flatten_subscription
from beacon.features.subscriptions.types import (
    Detection,
    PaymentProperties,
    SubscriptionDetector,
    SubscriptionProperties,
)
from beacon.features.transport.service import Transport

from .types import DeliveryStats, SessionRecorder

HEATMAP_EVENT_NAMES = {"click": "click", "move": "mouse_move", "scroll": "scroll"}


class Pipeline:
    """
    The handle application code talks to.

    Owns the queue, the session tracker, the funnel engine and the dispatcher;
    nothing outside this object mutates them. Tracking calls are synchronous and
    never do I/O: delivery happens in flush(), which is triggered by batch size
    (scheduled on the clock), by the flush interval, explicitly, or at shutdown.
    """

    def __init__(
        self,
        *,
        cfg: PipelineConfig,
        clock: Clock,
        transports: Sequence[Transport],
        ids: IdGenerator | None = None,
        host: HostContext | None = None,
        detector: SubscriptionDetector | None = None,
        recorder: SessionRecorder | None = None,
        logger: Any | None = None,
    ) -> None:
        self.cfg = cfg
        self.clock = clock
        self._ids = ids or RandomIdGenerator()
        self._logger = logger
        self._detector = detector
        self._recorder = recorder

        self._identity = Identity(
            anonymous_id=self._ids.next_id("anon"), user_id=cfg.project.user_id
        )
        self._host = host or HostContext()

        self._session = SessionTracker(
            clock=clock,
            ids=self._ids,
            timeout_s=cfg.session.timeout_s,
            on_end=self._on_session_end,
            logger=logger,
        )
        self._factory = EventFactory(
            clock=clock,
            ids=self._ids,
            identity=self._identity,
            host=self._host,
            session_id=lambda: self._session.session_id,
        )
        self._queue = EventQueue(max_size=cfg.delivery.max_queue_size, logger=logger)
        self._dispatcher = Dispatcher(
            queue=self._queue,
            transports=transports,
            clock=clock,
            batch_size=cfg.delivery.batch_size,
            retry_attempts=cfg.delivery.retry_attempts,
            retry_delay_s=cfg.delivery.retry_delay_s,
            max_workers=cfg.delivery.max_concurrent_batches,
            logger=logger,
        )
        self._funnels = FunnelEngine(
            clock=clock,
            emit=self.track,
            abandonment_timeout_s=cfg.funnels.abandonment_timeout_s,
            typical_steps=cfg.funnels.typical_steps,
            logger=logger,
        )
        self._subscriptions = SubscriptionTracker(emit=self._emit_typed)

        self._features_used: set[str] = set()
        self._last_activity_s = clock.now()
        self._pending_flush: TimerHandle | None = None
        self._closing = False
        self._closed = False

        self._session.start()
        self._flush_timer: TimerHandle | None = clock.call_every(
            cfg.delivery.flush_interval_s, self._on_flush_interval
        )
        self._drive_recorder("start")

        self._log_debug("pipeline initialized")

    # ----------------------------
    # Core tracking
    # ----------------------------
    def track(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        self._enqueue(self._factory.create("track", name, properties))

    def page(
        self,
        page: PageProperties | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        page = page or PageProperties()
        self._host.page = page
        self._session.record_page_view(url=page.url, referrer=page.referrer)

        props: dict[str, Any] = compact_dict(dataclasses.asdict(page))
        if properties:
            props.update(properties)
        self._enqueue(self._factory.create("page", None, props))

    def identify(
        self,
        user_id: str,
        traits: Mapping[str, Any] | None = None,
        *,
        subscription: SubscriptionProperties | None = None,
    ) -> None:
        self._identity.user_id = user_id
        props: dict[str, Any] = dict(traits or {})

        if subscription is None and self._detector is not None:
            detection = self._detect_subscription()
            if detection is not None:
                props["detected_provider"] = detection.provider
                props["detection_confidence"] = detection.confidence
                subscription = detection.subscription
                if subscription is not None and subscription.provider is None:
                    subscription = dataclasses.replace(subscription, provider=detection.provider)

        if subscription is not None:
            self._subscriptions.update(subscription)
            props.update(flatten_subscription(subscription, prefix="subscription_"))

        self._enqueue(self._factory.create("identify", None, props))

    def alias(self, new_id: str, previous_id: str | None = None) -> None:
        # collector reads the camelCase keys
        props = {"newId": new_id, "previousId": previous_id or self._identity.user_id}
        self._enqueue(self._factory.create("alias", None, props))

    def reset(self) -> None:
        self._identity.user_id = None
        self._queue.clear()
        self._dispatcher.discard_pending()
        self._log_debug("pipeline reset")

    def set_user_id(self, user_id: str) -> None:
        self._identity.user_id = user_id

    def get_user_id(self) -> str | None:
        return self._identity.user_id

    def get_anonymous_id(self) -> str:
        return self._identity.anonymous_id

    def get_session_id(self) -> str:
        return self._session.session_id

    # ----------------------------
    # Supplementary tracking
    # ----------------------------
    def track_error(
        self, error: str | BaseException, properties: Mapping[str, Any] | None = None
    ) -> None:
        if isinstance(error, BaseException):
            data = ErrorData(
                message=str(error) or type(error).__name__,
                type="custom",
                stack="".join(traceback.format_exception(error)),
            )
        else:
            data = ErrorData(message=str(error), type="custom")
        self._enqueue(self._factory.create("error", "custom_error", properties, error=data))

    def track_performance(
        self, data: PerformanceData, properties: Mapping[str, Any] | None = None
    ) -> None:
        self._enqueue(self._factory.create("track", "performance", properties, performance=data))

    def track_feature_usage(
        self, feature_name: str, properties: Mapping[str, Any] | None = None
    ) -> None:
        self._features_used.add(feature_name)
        props: dict[str, Any] = {"feature_name": feature_name}
        if properties:
            props.update(properties)
        self.track("feature_used", props)

    def track_heatmap(
        self,
        action: str,
        x: float,
        y: float,
        *,
        viewport_width: int,
        viewport_height: int,
        element: str | None = None,
        selector: str | None = None,
    ) -> None:
        name = HEATMAP_EVENT_NAMES.get(action)
        if name is None:
            self._log_warning("unknown heatmap action ignored", reason=action)
            return
        data = HeatmapData(
            x=x,
            y=y,
            action=action,
            viewport_width=viewport_width,
            viewport_height=viewport_height,
            element=element,
            selector=selector,
        )
        self._enqueue(self._factory.create("heatmap", name, None, heatmap=data))
        if action == "click":
            self._session.record_heatmap_click()

    # ----------------------------
    # Subscriptions / payments
    # ----------------------------
    def track_subscription(
        self,
        event_name: str,
        subscription: SubscriptionProperties | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        self._subscriptions.track(event_name, subscription, properties)

    def track_subscription_started(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("subscription_started", sub)

    def track_subscription_upgraded(
        self, sub: SubscriptionProperties, previous_plan: str | None = None
    ) -> None:
        self._subscriptions.track_lifecycle(
            "subscription_upgraded", sub, compact_dict({"previous_plan": previous_plan})
        )

    def track_subscription_downgraded(
        self, sub: SubscriptionProperties, previous_plan: str | None = None
    ) -> None:
        self._subscriptions.track_lifecycle(
            "subscription_downgraded", sub, compact_dict({"previous_plan": previous_plan})
        )

    def track_subscription_canceled(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("subscription_canceled", sub)

    def track_subscription_paused(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("subscription_paused", sub)

    def track_subscription_reactivated(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("subscription_reactivated", sub)

    def track_trial_started(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("trial_started", sub)

    def track_trial_converted(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("trial_converted", sub)

    def track_trial_expired(self, sub: SubscriptionProperties) -> None:
        self._subscriptions.track_lifecycle("trial_expired", sub)

    def track_payment_failed(
        self, payment: PaymentProperties, properties: Mapping[str, Any] | None = None
    ) -> None:
        self._subscriptions.track_payment(payment, succeeded=False, properties=properties)

    def track_payment_succeeded(
        self, payment: PaymentProperties, properties: Mapping[str, Any] | None = None
    ) -> None:
        self._subscriptions.track_payment(payment, succeeded=True, properties=properties)

    def get_subscription_data(self) -> SubscriptionProperties | None:
        return self._subscriptions.current

    # ----------------------------
    # Session activity
    # ----------------------------
    def record_activity(self, signal: str) -> None:
        self._last_activity_s = self.clock.now()
        self._session.touch(signal)

    def record_click(self) -> None:
        self._last_activity_s = self.clock.now()
        self._session.record_click()

    def record_scroll(self, depth_pct: float) -> None:
        self._last_activity_s = self.clock.now()
        self._session.record_scroll(depth_pct)

    def get_session_data(self) -> SessionRecord:
        return dataclasses.replace(
            self._session.current, events=list(self._session.current.events)
        )

    def get_active_session(self) -> SessionSnapshot:
        snap = self._session.snapshot()
        engagement = engagement_score(snap)
        bounce = bounce_likelihood(snap, elapsed_s=snap.elapsed_s)
        self._session.current.engagement_score = engagement
        self._session.current.bounce_likelihood = bounce
        return dataclasses.replace(snap, engagement_score=engagement, bounce_likelihood=bounce)

    # ----------------------------
    # Metrics
    # ----------------------------
    def calculate_engagement_score(self) -> float:
        score = engagement_score(self._session.snapshot())
        self._session.current.engagement_score = score
        return score

    def calculate_churn_risk(self, **overrides: Any) -> ChurnRiskMetrics:
        """
        Churn risk from pipeline state. Keyword overrides replace any factor,
        e.g. support_tickets=3 or days_since_last_active=12.
        """
        known = self.cfg.known_features
        adoption = None
        if known:
            adoption = len(self._features_used & set(known)) / len(known)

        factors = ChurnFactors(
            engagement_score=self.calculate_engagement_score(),
            days_since_last_active=(self.clock.now() - self._last_activity_s) / 86400.0,
            feature_adoption_rate=adoption,
            payment_failures=self._subscriptions.payment_failures,
        )
        if overrides:
            factors = dataclasses.replace(factors, **overrides)
        return churn_risk(factors, now=self.clock.get_current_time())

    # ----------------------------
    # Funnels
    # ----------------------------
    def start_funnel(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        self._funnels.start(name, properties)

    def advance_funnel(
        self, name: str, step: str, properties: Mapping[str, Any] | None = None
    ) -> None:
        self._funnels.advance(name, step, properties)

    def complete_funnel(self, name: str, properties: Mapping[str, Any] | None = None) -> None:
        self._funnels.complete(name, properties)

    def abandon_funnel(
        self,
        name: str,
        reason: str | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        self._funnels.abandon(name, reason, properties)

    def get_funnel_state(self, name: str) -> FunnelSnapshot | None:
        return self._funnels.get_state(name)

    def track_funnel_step(
        self,
        name: str,
        step: str,
        index: int,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        self._funnels.track_step(name, step, index, properties)

    # ----------------------------
    # Session recording
    # ----------------------------
    def start_recording(self) -> None:
        if self._recorder is None:
            self._log_debug("session recording unavailable: no recorder configured")
            return
        self._drive_recorder("start")

    def stop_recording(self) -> None:
        self._drive_recorder("stop")

    def pause_recording(self) -> None:
        self._drive_recorder("pause")

    def resume_recording(self) -> None:
        self._drive_recorder("resume")

    def is_recording_active(self) -> bool:
        return bool(self._drive_recorder("is_active"))

    def _drive_recorder(self, action: str) -> Any:
        """Call a recorder method; a failing recorder is logged, never raised."""
        if self._recorder is None:
            return None
        try:
            return getattr(self._recorder, action)()
        except Exception:
            self._log_warning("session recorder failed", exc_info=True, reason=action)
            return None

    def _detect_subscription(self) -> Detection | None:
        try:
            return self._detector.detect()
        except Exception:
            self._log_warning("subscription detection failed", exc_info=True)
            return None

    # ----------------------------
    # Queue / delivery
    # ----------------------------
    def add_provider(self, transport: Transport) -> None:
        self._dispatcher.add_transport(transport)

    @property
    def providers(self) -> list[Transport]:
        return self._dispatcher.transports

    def get_queue_size(self) -> int:
        return self._queue.size()

    def clear_queue(self) -> None:
        self._queue.clear()

    def flush(self, *, reason: str = "manual") -> FlushResult:
        return self._dispatcher.flush(reason=reason)

    def get_delivery_stats(self) -> DeliveryStats:
        return DeliveryStats(
            sent=self._dispatcher.sent_total,
            dropped=self._dispatcher.dropped_total,
            evicted=self._queue.evicted_total,
            queued=self._queue.size(),
            pending_retries=self._dispatcher.pending_retries(),
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        """
        Best-effort teardown: stop timers, seal the session, flush once.
        Errors are logged at debug level and never raised.
        """
        if self._closing:
            return
        self._closing = True

        self._drive_recorder("stop")

        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None
        if self._pending_flush is not None:
            self._pending_flush.cancel()
            self._pending_flush = None
        self._funnels.clear()
        self._session.cancel_timer()
        self._dispatcher.release_pending()

        if self._session.current.is_active:
            self._session.end()

        try:
            self._dispatcher.flush(reason="shutdown")
        except Exception:
            self._log_debug("final flush failed", exc_info=True)
        # undelivered events stay queued instead of waiting on retry timers
        self._dispatcher.release_pending()

        for transport in self._dispatcher.transports:
            try:
                transport.close()
            except Exception:
                self._log_debug("transport close failed", exc_info=True)

        self._closed = True
        self._log_debug("pipeline shut down")

    # ----------------------------
    # Internals
    # ----------------------------
    def _emit_typed(self, event_type: str, name: str, properties: dict[str, Any]) -> None:
        self._enqueue(self._factory.create(event_type, name, properties))

    def _on_session_end(self, record: SessionRecord) -> None:
        record.engagement_score = engagement_score(record)
        record.bounce_likelihood = bounce_likelihood(record)
        event = self._factory.create("session", "session_end", session=record.as_dict())
        self._enqueue(event)

    def _enqueue(self, event: Event) -> None:
        if self._closed:
            self._log_debug("pipeline closed, event discarded", event_type=event.type)
            return

        self._queue.enqueue(QueuedEvent(event=event, enqueued_at=self.clock.now()))
        self._session.note_event(event.name or event.type)

        if self._logger is not None:
            self._logger.debug(
                "event queued",
                extra={"event_id": event.id, "event_type": event.type, "event_name": event.name},
            )

        # during shutdown the final flush picks everything up
        if (
            not self._closing
            and self._pending_flush is None
            and len(self._queue) >= self._dispatcher.batch_size
        ):
            self._pending_flush = self.clock.call_later(0, self._on_batch_ready)

    def _on_batch_ready(self) -> None:
        self._pending_flush = None
        if not self._closing:
            self.flush(reason="batch_size")

    def _on_flush_interval(self) -> None:
        if not self._closing and len(self._queue) > 0:
            self.flush(reason="interval")

    def _log_debug(self, msg: str, *, exc_info: bool = False, **extra: Any) -> None:
        if self._logger is not None:
            self._logger.debug(msg, exc_info=exc_info, extra=extra)

    def _log_warning(self, msg: str, *, exc_info: bool = False, **extra: Any) -> None:
        if self._logger is not None:
            self._logger.warning(msg, exc_info=exc_info, extra=extra)
