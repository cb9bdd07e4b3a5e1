from __future__ import annotations

from datetime import datetime

import simpy

from beacon.core.clock import SimClock
from beacon.core.config import PipelineConfig
from beacon.core.ids import IdGenerator
from beacon.core.logging import get_logger
from beacon.features.events.service import HostContext
from beacon.features.persistence.duckdb_adapter import DuckDBAdapter, DuckDBTransport
from beacon.features.pipeline.service import Pipeline
from beacon.features.pipeline.types import SessionRecorder
from beacon.features.subscriptions.types import SubscriptionDetector
from beacon.features.transport.service import HttpTransport, Transport


def bootstrap_pipeline(
    cfg: PipelineConfig,
    *,
    env: simpy.Environment | None = None,
    transport: Transport | None = None,
    ids: IdGenerator | None = None,
    host: HostContext | None = None,
    detector: SubscriptionDetector | None = None,
    recorder: SessionRecorder | None = None,
    start_dt: datetime | None = None,
) -> Pipeline:
    """
    Wire a Pipeline from config. Each call returns an independent handle.

    - env: defaults to a plain simpy.Environment; pass a
      simpy.rt.RealtimeEnvironment(strict=False) to run on wall-clock time
    - transport: replaces the default HTTP transport
    - storage config adds a DuckDB sink next to the primary transport
    """
    logger = get_logger(f"beacon.{cfg.project.project_id}", cfg.logging.effective_level)

    clock = SimClock(env or simpy.Environment(), start_dt=start_dt)

    # ----- delivery -----
    primary: Transport = transport or HttpTransport(
        endpoint=cfg.project.endpoint,
        api_key=cfg.project.api_key,
        project_id=cfg.project.project_id,
        timeout_s=cfg.delivery.request_timeout_s,
    )
    transports: list[Transport] = [primary]

    if cfg.storage is not None:
        adapter = DuckDBAdapter(path=cfg.storage.duckdb_path, clean_slate=cfg.storage.clean_slate)
        transports.append(DuckDBTransport(adapter))

    pipeline = Pipeline(
        cfg=cfg,
        clock=clock,
        transports=transports,
        ids=ids,
        host=host,
        detector=detector,
        recorder=recorder,
        logger=logger,
    )
    logger.info(
        "pipeline ready",
        extra={
            "project_id": cfg.project.project_id,
            "provider": ",".join(t.name for t in transports),
        },
    )
    return pipeline
