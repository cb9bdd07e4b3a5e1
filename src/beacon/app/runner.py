from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import simpy
import simpy.rt

from beacon.core.config import load_config
from beacon.features.bootstrap.service import bootstrap_pipeline
from beacon.features.pipeline.service import Pipeline
from beacon.features.pipeline.types import DeliveryStats
from beacon.features.transport.service import Transport

REPLAY_TYPES = {"track", "page", "identify"}


def iter_jsonl(path: str | Path) -> Iterator[dict[str, Any]]:
    with Path(path).open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            if not isinstance(record, dict):
                raise ValueError(f"{path}:{lineno}: expected a JSON object per line")
            yield record


def push_record(pipeline: Pipeline, record: dict[str, Any]) -> None:
    kind = record.get("type", "track")
    props = record.get("properties") or None

    if kind == "track":
        pipeline.track(str(record.get("name") or ""), props)
    elif kind == "page":
        pipeline.page(properties=props)
    elif kind == "identify":
        user_id = record.get("user_id")
        if not user_id:
            raise ValueError("identify records need a user_id")
        pipeline.identify(str(user_id), props)
    else:
        raise ValueError(f"Unsupported replay type {kind!r}. Allowed={sorted(REPLAY_TYPES)}")


def replay(
    config_path: str,
    events_path: str,
    *,
    drain_seconds: float = 5.0,
    env: simpy.Environment | None = None,
    transport: Transport | None = None,
) -> DeliveryStats:
    """
    Push a JSONL file of events through a pipeline, then drain and shut down.

    The default env is realtime, so drain_seconds is wall-clock time during
    which interval flushes and retries get to run.
    """
    cfg = load_config(config_path)
    env = env if env is not None else simpy.rt.RealtimeEnvironment(strict=False)
    pipeline = bootstrap_pipeline(cfg, env=env, transport=transport)

    try:
        for record in iter_jsonl(events_path):
            push_record(pipeline, record)

        pipeline.flush(reason="replay")
        if drain_seconds > 0:
            env.run(until=env.now + drain_seconds)
    finally:
        pipeline.shutdown()

    return pipeline.get_delivery_stats()
