from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_ENDPOINT = "https://api.mentiq.io"


@dataclass(frozen=True)
class ProjectConfig:
    api_key: str
    project_id: str
    endpoint: str = DEFAULT_ENDPOINT
    user_id: str | None = None


@dataclass(frozen=True)
class DeliveryConfig:
    batch_size: int = 20
    flush_interval_s: float = 10.0
    max_queue_size: int = 1000
    retry_attempts: int = 3
    retry_delay_s: float = 1.0
    request_timeout_s: float = 10.0
    max_concurrent_batches: int = 4


@dataclass(frozen=True)
class SessionConfig:
    timeout_s: float = 30 * 60.0


@dataclass(frozen=True)
class FunnelsConfig:
    abandonment_timeout_s: float = 5 * 60.0
    typical_steps: int = 5


@dataclass(frozen=True)
class StorageConfig:
    duckdb_path: str
    clean_slate: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "ERROR"
    debug: bool = False

    @property
    def effective_level(self) -> str:
        return "DEBUG" if self.debug else self.level


@dataclass(frozen=True)
class PipelineConfig:
    project: ProjectConfig
    delivery: DeliveryConfig = DeliveryConfig()
    session: SessionConfig = SessionConfig()
    funnels: FunnelsConfig = FunnelsConfig()
    logging: LoggingConfig = LoggingConfig()
    storage: StorageConfig | None = None
    known_features: tuple[str, ...] = ()
    raw: dict[str, Any] | None = None  # original parsed YAML (for debugging)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def _require_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be > 0 (got {value!r})")


def _require_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} must be >= 0 (got {value!r})")


def parse_config(data: dict[str, Any]) -> PipelineConfig:
    if "project" not in data:
        raise ValueError("Missing required top-level config section: 'project'")

    project = data.get("project") or {}
    delivery = data.get("delivery") or {}
    session = data.get("session") or {}
    funnels = data.get("funnels") or {}
    storage = data.get("storage")
    logging_cfg = data.get("logging") or {}

    for key in ["api_key", "project_id"]:
        if not project.get(key):
            raise ValueError(f"Missing required config key: 'project.{key}'")

    user_id = project.get("user_id")
    project_cfg = ProjectConfig(
        api_key=str(project["api_key"]),
        project_id=str(project["project_id"]),
        endpoint=str(project.get("endpoint") or DEFAULT_ENDPOINT).rstrip("/"),
        user_id=None if user_id is None else str(user_id),
    )

    defaults = DeliveryConfig()
    delivery_cfg = DeliveryConfig(
        batch_size=int(delivery.get("batch_size", defaults.batch_size)),
        flush_interval_s=float(delivery.get("flush_interval_s", defaults.flush_interval_s)),
        max_queue_size=int(delivery.get("max_queue_size", defaults.max_queue_size)),
        retry_attempts=int(delivery.get("retry_attempts", defaults.retry_attempts)),
        retry_delay_s=float(delivery.get("retry_delay_s", defaults.retry_delay_s)),
        request_timeout_s=float(delivery.get("request_timeout_s", defaults.request_timeout_s)),
        max_concurrent_batches=int(
            delivery.get("max_concurrent_batches", defaults.max_concurrent_batches)
        ),
    )
    _require_positive("delivery.batch_size", delivery_cfg.batch_size)
    _require_positive("delivery.flush_interval_s", delivery_cfg.flush_interval_s)
    _require_positive("delivery.max_queue_size", delivery_cfg.max_queue_size)
    _require_positive("delivery.retry_attempts", delivery_cfg.retry_attempts)
    _require_positive("delivery.request_timeout_s", delivery_cfg.request_timeout_s)
    _require_positive("delivery.max_concurrent_batches", delivery_cfg.max_concurrent_batches)
    _require_non_negative("delivery.retry_delay_s", delivery_cfg.retry_delay_s)

    session_cfg = SessionConfig(timeout_s=float(session.get("timeout_s", SessionConfig.timeout_s)))
    _require_positive("session.timeout_s", session_cfg.timeout_s)

    funnels_cfg = FunnelsConfig(
        abandonment_timeout_s=float(
            funnels.get("abandonment_timeout_s", FunnelsConfig.abandonment_timeout_s)
        ),
        typical_steps=int(funnels.get("typical_steps", FunnelsConfig.typical_steps)),
    )
    _require_positive("funnels.abandonment_timeout_s", funnels_cfg.abandonment_timeout_s)
    _require_positive("funnels.typical_steps", funnels_cfg.typical_steps)

    storage_cfg: StorageConfig | None = None
    if storage:
        if not storage.get("duckdb_path"):
            raise ValueError("Missing required config key: 'storage.duckdb_path'")
        storage_cfg = StorageConfig(
            duckdb_path=str(storage["duckdb_path"]),
            clean_slate=bool(storage.get("clean_slate", False)),
        )

    log_cfg = LoggingConfig(
        level=str(logging_cfg.get("level", LoggingConfig.level)).upper(),
        debug=bool(logging_cfg.get("debug", False)),
    )

    known = data.get("known_features") or ()
    return PipelineConfig(
        project=project_cfg,
        delivery=delivery_cfg,
        session=session_cfg,
        funnels=funnels_cfg,
        logging=log_cfg,
        storage=storage_cfg,
        known_features=tuple(str(f) for f in known),
        raw=data,
    )


def load_config(path: str | Path) -> PipelineConfig:
    data = load_yaml(path)
    return parse_config(data)
