from __future__ import annotations

from datetime import UTC, datetime

import duckdb
import simpy

from beacon.core.config import parse_config
from beacon.features.bootstrap.service import bootstrap_pipeline
from beacon.features.transport.service import HttpTransport


class MemoryTransport:
    name = "memory"

    def __init__(self) -> None:
        self.events: list[dict] = []
        self.closed = False

    def send(self, batch) -> None:
        self.events.extend(batch)

    def close(self) -> None:
        self.closed = True


def _cfg(**extra) -> dict:
    return {"project": {"api_key": "k", "project_id": "p_boot"}, **extra}


def test_default_transport_is_http() -> None:
    pipeline = bootstrap_pipeline(parse_config(_cfg()))

    transports = pipeline.providers
    assert len(transports) == 1
    assert isinstance(transports[0], HttpTransport)
    assert transports[0].endpoint == "https://api.mentiq.io"
    assert transports[0].headers["X-Project-ID"] == "p_boot"


def test_injected_transport_and_env() -> None:
    env = simpy.Environment()
    transport = MemoryTransport()
    pipeline = bootstrap_pipeline(
        parse_config(_cfg(delivery={"batch_size": 2})),
        env=env,
        transport=transport,
        start_dt=datetime(2026, 1, 1, tzinfo=UTC),
    )

    pipeline.track("a")
    pipeline.track("b")
    env.run(until=0.001)

    assert [e["event_type"] for e in transport.events] == ["a", "b"]
    assert transport.events[0]["timestamp"] == "2026-01-01T00:00:00.000Z"


def test_storage_config_adds_duckdb_sink(tmp_path) -> None:
    db_path = tmp_path / "capture.duckdb"
    transport = MemoryTransport()
    pipeline = bootstrap_pipeline(
        parse_config(_cfg(storage={"duckdb_path": str(db_path), "clean_slate": True})),
        transport=transport,
    )

    pipeline.track("signup")
    pipeline.shutdown()

    assert transport.closed
    con = duckdb.connect(str(db_path), read_only=True)
    rows = con.execute("SELECT event_type FROM events ORDER BY event_type").fetchall()
    con.close()
    assert [r[0] for r in rows] == ["session_update", "user_signup"]
    assert len(transport.events) == 2


def test_each_call_returns_independent_handle() -> None:
    cfg = parse_config(_cfg())
    a = bootstrap_pipeline(cfg, transport=MemoryTransport())
    b = bootstrap_pipeline(cfg, transport=MemoryTransport())

    a.set_user_id("u_a")

    assert a is not b
    assert b.get_user_id() is None
    assert a.get_anonymous_id() != b.get_anonymous_id()
