from __future__ import annotations

import json
import os
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import duckdb

from beacon.features.transport.wire import WireEvent

from .schema import EVENTS_TABLE_NAME, create_schema


@dataclass(frozen=True)
class DuckDBWriteResult:
    num_events: int
    duration_ms: float


def _parse_ts(value: str | None) -> datetime:
    if not value:
        return datetime.now(UTC).replace(tzinfo=None)
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is not None:
        ts = ts.astimezone(UTC).replace(tzinfo=None)
    return ts


class DuckDBAdapter:
    """
    DuckDB adapter. Owns the connection and schema.
    Timestamps are stored as naive UTC.
    """

    def __init__(self, path: str, *, clean_slate: bool) -> None:
        self.path = path
        self.clean_slate = clean_slate
        self._conn: duckdb.DuckDBPyConnection | None = None

    def open(self) -> None:
        if self._conn is not None:
            return
        if self.clean_slate and os.path.exists(self.path):
            os.remove(self.path)

        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        self._conn = duckdb.connect(self.path)
        create_schema(self._conn)

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError("DuckDBAdapter not opened. Call open() first.")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def write_events(self, events: Sequence[WireEvent]) -> DuckDBWriteResult:
        if not events:
            return DuckDBWriteResult(num_events=0, duration_ms=0.0)

        t0 = time.perf_counter()
        received_at = datetime.now(UTC).replace(tzinfo=None)
        rows = [
            (
                e["event_id"],
                e["event_type"],
                e.get("user_id"),
                e.get("session_id"),
                _parse_ts(e.get("timestamp")),
                received_at,
                e.get("user_agent"),
                json.dumps(e.get("properties") or {}, sort_keys=True, separators=(",", ":")),
            )
            for e in events
        ]
        self.conn.executemany(
            f"""
            INSERT INTO {EVENTS_TABLE_NAME} (
                event_id, event_type,
                user_id, session_id,
                ts_utc, received_at,
                user_agent, properties_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

        dt_ms = (time.perf_counter() - t0) * 1000.0
        return DuckDBWriteResult(num_events=len(rows), duration_ms=dt_ms)

    def count_events(self, event_type: str | None = None) -> int:
        if event_type is None:
            res = self.conn.execute(f"SELECT COUNT(*) FROM {EVENTS_TABLE_NAME}").fetchone()
        else:
            res = self.conn.execute(
                f"SELECT COUNT(*) FROM {EVENTS_TABLE_NAME} WHERE event_type = ?",
                [event_type],
            ).fetchone()
        return int(res[0]) if res else 0


class DuckDBTransport:
    """
    Delivery sink that lands wire events in a local DuckDB file.
    Useful for development capture; it is a destination, not a queue store.
    """

    name = "duckdb"

    def __init__(self, adapter: DuckDBAdapter) -> None:
        self.adapter = adapter
        self._lock = threading.Lock()
        self.adapter.open()

    def send(self, batch: Sequence[WireEvent]) -> None:
        # the dispatcher may fan batches out across worker threads
        with self._lock:
            self.adapter.write_events(batch)

    def close(self) -> None:
        with self._lock:
            self.adapter.close()
