from __future__ import annotations

EVENTS_TABLE_NAME = "events"

EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS {EVENTS_TABLE_NAME} (
    event_id TEXT NOT NULL,
    event_type TEXT NOT NULL,

    user_id TEXT,
    session_id TEXT,

    ts_utc TIMESTAMP NOT NULL,
    received_at TIMESTAMP NOT NULL,

    user_agent TEXT,
    properties_json TEXT
);
"""

EVENTS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_events_event_type ON {EVENTS_TABLE_NAME}(event_type);",
    f"CREATE INDEX IF NOT EXISTS idx_events_session_id ON {EVENTS_TABLE_NAME}(session_id);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call on every open.
    """
    conn.execute(EVENTS_DDL)
    for ddl in EVENTS_INDEXES:
        conn.execute(ddl)
