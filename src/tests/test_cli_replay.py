from __future__ import annotations

import json

import pytest
import simpy

from beacon.app import cli
from beacon.app.runner import replay


class MemoryTransport:
    name = "memory"

    def __init__(self, **_kwargs) -> None:
        self.events: list[dict] = []

    def send(self, batch) -> None:
        self.events.extend(batch)

    def close(self) -> None:
        pass


def _write_inputs(tmp_path, records: list[dict]) -> tuple[str, str]:
    cfg = tmp_path / "beacon.yaml"
    cfg.write_text("project:\n  api_key: k\n  project_id: p_cli\n")
    events = tmp_path / "events.jsonl"
    events.write_text("\n".join(json.dumps(r) for r in records) + "\n\n")
    return str(cfg), str(events)


def test_replay_pushes_every_record(tmp_path) -> None:
    cfg, events = _write_inputs(
        tmp_path,
        [
            {"type": "identify", "user_id": "u_1", "properties": {"plan": "pro"}},
            {"type": "page", "properties": {"path": "/home"}},
            {"type": "track", "name": "purchase", "properties": {"amount": 10}},
        ],
    )
    transport = MemoryTransport()

    stats = replay(cfg, events, drain_seconds=1.0, env=simpy.Environment(), transport=transport)

    assert [e["event_type"] for e in transport.events] == [
        "user_identify",
        "page_view",
        "purchase",
        "session_update",
    ]
    assert stats.sent == 4
    assert stats.dropped == 0
    assert stats.queued == 0


def test_replay_rejects_unknown_record_type(tmp_path) -> None:
    cfg, events = _write_inputs(tmp_path, [{"type": "teleport"}])
    with pytest.raises(ValueError, match="Unsupported replay type"):
        replay(cfg, events, drain_seconds=0, env=simpy.Environment(), transport=MemoryTransport())


def test_cli_prints_summary(tmp_path, monkeypatch, capsys) -> None:
    cfg, events = _write_inputs(tmp_path, [{"type": "track", "name": "signup"}])
    monkeypatch.setattr("beacon.features.bootstrap.service.HttpTransport", MemoryTransport)

    code = cli.main(["replay", "--config", cfg, "--events", events, "--drain-seconds", "0"])

    assert code == 0
    assert capsys.readouterr().out.strip().endswith("sent=2 dropped=0 queued=0")
