from __future__ import annotations

import pytest

from beacon.core.config import DEFAULT_ENDPOINT, load_config, parse_config


def _base() -> dict:
    return {"project": {"api_key": "k_123", "project_id": "p_1"}}


def test_defaults_applied_for_missing_sections() -> None:
    cfg = parse_config(_base())

    assert cfg.project.endpoint == DEFAULT_ENDPOINT
    assert cfg.project.user_id is None
    assert cfg.delivery.batch_size == 20
    assert cfg.delivery.flush_interval_s == 10.0
    assert cfg.delivery.max_queue_size == 1000
    assert cfg.delivery.retry_attempts == 3
    assert cfg.delivery.retry_delay_s == 1.0
    assert cfg.session.timeout_s == 1800.0
    assert cfg.funnels.abandonment_timeout_s == 300.0
    assert cfg.storage is None
    assert cfg.logging.effective_level == "ERROR"
    assert cfg.known_features == ()


def test_overrides_and_debug_flag() -> None:
    data = _base()
    data["project"]["endpoint"] = "http://localhost:8080/"
    data["delivery"] = {"batch_size": 5, "retry_delay_s": 0.5}
    data["logging"] = {"level": "info", "debug": True}
    data["storage"] = {"duckdb_path": "out/events.duckdb", "clean_slate": True}
    data["known_features"] = ["export", "share"]

    cfg = parse_config(data)

    assert cfg.project.endpoint == "http://localhost:8080"
    assert cfg.delivery.batch_size == 5
    assert cfg.delivery.retry_delay_s == 0.5
    assert cfg.logging.level == "INFO"
    assert cfg.logging.effective_level == "DEBUG"
    assert cfg.storage is not None and cfg.storage.clean_slate is True
    assert cfg.known_features == ("export", "share")


def test_missing_project_section_raises() -> None:
    with pytest.raises(ValueError, match="project"):
        parse_config({"delivery": {}})


def test_missing_api_key_raises() -> None:
    with pytest.raises(ValueError, match="project.api_key"):
        parse_config({"project": {"project_id": "p_1"}})


@pytest.mark.parametrize(
    ("section", "key", "value"),
    [
        ("delivery", "batch_size", 0),
        ("delivery", "max_queue_size", -1),
        ("delivery", "retry_attempts", 0),
        ("delivery", "retry_delay_s", -0.1),
        ("session", "timeout_s", 0),
    ],
)
def test_invalid_values_raise(section: str, key: str, value: float) -> None:
    data = _base()
    data[section] = {key: value}
    with pytest.raises(ValueError, match=f"{section}.{key}"):
        parse_config(data)


def test_load_config_reads_yaml(tmp_path) -> None:
    path = tmp_path / "beacon.yaml"
    path.write_text(
        "project:\n"
        "  api_key: k_abc\n"
        "  project_id: p_9\n"
        "delivery:\n"
        "  batch_size: 3\n"
    )

    cfg = load_config(path)

    assert cfg.project.project_id == "p_9"
    assert cfg.delivery.batch_size == 3
    assert cfg.raw is not None and cfg.raw["delivery"]["batch_size"] == 3


def test_load_config_rejects_non_mapping(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(path)
