#tests/test_monitoring_logger.py
"""
Tests for monitoring.logger.JsonFileLogger and log_event.

Covers:
- JSON structure of each line
- payload values that json cannot encode natively
- parent directory creation and close()
- log_event without a bus
"""

from __future__ import annotations

import json
from pathlib import Path

from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import JsonFileLogger, log_event


def read_lines(path: Path) -> list:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_json_file_logger_writes_one_object_per_event(tmp_path: Path):
    bus = EventBus()
    log_path = tmp_path / "events.log"
    json_logger = JsonFileLogger(log_path, bus)

    log_event(
        bus=bus,
        module="combat.engagement",
        event_type=EventType.COMBAT_STARTED,
        message="Engaging minecraft:zombie",
        payload={"target": "minecraft:zombie", "entity_id": 7},
        correlation_id="evt_1",
    )
    log_event(
        bus=bus,
        module="mission.phases",
        event_type=EventType.MISSION_PROGRESS,
        message="🐉 Dragon spotted",
    )
    json_logger.close()

    first, second = read_lines(log_path)
    assert first["module"] == "combat.engagement"
    assert first["event_type"] == "COMBAT_STARTED"
    assert first["payload"] == {"target": "minecraft:zombie", "entity_id": 7}
    assert first["correlation_id"] == "evt_1"
    assert isinstance(first["ts"], (int, float))
    assert second["message"] == "🐉 Dragon spotted"
    assert second["payload"] == {}


class Marker:
    def __str__(self) -> str:
        return "marker"


def test_unserializable_payload_values_are_stringified(tmp_path: Path):
    bus = EventBus()
    log_path = tmp_path / "events.log"
    json_logger = JsonFileLogger(log_path, bus)

    log_event(
        bus=bus,
        module="bot_core.nav",
        event_type=EventType.LOG,
        message="retreat target",
        payload={"target": Marker()},
    )
    json_logger.close()

    (data,) = read_lines(log_path)
    assert data["payload"]["target"] == "marker"


def test_parent_dir_created_and_close_unsubscribes(tmp_path: Path):
    log_path = tmp_path / "nested" / "monitoring" / "events.log"
    bus = EventBus()
    json_logger = JsonFileLogger(log_path, bus)
    assert json_logger.path == log_path

    log_event(bus=bus, module="test", event_type=EventType.LOG, message="before close")
    json_logger.close()
    log_event(bus=bus, module="test", event_type=EventType.LOG, message="after close")

    assert [line["message"] for line in read_lines(log_path)] == ["before close"]


def test_log_event_without_bus_is_noop():
    log_event(bus=None, module="test", event_type=EventType.LOG, message="dropped")
