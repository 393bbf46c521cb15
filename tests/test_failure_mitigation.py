# path: tests/test_failure_mitigation.py

"""
Unit tests for runtime.failure_mitigation helpers.

These tests verify that the helpers:
- Emit events with the correct event_type.
- Carry the expected subtype and payload fields.
- Are no-ops when no bus is wired.
"""

from __future__ import annotations

from typing import List

from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent

from runtime.failure_mitigation import (
    emit_collaborator_unavailable,
    emit_data_integrity_warning,
    emit_handler_exception,
    emit_llm_failure,
    emit_navigation_failure,
)


def _capture_events(bus: EventBus) -> List[MonitoringEvent]:
    captured: List[MonitoringEvent] = []
    bus.subscribe(captured.append)
    return captured


def test_emit_llm_failure():
    bus = EventBus()
    captured = _capture_events(bus)

    emit_llm_failure(
        bus,
        role="combat",
        error_repr="TimeoutError('boom')",
        fallback="default_strategy",
        meta={"entity": "minecraft:creeper"},
    )
    emit_llm_failure(bus, role="research", error_repr="RuntimeError()", fallback="basic_strategy")

    first, second = captured
    assert first.event_type == EventType.LOG
    assert first.payload["subtype"] == "LLM_FAILURE"
    assert first.payload["llm_role"] == "combat"
    assert first.payload["fallback"] == "default_strategy"
    assert first.payload["meta"] == {"entity": "minecraft:creeper"}
    assert "default_strategy" in first.message
    assert second.payload["meta"] == {}


def test_emit_navigation_failure():
    bus = EventBus()
    captured = _capture_events(bus)

    emit_navigation_failure(
        bus,
        purpose="retreat",
        target={"x": 15.0, "y": 64.0, "z": 0.0},
        error_repr="TimeoutError()",
    )

    (evt,) = captured
    assert evt.payload["subtype"] == "NAVIGATION_FAILURE"
    assert evt.payload["purpose"] == "retreat"
    assert evt.payload["target"]["x"] == 15.0
    assert evt.payload["error"] == "TimeoutError()"


def test_emit_data_integrity_warning_and_collaborator_unavailable():
    bus = EventBus()
    captured = _capture_events(bus)

    emit_data_integrity_warning(
        bus,
        operation="apply_entity_spawn",
        reason="missing position",
        payload_repr="{'runtime_id': 3}",
    )
    emit_collaborator_unavailable(bus, collaborator="inventory", action="use_healing_item")

    integrity, unavailable = captured
    assert integrity.payload["subtype"] == "DATA_INTEGRITY_WARNING"
    assert integrity.payload["operation"] == "apply_entity_spawn"
    assert integrity.payload["payload"] == "{'runtime_id': 3}"

    assert unavailable.payload["subtype"] == "COLLABORATOR_UNAVAILABLE"
    assert unavailable.message == "inventory.use_healing_item not available, skipped"


def test_emit_handler_exception():
    bus = EventBus()
    captured = _capture_events(bus)

    emit_handler_exception(
        bus,
        event_name="chat_received",
        error_repr="KeyError('message')",
        event_id="evt_1_abc",
    )

    (evt,) = captured
    assert evt.event_type == EventType.HANDLER_ERROR
    assert evt.payload["subtype"] == "HANDLER_EXCEPTION"
    assert evt.payload["event"] == "chat_received"
    assert evt.correlation_id == "evt_1_abc"


def test_helpers_without_bus_do_nothing():
    emit_llm_failure(None, role="combat", error_repr="x", fallback="y")
    emit_navigation_failure(None, purpose="approach", target={}, error_repr="x")
    emit_collaborator_unavailable(None, collaborator="learning", action="learn_from_combat")
