#tests/test_monitoring_dashboard_tui.py
"""
Smoke tests for monitoring.dashboard_tui.TuiDashboard.

Covers:
- Mission, threat and combat events patch the displayed state
- Handler errors and fallback notices land in the error panel
- Layout builds and renders without a terminal
"""

from __future__ import annotations

import io

from rich.console import Console

from monitoring.bus import EventBus
from monitoring.dashboard_tui import MAX_ERROR_LINES, TuiDashboard
from monitoring.events import EventType, MonitoringEvent


def make_event(event_type: EventType, payload: dict, message: str = "") -> MonitoringEvent:
    return MonitoringEvent(
        ts=0.0,
        module="test",
        event_type=event_type,
        message=message,
        payload=payload,
        correlation_id=None,
    )


def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=120, force_terminal=False)


def test_dashboard_tracks_mission_and_combat():
    bus = EventBus()
    dashboard = TuiDashboard(bus, console=quiet_console())

    bus.publish(
        make_event(
            EventType.MISSION_PHASE_CHANGE,
            {"old": "research", "new": "preparation", "goal": "Mine diamonds"},
        )
    )
    bus.publish(make_event(EventType.MISSION_PROGRESS, {}, "Research phase completed"))
    bus.publish(
        make_event(
            EventType.THREAT_LEVEL_CHANGED,
            {"old": "NONE", "new": "LOW", "max_score": 23, "entity": "minecraft:zombie"},
        )
    )
    bus.publish(
        make_event(
            EventType.COMBAT_STARTED,
            {"target": "minecraft:zombie", "entity_id": 7, "strategy": {"approach": "BALANCED"}},
        )
    )
    bus.publish(make_event(EventType.STRATEGY_CHANGED, {"old": "BALANCED", "new": "CAUTIOUS"}))

    state = dashboard.state
    assert state["phase"] == "preparation"
    assert state["goal"] == "Mine diamonds"
    assert state["last_progress"] == "Research phase completed"
    assert state["threat_level"] == "LOW"
    assert state["threat_score"] == 23
    assert state["threat_entity"] == "minecraft:zombie"
    assert state["target"] == "minecraft:zombie"
    assert state["strategy"] == "CAUTIOUS"

    bus.publish(make_event(EventType.RETREAT, {"reason": "LOW_HEALTH", "result": "RETREAT"}))
    bus.publish(
        make_event(
            EventType.COMBAT_ENDED,
            {"result": "RETREAT", "stats": {"wins": 0, "losses": 0, "escapes": 1}},
        )
    )

    state = dashboard.state
    assert state["target"] is None
    assert state["strategy"] is None
    assert state["last_result"] == "RETREAT"
    assert state["last_retreat"] == "LOW_HEALTH"
    assert state["combat_stats"]["escapes"] == 1


def test_dashboard_collects_errors_and_fallbacks():
    bus = EventBus()
    dashboard = TuiDashboard(bus, console=quiet_console())

    bus.publish(
        make_event(EventType.HANDLER_ERROR, {"event": "chat_received", "error": "KeyError('x')"})
    )
    bus.publish(
        make_event(EventType.LOG, {"subtype": "LLM_FAILURE"}, "research call failed")
    )
    bus.publish(make_event(EventType.LOG, {}, "plain log line"))

    assert dashboard.errors == [
        "chat_received: KeyError('x')",
        "LLM_FAILURE: research call failed",
    ]

    for i in range(MAX_ERROR_LINES + 3):
        bus.publish(make_event(EventType.HANDLER_ERROR, {"event": f"e{i}", "error": "boom"}))
    assert len(dashboard.errors) == MAX_ERROR_LINES


def test_layout_renders_and_close_unsubscribes():
    bus = EventBus()
    console = quiet_console()
    dashboard = TuiDashboard(bus, console=console)

    bus.publish(make_event(EventType.THREAT_LEVEL_CHANGED, {"new": "CRITICAL", "max_score": 150}))
    layout = dashboard.build_layout()
    console.print(layout)
    assert "CRITICAL" in console.file.getvalue()

    dashboard.close()
    bus.publish(make_event(EventType.MISSION_PHASE_CHANGE, {"new": "nether"}))
    assert dashboard.state["phase"] == "waiting"
