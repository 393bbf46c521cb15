#tests/test_monitoring_controller.py
"""
Tests for monitoring.controller.MissionController.

Covers:
- lifecycle commands scheduled onto the mission
- ADVANCE_PHASE argument passing
- CONTROL_COMMAND and SNAPSHOT monitoring events
- commands outside a running loop are dropped
- close() detaches from the bus
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from monitoring.bus import EventBus
from monitoring.controller import MissionController
from monitoring.events import ControlCommand, EventType, MonitoringEvent
from runtime.collaborators import wait_for_background_notifications


class FakeMission:
    """Records calls to the mission entry points the controller drives."""

    def __init__(self) -> None:
        self.calls: List[Any] = []

    async def start_mission(self) -> bool:
        self.calls.append("start")
        return True

    async def pause_mission(self) -> bool:
        self.calls.append("pause")
        return True

    async def resume_mission(self) -> bool:
        self.calls.append("resume")
        return True

    async def restart_mission(self) -> None:
        self.calls.append("restart")

    async def advance_mission_phase(self, new_phase: str) -> bool:
        self.calls.append(("advance", new_phase))
        return True

    def get_current_status(self) -> Dict[str, Any]:
        return {"current_phase": "preparation", "mission_active": True}


def publish_in_loop(bus: EventBus, *commands: ControlCommand) -> None:
    async def run() -> None:
        for cmd in commands:
            bus.publish_command(cmd)
        await wait_for_background_notifications()

    asyncio.run(run())


def test_lifecycle_commands_reach_mission():
    bus = EventBus()
    mission = FakeMission()
    MissionController(mission, bus)

    publish_in_loop(
        bus,
        ControlCommand.start(),
        ControlCommand.pause(),
        ControlCommand.resume(),
        ControlCommand.advance("nether"),
        ControlCommand.reset(),
    )

    assert mission.calls == ["start", "pause", "resume", ("advance", "nether"), "restart"]


def test_commands_are_logged_as_control_events():
    bus = EventBus()
    received: List[MonitoringEvent] = []
    bus.subscribe(received.append)
    MissionController(FakeMission(), bus)

    publish_in_loop(bus, ControlCommand.pause(), ControlCommand.advance("stronghold"))

    control = [e.payload for e in received if e.event_type == EventType.CONTROL_COMMAND]
    assert control == [
        {"cmd": "PAUSE_MISSION"},
        {"cmd": "ADVANCE_PHASE", "phase": "stronghold"},
    ]


def test_dump_state_publishes_snapshot():
    bus = EventBus()
    received: List[MonitoringEvent] = []
    bus.subscribe(received.append)
    MissionController(FakeMission(), bus)

    bus.publish_command(ControlCommand.dump_state())

    snapshots = [e for e in received if e.event_type == EventType.SNAPSHOT]
    assert len(snapshots) == 1
    assert snapshots[0].payload["state"]["current_phase"] == "preparation"


def test_dump_state_uses_state_fn_and_reports_failures():
    bus = EventBus()
    received: List[MonitoringEvent] = []
    bus.subscribe(received.append)

    def broken_state() -> Dict[str, Any]:
        raise RuntimeError("world not ready")

    MissionController(FakeMission(), bus, state_fn=broken_state)
    bus.publish_command(ControlCommand.dump_state())

    state = received[-1].payload["state"]
    assert state["error"] == "debug_state_failed"
    assert "world not ready" in state["details"]


def test_commands_without_running_loop_are_dropped():
    bus = EventBus()
    mission = FakeMission()
    MissionController(mission, bus)

    bus.publish_command(ControlCommand.start())

    assert mission.calls == []


def test_close_detaches_controller():
    bus = EventBus()
    mission = FakeMission()
    controller = MissionController(mission, bus)
    controller.close()

    publish_in_loop(bus, ControlCommand.start())

    assert mission.calls == []
