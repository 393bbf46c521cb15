# MissionController linking control commands to the mission state machine
#src/monitoring/controller.py
"""
Control surface for the mission.

MissionController listens for ControlCommand messages on the EventBus and
maps them onto the mission's public entry points:

- START_MISSION   -> start_mission()
- PAUSE_MISSION   -> pause_mission()
- RESUME_MISSION  -> resume_mission()
- RESET_MISSION   -> restart_mission()
- ADVANCE_PHASE   -> advance_mission_phase(args["phase"])
- DUMP_STATE      -> emit a debug snapshot as a SNAPSHOT event

Bus callbacks are synchronous, the mission entry points are coroutines:
they are scheduled as detached tasks on the running loop.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from runtime.collaborators import fire_and_forget

from .bus import EventBus
from .events import (
    ControlCommand,
    ControlCommandType,
    EventType,
)
from .logger import log_event


# ============================================================
# Mission interface expected by the controller
# ============================================================

class MissionControl(Protocol):
    """What the controller expects from the mission state machine."""

    def start_mission(self) -> Awaitable[Any]: ...

    def pause_mission(self) -> Awaitable[Any]: ...

    def resume_mission(self) -> Awaitable[Any]: ...

    def restart_mission(self) -> Awaitable[Any]: ...

    def advance_mission_phase(self, new_phase: str) -> Awaitable[Any]: ...

    def get_current_status(self) -> Dict[str, Any]: ...


# ============================================================
# Mission Controller
# ============================================================

class MissionController:
    """
    Control surface for the MissionPhaseStateMachine.

    `state_fn` supplies the DUMP_STATE snapshot; it defaults to the
    mission's own status, DragonBot passes its full debug_state().
    """

    def __init__(
        self,
        mission: MissionControl,
        bus: EventBus,
        *,
        state_fn: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._mission = mission
        self._bus = bus
        self._state_fn = state_fn or mission.get_current_status

        self._bus.subscribe_commands(self._handle_command)

    def close(self) -> None:
        self._bus.unsubscribe_commands(self._handle_command)

    # --------------------------------------------------------
    # Command handling
    # --------------------------------------------------------

    def _handle_command(self, cmd: ControlCommand) -> None:
        """
        Process an incoming ControlCommand from dashboards, CLIs, or scripts.
        """
        if cmd.cmd == ControlCommandType.START_MISSION:
            self._run("START_MISSION", self._mission.start_mission)

        elif cmd.cmd == ControlCommandType.PAUSE_MISSION:
            self._run("PAUSE_MISSION", self._mission.pause_mission)

        elif cmd.cmd == ControlCommandType.RESUME_MISSION:
            self._run("RESUME_MISSION", self._mission.resume_mission)

        elif cmd.cmd == ControlCommandType.RESET_MISSION:
            self._run("RESET_MISSION", self._mission.restart_mission)

        elif cmd.cmd == ControlCommandType.ADVANCE_PHASE:
            phase = str(cmd.args.get("phase", ""))
            self._run("ADVANCE_PHASE", self._mission.advance_mission_phase, phase, phase=phase)

        elif cmd.cmd == ControlCommandType.DUMP_STATE:
            state = self._safe_debug_state()
            self._log_snapshot(state)

    def _run(self, cmd_name: str, fn: Callable[..., Any], *args: Any, **payload: Any) -> None:
        fire_and_forget(fn, *args)
        self._log_control(cmd_name, payload)

    # --------------------------------------------------------
    # Logging helpers
    # --------------------------------------------------------

    def _log_control(self, cmd_name: str, payload: Dict[str, Any]) -> None:
        """
        Emit a CONTROL_COMMAND monitoring event describing a control action.
        """
        log_event(
            bus=self._bus,
            module="monitoring.controller",
            event_type=EventType.CONTROL_COMMAND,
            message=f"Control command: {cmd_name}",
            payload={"cmd": cmd_name, **payload},
            correlation_id=None,
        )

    def _log_snapshot(self, state: Dict[str, Any]) -> None:
        """
        Emit a SNAPSHOT monitoring event containing debug state.
        """
        log_event(
            bus=self._bus,
            module="monitoring.controller",
            event_type=EventType.SNAPSHOT,
            message="Bot state snapshot",
            payload={"state": state},
            correlation_id=None,
        )

    def _safe_debug_state(self) -> Dict[str, Any]:
        """
        Call the state function and normalize it to something JSON-like.
        """
        try:
            state = self._state_fn()
        except Exception as exc:
            return {
                "error": "debug_state_failed",
                "details": repr(exc),
            }

        # If it's a dataclass, convert it to a dict
        if is_dataclass(state):
            return asdict(state)

        return state
