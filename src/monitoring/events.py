# path: src/monitoring/events.py
"""
Event and command schemas for the monitoring layer.

This module defines:
- MonitoringEvent (structured system events)
- EventType enum
- ControlCommandType enum
- ControlCommand for externally issued mission controls

All events are JSON-serializable via `.to_dict()` and are intended
for use with monitoring.bus.EventBus and monitoring.logger.JsonFileLogger.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional


# ============================================================
# Event Types
# ============================================================

class EventType(Enum):
    """Typed monitoring events emitted throughout the bot."""

    # Dispatcher diagnostics
    EVENT_DISPATCHED = auto()
    HANDLER_ERROR = auto()
    PERFORMANCE_WARNING = auto()

    # Threat / combat
    THREAT_LEVEL_CHANGED = auto()
    COMBAT_STARTED = auto()
    COMBAT_ENDED = auto()
    STRATEGY_CHANGED = auto()
    RETREAT = auto()

    # Mission lifecycle
    MISSION_PHASE_CHANGE = auto()
    MISSION_PROGRESS = auto()

    # Control surface events
    CONTROL_COMMAND = auto()

    # Full state snapshot (rare, expensive)
    SNAPSHOT = auto()

    # Generic log messages (subtype carried in payload)
    LOG = auto()


# ============================================================
# Monitoring Event Structure
# ============================================================

@dataclass
class MonitoringEvent:
    """
    Runtime event emitted by the dispatcher, the state machines or the
    control surface.

    All fields must be JSON-safe.
    """

    ts: float                   # UNIX timestamp (seconds)
    module: str                 # Source module string ("combat.engagement", ...)
    event_type: EventType
    message: str                # Short human-readable description
    payload: Dict[str, Any]
    correlation_id: Optional[str] = None  # Groups events of one combat session / mission

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict for loggers."""
        data = asdict(self)
        data["event_type"] = self.event_type.name
        return data


# ============================================================
# Control Commands
# ============================================================

class ControlCommandType(Enum):
    """Commands a human or tool can send to steer the mission."""

    START_MISSION = auto()
    PAUSE_MISSION = auto()
    RESUME_MISSION = auto()
    RESET_MISSION = auto()
    ADVANCE_PHASE = auto()
    DUMP_STATE = auto()


@dataclass
class ControlCommand:
    """
    External command for the bot.

    Sent through EventBus.publish_command(), then interpreted by
    monitoring.controller.MissionController.
    """

    cmd: ControlCommandType
    args: Dict[str, Any]

    @staticmethod
    def start() -> "ControlCommand":
        return ControlCommand(ControlCommandType.START_MISSION, {})

    @staticmethod
    def pause() -> "ControlCommand":
        return ControlCommand(ControlCommandType.PAUSE_MISSION, {})

    @staticmethod
    def resume() -> "ControlCommand":
        return ControlCommand(ControlCommandType.RESUME_MISSION, {})

    @staticmethod
    def reset() -> "ControlCommand":
        return ControlCommand(ControlCommandType.RESET_MISSION, {})

    @staticmethod
    def advance(phase: str) -> "ControlCommand":
        return ControlCommand(ControlCommandType.ADVANCE_PHASE, {"phase": phase})

    @staticmethod
    def dump_state() -> "ControlCommand":
        return ControlCommand(ControlCommandType.DUMP_STATE, {})
