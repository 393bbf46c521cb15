# JSON logger subscribing to EventBus
"""
Structured logging for the monitoring layer.

Provides:
- JsonFileLogger: subscribes to an EventBus and writes MonitoringEvents as JSONL.
- log_event: convenience helper for publishing MonitoringEvents via the EventBus.

Usage:

    bus = EventBus()
    JsonFileLogger(Path("logs/events.log"), bus)

    log_event(
        bus=bus,
        module="combat.engagement",
        event_type=EventType.COMBAT_STARTED,
        message="Engaging minecraft:zombie",
        payload={"target": "minecraft:zombie"},
    )
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .bus import EventBus
from .events import EventType, MonitoringEvent

logger = logging.getLogger(__name__)


class JsonFileLogger:
    """
    JSON-lines logger for MonitoringEvent instances.

    - One JSON object per line, UTF-8.
    - Parent directory is created on construction.
    - Disk errors drop the line; logging must not crash the bot.
    """

    def __init__(self, path: Path, bus: EventBus) -> None:
        self._path = path
        self._bus = bus
        path.parent.mkdir(parents=True, exist_ok=True)
        self._file = path.open("a", encoding="utf-8")
        bus.subscribe(self._on_event)

    @property
    def path(self) -> Path:
        return self._path

    def _on_event(self, event: MonitoringEvent) -> None:
        # default=str keeps odd payload values (positions, enums) serializable
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except (OSError, ValueError):
            logger.debug("Dropped monitoring event line for %s", self._path)

    def close(self) -> None:
        """Unsubscribe and close the file handle (graceful shutdown)."""
        self._bus.unsubscribe(self._on_event)
        try:
            self._file.close()
        except OSError:
            pass


def log_event(
    bus: Optional[EventBus],
    module: str,
    event_type: EventType,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> None:
    """
    Create and publish a MonitoringEvent.

    `bus` may be None for components built without monitoring (unit tests,
    scripts); the call is then a no-op.
    """
    if bus is None:
        return
    event = MonitoringEvent(
        ts=time.time(),
        module=module,
        event_type=event_type,
        message=message,
        payload=payload or {},
        correlation_id=correlation_id,
    )
    bus.publish(event)
