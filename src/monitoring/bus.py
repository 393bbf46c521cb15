# EventBus for monitoring events and control commands
"""
In-process pub/sub for the monitoring layer.

- Subscribers receive MonitoringEvent objects.
- Command handlers receive ControlCommand objects.
- Used by:
    - JsonFileLogger (JSONL event log)
    - TuiDashboard
    - MissionController (control commands)
    - dispatcher / threat / engagement / mission instrumentation

The bot itself runs on a single asyncio loop; the lock only matters when the
dashboard renders from its own thread.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, List

from .events import ControlCommand, MonitoringEvent

logger = logging.getLogger(__name__)


SubscriberFn = Callable[[MonitoringEvent], None]
CommandHandlerFn = Callable[[ControlCommand], None]


class EventBus:
    """
    Simple in-process event bus for monitoring events and control commands.

    A failing subscriber is logged and skipped; it never stops delivery to
    the remaining subscribers and never reaches the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: List[SubscriberFn] = []
        self._cmd_handlers: List[CommandHandlerFn] = []
        self._lock = Lock()

    # --------------------------------------------------------
    # Subscription API
    # --------------------------------------------------------

    def subscribe(self, fn: SubscriberFn) -> None:
        with self._lock:
            self._subscribers.append(fn)

    def unsubscribe(self, fn: SubscriberFn) -> None:
        """Safe to call even if `fn` is not present."""
        with self._lock:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

    def subscribe_commands(self, fn: CommandHandlerFn) -> None:
        with self._lock:
            self._cmd_handlers.append(fn)

    def unsubscribe_commands(self, fn: CommandHandlerFn) -> None:
        with self._lock:
            if fn in self._cmd_handlers:
                self._cmd_handlers.remove(fn)

    # --------------------------------------------------------
    # Publish API
    # --------------------------------------------------------

    def publish(self, event: MonitoringEvent) -> None:
        """
        Publish a MonitoringEvent to all subscribers.

        Iterates over a snapshot so subscribers may call back into the bus.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        for fn in subscribers:
            try:
                fn(event)
            except Exception:
                logger.exception(
                    "Monitoring subscriber %r failed on %s", fn, event.event_type.name
                )

    def publish_command(self, cmd: ControlCommand) -> None:
        with self._lock:
            handlers = list(self._cmd_handlers)

        for fn in handlers:
            try:
                fn(cmd)
            except Exception:
                logger.exception("Command handler %r failed on %s", fn, cmd.cmd.name)

    def clear(self) -> None:
        """Drop all subscribers and handlers (tests)."""
        with self._lock:
            self._subscribers.clear()
            self._cmd_handlers.clear()
