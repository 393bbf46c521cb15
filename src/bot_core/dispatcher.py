# single ingress for inbound events
# src/bot_core/dispatcher.py
"""
EventDispatcher: the one entry point for every asynchronous occurrence the
bot reacts to (connection lifecycle, players, chat, entities, combat and
navigation milestones, system errors).

Responsibilities:
- count events globally and per name
- keep a capped ring buffer of recent events
- run middlewares (in registration order) before the handler
- run exactly one handler per event name
- contain handler failures: record them, log them, re-dispatch as `error`
- flag slow handlers with a `performance_warning` event

This module is the isolation boundary of the bot: nothing a handler raises
(other than cancellation) propagates to the transport that delivered the
event.

Handlers and middlewares may be plain functions or coroutine functions.
Transports should call `emit()`, which schedules the dispatch as a task and
returns immediately, so a slow handler never holds back later events.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import traceback
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from env.schema import EventConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event
from runtime.failure_mitigation import emit_handler_exception

from .ring_buffer import RingBuffer

logger = logging.getLogger(__name__)


Handler = Callable[..., Any]
Middleware = Callable[["EventRecord"], Any]

ERROR_EVENT = "error"
PERFORMANCE_WARNING_EVENT = "performance_warning"


@dataclass
class EventRecord:
    """One dispatched event as seen by middlewares and the history buffer."""

    id: str
    name: str
    args: Tuple[Any, ...]
    timestamp: float


@dataclass
class ErrorRecord:
    """A contained handler failure."""

    event: str
    event_id: str
    error_type: str
    message: str
    traceback: str
    args: Tuple[Any, ...]
    timestamp: float


@dataclass
class EventPerformance:
    """Aggregate handler latency for one event name (seconds)."""

    count: int = 0
    total_time: float = 0.0
    average_time: float = 0.0
    max_time: float = 0.0
    min_time: float = field(default=float("inf"))

    def record(self, elapsed: float) -> None:
        self.count += 1
        self.total_time += elapsed
        self.average_time = self.total_time / self.count
        self.max_time = max(self.max_time, elapsed)
        self.min_time = min(self.min_time, elapsed)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class EventDispatcher:
    """Normalizes, records and fans out inbound events."""

    def __init__(
        self,
        config: Optional[EventConfig] = None,
        *,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        state_probe: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> None:
        self._config = config or EventConfig()
        self._bus = bus
        self._clock = clock
        self._wall_clock = wall_clock
        # Supplies the bot state summary attached to EVENT_DISPATCHED logs.
        self._state_probe = state_probe

        self._handlers: Dict[str, Handler] = {}
        self._middlewares: List[Middleware] = []

        self._total_events = 0
        self._event_counts: Dict[str, int] = defaultdict(int)
        self._recent: RingBuffer[EventRecord] = RingBuffer(self._config.max_recent_events)
        self._errors: RingBuffer[ErrorRecord] = RingBuffer(self._config.max_error_events)
        self._performance: Dict[str, EventPerformance] = {}

        self._pending: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_handler(self, event_name: str, handler: Handler) -> None:
        """Associate the handler for `event_name`; re-registering replaces it."""
        if not callable(handler):
            raise TypeError(f"Handler for {event_name} must be callable")
        self._handlers[event_name] = handler

    def add_middleware(self, middleware: Middleware) -> None:
        if not callable(middleware):
            raise TypeError("Middleware must be callable")
        self._middlewares.append(middleware)

    def has_handler(self, event_name: str) -> bool:
        return event_name in self._handlers

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def emit(self, event_name: str, *args: Any) -> "asyncio.Task[EventRecord]":
        """
        Schedule a dispatch on the running loop and return immediately.

        Tasks start in emission order, so events are dispatched in arrival
        order even though their handlers may finish out of order.
        """
        loop = asyncio.get_running_loop()
        task = loop.create_task(self.dispatch(event_name, *args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait until every emitted dispatch (including ones they emit) is done."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def dispatch(self, event_name: str, *args: Any) -> EventRecord:
        """Record the event, run middlewares, then its handler. Never raises."""
        started = self._clock()

        self._total_events += 1
        self._event_counts[event_name] += 1

        record = EventRecord(
            id=self._generate_event_id(),
            name=event_name,
            args=args,
            timestamp=self._wall_clock(),
        )
        self._recent.append(record)

        for middleware in list(self._middlewares):
            try:
                await _maybe_await(middleware(record))
            except Exception:
                logger.exception("Middleware error for %s", event_name)

        failure: Optional[ErrorRecord] = None
        handler = self._handlers.get(event_name)
        if handler is not None:
            try:
                await _maybe_await(handler(*args))
            except Exception as exc:
                logger.exception("Event handler error for %s", event_name)
                failure = self._record_error(event_name, record.id, exc, args)

        elapsed = self._clock() - started

        if self._config.enable_performance_tracking:
            self._performance.setdefault(event_name, EventPerformance()).record(elapsed)

        if self._config.enable_event_logging:
            self._log_event(record, elapsed)

        if failure is not None and event_name != ERROR_EVENT:
            await self.dispatch(ERROR_EVENT, failure)

        if (
            elapsed > self._config.slow_event_threshold
            and event_name != PERFORMANCE_WARNING_EVENT
        ):
            warning = {
                "event": event_name,
                "processing_time": elapsed,
                "message": f"Slow event processing: {event_name} took {elapsed:.3f}s",
            }
            log_event(
                bus=self._bus,
                module="bot_core.dispatcher",
                event_type=EventType.PERFORMANCE_WARNING,
                message=warning["message"],
                payload=warning,
                correlation_id=record.id,
            )
            await self.dispatch(PERFORMANCE_WARNING_EVENT, warning)

        return record

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _generate_event_id(self) -> str:
        return f"evt_{int(self._wall_clock() * 1000)}_{uuid.uuid4().hex[:9]}"

    def _record_error(
        self,
        event_name: str,
        event_id: str,
        exc: BaseException,
        args: Tuple[Any, ...],
    ) -> ErrorRecord:
        error = ErrorRecord(
            event=event_name,
            event_id=event_id,
            error_type=type(exc).__name__,
            message=str(exc),
            traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            args=args,
            timestamp=self._wall_clock(),
        )
        self._errors.append(error)
        emit_handler_exception(
            self._bus,
            event_name=event_name,
            error_repr=repr(exc),
            event_id=event_id,
        )
        return error

    def _log_event(self, record: EventRecord, elapsed: float) -> None:
        bot_state: Dict[str, Any] = {}
        if self._state_probe is not None:
            try:
                bot_state = self._state_probe()
            except Exception:
                logger.debug("state probe failed while logging %s", record.name, exc_info=True)
        log_event(
            bus=self._bus,
            module="bot_core.dispatcher",
            event_type=EventType.EVENT_DISPATCHED,
            message=record.name,
            payload={
                "event": record.name,
                "args": [repr(a) for a in record.args],
                "processing_time": elapsed,
                "bot_state": bot_state,
            },
            correlation_id=record.id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def total_events(self) -> int:
        return self._total_events

    def event_count(self, event_name: str) -> int:
        return self._event_counts.get(event_name, 0)

    def get_event_stats(self) -> Dict[str, Any]:
        return {
            "total_events": self._total_events,
            "event_counts": dict(self._event_counts),
            "recent_events": len(self._recent),
            "error_events": len(self._errors),
            "pending_dispatches": len(self._pending),
            "handlers_registered": len(self._handlers),
            "middleware_count": len(self._middlewares),
        }

    def get_recent_events(self, limit: int = 10) -> List[EventRecord]:
        return self._recent.last(limit)

    def get_event_performance(self) -> Dict[str, EventPerformance]:
        return dict(self._performance)

    def get_error_history(self) -> List[ErrorRecord]:
        return self._errors.to_list()

    def clear_event_history(self) -> None:
        self._recent.clear()
        self._errors.clear()
        self._event_counts.clear()
        self._performance.clear()
        logger.info("Event history cleared")
