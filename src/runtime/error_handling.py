# path: src/runtime/error_handling.py

"""
Error handling helpers for the periodic runtime loops.

The threat and combat loops call their tick through `run_tick_safely()`:
an exception is logged, published as a LOG event with subtype
"TICK_EXCEPTION", and then swallowed so the loop keeps its cadence.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Optional

from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

logger = logging.getLogger(__name__)


async def run_tick_safely(
    name: str,
    tick: Callable[[], Any],
    bus: Optional[EventBus] = None,
) -> bool:
    """
    Run one tick (sync or async). Returns False if it raised.

    Cancellation is not an Exception and still propagates, so stopping the
    loop task works as usual.
    """
    try:
        result = tick()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        logger.exception("%s tick failed", name)
        log_event(
            bus=bus,
            module="runtime.loops",
            event_type=EventType.LOG,
            message=f"{name} tick raised an exception",
            payload={
                "subtype": "TICK_EXCEPTION",
                "loop": name,
                "exception_repr": repr(exc),
            },
        )
        return False
    return True
