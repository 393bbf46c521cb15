# bounded movement requests
# src/bot_core/nav/mover.py
"""
Mover: issue a movement request to the transport with an explicit timeout.

Pathfinding belongs to the transport side; this module only owns the
timeout contract. A request that exceeds its timeout raises
NavigationTimeout, which callers treat as a non-fatal navigation failure.
"""

from __future__ import annotations

import asyncio

from ..net.client import Transport
from ..world_state import Position


class NavigationError(RuntimeError):
    """Movement request failed."""


class NavigationTimeout(NavigationError):
    """Movement request did not finish within its timeout."""


async def move_to(
    transport: Transport,
    position: Position,
    *,
    timeout: float,
    min_distance: float = 0.0,
) -> None:
    """
    Ask the transport to move to `position`, bounded by `timeout` seconds.

    Raises:
        NavigationTimeout: the request was still running after `timeout`.
        NavigationError: the transport failed the request.
    """
    try:
        await asyncio.wait_for(
            transport.move_to(position, min_distance=min_distance),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise NavigationTimeout(
            f"move_to({position.x:.1f}, {position.y:.1f}, {position.z:.1f}) "
            f"timed out after {timeout}s"
        ) from exc
    except NavigationError:
        raise
    except Exception as exc:
        raise NavigationError(f"move_to failed: {exc!r}") from exc
