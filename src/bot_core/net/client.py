# transport protocol and factory
# src/bot_core/net/client.py
"""
Transport abstraction for the bot.

A Transport is the black box between the bot and the game server:
- inbound: it delivers named events through EventDispatcher.emit()
  ("connected", "player_joined", "entity_spawned", ...)
- outbound: it accepts a few typed commands (chat, movement, attack)

Only the simulation transport ships with this repository; real network
transports plug in through create_transport().
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from env.loader import ConfigError, KNOWN_TRANSPORTS
from env.schema import BotConfig

from ..dispatcher import EventDispatcher
from ..world_state import Position

SleepFn = Callable[[float], Awaitable[None]]


class Transport(Protocol):
    """Outbound command surface of a game connection."""

    async def connect(self) -> None:
        """Open the session; must emit "connected" once ready."""
        ...

    async def disconnect(self, reason: str = "client shutdown") -> None:
        """Close the session; must emit "disconnected"."""
        ...

    async def send_chat(self, text: str) -> None:
        ...

    async def move_to(self, position: Position, *, min_distance: float = 0.0) -> None:
        """
        Move the bot until it is within `min_distance` of `position`.

        May take arbitrarily long; callers bound it with
        bot_core.nav.mover.move_to(timeout=...).
        """
        ...

    async def attack(self, entity_id: Any) -> None:
        ...


def create_transport(
    config: BotConfig,
    dispatcher: EventDispatcher,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> Transport:
    """Build the transport named by `config.connection.transport`."""
    mode = config.connection.transport
    if mode == "simulation":
        # Lazy import keeps the protocol module free of concrete transports.
        from .simulated import SimulatedTransport

        return SimulatedTransport(
            dispatcher,
            username=config.connection.username,
            join_delay=config.runtime.simulated_join_delay,
            sleep=sleep,
        )

    raise ConfigError(
        f"Unknown transport {mode!r}; expected one of {', '.join(KNOWN_TRANSPORTS)}"
    )
