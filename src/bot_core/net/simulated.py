# in-process simulation transport
# src/bot_core/net/simulated.py
"""
SimulatedTransport: a Transport with no server behind it.

On connect it emits "connected", then after `join_delay` seconds a single
simulated player ("Steve", runtime id 1) joins, which is enough to drive the
mission out of `waiting`. Movement teleports the bot and reports a
position update followed by "navigation_completed".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from ..dispatcher import EventDispatcher
from ..world_state import Position
from .client import SleepFn

logger = logging.getLogger(__name__)


SIMULATED_PLAYER = {
    "runtime_id": 1,
    "username": "Steve",
    "uuid": "simulation-uuid",
    "position": {"x": 10.0, "y": 64.0, "z": 10.0},
}


class SimulatedTransport:
    def __init__(
        self,
        dispatcher: EventDispatcher,
        *,
        username: str = "DragonSlayerBot",
        join_delay: float = 2.0,
        sleep: SleepFn = asyncio.sleep,
        start_position: Position = Position(0.0, 64.0, 0.0),
    ) -> None:
        self._dispatcher = dispatcher
        self._username = username
        self._join_delay = join_delay
        self._sleep = sleep
        self._position = start_position
        self._join_task: Optional[asyncio.Task] = None

        self.connected = False
        self.sent_chat: List[str] = []

    async def connect(self) -> None:
        self.connected = True
        logger.info("Simulation mode active as %s", self._username)
        self._dispatcher.emit("connected")
        self._join_task = asyncio.get_running_loop().create_task(self._simulate_join())

    async def _simulate_join(self) -> None:
        await self._sleep(self._join_delay)
        if not self.connected:
            return
        logger.info("Player joined: %s (simulated)", SIMULATED_PLAYER["username"])
        self._dispatcher.emit("player_joined", dict(SIMULATED_PLAYER))

    async def disconnect(self, reason: str = "client shutdown") -> None:
        if not self.connected:
            return
        self.connected = False
        if self._join_task is not None and not self._join_task.done():
            self._join_task.cancel()
        self._dispatcher.emit("disconnected", reason)

    async def send_chat(self, text: str) -> None:
        self.sent_chat.append(text)
        logger.info("Chat sent: %s", text)

    async def move_to(self, position: Position, *, min_distance: float = 0.0) -> None:
        start = self._position
        distance = start.distance_to(position)
        if distance > min_distance and distance > 0:
            # Stop `min_distance` short of the target along the straight line.
            ratio = (distance - min_distance) / distance
            self._position = Position(
                start.x + (position.x - start.x) * ratio,
                start.y + (position.y - start.y) * ratio,
                start.z + (position.z - start.z) * ratio,
            )
        self._dispatcher.emit("position_update", self._position.to_dict())
        self._dispatcher.emit(
            "navigation_completed",
            {"target": position.to_dict(), "distance": distance, "success": True},
        )

    async def attack(self, entity_id: Any) -> None:
        logger.debug("Simulated attack on entity %s", entity_id)
