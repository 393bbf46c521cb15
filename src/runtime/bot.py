# path: src/runtime/bot.py

"""
DragonBot: assembles the bot and runs its two periodic loops.

    transport --emit--> EventDispatcher --> EventRouter --+--> WorldStateStore
                                                          +--> EngagementStateMachine
                                                          +--> MissionPhaseStateMachine

    threat loop   every runtime.threat_tick_interval (1.0 s)   engagement.threat_tick()
    combat loop   every runtime.combat_tick_interval (0.1 s)   engagement.combat_tick()

Both loops only tick while the world reports a connection, and both log and
continue on any exception.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

from bot_core.dispatcher import EventDispatcher
from bot_core.net.client import SleepFn, Transport, create_transport
from bot_core.world_state import WorldStateStore
from combat.engagement import EngagementStateMachine
from combat.strategy import CombatStrategyAdvisor
from combat.threat import ThreatAssessor
from env.schema import BotConfig
from llm_stack.backend import StrategyTextProvider, create_strategy_provider
from mission.phases import MissionPhaseStateMachine
from monitoring.bus import EventBus

from .collaborators import (
    GameplayActions,
    InMemoryLearning,
    InventoryStatus,
    LearningSink,
    wait_for_background_notifications,
)
from .context import BotContext
from .error_handling import run_tick_safely
from .event_routes import EventRouter

logger = logging.getLogger(__name__)


class DragonBot:
    def __init__(
        self,
        config: BotConfig,
        *,
        transport: Optional[Transport] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
        strategy_provider: Optional[StrategyTextProvider] = None,
        gameplay: Optional[GameplayActions] = None,
        learning: Optional[LearningSink] = None,
        inventory: Optional[InventoryStatus] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.bus = bus

        self.world = WorldStateStore(bus=bus)
        self.dispatcher = EventDispatcher(
            config.events,
            bus=bus,
            clock=clock,
            state_probe=self.world.summary,
        )
        if transport is None:
            transport = create_transport(config, self.dispatcher, sleep=sleep)

        self.ctx = BotContext(
            config=config,
            world=self.world,
            dispatcher=self.dispatcher,
            transport=transport,
            bus=bus,
            clock=clock,
            sleep=sleep,
            strategy_provider=strategy_provider,
            gameplay=gameplay,
            learning=learning,
            inventory=inventory,
            rng=rng or random.Random(),
        )

        self.assessor = ThreatAssessor(self.world, config.combat, bus=bus, clock=clock)
        self.advisor = CombatStrategyAdvisor(
            strategy_provider,
            cooldown=lambda: config.combat.ai_consultation_cooldown,
            clock=clock,
            bus=bus,
            system_prompt=lambda: self.ctx.system_prompt,
        )
        self.engagement = EngagementStateMachine(self.ctx, self.assessor, self.advisor)
        self.mission = MissionPhaseStateMachine(self.ctx)
        self.router = EventRouter(self.ctx, self.assessor, self.engagement, self.mission)
        self.router.install()

        self._running = False
        self._loops: List[asyncio.Task] = []

    @classmethod
    def from_config(cls, config: BotConfig, **kwargs: Any) -> "DragonBot":
        """Build with the configured LLM provider and an in-memory learning sink."""
        kwargs.setdefault("strategy_provider", create_strategy_provider(config.llm))
        kwargs.setdefault("learning", InMemoryLearning())
        return cls(config, **kwargs)

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info("Starting %s", self.config.connection.username)
        await self.ctx.transport.connect()

        loop = asyncio.get_running_loop()
        runtime = self.config.runtime
        self._loops = [
            loop.create_task(
                self._periodic(
                    "threat", lambda: runtime.threat_tick_interval, self.engagement.threat_tick
                )
            ),
            loop.create_task(
                self._periodic(
                    "combat", lambda: runtime.combat_tick_interval, self.engagement.combat_tick
                )
            ),
        ]

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.info("Stopping %s", self.config.connection.username)

        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        self.engagement.abort()
        self.mission.cancel_scheduled()
        try:
            await self.ctx.transport.disconnect()
        except Exception:
            logger.exception("Transport disconnect failed")
        await self.dispatcher.drain()
        await wait_for_background_notifications()

    async def run_for(self, seconds: float) -> None:
        await self.start()
        try:
            await self.ctx.sleep(seconds)
        finally:
            await self.stop()

    async def _periodic(
        self, name: str, interval: Callable[[], float], tick: Callable[[], Any]
    ) -> None:
        while self._running:
            if self.world.connected:
                await run_tick_safely(name, tick, self.bus)
            await self.ctx.sleep(interval())

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def debug_state(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {
            "running": self._running,
            "world": self.world.summary(),
            "mission": self.mission.get_current_status(),
            "combat": self.engagement.get_combat_status(),
            "events": self.dispatcher.get_event_stats(),
            "errors": len(self.dispatcher.get_error_history()),
        }
        if isinstance(self.ctx.learning, InMemoryLearning):
            state["learning"] = self.ctx.learning.get_stats()
        return state
