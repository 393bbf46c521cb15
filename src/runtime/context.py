# path: src/runtime/context.py

"""
BotContext: the explicitly constructed object every component receives.

It replaces a global bot object. Components read the parts they need:

- ThreatAssessor:          world, config.combat, bus, clock
- EngagementStateMachine:  world, transport, config.combat, bus, clock,
                           inventory, learning, rng
- MissionPhaseStateMachine: world, transport, config.mission, bus, clock,
                           sleep, strategy_provider, gameplay, learning
- EventRouter:             everything above plus dispatcher

Only the owning component writes its own state; the context itself holds
references, not mutable game state (that lives in WorldStateStore).
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from bot_core.dispatcher import EventDispatcher
from bot_core.net.client import SleepFn, Transport
from bot_core.world_state import WorldStateStore
from env.schema import BotConfig
from llm_stack.backend import StrategyTextProvider
from monitoring.bus import EventBus

from .chat import safe_send_chat
from .collaborators import GameplayActions, InventoryStatus, LearningSink


@dataclass
class BotContext:
    config: BotConfig
    world: WorldStateStore
    dispatcher: EventDispatcher
    transport: Transport
    bus: Optional[EventBus] = None
    clock: Callable[[], float] = time.monotonic
    sleep: SleepFn = asyncio.sleep
    strategy_provider: Optional[StrategyTextProvider] = None
    gameplay: Optional[GameplayActions] = None
    learning: Optional[LearningSink] = None
    inventory: Optional[InventoryStatus] = None
    rng: random.Random = field(default_factory=random.Random)

    # Contextual system prompt for strategy calls; rewritten by the mission
    # state machine whenever phase, goal or strategy change.
    system_prompt: Optional[str] = None

    async def chat(self, message: Any) -> bool:
        return await safe_send_chat(self.transport, message)
