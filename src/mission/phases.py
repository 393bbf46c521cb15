# mission phase state machine
# src/mission/phases.py
"""
MissionPhaseStateMachine.

    waiting -> research -> preparation -> nether -> stronghold -> end_fight -> victory
       ^                                                                         |
       +------------------------------ restart ----------------------------------+

- waiting -> research: first player join (or connect with players present),
  at most once per mission lifetime (`started` flag).
- research: strategy text from the provider, then a second call extracting
  ITEMS / NEXT_GOAL / STRATEGY. Any failure falls back to the basic strategy.
  Always continues to preparation.
- preparation onwards: advanced externally through advance_mission_phase();
  each phase delegates to an optional gameplay action.
- victory: paced celebration, learning notification, delayed restart invite.
- restart: resets everything and re-enters research after a delay.

Delayed work (restart, restart invite) is tracked as tasks so a restart can
cancel it and shutdown can wait for it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from bot_core.ring_buffer import RingBuffer
from combat.stats import CombatOutcome, CombatResult
from monitoring.events import EventType
from monitoring.logger import log_event
from runtime.collaborators import fire_and_forget, gameplay_action
from runtime.context import BotContext
from runtime.failure_mitigation import emit_collaborator_unavailable, emit_llm_failure

from .prompt import build_system_prompt
from .research import (
    RESEARCH_PROMPT,
    ResearchFallback,
    ResearchResult,
    basic_strategy,
    build_extraction_prompt,
    notes_from_parse,
    parse_research_reply,
)
from .state import (
    MISSION_PHASES,
    AdaptiveStrategy,
    MissionPhase,
    MissionState,
    ProgressEntry,
)

logger = logging.getLogger(__name__)


ENDER_DRAGON = "minecraft:ender_dragon"

# Phase -> gameplay action run on entry.
PHASE_ACTIONS: Dict[MissionPhase, str] = {
    MissionPhase.NETHER: "start_nether_expedition",
    MissionPhase.STRONGHOLD: "search_for_stronghold",
    MissionPhase.END_FIGHT: "enter_the_end",
}

PREPARATION_GOALS: Dict[str, str] = {
    "minimal": "Quick resource gathering - basic gear only",
    "comprehensive": "Thorough preparation - full diamond gear, food, and extras",
    "extensive": "Maximum preparation - backup gear, potions, and safety items",
}
DEFAULT_PREPARATION_GOAL = "Standard resource gathering and preparation"

MISSION_SUMMARY: List[str] = [
    "Research completed",
    "Diamond gear crafted",
    "Nether expedition successful",
    "Stronghold found and portal activated",
    "Ender Dragon defeated",
]


class MissionPhaseStateMachine:
    def __init__(
        self,
        ctx: BotContext,
        *,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._ctx = ctx
        self._config = ctx.config.mission
        self._wall_clock = wall_clock

        self.state = MissionState()
        self.progress_log: RingBuffer[ProgressEntry] = RingBuffer(self._config.progress_log_limit)
        self.system_prompt = ""
        self.last_research: Optional[ResearchResult] = None

        # Bumped on restart; awaits that resume into an older generation stop.
        self._generation = 0
        self._scheduled: Set[asyncio.Task] = set()

        self._refresh_system_prompt()

    # ------------------------------------------------------------------
    # Lifecycle entry points
    # ------------------------------------------------------------------

    @property
    def phase(self) -> MissionPhase:
        return self.state.phase

    async def on_connect(self) -> None:
        if not self.state.started and self._ctx.world.player_count > 0:
            logger.info("Players detected, starting mission")
            await self.start_mission()
        else:
            logger.info("Waiting for players to join before starting mission")
            await self._ctx.chat("🤖 DragonSlayerBot connected! Ready to hunt the Ender Dragon!")

    async def start_mission(self) -> bool:
        if self.state.started:
            return False
        self.state.started = True
        self.state.active = True
        self._set_phase(MissionPhase.RESEARCH)

        logger.info("Ender Dragon mission initiated")
        await self._ctx.chat(
            "🐉 MISSION START! Time to defeat the Ender Dragon! Let me research our strategy..."
        )
        self.log_progress("Mission initiated - Beginning research phase")
        await self.conduct_research()
        return True

    async def conduct_research(self) -> ResearchResult:
        """
        Research never blocks progress: every path ends in preparation.

        Provider missing  -> basic strategy, no chat acknowledgment.
        First call fails  -> basic strategy, "hit a snag" acknowledgment.
        Extraction fails  -> research still counts; missing fields come from
                             the basic strategy.
        """
        generation = self._generation
        await self._ctx.chat("📚 Researching Ender Dragon tactics... Give me a moment!")

        provider = self._ctx.strategy_provider
        if provider is None:
            logger.info("Strategy provider not available, using basic strategy")
            emit_collaborator_unavailable(
                self._ctx.bus, collaborator="strategy_provider", action="research"
            )
            result: ResearchResult = ResearchFallback(reason="no strategy provider")
            self.state.research = basic_strategy()
        else:
            try:
                knowledge = await provider.generate_content(
                    RESEARCH_PROMPT, system_prompt=self.system_prompt
                )
            except Exception as exc:
                if generation != self._generation:
                    return ResearchFallback(reason="mission restarted")
                logger.warning("Research failed: %r", exc)
                emit_llm_failure(
                    self._ctx.bus,
                    role="research",
                    error_repr=repr(exc),
                    fallback="basic_strategy",
                )
                await self._ctx.chat(
                    "🤔 Research hit a snag, but I know the basics! Let's start preparing!"
                )
                result = ResearchFallback(reason=repr(exc))
                self.state.research = basic_strategy()
            else:
                result = await self._extract_strategy(knowledge)
                if generation != self._generation:
                    return ResearchFallback(reason="mission restarted")
                self.state.research = notes_from_parse(result, knowledge)
                logger.info("Research complete")
                await self._ctx.chat("🧠 Research complete! I now have a strategy to defeat the dragon!")
                self.log_progress("Research phase completed")

        if generation != self._generation:
            return ResearchFallback(reason="mission restarted")
        self.last_research = result
        await self.start_preparation()
        return result

    async def _extract_strategy(self, knowledge: str) -> ResearchResult:
        provider = self._ctx.strategy_provider
        if provider is None:
            return ResearchFallback(reason="no strategy provider")
        try:
            reply = await provider.generate_content(build_extraction_prompt(knowledge))
        except Exception as exc:
            logger.warning("Strategy extraction failed: %r", exc)
            emit_llm_failure(
                self._ctx.bus,
                role="research_extraction",
                error_repr=repr(exc),
                fallback="basic_strategy",
            )
            return ResearchFallback(reason=repr(exc))
        result = parse_research_reply(reply)
        if isinstance(result, ResearchFallback):
            logger.info("Strategy extraction unparseable (%s); using basic fields", result.reason)
        return result

    async def start_preparation(self) -> None:
        self._set_phase(MissionPhase.PREPARATION)
        goal = self.state.research.current_goal
        await self._ctx.chat(f"🎯 Phase 1: Preparation! Goal: {goal}")
        logger.info("Required items: %s", ", ".join(self.state.research.required_items))
        self.log_progress(f"Preparation phase started - Goal: {goal}")
        await self._run_action("begin_resource_gathering")

    async def advance_mission_phase(self, new_phase: Union[MissionPhase, str]) -> bool:
        try:
            phase = MissionPhase(new_phase)
        except ValueError:
            logger.warning("Unknown mission phase %r ignored", new_phase)
            return False
        if self.state.paused:
            logger.info("Mission paused; phase advance to %s ignored", phase.value)
            return False

        self._set_phase(phase)
        if phase is MissionPhase.VICTORY:
            await self.celebrate_victory()
        elif phase in PHASE_ACTIONS:
            await self._run_action(PHASE_ACTIONS[phase])
        return True

    async def celebrate_victory(self) -> None:
        generation = self._generation
        first_delay, second_delay = self._config.victory_delays

        logger.info("Ender Dragon defeated")
        await self._ctx.chat("🏆 THE ENDER DRAGON IS DEFEATED! MISSION ACCOMPLISHED!")
        await self._ctx.sleep(first_delay)
        if generation != self._generation:
            return
        await self._ctx.chat("🎉 Victory! The realm is safe! XP and dragon egg claimed!")

        self.log_progress("MISSION COMPLETED: Ender Dragon defeated successfully!")
        if self.state.phase is not MissionPhase.VICTORY:
            self._set_phase(MissionPhase.VICTORY)
        self.state.current_task = "celebrating"

        await self._ctx.sleep(second_delay)
        if generation != self._generation:
            return
        await self._ctx.chat("🐉➡️💀 From zero to dragon slayer! What an epic journey!")

        self._log_mission_summary()
        self._notify_completion()
        self._schedule(self._config.restart_invite_delay, self._send_restart_invite)

    async def _send_restart_invite(self) -> None:
        await self._ctx.chat('🚀 Ready for another adventure? Type "!restart" for a new mission!')

    async def restart_mission(self) -> None:
        await self._ctx.chat("🔄 Restarting dragon mission! Back to the beginning!")
        self._generation += 1
        self.cancel_scheduled()

        self.state = MissionState()
        self.progress_log.clear()
        self.last_research = None
        self._refresh_system_prompt()
        log_event(
            bus=self._ctx.bus,
            module="mission.phases",
            event_type=EventType.MISSION_PHASE_CHANGE,
            message="Mission restarted",
            payload={"old": None, "new": MissionPhase.WAITING.value, "restart": True},
        )

        self._schedule(self._config.restart_delay, self.start_mission)

    async def pause_mission(self) -> bool:
        if not self.state.active or self.state.paused:
            return False
        self.state.paused = True
        self.log_progress(f"Mission paused during {self.state.phase.value}")
        self._ctx.dispatcher.emit("mission_paused", self.get_current_status())
        return True

    async def resume_mission(self) -> bool:
        if not self.state.paused:
            return False
        self.state.paused = False
        self.log_progress(f"Mission resumed in {self.state.phase.value}")
        await self._ctx.chat(f"▶️ Mission resumed! Current phase: {self.state.phase.value}")
        return True

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    async def handle_player_join(self, name: str) -> None:
        logger.info("Player joined: %s", name)
        if not self.state.started and self._ctx.world.player_count >= 1:
            await self.start_mission()
        elif self.state.active:
            await self._ctx.chat(f"Welcome {name}! Join my quest to defeat the Ender Dragon! 🐉⚔️")
            await self.brief_new_player(name)

    async def handle_player_leave(self, name: str) -> None:
        logger.info("Player left: %s", name)
        if self._ctx.world.player_count == 0 and self.state.active:
            await self._ctx.chat("🤖 Continuing the dragon mission solo! The quest must go on!")

    async def brief_new_player(self, name: str) -> None:
        first_delay, second_delay = self._config.briefing_delays
        await self._ctx.sleep(first_delay)
        await self._ctx.chat(f"{name}: I'm on an epic quest to defeat the Ender Dragon! 🐉")
        await self._ctx.sleep(second_delay)
        await self._ctx.chat(f"Current phase: {self.state.phase.value} | Join the adventure! 🗡️")

    async def handle_ender_dragon_spotted(self, dragon: Any = None) -> bool:
        if self.state.paused:
            logger.info("Mission paused; dragon sighting noted only")
            return False
        logger.info("Ender Dragon spotted")
        self._set_phase(MissionPhase.END_FIGHT)
        self.state.current_task = "engaging_dragon"
        await self._ctx.chat("🐉 TARGET ACQUIRED! Engaging the Ender Dragon!")
        self.log_progress("Ender Dragon spotted - Final battle begins!")
        return True

    async def handle_combat_ended(self, outcome: CombatOutcome) -> None:
        if (
            outcome.result is CombatResult.TARGET_DEFEATED
            and outcome.target_type == ENDER_DRAGON
            and self.state.phase is MissionPhase.END_FIGHT
        ):
            await self.advance_mission_phase(MissionPhase.VICTORY)

    # ------------------------------------------------------------------
    # Adaptive strategy
    # ------------------------------------------------------------------

    def update_strategy(self, strategy: Union[AdaptiveStrategy, Mapping[str, Any]]) -> bool:
        if isinstance(strategy, AdaptiveStrategy):
            raw: Mapping[str, Any] = strategy.to_dict()
            adaptive = strategy
        elif isinstance(strategy, Mapping):
            raw = strategy
            adaptive = AdaptiveStrategy.from_mapping(strategy)
        else:
            logger.warning("Strategy update ignored: %r", strategy)
            return False

        self.state.adaptive_strategy = adaptive
        logger.info("Mission strategy updated: %s", adaptive.to_dict())

        if raw.get("dragon_strategy"):
            self.state.research.strategy_summary = (
                f"{raw['dragon_strategy']} approach with {raw.get('preparation')} preparation"
            )
        if self.state.phase is MissionPhase.PREPARATION:
            self.state.research.current_goal = PREPARATION_GOALS.get(
                str(raw.get("preparation")), DEFAULT_PREPARATION_GOAL
            )

        self._refresh_system_prompt()
        return True

    def get_adaptive_strategy(self) -> AdaptiveStrategy:
        return self.state.adaptive_strategy or AdaptiveStrategy()

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------

    def get_current_status(self) -> Dict[str, Any]:
        last = self.progress_log.newest()
        return {
            "mission_active": self.state.active,
            "mission_started": self.state.started,
            "paused": self.state.paused,
            "current_phase": self.state.phase.value,
            "current_task": self.state.current_task,
            "current_goal": self.state.research.current_goal or "Waiting for mission start",
            "strategy": self.state.research.strategy_summary or "No strategy set",
            "adaptive_strategy": (
                self.state.adaptive_strategy.to_dict() if self.state.adaptive_strategy else None
            ),
            "progress_count": len(self.progress_log),
            "last_progress": last.to_dict() if last else None,
        }

    def get_status_line(self) -> str:
        goal = self.state.research.current_goal or "Dragon hunt!"
        return f"🤖 Status: {self.state.phase.value} | Goal: {goal}"

    def get_mission_progress(self) -> str:
        try:
            current = MISSION_PHASES.index(self.state.phase)
        except ValueError:
            current = -1
        return (
            f"🐉 Mission: {current + 1}/{len(MISSION_PHASES)} phases complete | "
            f"Current: {self.state.phase.value}"
        )

    def get_strategy_line(self) -> str:
        strategy = (
            self.state.research.strategy_summary
            or "Gather resources, explore Nether, find stronghold, defeat dragon!"
        )
        return f"🧠 Strategy: {strategy[:120]}..."

    # ------------------------------------------------------------------
    # Progress log
    # ------------------------------------------------------------------

    def log_progress(self, message: str) -> ProgressEntry:
        entry = ProgressEntry(timestamp=self._wall_clock(), message=message)
        self.progress_log.append(entry)
        logger.info("Progress: %s", message)
        log_event(
            bus=self._ctx.bus,
            module="mission.phases",
            event_type=EventType.MISSION_PROGRESS,
            message=message,
            payload={"phase": self.state.phase.value, "entry": entry.to_dict()},
        )
        return entry

    # ------------------------------------------------------------------
    # Delayed work
    # ------------------------------------------------------------------

    def _schedule(self, delay: float, action: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        async def run_later() -> None:
            await self._ctx.sleep(delay)
            await action()

        task = asyncio.get_running_loop().create_task(run_later())
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled_done)
        return task

    def _scheduled_done(self, task: asyncio.Task) -> None:
        self._scheduled.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled mission action failed: %r", exc, exc_info=exc)

    def cancel_scheduled(self) -> None:
        for task in list(self._scheduled):
            task.cancel()
        self._scheduled.clear()

    async def wait_scheduled(self) -> None:
        """Let delayed mission work (restart, invite) run to completion."""
        while self._scheduled:
            await asyncio.gather(*list(self._scheduled), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_phase(self, phase: MissionPhase) -> None:
        old = self.state.phase
        self.state.phase = phase
        self._refresh_system_prompt()
        if old is phase:
            return
        logger.info("Mission phase: %s -> %s", old.value, phase.value)
        log_event(
            bus=self._ctx.bus,
            module="mission.phases",
            event_type=EventType.MISSION_PHASE_CHANGE,
            message=f"{old.value} -> {phase.value}",
            payload={
                "old": old.value,
                "new": phase.value,
                "goal": self.state.research.current_goal,
            },
        )

    def _refresh_system_prompt(self) -> None:
        self.system_prompt = build_system_prompt(self.state)
        self._ctx.system_prompt = self.system_prompt

    async def _run_action(self, name: str) -> bool:
        action = gameplay_action(self._ctx.gameplay, name)
        if action is None:
            logger.info("Gameplay action %s not available, skipped", name)
            emit_collaborator_unavailable(self._ctx.bus, collaborator="gameplay", action=name)
            return False
        self.state.current_task = name
        try:
            await action()
        except Exception:
            logger.exception("Gameplay action %s failed", name)
            return False
        return True

    def _log_mission_summary(self) -> None:
        for line in MISSION_SUMMARY:
            logger.info("Mission summary: %s", line)
        logger.info("Mission status: COMPLETE (%d progress entries)", len(self.progress_log))

    def _notify_completion(self) -> None:
        learning = self._ctx.learning
        if learning is None:
            emit_collaborator_unavailable(
                self._ctx.bus, collaborator="learning", action="learn_from_mission_completion"
            )
            return
        data = {
            "phases": [p.value for p in MISSION_PHASES],
            "progress": [entry.to_dict() for entry in self.progress_log],
            "research": self.state.research.to_dict(),
            "adaptive_strategy": self.get_adaptive_strategy().to_dict(),
        }
        fire_and_forget(learning.learn_from_mission_completion, data)
