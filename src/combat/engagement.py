# combat engagement state machine
# src/combat/engagement.py
"""
EngagementStateMachine.

States:

    IDLE --(threat != NONE, no cooldown)--> ENGAGING --(strategy)--> IN_COMBAT
    IN_COMBAT --(defeated / lost / ended)--> IDLE
    IN_COMBAT | ENGAGING --(retreat)--> RETREATING --> IDLE

Two entry points are driven by the runtime loops:

- threat_tick():  every threat interval (1 s). Recomputes the threat level
  and schedules periodic strategy reassessment. Never suspends.
- combat_tick():  every combat interval (0.1 s). Engages, or runs the
  current strategy's approach and tactics against the target.

The target is held as a weak reference (entity id plus cached type and
position) and is re-validated against the WorldStateStore on every tick.
Retreat cooldowns are timestamp guards: until the stored time passes,
IDLE -> ENGAGING is refused whatever the threat level.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from bot_core.nav.mover import NavigationError, move_to
from bot_core.ring_buffer import RingBuffer
from bot_core.world_state import EntitySnapshot, Position
from monitoring.events import EventType
from monitoring.logger import log_event
from runtime.collaborators import fire_and_forget
from runtime.context import BotContext
from runtime.failure_mitigation import (
    emit_collaborator_unavailable,
    emit_navigation_failure,
)

from .decision import BattleDecisionEngine, DecisionTarget, assess_environment
from .stats import CombatOutcome, CombatRecord, CombatResult, CombatStats
from .strategy import (
    DOWNGRADE,
    Approach,
    CombatContext,
    CombatStrategy,
    CombatStrategyAdvisor,
)
from .threat import ThreatAssessor, ThreatEntry, ThreatLevel

logger = logging.getLogger(__name__)


class EngagementState(str, Enum):
    IDLE = "IDLE"
    ENGAGING = "ENGAGING"
    IN_COMBAT = "IN_COMBAT"
    RETREATING = "RETREATING"


END_CRYSTAL = "minecraft:end_crystal"
DODGE_STEP = 4.0


@dataclass
class CombatTarget:
    """Weak reference to the engaged entity; never assumed live."""

    entity_id: Any
    type: str
    position: Position
    distance: float
    threat_score: int

    @classmethod
    def from_entry(cls, entry: ThreatEntry) -> "CombatTarget":
        return cls(
            entity_id=entry.entity.runtime_id,
            type=entry.entity.type,
            position=entry.entity.position,
            distance=entry.distance,
            threat_score=entry.score,
        )


@dataclass
class CombatSession:
    session_id: str
    target: CombatTarget
    strategy: CombatStrategy
    start_time: float
    last_reassessment: float
    record: CombatRecord


@dataclass
class RetreatOption:
    position: Position
    safety: float
    angle: int


@dataclass
class BattleRecommendation:
    recommendation: str
    reason: str
    confidence: float
    action: Optional[str] = None
    score: Optional[float] = None


StartedListener = Callable[[CombatSession], None]
EndedListener = Callable[[CombatOutcome], None]
StrategyListener = Callable[[Approach, Approach], None]
HealthListener = Callable[[float], None]


class EngagementStateMachine:
    def __init__(
        self,
        ctx: BotContext,
        assessor: ThreatAssessor,
        advisor: CombatStrategyAdvisor,
        *,
        decision_engine: Optional[BattleDecisionEngine] = None,
    ) -> None:
        self._ctx = ctx
        self._world = ctx.world
        self._config = ctx.config.combat
        self._clock = ctx.clock
        self._assessor = assessor
        self._advisor = advisor

        self.stats = CombatStats()
        self.history: RingBuffer[CombatRecord] = RingBuffer(self._config.max_combat_history)
        self._decision = decision_engine or BattleDecisionEngine(
            ctx.world,
            self._config,
            stats=lambda: self.stats,
            history=self.history.to_list,
            inventory=ctx.inventory,
        )

        self._state = EngagementState.IDLE
        self.session: Optional[CombatSession] = None
        self._engaging_target: Optional[CombatTarget] = None
        self._last_attack: Optional[float] = None
        self.last_damage_time: Optional[float] = None
        self.retreat_cooldown_end: Optional[float] = None

        self._tick_busy = False
        self._reassess_task: Optional[asyncio.Task] = None
        self._reported_missing: Set[Tuple[str, str]] = set()

        self._started_listeners: List[StartedListener] = []
        self._ended_listeners: List[EndedListener] = []
        self._strategy_listeners: List[StrategyListener] = []
        self._critical_health_listeners: List[HealthListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_combat_started(self, fn: StartedListener) -> None:
        self._started_listeners.append(fn)

    def on_combat_ended(self, fn: EndedListener) -> None:
        self._ended_listeners.append(fn)

    def on_strategy_changed(self, fn: StrategyListener) -> None:
        self._strategy_listeners.append(fn)

    def on_critical_health(self, fn: HealthListener) -> None:
        self._critical_health_listeners.append(fn)

    def _notify(self, listeners: List[Callable[..., None]], *args: Any) -> None:
        for fn in list(listeners):
            try:
                fn(*args)
            except Exception:
                logger.exception("Combat listener %r failed", fn)

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngagementState:
        return self._state

    @property
    def in_combat(self) -> bool:
        return self._state in (EngagementState.ENGAGING, EngagementState.IN_COMBAT)

    @property
    def threat_level(self) -> ThreatLevel:
        return self._assessor.level

    def cooldown_active(self) -> bool:
        return self.retreat_cooldown_end is not None and self._clock() < self.retreat_cooldown_end

    def can_engage_in_combat(self) -> bool:
        if self.cooldown_active():
            return False
        return (
            self._world.health > self._config.flee_health_threshold
            and self._assessor.level is not ThreatLevel.NONE
            and self._state is EngagementState.IDLE
        )

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def threat_tick(self) -> None:
        """Threat assessment plus reassessment scheduling; never suspends."""
        self._assessor.tick()

        session = self.session
        if session is None or self._state is not EngagementState.IN_COMBAT:
            return
        now = self._clock()
        if (
            now - session.start_time > self._config.reassess_after
            and now - session.last_reassessment >= self._config.reassess_interval
            and (self._reassess_task is None or self._reassess_task.done())
        ):
            session.last_reassessment = now
            self._reassess_task = asyncio.get_running_loop().create_task(
                self.reassess_strategy()
            )
            self._reassess_task.add_done_callback(self._reassess_done)

    def _reassess_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Strategy reassessment failed: %r", exc, exc_info=exc)

    async def combat_tick(self) -> None:
        # A tick still awaiting movement or strategy keeps later ticks out.
        if self._tick_busy:
            return
        self._tick_busy = True
        try:
            if self._state is EngagementState.IDLE:
                if self._assessor.level is not ThreatLevel.NONE:
                    await self.initiate_combat()
            elif self._state is EngagementState.IN_COMBAT:
                await self.process_combat_actions()
        finally:
            self._tick_busy = False

    # ------------------------------------------------------------------
    # Engagement
    # ------------------------------------------------------------------

    def select_target(self) -> Optional[CombatTarget]:
        """First present priority type wins, else the highest-threat entity."""
        entries = self._assessor.hostiles_in_range()
        if not entries:
            return None
        for priority_type in self._config.priority_targets:
            for entry in entries:
                if entry.entity.type == priority_type:
                    return CombatTarget.from_entry(entry)
        return CombatTarget.from_entry(entries[0])

    def build_combat_context(self, target: CombatTarget) -> CombatContext:
        inventory: Dict[str, Any] = {}
        if self._ctx.inventory is not None:
            try:
                inventory = dict(self._ctx.inventory.get_inventory_status())
            except Exception:
                logger.warning("Inventory status unavailable", exc_info=True)
        return CombatContext(
            bot_health=self._world.health,
            bot_max_health=self._world.max_health,
            target_type=target.type,
            target_distance=target.distance,
            threat_level=self._assessor.level.value,
            environment=assess_environment(self._world.position.y).type,
            allies=self._world.player_count,
            wins=self.stats.wins,
            losses=self.stats.losses,
            kill_streak=self.stats.kill_streak,
            inventory=inventory,
        )

    async def initiate_combat(self) -> bool:
        if not self.can_engage_in_combat():
            return False
        target = self.select_target()
        if target is None:
            return False

        self._state = EngagementState.ENGAGING
        self._engaging_target = target

        strategy = await self._advisor.get_strategy(self.build_combat_context(target))

        # A retreat or reset may have happened while the strategy was fetched.
        if self._state is not EngagementState.ENGAGING or self._engaging_target is not target:
            return False
        self._engaging_target = None
        if self._world.get_entity(target.entity_id) is None:
            self._state = EngagementState.IDLE
            return False

        now = self._clock()
        record = CombatRecord(
            target_type=target.type,
            strategy=strategy.approach.value,
            start_time=now,
            bot_health_start=self._world.health,
        )
        self.history.append(record)
        self.session = CombatSession(
            session_id=f"combat_{uuid.uuid4().hex[:8]}",
            target=target,
            strategy=strategy,
            start_time=now,
            last_reassessment=now,
            record=record,
        )
        self._state = EngagementState.IN_COMBAT

        logger.info("Combat initiated with %s (%s)", target.type, strategy.approach.value)
        log_event(
            bus=self._ctx.bus,
            module="combat.engagement",
            event_type=EventType.COMBAT_STARTED,
            message=f"Engaging {target.type}",
            payload={
                "target": target.type,
                "entity_id": target.entity_id,
                "distance": target.distance,
                "strategy": strategy.to_dict(),
            },
            correlation_id=self.session.session_id,
        )
        self._notify(self._started_listeners, self.session)
        await self._ctx.chat(f"⚔️ Engaging {target.type}! Strategy: {strategy.approach.value}")
        return True

    def _refresh_target(self, session: CombatSession) -> bool:
        """Re-validate the target against the world; False if gone or out of range."""
        entity = self._world.get_entity(session.target.entity_id)
        if entity is None:
            return False
        distance = self._world.distance_to(entity.position)
        if distance > self._config.max_combat_range:
            return False
        session.target.position = entity.position
        session.target.distance = distance
        return True

    async def process_combat_actions(self) -> None:
        session = self.session
        if session is None or self._state is not EngagementState.IN_COMBAT:
            return

        if not self._refresh_target(session):
            self.end_combat(CombatResult.TARGET_LOST)
            return

        if self._world.health <= self._config.flee_health_threshold:
            await self.execute_retreat("LOW_HEALTH")
            return

        await self._execute_approach(session)
        for tactic in list(session.strategy.tactics):
            if self.session is not session:
                return
            await self.execute_tactic(tactic, session.target)

    async def _execute_approach(self, session: CombatSession) -> None:
        approach = session.strategy.approach
        target = session.target
        if approach is Approach.AGGRESSIVE:
            await self.execute_aggressive(target)
        elif approach is Approach.DEFENSIVE:
            await self.execute_defensive(target)
        elif approach is Approach.BALANCED:
            await self.execute_balanced(target)
        elif approach is Approach.RETREAT:
            await self.execute_retreat("STRATEGIC")

    async def execute_aggressive(self, target: CombatTarget) -> None:
        if target.distance > self._config.optimal_combat_range:
            await self.move_towards(target)
        if self.can_attack():
            await self.attack(target)

    async def execute_defensive(self, target: CombatTarget) -> None:
        safe_distance = self._config.optimal_combat_range * 1.5
        if target.distance < safe_distance:
            await self.move_away(target)
        elif target.distance > self._config.max_combat_range * 0.8:
            await self.move_towards(target)
        if self.can_attack(1.5):
            await self.attack(target)

    async def execute_balanced(self, target: CombatTarget) -> None:
        await self.maintain_optimal_distance(target)
        if self.can_attack():
            await self.attack(target)

    # ------------------------------------------------------------------
    # Tactics
    # ------------------------------------------------------------------

    async def execute_tactic(self, tactic: str, target: CombatTarget) -> None:
        """Known tactic names run; anything else is ignored."""
        if tactic == "maintain_distance":
            await self.maintain_optimal_distance(target)
        elif tactic == "hit_and_run":
            await self.hit_and_run(target)
        elif tactic == "dodge_breath":
            await self.dodge_dragon_breath(target)
        elif tactic == "target_crystals":
            await self.target_end_crystals()
        elif tactic == "use_consumables":
            await self.use_consumables()

    async def maintain_optimal_distance(self, target: CombatTarget) -> None:
        optimal = self._config.optimal_combat_range
        if target.distance < optimal * 0.8:
            await self.move_away(target)
        elif target.distance > optimal * 1.2:
            await self.move_towards(target)

    async def hit_and_run(self, target: CombatTarget) -> None:
        if self.can_attack():
            await self.attack(target)
            await self.move_away(target)

    async def dodge_dragon_breath(self, target: CombatTarget) -> None:
        """Sidestep perpendicular to the line towards the target."""
        pos = self._world.position
        dx = target.position.x - pos.x
        dz = target.position.z - pos.z
        length = math.hypot(dx, dz)
        if length == 0:
            side = Position(pos.x + DODGE_STEP, pos.y, pos.z)
        else:
            side = Position(
                pos.x - dz / length * DODGE_STEP,
                pos.y,
                pos.z + dx / length * DODGE_STEP,
            )
        await self._move(side, purpose="dodge_breath")

    async def target_end_crystals(self) -> None:
        crystals = [e for e in self._world.entities.values() if e.type == END_CRYSTAL]
        if not crystals or not self.can_attack():
            return
        nearest = min(crystals, key=lambda e: self._world.distance_to(e.position))
        await self.attack_entity(nearest)

    async def use_consumables(self) -> None:
        if not self._config.use_consumables:
            return
        inventory = self._ctx.inventory
        if inventory is None:
            self._report_missing("inventory", "use_consumables")
            return
        try:
            if self._world.health < self._world.max_health * 0.7:
                await inventory.use_healing_item()
            await inventory.use_buff_items()
        except Exception:
            logger.exception("Using consumables failed")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def can_attack(self, multiplier: float = 1.0) -> bool:
        if self._last_attack is None:
            return True
        return self._clock() - self._last_attack >= self._config.attack_cooldown * multiplier

    def estimate_attack_damage(self) -> int:
        return self._ctx.rng.randint(2, 5)

    async def attack(self, target: CombatTarget) -> bool:
        if not self.can_attack():
            return False
        return await self._attack_id(target.entity_id, target.type)

    async def attack_entity(self, entity: EntitySnapshot) -> bool:
        return await self._attack_id(entity.runtime_id, entity.type)

    async def _attack_id(self, entity_id: Any, entity_type: str) -> bool:
        try:
            await self._ctx.transport.attack(entity_id)
        except Exception as exc:
            logger.warning("Attack on %s failed: %r", entity_type, exc)
            return False
        self._last_attack = self._clock()
        self.stats.damage_dealt += self.estimate_attack_damage()
        logger.debug("Attacked %s", entity_type)
        return True

    def calculate_retreat_position(self, threat_position: Optional[Position]) -> Position:
        """Point at retreat distance, directly away from the threat (x/z plane)."""
        pos = self._world.position
        distance = self._config.retreat_distance
        if threat_position is None:
            return Position(pos.x + distance, pos.y, pos.z)
        dx = pos.x - threat_position.x
        dz = pos.z - threat_position.z
        length = math.hypot(dx, dz)
        if length == 0:
            return Position(pos.x + distance, pos.y, pos.z)
        return Position(
            pos.x + dx / length * distance,
            pos.y,
            pos.z + dz / length * distance,
        )

    async def move_towards(self, target: CombatTarget) -> bool:
        return await self._move(
            target.position,
            purpose="approach_target",
            min_distance=self._config.optimal_combat_range,
        )

    async def move_away(self, target: CombatTarget) -> bool:
        return await self._move(
            self.calculate_retreat_position(target.position),
            purpose="evade_target",
        )

    async def _move(self, position: Position, *, purpose: str, min_distance: float = 0.0) -> bool:
        try:
            await move_to(
                self._ctx.transport,
                position,
                timeout=self._config.navigation_timeout,
                min_distance=min_distance,
            )
        except NavigationError as exc:
            logger.warning("Navigation failed (%s): %s", purpose, exc)
            emit_navigation_failure(
                self._ctx.bus,
                purpose=purpose,
                target=position.to_dict(),
                error_repr=repr(exc),
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Retreat
    # ------------------------------------------------------------------

    def set_retreat_cooldown(self, reason: str) -> float:
        duration = self._config.retreat_cooldowns.get(
            reason, self._config.default_retreat_cooldown
        )
        self.retreat_cooldown_end = self._clock() + duration
        return duration

    def _threat_position(self) -> Optional[Position]:
        if self.session is not None:
            return self.session.target.position
        if self._engaging_target is not None:
            return self._engaging_target.position
        primary = self._assessor.last_snapshot.primary
        return primary.entity.position if primary else None

    def _begin_retreat(self, reason: str, result: CombatResult) -> Optional[str]:
        """Cooldown, close the session, enter RETREATING. Returns the session id."""
        self.set_retreat_cooldown(reason)
        session_id = self.session.session_id if self.session else None
        if self.session is not None:
            self.end_combat(result)
        self._engaging_target = None
        self._state = EngagementState.RETREATING
        log_event(
            bus=self._ctx.bus,
            module="combat.engagement",
            event_type=EventType.RETREAT,
            message=f"Retreating: {reason}",
            payload={
                "reason": reason,
                "result": result.value,
                "cooldown_until": self.retreat_cooldown_end,
            },
            correlation_id=session_id,
        )
        return session_id

    async def execute_retreat(self, reason: str) -> None:
        if self._state is EngagementState.RETREATING:
            return
        logger.info("Retreating from combat: %s", reason)
        threat_position = self._threat_position()
        self._begin_retreat(reason, CombatResult.RETREAT)
        try:
            await self._move(self.calculate_retreat_position(threat_position), purpose="retreat")
            await self._ctx.chat(f"🏃 Strategic retreat executed: {reason}")
        finally:
            self._state = EngagementState.IDLE

    def calculate_position_safety(
        self,
        position: Position,
        threat_position: Optional[Position],
    ) -> float:
        max_range = self._config.max_combat_range
        safety = 0.5
        if threat_position is not None:
            safety += min(0.3, position.distance_to(threat_position) / max_range)
        for entry in self._assessor.hostiles_in_range():
            distance = position.distance_to(entry.entity.position)
            safety += min(0.1, distance / max_range * 0.5)
        if position.y < 10:
            safety -= 0.2
        if position.y > 100:
            safety -= 0.1
        return max(0.1, min(1.0, safety))

    def analyze_retreat_options(self, threat_position: Optional[Position]) -> List[RetreatOption]:
        """Eight compass points at retreat distance, scored by safety."""
        pos = self._world.position
        distance = self._config.retreat_distance
        options: List[RetreatOption] = []
        for angle in range(0, 360, 45):
            rad = math.radians(angle)
            candidate = Position(
                pos.x + math.cos(rad) * distance,
                pos.y,
                pos.z + math.sin(rad) * distance,
            )
            options.append(
                RetreatOption(
                    position=candidate,
                    safety=self.calculate_position_safety(candidate, threat_position),
                    angle=angle,
                )
            )
        return options

    async def execute_smart_retreat(self, reason: str) -> Optional[RetreatOption]:
        if self._state is EngagementState.RETREATING:
            return None
        logger.info("Executing smart retreat: %s", reason)
        threat_position = self._threat_position()
        options = self.analyze_retreat_options(threat_position)
        best = max(options, key=lambda option: option.safety)

        self._begin_retreat(reason, CombatResult.SMART_RETREAT)
        try:
            await self._move(best.position, purpose="smart_retreat")
            await self._ctx.chat(f"🧠 Strategic withdrawal: {reason} (Safety: {best.safety:.2f})")
        finally:
            self._state = EngagementState.IDLE
        return best

    # ------------------------------------------------------------------
    # End of combat
    # ------------------------------------------------------------------

    def end_combat(self, result: CombatResult) -> Optional[CombatOutcome]:
        session = self.session
        if session is None:
            return None

        now = self._clock()
        duration = now - session.start_time
        self.stats.record(result, duration)

        record = session.record
        record.end_time = now
        record.duration = duration
        record.result = result
        record.bot_health_end = self._world.health

        self.session = None
        self._state = EngagementState.IDLE

        outcome = CombatOutcome(
            result=result,
            duration=duration,
            target_type=session.target.type,
            target_id=session.target.entity_id,
            strategy=session.strategy.approach.value,
            stats=self.stats.to_dict(),
        )
        logger.info("Combat ended: %s after %.1fs", result.value, duration)
        log_event(
            bus=self._ctx.bus,
            module="combat.engagement",
            event_type=EventType.COMBAT_ENDED,
            message=f"{result.value} vs {session.target.type}",
            payload=outcome.to_dict(),
            correlation_id=session.session_id,
        )
        self._notify(self._ended_listeners, outcome)

        if self._ctx.learning is not None:
            fire_and_forget(self._ctx.learning.learn_from_combat, outcome.to_dict())
        else:
            self._report_missing("learning", "learn_from_combat")
        return outcome

    def abort(self) -> None:
        """Drop any engagement (disconnect / shutdown)."""
        self._engaging_target = None
        if self.session is not None:
            self.end_combat(CombatResult.ABORTED)
        self._state = EngagementState.IDLE

    # ------------------------------------------------------------------
    # Reactive handlers
    # ------------------------------------------------------------------

    async def handle_health_update(self) -> None:
        health = self._world.health
        if health >= self._config.critical_health_threshold:
            return
        self._notify(self._critical_health_listeners, health)
        if self.in_combat and health <= self._config.flee_health_threshold:
            await self.execute_smart_retreat("CRITICAL_HEALTH")

    def handle_bot_damage(self, damage: Any) -> None:
        amount = 1.0
        if isinstance(damage, dict):
            try:
                amount = float(damage.get("amount") or 1)
            except (TypeError, ValueError):
                amount = 1.0
        elif isinstance(damage, (int, float)) and not isinstance(damage, bool):
            amount = float(damage)
        self.last_damage_time = self._clock()
        self.stats.damage_taken += amount

        session = self.session
        if session is None:
            return
        old = session.strategy.approach
        new = DOWNGRADE.get(old)
        if new is None:
            return
        session.strategy.approach = new
        logger.info("Adjusting strategy to %s after taking damage", new.value)
        self._strategy_changed(session, old, new, reason="damage")

    def handle_entity_removed(self, entity_id: Any) -> Optional[CombatOutcome]:
        if self.session is not None and self.session.target.entity_id == entity_id:
            return self.end_combat(CombatResult.TARGET_DEFEATED)
        return None

    def handle_entity_spawned(self, entity: EntitySnapshot) -> bool:
        return self._assessor.evaluate_new_threat(entity, in_combat=self.in_combat)

    # ------------------------------------------------------------------
    # Reassessment
    # ------------------------------------------------------------------

    async def reassess_strategy(self) -> None:
        session = self.session
        if session is None:
            return
        strategy = await self._advisor.get_strategy(self.build_combat_context(session.target))
        if self.session is not session:
            return
        old = session.strategy.approach
        if strategy.approach is not old:
            logger.info("Strategy updated: %s -> %s", old.value, strategy.approach.value)
            session.strategy = strategy
            session.record.strategy = strategy.approach.value
            self._strategy_changed(session, old, strategy.approach, reason="reassessment")

    def _strategy_changed(
        self,
        session: CombatSession,
        old: Approach,
        new: Approach,
        *,
        reason: str,
    ) -> None:
        log_event(
            bus=self._ctx.bus,
            module="combat.engagement",
            event_type=EventType.STRATEGY_CHANGED,
            message=f"{old.value} -> {new.value}",
            payload={"old": old.value, "new": new.value, "reason": reason},
            correlation_id=session.session_id,
        )
        self._notify(self._strategy_listeners, old, new)

    # ------------------------------------------------------------------
    # Advisory queries
    # ------------------------------------------------------------------

    def get_battle_recommendation(self, entity: EntitySnapshot) -> BattleRecommendation:
        if not self.can_engage_in_combat():
            return BattleRecommendation(
                recommendation="WAIT",
                reason="Cooldown active or not ready",
                confidence=1.0,
            )
        distance = self._world.distance_to(entity.position)
        decision = self._decision.decide(
            DecisionTarget(
                type=entity.type,
                distance=distance,
                threat_score=self._assessor.score_entity(entity, distance),
            )
        )
        return BattleRecommendation(
            recommendation="ENGAGE" if decision.engage else "AVOID",
            reason=decision.reasoning,
            confidence=decision.confidence,
            action=decision.recommended_action,
            score=decision.score,
        )

    def get_combat_status(self) -> Dict[str, Any]:
        session = self.session
        target = None
        if session is not None:
            target = {
                "type": session.target.type,
                "distance": session.target.distance,
                "threat": session.target.threat_score,
            }
        return {
            "state": self._state.value,
            "in_combat": self.in_combat,
            "current_target": target,
            "threat_level": self._assessor.level.value,
            "combat_duration": self._clock() - session.start_time if session else 0.0,
            "current_strategy": session.strategy.to_dict() if session else None,
            "cooldown_remaining": (
                max(0.0, self.retreat_cooldown_end - self._clock())
                if self.retreat_cooldown_end is not None
                else 0.0
            ),
            "stats": self.stats.to_dict(),
            "recent_combats": [r.to_dict() for r in self.history.last(3)],
        }

    def status_line(self) -> str:
        s = self.stats
        if self.session is not None:
            return (
                f"⚔️ Fighting {self.session.target.type} "
                f"({self.session.strategy.approach.value}) | Threat: {self._assessor.level.value}"
            )
        return (
            f"⚔️ Combat: {s.wins}W-{s.losses}L-{s.escapes}E | "
            f"Streak: {s.kill_streak} | Threat: {self._assessor.level.value}"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _report_missing(self, collaborator: str, action: str) -> None:
        key = (collaborator, action)
        if key in self._reported_missing:
            return
        self._reported_missing.add(key)
        logger.info("%s.%s not available, skipped", collaborator, action)
        emit_collaborator_unavailable(self._ctx.bus, collaborator=collaborator, action=action)
