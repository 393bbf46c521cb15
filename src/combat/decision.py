# battle decision engine: advisory engage/avoid scoring
# src/combat/decision.py
"""
BattleDecisionEngine.

    score = w_s * success_probability
          + w_v * strategic_value
          - w_r * risk_factor
          + state_modifier

    engage iff score > engage_threshold      (defaults 0.4 / 0.3 / 0.3, 0.5)

Advisory only: the combat tick loop acts on threat level directly, this
engine answers `get_battle_recommendation` queries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bot_core.world_state import WorldStateStore
from env.schema import CombatConfig
from runtime.collaborators import InventoryStatus

from .stats import CombatRecord, CombatResult, CombatStats

logger = logging.getLogger(__name__)


LOOT_VALUES: Dict[str, float] = {
    "minecraft:ender_dragon": 1.0,
    "minecraft:wither": 0.9,
    "minecraft:blaze": 0.7,
    "minecraft:enderman": 0.6,
    "minecraft:creeper": 0.4,
    "minecraft:zombie": 0.3,
    "minecraft:skeleton": 0.3,
    "minecraft:spider": 0.2,
}
DEFAULT_LOOT_VALUE = 0.2

# Smite covers the undead, bane of arthropods the spiders; melee on endermen is poor.
WEAPON_EFFECTIVENESS: Dict[str, float] = {
    "minecraft:zombie": 0.8,
    "minecraft:skeleton": 0.8,
    "minecraft:wither": 0.8,
    "minecraft:spider": 0.7,
    "minecraft:enderman": 0.3,
}
DEFAULT_WEAPON_EFFECTIVENESS = 0.5
DEFAULT_ARMOR_LEVEL = 0.3

# Preferred fighting distance for entities with a known weakness.
OPTIMAL_RANGES: Dict[str, float] = {
    "minecraft:creeper": 8.0,
    "minecraft:enderman": 15.0,
    "minecraft:ender_dragon": 20.0,
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def score_engagement(
    success: float,
    value: float,
    risk: float,
    state_modifier: float = 0.0,
    weights: Tuple[float, float, float] = (0.4, 0.3, 0.3),
) -> float:
    w_success, w_value, w_risk = weights
    return w_success * success + w_value * value - w_risk * risk + state_modifier


def recommended_action(score: float) -> str:
    if score > 0.8:
        return "AGGRESSIVE_ENGAGE"
    if score > 0.6:
        return "CAUTIOUS_ENGAGE"
    if score > 0.4:
        return "DEFENSIVE_ENGAGE"
    if score > 0.2:
        return "MONITOR"
    return "RETREAT"


@dataclass
class Environment:
    type: str
    advantages: List[str] = field(default_factory=list)
    disadvantages: List[str] = field(default_factory=list)


def assess_environment(y: float) -> Environment:
    if y < 10:
        return Environment("UNDERGROUND", ["cover"], ["confined"])
    if y > 100:
        return Environment("HIGH_ALTITUDE", ["visibility"], ["fall_risk"])
    return Environment("SURFACE", ["mobility"], [])


@dataclass
class DecisionTarget:
    """What the engine needs to know about a candidate target."""

    type: str
    distance: float
    threat_score: float


@dataclass
class BattleDecision:
    engage: bool
    score: float
    confidence: float
    reasoning: str
    recommended_action: str
    risk: float
    success: float
    value: float
    state_modifier: float


class BattleDecisionEngine:
    def __init__(
        self,
        world: WorldStateStore,
        config: Optional[CombatConfig] = None,
        *,
        stats: Optional[Callable[[], CombatStats]] = None,
        history: Optional[Callable[[], Sequence[CombatRecord]]] = None,
        inventory: Optional[InventoryStatus] = None,
        hazard_probe: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._world = world
        self._config = config or CombatConfig()
        self._stats = stats or CombatStats
        self._history = history or (lambda: [])
        self._inventory = inventory
        self._hazard_probe = hazard_probe

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def environmental_risk(self) -> float:
        env = assess_environment(self._world.position.y)
        risk = 0.0
        if "confined" in env.disadvantages:
            risk += 0.3
        if "fall_risk" in env.disadvantages:
            risk += 0.2
        if self._hazard_probe is not None and self._hazard_probe():
            risk += 0.4
        return min(1.0, risk)

    def resource_risk(self) -> float:
        """Missing inventory data counts as the conservative case."""
        risk = 0.0
        if self._inventory is not None:
            if self._inventory.get_weapon_durability() < 0.3:
                risk += 0.4
            has_healing = self._inventory.has_healing_items()
        else:
            has_healing = False
        if not has_healing:
            risk += 0.3
        if self._world.food < 10:
            risk += 0.2
        return min(1.0, risk)

    def risk_factor(self, target: DecisionTarget) -> float:
        risk = (1.0 - self._world.health_ratio) * 0.4
        risk += (target.threat_score / 100.0) * 0.3
        risk += self.environmental_risk() * 0.2
        risk += self.resource_risk() * 0.1
        return clamp(risk, 0.0, 1.0)

    def entity_history(self, entity_type: str) -> Tuple[int, int]:
        """(fights, wins) against `entity_type` in the retained history."""
        relevant = [r for r in self._history() if r.target_type == entity_type and r.result]
        wins = sum(1 for r in relevant if r.result is CombatResult.TARGET_DEFEATED)
        return len(relevant), wins

    def equipment_advantage(self, entity_type: str) -> float:
        weapon = WEAPON_EFFECTIVENESS.get(entity_type, DEFAULT_WEAPON_EFFECTIVENESS)
        armor = (
            self._inventory.get_armor_level()
            if self._inventory is not None
            else DEFAULT_ARMOR_LEVEL
        )
        return min(1.0, weapon + armor)

    def success_probability(self, target: DecisionTarget) -> float:
        probability = 0.5
        fights, wins = self.entity_history(target.type)
        if fights > 0:
            probability = (probability + wins / fights) / 2

        probability += self.equipment_advantage(target.type) * 0.2
        probability += (self._world.health_ratio - 0.5) * 0.3

        optimal = OPTIMAL_RANGES.get(target.type, self._config.optimal_combat_range)
        distance_score = max(0.0, 1.0 - abs(target.distance - optimal) / optimal)
        probability += distance_score * 0.1

        return clamp(probability, 0.1, 0.9)

    def strategic_value(self, target: DecisionTarget) -> float:
        value = 0.0
        priorities = self._config.priority_targets
        if target.type in priorities:
            index = priorities.index(target.type)
            value += (len(priorities) - index) / len(priorities) * 0.4
        value += LOOT_VALUES.get(target.type, DEFAULT_LOOT_VALUE) * 0.3
        value += target.threat_score / 100.0 * 0.3
        return clamp(value, 0.0, 1.0)

    def state_modifier(self) -> float:
        modifier = (self._config.aggression_level - 0.5) * 0.2
        if self._stats().kill_streak > 3:
            modifier += 0.1
        recent = list(self._history())[-5:]
        setbacks = sum(
            1 for r in recent
            if r.result is not None and r.result is not CombatResult.TARGET_DEFEATED
        )
        modifier -= setbacks * 0.05
        return modifier

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def reasoning(self, risk: float, success: float, value: float) -> str:
        reasons: List[str] = []
        if risk > 0.7:
            reasons.append(f"High risk ({risk * 100:.0f}%)")
        if success > 0.7:
            reasons.append(f"High success chance ({success * 100:.0f}%)")
        if value > 0.6:
            reasons.append("Valuable target")
        if self._world.health_ratio < 0.5:
            reasons.append("Low health")
        if self._stats().kill_streak > 2:
            reasons.append("Kill streak active")
        return ", ".join(reasons) or "Standard assessment"

    def decide(self, target: DecisionTarget) -> BattleDecision:
        risk = self.risk_factor(target)
        success = self.success_probability(target)
        value = self.strategic_value(target)
        modifier = self.state_modifier()
        score = score_engagement(success, value, risk, modifier, self._config.engagement_weights)

        decision = BattleDecision(
            engage=score > self._config.engage_threshold,
            score=score,
            confidence=abs(score - 0.5) * 2,
            reasoning=self.reasoning(risk, success, value),
            recommended_action=recommended_action(score),
            risk=risk,
            success=success,
            value=value,
            state_modifier=modifier,
        )
        logger.debug("Battle decision for %s: %s", target.type, decision)
        return decision
