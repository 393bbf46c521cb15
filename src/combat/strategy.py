# combat strategy model, parser and cached advisor
# src/combat/strategy.py
"""
Combat strategies.

A strategy is a small structured recommendation (approach, tactics, risk,
expected outcome) sourced, in order of preference, from:

1. the advisor cache, while the consultation cooldown is running
2. the external strategy text provider, parsed best-effort
3. the static default table keyed by entity type

The advisor never raises: provider failures degrade to the default table.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from llm_stack.backend import StrategyTextProvider
from monitoring.bus import EventBus
from runtime.failure_mitigation import emit_llm_failure

logger = logging.getLogger(__name__)


class Approach(str, Enum):
    AGGRESSIVE = "AGGRESSIVE"
    BALANCED = "BALANCED"
    DEFENSIVE = "DEFENSIVE"
    RETREAT = "RETREAT"


# One step toward caution after taking damage.
DOWNGRADE: Dict[Approach, Approach] = {
    Approach.AGGRESSIVE: Approach.BALANCED,
    Approach.BALANCED: Approach.DEFENSIVE,
}


@dataclass
class CombatStrategy:
    approach: Approach
    tactics: List[str] = field(default_factory=list)
    risk: str = "MEDIUM"
    expected_outcome: str = "UNCERTAIN"
    backup: str = "RETREAT"
    confidence: float = 0.5
    ai_generated: bool = False

    def copy(self) -> "CombatStrategy":
        return replace(self, tactics=list(self.tactics))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approach": self.approach.value,
            "tactics": list(self.tactics),
            "risk": self.risk,
            "expected_outcome": self.expected_outcome,
            "backup": self.backup,
            "confidence": self.confidence,
            "ai_generated": self.ai_generated,
        }


DEFAULT_STRATEGIES: Dict[str, CombatStrategy] = {
    "minecraft:ender_dragon": CombatStrategy(
        approach=Approach.AGGRESSIVE,
        tactics=["maintain_distance", "target_crystals", "dodge_breath"],
        risk="HIGH",
        expected_outcome="UNCERTAIN",
    ),
    "minecraft:creeper": CombatStrategy(
        approach=Approach.DEFENSIVE,
        tactics=["maintain_distance", "hit_and_run", "prevent_explosion"],
        risk="HIGH",
        expected_outcome="WIN",
    ),
    "minecraft:enderman": CombatStrategy(
        approach=Approach.BALANCED,
        tactics=["avoid_eye_contact", "use_projectiles", "height_advantage"],
        risk="MEDIUM",
        expected_outcome="WIN",
    ),
    "default": CombatStrategy(
        approach=Approach.BALANCED,
        tactics=["optimal_range", "timing_attacks", "health_monitor"],
        risk="MEDIUM",
        expected_outcome="WIN",
    ),
}


def default_strategy(target_type: str) -> CombatStrategy:
    """Fresh copy of the static strategy for `target_type`."""
    return DEFAULT_STRATEGIES.get(target_type, DEFAULT_STRATEGIES["default"]).copy()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_TACTIC_SPLIT = re.compile(r"[,;]| and ")


def _tactic_names(line: str) -> List[str]:
    """'tactics: hit and run, maintain distance' -> ['hit_and_run', 'maintain_distance']"""
    _, _, body = line.partition(":")
    body = body or line
    names: List[str] = []
    # "hit and run" is a tactic name, not two.
    body = body.replace("hit and run", "hit_and_run")
    for chunk in _TACTIC_SPLIT.split(body):
        token = re.sub(r"[^a-z0-9 _-]", "", chunk.strip().lower())
        token = re.sub(r"[\s-]+", "_", token).strip("_")
        if token:
            names.append(token)
    return names


def parse_combat_strategy(text: str, target_type: str) -> CombatStrategy:
    """
    Best-effort keyword parse of free text.

    Lines mentioning approach/primary set the approach; lines mentioning risk
    set the risk; outcome/expected lines set the expected outcome; tactic or
    action lines contribute tactic names. Blank text yields the default
    strategy for the target.
    """
    if not text or not text.strip():
        return default_strategy(target_type)

    approach = Approach.BALANCED
    risk = "MEDIUM"
    outcome = "UNCERTAIN"
    tactics: List[str] = []

    for raw in text.lower().splitlines():
        line = raw.strip()
        if not line:
            continue

        if "approach" in line or "primary" in line:
            if "aggressive" in line:
                approach = Approach.AGGRESSIVE
            elif "defensive" in line:
                approach = Approach.DEFENSIVE
            elif "retreat" in line:
                approach = Approach.RETREAT
            elif "balanced" in line:
                approach = Approach.BALANCED

        if "risk" in line:
            if "low" in line:
                risk = "LOW"
            elif "high" in line:
                risk = "HIGH"
            else:
                risk = "MEDIUM"

        if "outcome" in line or "expected" in line:
            if "win" in line:
                outcome = "WIN"
            elif "loss" in line:
                outcome = "LOSS"
            else:
                outcome = "UNCERTAIN"

        if "tactic" in line or "action" in line:
            tactics.extend(_tactic_names(line))

    return CombatStrategy(
        approach=approach,
        tactics=tactics,
        risk=risk,
        expected_outcome=outcome,
        backup="RETREAT",
        confidence=0.8,
        ai_generated=True,
    )


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


@dataclass
class CombatContext:
    """Situation summary handed to the strategy provider."""

    bot_health: float
    bot_max_health: float
    target_type: str
    target_distance: float
    threat_level: str
    environment: str = "SURFACE"
    allies: int = 0
    wins: int = 0
    losses: int = 0
    kill_streak: int = 0
    inventory: Dict[str, Any] = field(default_factory=dict)


def build_combat_prompt(ctx: CombatContext) -> str:
    return f"""COMBAT SITUATION ANALYSIS:
You are an expert Minecraft combat strategist controlling a bot. Analyze this combat scenario and provide optimal strategy.

CURRENT SITUATION:
- Bot Health: {ctx.bot_health:g}/{ctx.bot_max_health:g} hearts
- Target: {ctx.target_type} at {ctx.target_distance:.1f} blocks
- Threat Level: {ctx.threat_level}
- Environment: {ctx.environment}
- Allies Present: {ctx.allies}

AVAILABLE RESOURCES:
- Weapons: {ctx.inventory.get("weapons") or "Basic tools"}
- Armor: {ctx.inventory.get("armor") or "Basic/None"}
- Consumables: {ctx.inventory.get("consumables") or "Limited"}

COMBAT HISTORY:
Recent Performance: {ctx.wins}W-{ctx.losses}L
Kill Streak: {ctx.kill_streak}

PROVIDE STRATEGIC RECOMMENDATION:
1. Primary Approach (AGGRESSIVE/DEFENSIVE/BALANCED/RETREAT)
2. Combat Tactics (specific actions to take)
3. Risk Assessment (LOW/MEDIUM/HIGH)
4. Expected Outcome (WIN/LOSS/UNCERTAIN)
5. Backup Plan if things go wrong

Respond in concise tactical format, one item per line."""


# ---------------------------------------------------------------------------
# Advisor
# ---------------------------------------------------------------------------

CacheKey = Tuple[str, int, int]


def strategy_cache_key(target_type: str, health: float, distance: float) -> CacheKey:
    """Coarse fingerprint: 4-point health buckets, 5-block distance buckets."""
    return (target_type, int(health // 4), int(distance // 5))


class CombatStrategyAdvisor:
    """
    Cooldown-gated, cached access to the strategy text provider.

    While the cooldown since the last consultation is running, requests are
    answered from the cache (or the default table on a miss). Cache entries
    are never invalidated; the cooldown bounds how often they are refreshed.
    """

    def __init__(
        self,
        provider: Optional[StrategyTextProvider],
        *,
        cooldown: Union[float, Callable[[], float]] = 5.0,
        clock: Callable[[], float] = time.monotonic,
        bus: Optional[EventBus] = None,
        system_prompt: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self._provider = provider
        # A callable cooldown is re-read on every check.
        self._cooldown = cooldown if callable(cooldown) else (lambda: cooldown)
        self._clock = clock
        self._bus = bus
        self._system_prompt = system_prompt
        self._cache: Dict[CacheKey, CombatStrategy] = {}
        self._last_consultation: Optional[float] = None
        self.consultations = 0

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cooling_down(self) -> bool:
        if self._last_consultation is None:
            return False
        return self._clock() - self._last_consultation < self._cooldown()

    async def get_strategy(self, ctx: CombatContext) -> CombatStrategy:
        key = strategy_cache_key(ctx.target_type, ctx.bot_health, ctx.target_distance)

        if self.cooling_down():
            cached = self._cache.get(key)
            return cached.copy() if cached is not None else default_strategy(ctx.target_type)

        if self._provider is None:
            return default_strategy(ctx.target_type)

        self._last_consultation = self._clock()
        self.consultations += 1
        try:
            system_prompt = self._system_prompt() if self._system_prompt else None
            text = await self._provider.generate_content(
                build_combat_prompt(ctx), system_prompt=system_prompt
            )
            strategy = parse_combat_strategy(text, ctx.target_type)
        except Exception as exc:
            logger.warning("Strategy consultation failed, using default strategy: %r", exc)
            emit_llm_failure(
                self._bus,
                role="combat",
                error_repr=repr(exc),
                fallback="default_strategy",
                meta={"target": ctx.target_type},
            )
            return default_strategy(ctx.target_type)

        self._cache[key] = strategy
        logger.debug("Strategy for %s: %s", ctx.target_type, strategy.to_dict())
        return strategy.copy()
