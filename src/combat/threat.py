# threat scoring and discretized threat level
# src/combat/threat.py
"""
ThreatAssessor: turn the WorldStateStore entity table into a threat signal.

    score = base_threat(type) * distance_factor * health_factor

    distance_factor = max(0.1, 1 - distance / max_combat_range)
    health_factor   = 1 + (1 - health / max_health)

Scores are rounded half up to an integer and discretized through the
configured threshold ladder (CRITICAL 80, HIGH 60, MEDIUM 40, LOW 20).

`tick()` runs once per threat interval. It only reads in-memory state and
never suspends.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from bot_core.world_state import EntitySnapshot, WorldStateStore
from env.schema import CombatConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

logger = logging.getLogger(__name__)


class ThreatLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


HOSTILE_TYPES: FrozenSet[str] = frozenset(
    {
        "minecraft:zombie",
        "minecraft:skeleton",
        "minecraft:creeper",
        "minecraft:spider",
        "minecraft:enderman",
        "minecraft:blaze",
        "minecraft:ghast",
        "minecraft:witch",
        "minecraft:ender_dragon",
        "minecraft:wither",
        "minecraft:elder_guardian",
        "minecraft:guardian",
        "minecraft:shulker",
        "minecraft:phantom",
    }
)

BASE_THREAT: Dict[str, float] = {
    "minecraft:ender_dragon": 100,
    "minecraft:wither": 90,
    "minecraft:elder_guardian": 80,
    "minecraft:blaze": 70,
    "minecraft:creeper": 60,
    "minecraft:enderman": 50,
    "minecraft:skeleton": 40,
    "minecraft:zombie": 30,
    "minecraft:spider": 25,
    "minecraft:phantom": 45,
}
DEFAULT_BASE_THREAT = 20.0

HIGH_THREAT_SPAWN_SCORE = 50


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (22.5 -> 23)."""
    return int(math.floor(value + 0.5))


def distance_factor(distance: float, max_range: float) -> float:
    if max_range <= 0:
        return 0.1
    return max(0.1, 1.0 - distance / max_range)


def health_factor(health: float, max_health: float) -> float:
    """1.0 at full health, up to 2.0 at zero health."""
    if max_health <= 0:
        ratio = 0.0
    else:
        ratio = min(1.0, max(0.0, health / max_health))
    return 1.0 + (1.0 - ratio)


@dataclass
class ThreatEntry:
    entity: EntitySnapshot
    distance: float
    score: int


@dataclass
class ThreatSnapshot:
    """One assessment tick: hostile entities in range, highest score first."""

    entries: List[ThreatEntry] = field(default_factory=list)
    level: ThreatLevel = ThreatLevel.NONE
    timestamp: float = 0.0

    @property
    def max_score(self) -> int:
        return self.entries[0].score if self.entries else 0

    @property
    def primary(self) -> Optional[ThreatEntry]:
        return self.entries[0] if self.entries else None


LevelListener = Callable[[ThreatLevel, ThreatLevel, Optional[EntitySnapshot]], None]
HighThreatListener = Callable[[EntitySnapshot, int], None]


class ThreatAssessor:
    def __init__(
        self,
        world: WorldStateStore,
        config: Optional[CombatConfig] = None,
        *,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        hostile_types: FrozenSet[str] = HOSTILE_TYPES,
        base_threat: Optional[Dict[str, float]] = None,
    ) -> None:
        self._world = world
        self._config = config or CombatConfig()
        self._bus = bus
        self._clock = clock
        self._hostile_types = hostile_types
        self._base_threat = dict(BASE_THREAT if base_threat is None else base_threat)

        self.level: ThreatLevel = ThreatLevel.NONE
        self.last_snapshot: ThreatSnapshot = ThreatSnapshot(timestamp=clock())

        self._level_listeners: List[LevelListener] = []
        self._high_threat_listeners: List[HighThreatListener] = []

    @staticmethod
    def _build_ladder(
        thresholds: Sequence[Tuple[str, float]],
    ) -> List[Tuple[ThreatLevel, float]]:
        ladder = [(ThreatLevel(name), float(minimum)) for name, minimum in thresholds]
        ladder.sort(key=lambda item: item[1], reverse=True)
        return ladder

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_level_listener(self, fn: LevelListener) -> None:
        self._level_listeners.append(fn)

    def add_high_threat_listener(self, fn: HighThreatListener) -> None:
        self._high_threat_listeners.append(fn)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def classify_hostility(self, entity_type: Optional[str]) -> bool:
        return bool(entity_type) and entity_type in self._hostile_types

    def base_threat(self, entity_type: str) -> float:
        return self._base_threat.get(entity_type, DEFAULT_BASE_THREAT)

    def score_entity(self, entity: EntitySnapshot, distance: Optional[float] = None) -> int:
        """Integer threat score for one entity against the bot's current vitals."""
        if distance is None:
            distance = self._world.distance_to(entity.position)
        score = (
            self.base_threat(entity.type)
            * distance_factor(distance, self._config.max_combat_range)
            * health_factor(self._world.health, self._world.max_health)
        )
        return max(0, round_half_up(score))

    def level_from_score(self, score: float) -> ThreatLevel:
        # Thresholds can change at runtime through config_updated.
        for level, minimum in self._build_ladder(self._config.threat_thresholds):
            if score >= minimum:
                return level
        return ThreatLevel.NONE

    # ------------------------------------------------------------------
    # Assessment
    # ------------------------------------------------------------------

    def hostiles_in_range(self) -> List[ThreatEntry]:
        entries: List[ThreatEntry] = []
        for entity in list(self._world.entities.values()):
            if not self.classify_hostility(entity.type):
                continue
            distance = self._world.distance_to(entity.position)
            if distance > self._config.max_combat_range:
                continue
            entries.append(
                ThreatEntry(entity=entity, distance=distance, score=self.score_entity(entity, distance))
            )
        entries.sort(key=lambda e: e.score, reverse=True)
        return entries

    def assess(self) -> ThreatSnapshot:
        """Pure snapshot of current threats; does not touch `level`."""
        entries = self.hostiles_in_range()
        level = self.level_from_score(entries[0].score) if entries else ThreatLevel.NONE
        return ThreatSnapshot(entries=entries, level=level, timestamp=self._clock())

    def tick(self) -> ThreatSnapshot:
        """Assess, store the snapshot and notify only if the level changed."""
        snapshot = self.assess()
        self.last_snapshot = snapshot

        if snapshot.level != self.level:
            old = self.level
            self.level = snapshot.level
            primary = snapshot.primary.entity if snapshot.primary else None
            logger.debug("Threat level changed: %s -> %s", old.value, snapshot.level.value)
            log_event(
                bus=self._bus,
                module="combat.threat",
                event_type=EventType.THREAT_LEVEL_CHANGED,
                message=f"{old.value} -> {snapshot.level.value}",
                payload={
                    "old": old.value,
                    "new": snapshot.level.value,
                    "max_score": snapshot.max_score,
                    "entity": primary.type if primary else None,
                },
            )
            for fn in list(self._level_listeners):
                try:
                    fn(old, snapshot.level, primary)
                except Exception:
                    logger.exception("Threat level listener %r failed", fn)

        return snapshot

    def evaluate_new_threat(self, entity: EntitySnapshot, *, in_combat: bool = False) -> bool:
        """Flag a freshly spawned hostile scoring above 50 while not fighting."""
        if not self.classify_hostility(entity.type):
            return False
        score = self.score_entity(entity)
        if score <= HIGH_THREAT_SPAWN_SCORE or in_combat:
            return False
        logger.info("High threat entity detected: %s (threat: %d)", entity.type, score)
        for fn in list(self._high_threat_listeners):
            try:
                fn(entity, score)
            except Exception:
                logger.exception("High threat listener %r failed", fn)
        return True
