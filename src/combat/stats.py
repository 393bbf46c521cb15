# src/combat/stats.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class CombatResult(str, Enum):
    """How a combat session ended."""

    TARGET_DEFEATED = "TARGET_DEFEATED"
    TARGET_LOST = "TARGET_LOST"
    RETREAT = "RETREAT"
    SMART_RETREAT = "SMART_RETREAT"
    ABORTED = "ABORTED"


ESCAPE_RESULTS = frozenset({CombatResult.RETREAT, CombatResult.SMART_RETREAT})


@dataclass
class CombatStats:
    """
    Aggregate counters that outlive individual sessions.

    Invariant after every record(): total_fights == wins + losses + escapes.
    """

    total_fights: int = 0
    wins: int = 0
    losses: int = 0
    escapes: int = 0
    damage_dealt: float = 0.0
    damage_taken: float = 0.0
    total_combat_time: float = 0.0
    average_fight_duration: float = 0.0
    kill_streak: int = 0
    best_kill_streak: int = 0

    def record(self, result: CombatResult, duration: float) -> None:
        self.total_fights += 1
        self.total_combat_time += duration
        self.average_fight_duration = self.total_combat_time / self.total_fights

        if result is CombatResult.TARGET_DEFEATED:
            self.wins += 1
            self.kill_streak += 1
            self.best_kill_streak = max(self.best_kill_streak, self.kill_streak)
        elif result in ESCAPE_RESULTS:
            self.escapes += 1
            self.kill_streak = 0
        else:
            self.losses += 1
            self.kill_streak = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CombatRecord:
    """One entry of the capped combat history."""

    target_type: str
    strategy: str
    start_time: float
    bot_health_start: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    result: Optional[CombatResult] = None
    bot_health_end: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["result"] = self.result.value if self.result else None
        return data


@dataclass
class CombatOutcome:
    """Payload handed to combat-ended listeners and the learning sink."""

    result: CombatResult
    duration: float
    target_type: str
    target_id: Any
    strategy: str
    stats: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["result"] = self.result.value
        return data
