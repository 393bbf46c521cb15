# mission state records
# src/mission/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MissionPhase(str, Enum):
    WAITING = "waiting"
    RESEARCH = "research"
    PREPARATION = "preparation"
    NETHER = "nether"
    STRONGHOLD = "stronghold"
    END_FIGHT = "end_fight"
    VICTORY = "victory"


# Progress is reported against these; `waiting` is not a mission phase.
MISSION_PHASES: List[MissionPhase] = [
    MissionPhase.RESEARCH,
    MissionPhase.PREPARATION,
    MissionPhase.NETHER,
    MissionPhase.STRONGHOLD,
    MissionPhase.END_FIGHT,
    MissionPhase.VICTORY,
]


@dataclass
class ResearchNotes:
    knowledge_text: str = ""
    strategy_summary: str = ""
    required_items: List[str] = field(default_factory=list)
    current_goal: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "knowledge_chars": len(self.knowledge_text),
            "strategy_summary": self.strategy_summary,
            "required_items": list(self.required_items),
            "current_goal": self.current_goal,
        }


@dataclass
class ProgressEntry:
    timestamp: float
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "message": self.message}


@dataclass
class AdaptiveStrategy:
    """Coarse strategy labels pushed in from outside the mission machine."""

    dragon_strategy: str = "balanced_tactical"
    preparation: str = "comprehensive"
    risk_tolerance: str = "calculated"
    collaboration: str = "coordinated_assault"

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "AdaptiveStrategy":
        default = cls()
        return cls(
            dragon_strategy=str(data.get("dragon_strategy") or default.dragon_strategy),
            preparation=str(data.get("preparation") or default.preparation),
            risk_tolerance=str(data.get("risk_tolerance") or default.risk_tolerance),
            collaboration=str(data.get("collaboration") or default.collaboration),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "dragon_strategy": self.dragon_strategy,
            "preparation": self.preparation,
            "risk_tolerance": self.risk_tolerance,
            "collaboration": self.collaboration,
        }


@dataclass
class MissionState:
    """Single owned record; mutated only by MissionPhaseStateMachine."""

    phase: MissionPhase = MissionPhase.WAITING
    active: bool = False
    started: bool = False
    paused: bool = False
    current_task: Optional[str] = None
    research: ResearchNotes = field(default_factory=ResearchNotes)
    adaptive_strategy: Optional[AdaptiveStrategy] = None
