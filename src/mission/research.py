# research prompts and best-effort parsing of the strategy extraction reply
# src/mission/research.py
"""
Research parsing.

The extraction reply is expected as prefixed lines:

    ITEMS: item1, item2, item3...
    NEXT_GOAL: what to do immediately
    STRATEGY: brief strategy summary

Nothing guarantees that shape, so `parse_research_reply` returns a tagged
result: ResearchParsed when at least one prefixed line was found, else
ResearchFallback carrying the reason. Fields a reply leaves out are filled
from BASIC_STRATEGY by `notes_from_parse`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from .state import ResearchNotes


RESEARCH_PROMPT = """As an expert Minecraft player planning to defeat the Ender Dragon, provide a comprehensive strategy including:

1. Essential items needed (weapons, armor, food, building blocks, etc.)
2. Step-by-step preparation phases
3. Nether exploration requirements (blaze rods, ender pearls)
4. How to find and activate the End portal
5. Ender Dragon fight tactics and phases
6. Common mistakes to avoid
7. Estimated timeline for completion

Be specific about quantities and crafting recipes. This is for Minecraft Bedrock Edition."""


def build_extraction_prompt(research: str) -> str:
    return f"""Based on this Ender Dragon research, extract:
1. A prioritized list of items needed
2. The immediate next goal/action
3. A concise strategy summary (under 200 words)

Research: {research}

Format as:
ITEMS: item1, item2, item3...
NEXT_GOAL: what to do immediately
STRATEGY: brief strategy summary"""


BASIC_ITEMS: List[str] = [
    "Diamond sword",
    "Diamond pickaxe",
    "Diamond armor set",
    "Bow and arrows",
    "Ender pearls (12+)",
    "Blaze rods (7+)",
    "Food (steak/bread)",
    "Building blocks",
    "Crafting table",
]
BASIC_GOAL = "Mine diamonds and gather basic resources"
BASIC_SUMMARY = (
    "Gather diamonds, create equipment, explore Nether for blaze rods and "
    "ender pearls, find stronghold, defeat dragon"
)


def basic_strategy() -> ResearchNotes:
    """The static strategy used whenever research cannot be completed."""
    return ResearchNotes(
        strategy_summary=BASIC_SUMMARY,
        required_items=list(BASIC_ITEMS),
        current_goal=BASIC_GOAL,
    )


@dataclass
class ResearchParsed:
    items: List[str] = field(default_factory=list)
    next_goal: Optional[str] = None
    strategy_summary: Optional[str] = None


@dataclass
class ResearchFallback:
    reason: str


ResearchResult = Union[ResearchParsed, ResearchFallback]


def parse_research_reply(text: Optional[str]) -> ResearchResult:
    if not text or not text.strip():
        return ResearchFallback(reason="empty reply")

    parsed = ResearchParsed()
    found = False
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("ITEMS:"):
            body = line[len("ITEMS:"):]
            parsed.items = [item.strip() for item in body.split(",") if item.strip()]
            found = True
        elif line.startswith("NEXT_GOAL:"):
            parsed.next_goal = line[len("NEXT_GOAL:"):].strip() or None
            found = True
        elif line.startswith("STRATEGY:"):
            parsed.strategy_summary = line[len("STRATEGY:"):].strip() or None
            found = True

    if not found:
        return ResearchFallback(reason="no ITEMS/NEXT_GOAL/STRATEGY lines")
    return parsed


def notes_from_parse(result: ResearchResult, knowledge_text: str = "") -> ResearchNotes:
    notes = basic_strategy()
    notes.knowledge_text = knowledge_text
    if isinstance(result, ResearchFallback):
        return notes
    if result.items:
        notes.required_items = list(result.items)
    if result.next_goal:
        notes.current_goal = result.next_goal
    if result.strategy_summary:
        notes.strategy_summary = result.strategy_summary
    return notes
