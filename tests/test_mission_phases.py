# tests/test_mission_phases.py
"""
Tests for mission.phases.MissionPhaseStateMachine.

Covers:
- mission start (connect with players / first join) and research paths
- research fallbacks never block preparation
- phase advances, pause / resume, dragon sighting
- victory celebration pacing and the restart cycle
- adaptive strategy updates and status lines
"""

from __future__ import annotations

import asyncio
from typing import Any, List

from combat.stats import CombatOutcome, CombatResult
from env.schema import BotConfig
from mission.phases import MissionPhaseStateMachine
from mission.research import BASIC_GOAL, BASIC_ITEMS
from mission.state import AdaptiveStrategy, MissionPhase
from monitoring.events import EventType
from tests.fakes.fake_runtime import (
    FakeGameplay,
    FakeProvider,
    GatedProvider,
    capture_events,
    join,
    log_subtypes,
    make_context,
)


MISSION_START = "🐉 MISSION START! Time to defeat the Ender Dragon! Let me research our strategy..."
RESEARCHING = "📚 Researching Ender Dragon tactics... Give me a moment!"
SNAG = "🤔 Research hit a snag, but I know the basics! Let's start preparing!"
RESEARCH_DONE = "🧠 Research complete! I now have a strategy to defeat the dragon!"

EXTRACTION = """ITEMS: Iron sword, Bow, Ender pearls
NEXT_GOAL: Find iron ore
STRATEGY: Gear up, then rush the stronghold"""


def make_mission(config: BotConfig = None, **kwargs: Any):
    ctx = make_context(config, **kwargs)
    events = capture_events(ctx.bus)
    mission = MissionPhaseStateMachine(ctx, wall_clock=lambda: 1234.0)
    return ctx, mission, events


def started_mission(**kwargs: Any):
    """Mission that has run research (basic strategy) and sits in preparation."""
    ctx, mission, events = make_mission(**kwargs)
    join(ctx)
    asyncio.run(mission.handle_player_join("Steve"))
    assert mission.phase is MissionPhase.PREPARATION
    return ctx, mission, events


def test_connect_without_players_waits():
    ctx, mission, _ = make_mission()

    asyncio.run(mission.on_connect())

    assert mission.phase is MissionPhase.WAITING
    assert not mission.state.started
    assert ctx.transport.chats == ["🤖 DragonSlayerBot connected! Ready to hunt the Ender Dragon!"]


def test_connect_with_players_starts_mission():
    ctx, mission, _ = make_mission()
    join(ctx)

    asyncio.run(mission.on_connect())

    assert mission.state.started
    assert ctx.transport.chats[0] == MISSION_START


def test_research_without_provider_uses_basic_strategy_silently():
    ctx, mission, events = started_mission()

    assert ctx.transport.chats == [
        MISSION_START,
        RESEARCHING,
        f"🎯 Phase 1: Preparation! Goal: {BASIC_GOAL}",
    ]
    assert mission.state.research.required_items == BASIC_ITEMS
    assert mission.state.active
    subtypes = log_subtypes(events)
    assert subtypes.count("COLLABORATOR_UNAVAILABLE") == 2
    assert [e.payload["action"] for e in events if e.payload.get("subtype")] == [
        "research",
        "begin_resource_gathering",
    ]


def test_failing_provider_still_reaches_preparation():
    provider = FakeProvider([RuntimeError("model offline")])
    ctx, mission, events = started_mission(provider=provider)

    assert ctx.transport.chats == [
        MISSION_START,
        RESEARCHING,
        SNAG,
        f"🎯 Phase 1: Preparation! Goal: {BASIC_GOAL}",
    ]
    assert mission.state.research.current_goal == BASIC_GOAL
    failures = [e for e in events if e.payload.get("subtype") == "LLM_FAILURE"]
    assert len(failures) == 1
    assert failures[0].payload["llm_role"] == "research"


def test_successful_research_applies_extracted_strategy():
    provider = FakeProvider(["Long dragon knowledge...", EXTRACTION])
    gameplay = FakeGameplay()
    ctx, mission, _ = started_mission(provider=provider, gameplay=gameplay)

    research = mission.state.research
    assert research.required_items == ["Iron sword", "Bow", "Ender pearls"]
    assert research.current_goal == "Find iron ore"
    assert research.strategy_summary == "Gear up, then rush the stronghold"
    assert research.knowledge_text == "Long dragon knowledge..."

    assert RESEARCH_DONE in ctx.transport.chats
    assert ctx.transport.chats[-1] == "🎯 Phase 1: Preparation! Goal: Find iron ore"
    assert [entry.message for entry in mission.progress_log][:2] == [
        "Mission initiated - Beginning research phase",
        "Research phase completed",
    ]

    # First call carries the mission system prompt, the extraction does not.
    research_prompt, system_prompt = provider.calls[0]
    assert "Current Phase: research" in system_prompt
    assert "Long dragon knowledge..." in provider.calls[1][0]
    assert provider.calls[1][1] is None

    assert gameplay.calls == ["begin_resource_gathering"]
    assert mission.state.current_task == "begin_resource_gathering"


def test_unparseable_extraction_keeps_basic_fields():
    provider = FakeProvider(["knowledge", "I cannot format that, sorry."])
    ctx, mission, _ = started_mission(provider=provider)

    assert mission.state.research.required_items == BASIC_ITEMS
    assert mission.state.research.knowledge_text == "knowledge"
    assert RESEARCH_DONE in ctx.transport.chats


def test_failed_extraction_call_still_completes_research():
    provider = FakeProvider(["knowledge", ConnectionError("dropped")])
    ctx, mission, events = started_mission(provider=provider)

    assert RESEARCH_DONE in ctx.transport.chats
    assert SNAG not in ctx.transport.chats
    assert "LLM_FAILURE" in log_subtypes(events)


def test_mission_starts_only_once():
    ctx, mission, _ = started_mission()
    assert asyncio.run(mission.start_mission()) is False
    assert ctx.transport.chats.count(MISSION_START) == 1


def test_advance_runs_phase_actions_and_rejects_unknown_phases():
    gameplay = FakeGameplay()
    _, mission, events = started_mission(gameplay=gameplay)

    assert asyncio.run(mission.advance_mission_phase("nether")) is True
    assert asyncio.run(mission.advance_mission_phase(MissionPhase.STRONGHOLD)) is True
    assert asyncio.run(mission.advance_mission_phase("moon")) is False

    assert mission.phase is MissionPhase.STRONGHOLD
    assert gameplay.calls == [
        "begin_resource_gathering",
        "start_nether_expedition",
        "search_for_stronghold",
    ]
    changes = [e.payload for e in events if e.event_type == EventType.MISSION_PHASE_CHANGE]
    assert [(c["old"], c["new"]) for c in changes][-2:] == [
        ("preparation", "nether"),
        ("nether", "stronghold"),
    ]


def test_failing_gameplay_action_does_not_block_phase():
    gameplay = FakeGameplay(fail=True)
    _, mission, _ = started_mission(gameplay=gameplay)

    assert asyncio.run(mission.advance_mission_phase("end_fight")) is True
    assert mission.phase is MissionPhase.END_FIGHT


def test_pause_blocks_advances_until_resumed():
    ctx, mission, _ = started_mission()
    paused: List[Any] = []
    ctx.dispatcher.register_handler("mission_paused", paused.append)

    async def scenario() -> None:
        assert await mission.pause_mission() is True
        assert await mission.pause_mission() is False
        await ctx.dispatcher.drain()

    asyncio.run(scenario())

    assert paused[0]["paused"] is True
    assert paused[0]["current_phase"] == "preparation"
    assert asyncio.run(mission.advance_mission_phase("nether")) is False
    assert asyncio.run(mission.handle_ender_dragon_spotted()) is False
    assert mission.phase is MissionPhase.PREPARATION

    assert asyncio.run(mission.resume_mission()) is True
    assert ctx.transport.chats[-1] == "▶️ Mission resumed! Current phase: preparation"
    assert asyncio.run(mission.resume_mission()) is False
    assert asyncio.run(mission.advance_mission_phase("nether")) is True


def test_pause_requires_active_mission():
    _, mission, _ = make_mission()
    assert asyncio.run(mission.pause_mission()) is False


def test_dragon_sighting_enters_end_fight():
    ctx, mission, _ = started_mission()

    assert asyncio.run(mission.handle_ender_dragon_spotted()) is True

    assert mission.phase is MissionPhase.END_FIGHT
    assert mission.state.current_task == "engaging_dragon"
    assert ctx.transport.chats[-1] == "🐉 TARGET ACQUIRED! Engaging the Ender Dragon!"
    assert mission.progress_log.newest().message == "Ender Dragon spotted - Final battle begins!"


def dragon_outcome(result: CombatResult = CombatResult.TARGET_DEFEATED) -> CombatOutcome:
    return CombatOutcome(
        result=result,
        duration=42.0,
        target_type="minecraft:ender_dragon",
        target_id=99,
        strategy="AGGRESSIVE",
        stats={},
    )


def test_dragon_defeat_celebrates_and_invites_restart():
    ctx, mission, _ = started_mission()
    asyncio.run(mission.handle_ender_dragon_spotted())

    async def scenario() -> None:
        await mission.handle_combat_ended(dragon_outcome())
        await mission.wait_scheduled()

    asyncio.run(scenario())

    assert mission.phase is MissionPhase.VICTORY
    assert mission.state.current_task == "celebrating"
    assert ctx.transport.chats[-4:] == [
        "🏆 THE ENDER DRAGON IS DEFEATED! MISSION ACCOMPLISHED!",
        "🎉 Victory! The realm is safe! XP and dragon egg claimed!",
        "🐉➡️💀 From zero to dragon slayer! What an epic journey!",
        '🚀 Ready for another adventure? Type "!restart" for a new mission!',
    ]
    assert ctx.sleep.calls[-3:] == [2.0, 3.0, 5.0]
    assert len(ctx.learning.missions) == 1
    assert ctx.learning.missions[0]["research"]["current_goal"] == BASIC_GOAL


def test_non_dragon_or_lost_fights_do_not_end_mission():
    _, mission, _ = started_mission()
    asyncio.run(mission.handle_ender_dragon_spotted())

    asyncio.run(mission.handle_combat_ended(dragon_outcome(CombatResult.RETREAT)))
    zombie = dragon_outcome()
    zombie.target_type = "minecraft:zombie"
    asyncio.run(mission.handle_combat_ended(zombie))

    assert mission.phase is MissionPhase.END_FIGHT


def test_restart_resets_and_starts_again_after_delay():
    ctx, mission, events = started_mission()

    async def scenario() -> None:
        await mission.restart_mission()
        assert mission.phase is MissionPhase.WAITING
        assert not mission.state.started
        assert len(mission.progress_log) == 0
        await mission.wait_scheduled()

    asyncio.run(scenario())

    assert "🔄 Restarting dragon mission! Back to the beginning!" in ctx.transport.chats
    assert ctx.transport.chats.count(MISSION_START) == 2
    assert mission.phase is MissionPhase.PREPARATION
    assert 2.0 in ctx.sleep.calls
    restarts = [
        e for e in events
        if e.event_type == EventType.MISSION_PHASE_CHANGE and e.payload.get("restart")
    ]
    assert len(restarts) == 1


def test_restart_then_join_starts_mission_once():
    ctx, mission, _ = started_mission()

    async def scenario() -> None:
        await mission.restart_mission()
        await mission.handle_player_join("Alex")
        await mission.wait_scheduled()

    asyncio.run(scenario())

    restart_index = ctx.transport.chats.index("🔄 Restarting dragon mission! Back to the beginning!")
    after = ctx.transport.chats[restart_index + 1:]
    assert after == [
        MISSION_START,
        RESEARCHING,
        f"🎯 Phase 1: Preparation! Goal: {BASIC_GOAL}",
    ]


def test_restart_during_research_discards_stale_result():
    provider = GatedProvider(["knowledge", EXTRACTION])
    ctx, mission, _ = make_mission(provider=provider)
    join(ctx)

    async def scenario() -> None:
        task = asyncio.ensure_future(mission.start_mission())
        await asyncio.sleep(0)
        await mission.restart_mission()
        mission.cancel_scheduled()
        provider.gate.set()
        await task

    asyncio.run(scenario())

    assert mission.phase is MissionPhase.WAITING
    assert mission.state.research.current_goal == ""
    assert RESEARCH_DONE not in ctx.transport.chats
    assert not any(chat.startswith("🎯 Phase 1") for chat in ctx.transport.chats)


def test_victory_celebration_stops_after_restart():
    ctx, mission, _ = started_mission()

    async def scenario() -> None:
        celebration = asyncio.ensure_future(mission.advance_mission_phase("victory"))
        await asyncio.sleep(0)
        await mission.restart_mission()
        mission.cancel_scheduled()
        await celebration

    asyncio.run(scenario())

    assert "🎉 Victory! The realm is safe! XP and dragon egg claimed!" not in ctx.transport.chats
    assert ctx.learning.missions == []


def test_player_join_during_active_mission_welcomes_and_briefs():
    ctx, mission, _ = started_mission()
    join(ctx, 2, "Alex")

    asyncio.run(mission.handle_player_join("Alex"))

    assert ctx.transport.chats[-3:] == [
        "Welcome Alex! Join my quest to defeat the Ender Dragon! 🐉⚔️",
        "Alex: I'm on an epic quest to defeat the Ender Dragon! 🐉",
        "Current phase: preparation | Join the adventure! 🗡️",
    ]
    assert ctx.sleep.calls[-2:] == [1.0, 2.0]


def test_last_player_leaving_goes_solo():
    ctx, mission, _ = started_mission()
    ctx.world.apply_player_leave({"runtime_id": 1})

    asyncio.run(mission.handle_player_leave("Steve"))

    assert ctx.transport.chats[-1] == "🤖 Continuing the dragon mission solo! The quest must go on!"


def test_update_strategy_rewrites_goal_and_prompt():
    ctx, mission, _ = started_mission()

    assert mission.update_strategy(
        {"dragon_strategy": "aggressive_rush", "preparation": "extensive"}
    ) is True

    research = mission.state.research
    assert research.strategy_summary == "aggressive_rush approach with extensive preparation"
    assert research.current_goal == "Maximum preparation - backup gear, potions, and safety items"
    assert "aggressive_rush" in mission.system_prompt
    assert ctx.system_prompt == mission.system_prompt
    assert mission.get_adaptive_strategy().risk_tolerance == "calculated"

    assert mission.update_strategy(AdaptiveStrategy(preparation="unheard_of")) is True
    assert research.current_goal == "Standard resource gathering and preparation"

    assert mission.update_strategy("be bold") is False


def test_status_lines():
    ctx, mission, _ = make_mission()

    assert mission.get_status_line() == "🤖 Status: waiting | Goal: Dragon hunt!"
    assert mission.get_mission_progress() == "🐉 Mission: 0/6 phases complete | Current: waiting"
    assert mission.get_strategy_line() == (
        "🧠 Strategy: Gather resources, explore Nether, find stronghold, defeat dragon!..."
    )
    assert mission.get_adaptive_strategy() == AdaptiveStrategy()

    join(ctx)
    asyncio.run(mission.start_mission())

    assert mission.get_status_line() == f"🤖 Status: preparation | Goal: {BASIC_GOAL}"
    assert mission.get_mission_progress() == "🐉 Mission: 2/6 phases complete | Current: preparation"

    status = mission.get_current_status()
    assert status["mission_active"] is True
    assert status["current_phase"] == "preparation"
    assert status["progress_count"] == len(mission.progress_log)
    assert status["last_progress"]["timestamp"] == 1234.0


def test_progress_log_is_capped():
    config = BotConfig()
    config.mission.progress_log_limit = 3
    _, mission, events = make_mission(config)

    for i in range(5):
        mission.log_progress(f"step {i}")

    assert [e.message for e in mission.progress_log] == ["step 2", "step 3", "step 4"]
    assert len([e for e in events if e.event_type == EventType.MISSION_PROGRESS]) == 5


def test_system_prompt_tracks_phase():
    ctx, mission, _ = make_mission()
    assert "Mission Status: WAITING FOR PLAYERS" in mission.system_prompt
    assert ctx.system_prompt == mission.system_prompt

    join(ctx)
    asyncio.run(mission.start_mission())
    assert "Mission Status: ACTIVE" in mission.system_prompt
    assert "Current Phase: preparation" in mission.system_prompt
