# tests/test_bot_runtime.py
"""
DragonBot end to end on the simulated transport, plus the runtime helpers
(loop error containment, fire-and-forget notifications, collaborators).
"""

from __future__ import annotations

import asyncio
import warnings
from pathlib import Path
from typing import Any, List

from bot_core.net.simulated import SimulatedTransport
from bot_core.testing.fakes import FakeClock, FakeSleep, FakeTransport
from env.schema import BotConfig, LLMConfig
from mission.state import MissionPhase
from monitoring.bus import EventBus
from monitoring.events import EventType
import runtime.bot as bot_module
from runtime.bot import DragonBot
from runtime.collaborators import (
    InMemoryLearning,
    fire_and_forget,
    gameplay_action,
    wait_for_background_notifications,
)
from runtime.error_handling import run_tick_safely
from tests.fakes.fake_runtime import FakeGameplay, capture_events


def fast_config() -> BotConfig:
    config = BotConfig()
    config.runtime.simulated_join_delay = 0.01
    config.runtime.threat_tick_interval = 0.01
    config.runtime.combat_tick_interval = 0.01
    return config


def test_simulated_run_reaches_preparation():
    bus = EventBus()
    events = capture_events(bus)
    bot = DragonBot.from_config(fast_config(), bus=bus)
    transport = bot.ctx.transport
    assert isinstance(transport, SimulatedTransport)

    asyncio.run(bot.run_for(0.2))

    assert transport.sent_chat[:2] == [
        "🤖 DragonSlayerBot connected! Ready to hunt the Ender Dragon!",
        "🐉 MISSION START! Time to defeat the Ender Dragon! Let me research our strategy...",
    ]
    assert bot.mission.phase is MissionPhase.PREPARATION
    assert not bot.running
    assert not bot.world.connected
    assert bot.world.player_count == 1

    state = bot.debug_state()
    assert set(state) >= {"running", "world", "mission", "combat", "events", "errors", "learning"}
    assert state["running"] is False
    assert state["errors"] == 0
    assert state["combat"]["state"] == "IDLE"
    assert state["events"]["total_events"] >= 3

    phases = [e.payload["new"] for e in events if e.event_type == EventType.MISSION_PHASE_CHANGE]
    assert phases[:2] == ["research", "preparation"]


def test_start_and_stop_are_idempotent():
    bot = DragonBot.from_config(fast_config())

    async def scenario() -> None:
        await bot.start()
        await bot.start()
        assert bot.running
        await bot.stop()
        await bot.stop()

    asyncio.run(scenario())

    assert not bot.running
    assert bot.dispatcher.event_count("connected") == 1
    assert bot.dispatcher.event_count("disconnected") == 1


def test_from_config_without_model_has_no_provider():
    config = BotConfig(llm=LLMConfig(model_path=None))
    bot = DragonBot.from_config(config)

    assert bot.ctx.strategy_provider is None
    assert isinstance(bot.ctx.learning, InMemoryLearning)
    assert bot.debug_state()["learning"] == {"combats": 0, "navigations": 0, "missions": 0}


def test_debug_state_omits_learning_for_custom_sinks():
    class Sink:
        def learn_from_combat(self, outcome: Any) -> None: ...
        def learn_from_navigation(self, record: Any) -> None: ...
        def learn_from_mission_completion(self, data: Any) -> None: ...

    bot = DragonBot(fast_config(), learning=Sink())
    assert "learning" not in bot.debug_state()


def test_run_tick_safely_contains_failures():
    bus = EventBus()
    events = capture_events(bus)

    def broken() -> None:
        raise ValueError("bad tick")

    async def fine() -> None:
        return None

    assert asyncio.run(run_tick_safely("combat", broken, bus)) is False
    assert asyncio.run(run_tick_safely("threat", fine, bus)) is True
    assert asyncio.run(run_tick_safely("threat", lambda: None)) is True

    assert len(events) == 1
    assert events[0].payload["subtype"] == "TICK_EXCEPTION"
    assert events[0].payload["loop"] == "combat"
    assert "bad tick" in events[0].payload["exception_repr"]


def test_fire_and_forget_runs_sync_and_async_notifications():
    seen: List[Any] = []

    async def notify(value: Any) -> None:
        await asyncio.sleep(0)
        seen.append(("async", value))

    async def failing(_: Any) -> None:
        raise RuntimeError("sink down")

    def broken(_: Any) -> None:
        raise RuntimeError("sync sink down")

    async def scenario() -> None:
        fire_and_forget(seen.append, "sync")
        fire_and_forget(notify, 1)
        fire_and_forget(failing, 2)
        fire_and_forget(broken, 3)
        assert seen == ["sync"]
        await wait_for_background_notifications()

    asyncio.run(scenario())

    assert seen == ["sync", ("async", 1)]


def test_fire_and_forget_outside_loop_drops_coroutine():
    calls: List[int] = []

    async def notify() -> None:
        calls.append(1)

    fire_and_forget(notify)

    assert calls == []


def test_gameplay_action_lookup():
    gameplay = FakeGameplay()

    assert gameplay_action(None, "begin_resource_gathering") is None
    assert gameplay_action(gameplay, "dig_to_bedrock") is None

    action = gameplay_action(gameplay, "enter_the_end")
    asyncio.run(action())
    assert gameplay.calls == ["enter_the_end"]


def test_in_memory_learning_is_capped():
    learning = InMemoryLearning(limit=2)
    for i in range(3):
        learning.learn_from_combat({"n": i})
    learning.learn_from_navigation({"ok": True})

    assert [c["n"] for c in learning.combats] == [1, 2]
    assert learning.get_stats() == {"combats": 2, "navigations": 1, "missions": 0}


def test_sources_compile_without_escape_warnings():
    src_root = Path(bot_module.__file__).resolve().parents[1]
    sources = sorted(src_root.rglob("*.py"))
    assert sources

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        for path in sources:
            compile(path.read_text(encoding="utf-8"), str(path), "exec")


def test_tick_interval_changes_apply_to_running_loops():
    clock = FakeClock()
    sleep = FakeSleep(clock)
    bot = DragonBot(BotConfig(), transport=FakeTransport(), bus=EventBus(), clock=clock, sleep=sleep)

    async def scenario() -> None:
        await bot.start()
        await asyncio.sleep(0)
        bot.config.runtime.threat_tick_interval = 0.5
        bot.config.runtime.combat_tick_interval = 0.25
        for _ in range(3):
            await asyncio.sleep(0)
        await bot.stop()

    asyncio.run(scenario())

    assert sorted(sleep.calls[:2]) == [0.1, 1.0]
    later = sleep.calls[2:]
    assert 0.5 in later and 0.25 in later
    assert 1.0 not in later and 0.1 not in later
