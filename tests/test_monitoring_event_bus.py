#tests/test_monitoring_event_bus.py
"""
Tests for monitoring.bus.EventBus

Covers:
- publish/subscribe ordering for monitoring events
- unsubscribe (including unknown subscribers)
- control command fan-out
- failing subscribers are isolated
- publishing from the dashboard thread and the bot loop at once
"""

from __future__ import annotations

import threading
from typing import List

from monitoring.bus import EventBus
from monitoring.events import ControlCommand, ControlCommandType, EventType, MonitoringEvent


def threat_event(score: float, level: str = "LOW") -> MonitoringEvent:
    return MonitoringEvent(
        ts=score,
        module="combat.threat",
        event_type=EventType.THREAT_LEVEL_CHANGED,
        message=f"Threat level {level}",
        payload={"level": level, "score": score},
        correlation_id=None,
    )


def test_subscribers_see_events_in_publish_order():
    bus = EventBus()
    first: List[float] = []
    second: List[str] = []

    bus.subscribe(lambda evt: first.append(evt.payload["score"]))
    bus.subscribe(lambda evt: second.append(evt.payload["level"]))

    for score, level in [(23, "LOW"), (54, "MEDIUM"), (81, "CRITICAL")]:
        bus.publish(threat_event(score, level))

    assert first == [23, 54, 81]
    assert second == ["LOW", "MEDIUM", "CRITICAL"]


def test_unsubscribe_stops_delivery_and_tolerates_unknown():
    bus = EventBus()
    received: List[MonitoringEvent] = []

    def subscriber(evt: MonitoringEvent) -> None:
        received.append(evt)

    bus.subscribe(subscriber)
    bus.unsubscribe(subscriber)
    bus.unsubscribe(subscriber)

    bus.publish(threat_event(10))

    assert received == []


def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received: List[MonitoringEvent] = []

    def broken(evt: MonitoringEvent) -> None:
        raise RuntimeError("dashboard crashed")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.publish(threat_event(60, "HIGH"))

    assert len(received) == 1


def test_commands_reach_every_handler():
    bus = EventBus()
    seen: List[ControlCommandType] = []

    def broken(cmd: ControlCommand) -> None:
        raise ValueError("bad handler")

    bus.subscribe_commands(broken)
    bus.subscribe_commands(lambda cmd: seen.append(cmd.cmd))

    bus.publish_command(ControlCommand.pause())
    bus.publish_command(ControlCommand.advance("nether"))

    assert seen == [ControlCommandType.PAUSE_MISSION, ControlCommandType.ADVANCE_PHASE]

    bus.clear()
    bus.publish_command(ControlCommand.resume())
    assert len(seen) == 2


def test_concurrent_publishers_deliver_everything():
    """The dashboard thread and the bot loop may publish at the same time."""
    bus = EventBus()
    count = 100

    received: List[MonitoringEvent] = []
    lock = threading.Lock()

    def subscriber(evt: MonitoringEvent) -> None:
        with lock:
            received.append(evt)

    bus.subscribe(subscriber)

    def publish_many(offset: int) -> None:
        for i in range(count):
            bus.publish(threat_event(float(offset + i)))

    threads = [threading.Thread(target=publish_many, args=(offset,)) for offset in (0, 1000)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(received) == 2 * count
