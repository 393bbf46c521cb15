# path: src/runtime/event_routes.py

"""
EventRouter: one handler per inbound event name.

Each handler applies the event to the WorldStateStore first (synchronously),
then forwards it to the state machine that cares about it. The dispatcher
contains anything a handler raises, so handlers here only catch what they
can recover from.

Inbound chat carries five shortcuts:

    !restart   restart the mission
    !status    mission phase and goal
    !mission   phase progress
    !strategy  current strategy summary
    !combat    combat record and threat level
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from bot_core.dispatcher import ErrorRecord
from bot_core.ring_buffer import RingBuffer
from bot_core.world_state import EntitySnapshot, Position
from combat.engagement import EngagementStateMachine
from combat.stats import CombatOutcome, CombatResult
from combat.threat import ThreatAssessor
from env.loader import ConfigError, patch_section, validate_config
from mission.phases import ENDER_DRAGON, MissionPhaseStateMachine

from .collaborators import fire_and_forget
from .context import BotContext
from .failure_mitigation import (
    emit_collaborator_unavailable,
    emit_handler_exception,
    emit_navigation_failure,
)

logger = logging.getLogger(__name__)


CHAT_HISTORY_SIZE = 50
POSITION_LOG_DISTANCE = 5.0

# Top-level config sections a config_updated event may patch.
PATCHABLE_SECTIONS = ("combat", "mission", "events", "runtime")

# Keys read once when the bot is assembled.
STARTUP_ONLY_KEYS = {
    "combat": frozenset({"max_combat_history"}),
    "mission": frozenset({"progress_log_limit"}),
    "events": frozenset({"max_recent_events", "max_error_events"}),
    "runtime": frozenset({"debug_mode", "log_level", "event_log_path", "simulated_join_delay"}),
}


@dataclass
class ChatEntry:
    username: str
    message: str
    timestamp: float


def is_ender_dragon(entity_type: str) -> bool:
    return entity_type in (ENDER_DRAGON, "ender_dragon")


class EventRouter:
    def __init__(
        self,
        ctx: BotContext,
        assessor: ThreatAssessor,
        engagement: EngagementStateMachine,
        mission: MissionPhaseStateMachine,
    ) -> None:
        self._ctx = ctx
        self._world = ctx.world
        self._dispatcher = ctx.dispatcher
        self._assessor = assessor
        self._engagement = engagement
        self._mission = mission

        self.chat_history: RingBuffer[ChatEntry] = RingBuffer(CHAT_HISTORY_SIZE)
        self._last_logged_position: Optional[Position] = None

        self._commands: Dict[str, Callable[[], Awaitable[Any]]] = {
            "!restart": self._mission.restart_mission,
            "!status": lambda: self._ctx.chat(self._mission.get_status_line()),
            "!mission": lambda: self._ctx.chat(self._mission.get_mission_progress()),
            "!strategy": lambda: self._ctx.chat(self._mission.get_strategy_line()),
            "!combat": lambda: self._ctx.chat(self._engagement.status_line()),
        }

    def install(self) -> None:
        """Register every handler and cross-component listener."""
        routes: Dict[str, Callable[..., Any]] = {
            "connected": self.on_connected,
            "disconnected": self.on_disconnected,
            "player_joined": self.on_player_joined,
            "player_left": self.on_player_left,
            "chat_received": self.on_chat_received,
            "position_update": self.on_position_update,
            "attribute_update": self.on_attribute_update,
            "entity_spawned": self.on_entity_spawned,
            "entity_removed": self.on_entity_removed,
            "ender_dragon_spotted": self.on_ender_dragon_spotted,
            "bot_damaged": self.on_bot_damaged,
            "combat_ended": self.on_combat_ended,
            "navigation_completed": self.on_navigation_completed,
            "navigation_failed": self.on_navigation_failed,
            "mission_paused": self.on_mission_paused,
            "error": self.on_error,
            "performance_warning": self.on_performance_warning,
            "config_updated": self.on_config_updated,
        }
        for name, handler in routes.items():
            self._dispatcher.register_handler(name, handler)

        self._engagement.on_combat_ended(self._forward_combat_ended)
        self._assessor.add_high_threat_listener(self._on_high_threat)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def on_connected(self, *_: Any) -> None:
        logger.info("Bot connected")
        self._world.mark_connected()
        await self._mission.on_connect()

    def on_disconnected(self, reason: Any = None) -> None:
        logger.info("Bot disconnected: %s", reason)
        self._world.mark_disconnected()
        self._engagement.abort()

    # ------------------------------------------------------------------
    # Players and chat
    # ------------------------------------------------------------------

    async def on_player_joined(self, payload: Any) -> None:
        before = self._world.player_count
        record = self._world.apply_player_join(payload)
        if record is None or self._world.player_count == before:
            return
        await self._mission.handle_player_join(record.name)

    async def on_player_left(self, payload: Any) -> None:
        record = self._world.apply_player_leave(payload)
        if record is None:
            return
        await self._mission.handle_player_leave(record.name)

    async def on_chat_received(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring malformed chat payload: %r", payload)
            return
        username = str(payload.get("username") or payload.get("name") or "")
        message = str(payload.get("message") or "")
        if not message:
            return

        self.chat_history.append(ChatEntry(username, message, self._ctx.clock()))
        logger.info("Chat received - %s: %s", username, message)

        if username == self._ctx.config.connection.username:
            return
        command = self._commands.get(message.strip().lower())
        if command is not None:
            await command()

    # ------------------------------------------------------------------
    # World state
    # ------------------------------------------------------------------

    def on_position_update(self, payload: Any) -> None:
        if not self._world.apply_position_update(payload):
            return
        position = self._world.position
        last = self._last_logged_position
        if last is None or position.distance_to(last) > POSITION_LOG_DISTANCE:
            self._last_logged_position = position
            logger.debug(
                "Position updated - X:%d Y:%d Z:%d",
                round(position.x), round(position.y), round(position.z),
            )

    async def on_attribute_update(self, payload: Any) -> None:
        if self._world.apply_attribute_update(payload):
            await self._engagement.handle_health_update()

    def on_entity_spawned(self, payload: Any) -> None:
        entity = self._world.apply_entity_spawn(payload)
        if entity is None:
            return
        if is_ender_dragon(entity.type):
            self._dispatcher.emit("ender_dragon_spotted", entity)
        self._engagement.handle_entity_spawned(entity)

    def on_entity_removed(self, payload: Any) -> None:
        removed = self._world.apply_entity_remove(payload)
        if removed is not None:
            self._engagement.handle_entity_removed(removed.runtime_id)

    async def on_ender_dragon_spotted(self, dragon: EntitySnapshot) -> None:
        logger.info("Ender Dragon spotted: %s", getattr(dragon, "runtime_id", dragon))
        await self._ctx.chat("🐉 ENDER DRAGON DETECTED! Beginning final assault!")
        await self._mission.handle_ender_dragon_spotted(dragon)
        # Refresh the threat level now so the next combat tick engages.
        self._engagement.threat_tick()

    # ------------------------------------------------------------------
    # Combat
    # ------------------------------------------------------------------

    async def on_bot_damaged(self, payload: Any) -> None:
        amount = payload.get("amount") if isinstance(payload, Mapping) else payload
        logger.info("Bot took damage: %s", amount)
        self._engagement.handle_bot_damage(payload)

        inventory = self._ctx.inventory
        if self._world.health >= self._ctx.config.combat.critical_health_threshold:
            return
        if inventory is None:
            emit_collaborator_unavailable(
                self._ctx.bus, collaborator="inventory", action="use_healing_item"
            )
            return
        try:
            await inventory.use_healing_item()
        except Exception:
            logger.exception("Emergency healing failed")

    async def on_combat_ended(self, outcome: CombatOutcome) -> None:
        if outcome.result is CombatResult.TARGET_DEFEATED:
            await self._ctx.chat(f"✅ Defeated {outcome.target_type}!")
        elif outcome.result is CombatResult.TARGET_LOST:
            await self._ctx.chat(f"💀 Combat lost against {outcome.target_type}")
        await self._mission.handle_combat_ended(outcome)

    def _forward_combat_ended(self, outcome: CombatOutcome) -> None:
        self._dispatcher.emit("combat_ended", outcome)

    def _on_high_threat(self, entity: EntitySnapshot, score: int) -> None:
        logger.info("Reassessing threat after %s spawn (score %d)", entity.type, score)
        self._engagement.threat_tick()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def on_navigation_completed(self, payload: Any) -> None:
        learning = self._ctx.learning
        if learning is None:
            return
        record = dict(payload) if isinstance(payload, Mapping) else {"result": payload}
        fire_and_forget(learning.learn_from_navigation, record)

    def on_navigation_failed(self, payload: Any) -> None:
        data = payload if isinstance(payload, Mapping) else {"reason": payload}
        logger.warning("Navigation failed: %s", data.get("reason"))
        emit_navigation_failure(
            self._ctx.bus,
            purpose=str(data.get("purpose", "transport")),
            target=data.get("target"),
            error_repr=str(data.get("reason")),
        )

    # ------------------------------------------------------------------
    # Mission and system
    # ------------------------------------------------------------------

    async def on_mission_paused(self, *_: Any) -> None:
        await self._ctx.chat("⏸️ Mission paused")

    def on_error(self, error: Any) -> None:
        if isinstance(error, ErrorRecord):
            logger.error("Handler for %s failed: %s: %s", error.event, error.error_type, error.message)
            return
        logger.error("System error: %r", error)
        emit_handler_exception(self._ctx.bus, event_name="system_error", error_repr=repr(error))

    def on_performance_warning(self, warning: Any) -> None:
        logger.warning("Performance warning: %s", warning)

    def on_config_updated(self, patch: Any) -> bool:
        """
        Merge a partial config (`{"combat": {...}, "events": {...}}`) into the
        live config. Patched sections are built and validated as copies first;
        the live sections change only if the whole update is accepted.
        """
        if not isinstance(patch, Mapping):
            logger.warning("Ignoring malformed config update: %r", patch)
            return False

        config = self._ctx.config
        candidates: Dict[str, Any] = {}
        for section_name, values in patch.items():
            if section_name not in PATCHABLE_SECTIONS or not isinstance(values, Mapping):
                logger.warning("Ignoring config update for section %r", section_name)
                continue
            fixed = STARTUP_ONLY_KEYS.get(section_name, frozenset()) & set(values)
            if fixed:
                logger.warning(
                    "Config update rejected: %s.%s can only be set at startup",
                    section_name,
                    ", ".join(sorted(fixed)),
                )
                return False
            live = getattr(config, section_name)
            known = {f.name for f in fields(live)}
            for key in set(values) - known:
                logger.warning("Unknown config key %s.%s ignored", section_name, key)
            changes = {k: v for k, v in values.items() if k in known}
            try:
                candidates[section_name] = patch_section(live, changes)
            except ConfigError as exc:
                logger.warning("Config update rejected: %s", exc)
                return False

        try:
            validate_config(replace(config, **candidates))
        except (ConfigError, TypeError, ValueError) as exc:
            logger.warning("Config update rejected: %s", exc)
            return False

        # Copy onto the live sections; components hold references to them.
        for section_name, candidate in candidates.items():
            live = getattr(config, section_name)
            for f in fields(candidate):
                setattr(live, f.name, getattr(candidate, f.name))
        logger.info("Configuration updated")
        return True
