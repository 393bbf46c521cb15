# canonical world facts, mutated only by dispatched events
# src/bot_core/world_state.py
"""
WorldStateStore: the canonical snapshot of observable world facts.

Mutated exclusively by EventRouter handlers (one `apply_*` call per inbound
event); everything else only reads. State is never updated speculatively.

Payloads arrive as loosely shaped mappings from the transport. Each apply
method normalizes what it needs and drops malformed payloads with a warning
and a DATA_INTEGRITY_WARNING monitoring event instead of raising.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from monitoring.bus import EventBus
from runtime.failure_mitigation import emit_data_integrity_warning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    x: float
    y: float
    z: float

    def distance_to(self, other: "Position") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2
            + (self.y - other.y) ** 2
            + (self.z - other.z) ** 2
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


DEFAULT_POSITION = Position(0.0, 64.0, 0.0)


@dataclass
class PlayerRecord:
    runtime_id: Any
    name: str
    uuid: Optional[str] = None
    position: Optional[Position] = None
    join_time: float = 0.0


@dataclass
class EntitySnapshot:
    """Last known state of a tracked entity."""

    runtime_id: Any
    type: str
    position: Position
    extra: Dict[str, Any] = field(default_factory=dict)


class PayloadError(ValueError):
    """Raised internally when a payload cannot be normalized."""


def parse_position(data: Any) -> Position:
    """Accept a Position, a mapping with x/y/z, or an (x, y, z) sequence."""
    if isinstance(data, Position):
        coords = (data.x, data.y, data.z)
    elif isinstance(data, Mapping):
        try:
            coords = (float(data["x"]), float(data["y"]), float(data["z"]))
        except KeyError as exc:
            raise PayloadError(f"position missing {exc.args[0]!r}") from exc
        except (TypeError, ValueError) as exc:
            raise PayloadError(f"non-numeric position: {exc}") from exc
    elif isinstance(data, (list, tuple)) and len(data) == 3:
        try:
            coords = (float(data[0]), float(data[1]), float(data[2]))
        except (TypeError, ValueError) as exc:
            raise PayloadError(f"non-numeric position: {exc}") from exc
    else:
        raise PayloadError(f"unrecognized position payload: {data!r}")

    if not all(math.isfinite(c) for c in coords):
        raise PayloadError(f"non-finite position: {coords!r}")
    if isinstance(data, Position):
        return data
    return Position(*coords)


_ATTRIBUTE_FIELDS = {
    "minecraft:health": "health",
    "minecraft:player.hunger": "food",
    "minecraft:player.experience": "experience",
}


class WorldStateStore:
    """Position, vitals, players and entities as last reported by the server."""

    def __init__(
        self,
        *,
        bus: Optional[EventBus] = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._bus = bus
        self._wall_clock = wall_clock

        self.connected: bool = False
        self.position: Position = DEFAULT_POSITION
        self.health: float = 20.0
        self.max_health: float = 20.0
        self.food: float = 20.0
        self.experience: float = 0.0
        self.players: Dict[Any, PlayerRecord] = {}
        self.entities: Dict[Any, EntitySnapshot] = {}

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def mark_connected(self) -> None:
        self.connected = True

    def mark_disconnected(self) -> None:
        self.connected = False

    # ------------------------------------------------------------------
    # Apply operations
    # ------------------------------------------------------------------

    def apply_position_update(self, payload: Any) -> bool:
        try:
            self.position = parse_position(payload)
        except PayloadError as exc:
            self._drop("apply_position_update", str(exc), payload)
            return False
        return True

    def apply_attribute_update(self, payload: Any) -> bool:
        """
        Accepts either a flat mapping (any subset of health, max_health, food,
        experience) or the packet shape with an `attributes` list.
        """
        if not isinstance(payload, Mapping):
            self._drop("apply_attribute_update", "payload is not a mapping", payload)
            return False

        updates: Dict[str, float] = {}
        try:
            if "attributes" in payload:
                for attr in payload["attributes"]:
                    name = attr.get("name")
                    field_name = _ATTRIBUTE_FIELDS.get(name)
                    if field_name is None:
                        continue
                    updates[field_name] = float(attr["current"])
                    if field_name == "health" and "max" in attr:
                        updates["max_health"] = float(attr["max"])
            else:
                for key in ("health", "max_health", "food", "experience"):
                    if key in payload:
                        updates[key] = float(payload[key])
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            self._drop("apply_attribute_update", f"bad attribute: {exc!r}", payload)
            return False

        if not updates:
            self._drop("apply_attribute_update", "no known attributes", payload)
            return False

        max_health = updates.get("max_health", self.max_health)
        if max_health <= 0:
            self._drop("apply_attribute_update", "max_health must be positive", payload)
            return False

        for key, value in updates.items():
            setattr(self, key, value)
        return True

    def apply_player_join(self, payload: Any) -> Optional[PlayerRecord]:
        """Add a player; a repeated join for the same runtime id keeps one entry."""
        if not isinstance(payload, Mapping):
            self._drop("apply_player_join", "payload is not a mapping", payload)
            return None

        runtime_id = payload.get("runtime_id")
        name = payload.get("username", payload.get("name"))
        if runtime_id is None or not name:
            self._drop("apply_player_join", "missing runtime_id or username", payload)
            return None

        position: Optional[Position] = None
        if payload.get("position") is not None:
            try:
                position = parse_position(payload["position"])
            except PayloadError as exc:
                logger.warning("Ignoring bad join position for %s: %s", name, exc)

        existing = self.players.get(runtime_id)
        join_time = existing.join_time if existing is not None else self._wall_clock()
        record = PlayerRecord(
            runtime_id=runtime_id,
            name=str(name),
            uuid=payload.get("uuid"),
            position=position,
            join_time=join_time,
        )
        self.players[runtime_id] = record
        return record

    def apply_player_leave(self, payload: Any) -> Optional[PlayerRecord]:
        """Remove and return the player, or None if it was not tracked."""
        runtime_id = payload.get("runtime_id") if isinstance(payload, Mapping) else payload
        if runtime_id is None:
            self._drop("apply_player_leave", "missing runtime_id", payload)
            return None
        return self.players.pop(runtime_id, None)

    def apply_entity_spawn(self, payload: Any) -> Optional[EntitySnapshot]:
        if not isinstance(payload, Mapping):
            self._drop("apply_entity_spawn", "payload is not a mapping", payload)
            return None

        runtime_id = payload.get("runtime_id", payload.get("entity_id"))
        entity_type = payload.get("type")
        if runtime_id is None or not entity_type:
            self._drop("apply_entity_spawn", "missing runtime_id or type", payload)
            return None

        try:
            position = parse_position(payload.get("position", payload))
        except PayloadError as exc:
            self._drop("apply_entity_spawn", str(exc), payload)
            return None

        extra = {
            k: v
            for k, v in payload.items()
            if k not in ("runtime_id", "entity_id", "type", "position", "x", "y", "z")
        }
        snapshot = EntitySnapshot(
            runtime_id=runtime_id,
            type=str(entity_type),
            position=position,
            extra=extra,
        )
        self.entities[runtime_id] = snapshot
        return snapshot

    def apply_entity_remove(self, payload: Any) -> Optional[EntitySnapshot]:
        """Remove and return the entity, or None if it was not tracked."""
        if isinstance(payload, Mapping):
            runtime_id = payload.get("runtime_id", payload.get("entity_id"))
        else:
            runtime_id = payload
        if runtime_id is None:
            self._drop("apply_entity_remove", "missing runtime_id", payload)
            return None
        return self.entities.pop(runtime_id, None)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def health_ratio(self) -> float:
        if self.max_health <= 0:
            return 0.0
        return self.health / self.max_health

    def get_entity(self, runtime_id: Any) -> Optional[EntitySnapshot]:
        return self.entities.get(runtime_id)

    def distance_to(self, position: Position) -> float:
        return self.position.distance_to(position)

    def summary(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "position": self.position.to_dict(),
            "health": self.health,
            "max_health": self.max_health,
            "food": self.food,
            "experience": self.experience,
            "players": self.player_count,
            "entities": len(self.entities),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _drop(self, operation: str, reason: str, payload: Any) -> None:
        logger.warning("%s dropped malformed payload: %s", operation, reason)
        emit_data_integrity_warning(
            self._bus,
            operation=operation,
            reason=reason,
            payload_repr=repr(payload)[:200],
        )
