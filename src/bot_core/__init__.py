# bot_core package
# src/bot_core/__init__.py
"""
bot_core package.

Exports:
    - EventDispatcher: single ingress for inbound events
    - RingBuffer: capped, oldest-first history
    - WorldStateStore / Position: canonical world facts
"""

from __future__ import annotations

from .dispatcher import ErrorRecord, EventDispatcher, EventRecord
from .ring_buffer import RingBuffer
from .world_state import EntitySnapshot, PlayerRecord, Position, WorldStateStore

__all__ = [
    "EventDispatcher",
    "EventRecord",
    "ErrorRecord",
    "RingBuffer",
    "WorldStateStore",
    "Position",
    "PlayerRecord",
    "EntitySnapshot",
]
