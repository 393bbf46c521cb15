# src/bot_core/nav/__init__.py
"""
Navigation subsystem.

Provides:
- move_to: timeout-bounded movement request through a Transport
- NavigationError / NavigationTimeout
"""

from __future__ import annotations

from .mover import NavigationError, NavigationTimeout, move_to

__all__ = [
    "NavigationError",
    "NavigationTimeout",
    "move_to",
]
