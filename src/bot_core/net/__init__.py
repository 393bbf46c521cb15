# bot_core.net package
# src/bot_core/net/__init__.py
"""
Transport layer.

This package provides:
- Transport protocol (common outbound interface)
- SimulatedTransport (no server; used for demos and tests)
- create_transport factory wired to BotConfig.connection
"""

from __future__ import annotations

from .client import SleepFn, Transport, create_transport

__all__ = [
    "SleepFn",
    "Transport",
    "create_transport",
]
