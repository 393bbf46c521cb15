# src/agent/logging_config.py
"""
Central logging configuration for the dragon bot runtime.

Call configure_logging() from your main entrypoint once, for example:

    from agent.logging_config import configure_logging
    configure_logging("DEBUG")

After that, every module-level logger (dispatcher, combat, mission, ...)
is visible on stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import Union


def resolve_level(level: Union[int, str]) -> int:
    """Accept logging.INFO or "info"/"INFO"; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure root logging if no handlers are attached yet.

    Args:
        level: default logging level (e.g., logging.INFO, "DEBUG")
    """
    root = logging.getLogger()

    # Don't duplicate handlers if someone already configured logging.
    if root.handlers:
        return

    handler = logging.StreamHandler(stream=sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(resolve_level(level))
