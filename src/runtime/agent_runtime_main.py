# path: src/runtime/agent_runtime_main.py

"""
Command-line runtime for the dragon bot.

Wires together:
- configuration (config/bot.yaml + environment overrides)
- the monitoring stack (EventBus, optional JSONL logger, optional TUI)
- DragonBot with its MissionController
and runs it under asyncio until interrupted or `--duration` elapses.

Usage:
    python -m runtime.agent_runtime_main --duration 30 --dashboard
    dragonbot --config config/bot.yaml --event-log logs/monitoring/events.log
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from agent.logging_config import configure_logging
from env.loader import KNOWN_TRANSPORTS, ConfigError, load_bot_config
from env.schema import BotConfig
from monitoring.bus import EventBus
from monitoring.controller import MissionController
from monitoring.dashboard_tui import TuiDashboard, start_dashboard_in_background
from monitoring.logger import JsonFileLogger

from .bot import DragonBot

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dragonbot",
        description="Event-driven Ender Dragon mission bot.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to bot.yaml.")
    parser.add_argument(
        "--transport",
        choices=KNOWN_TRANSPORTS,
        default=None,
        help="Transport mode (overrides config).",
    )
    parser.add_argument("--log-level", default=None, help="Root log level (overrides config).")
    parser.add_argument("--dashboard", action="store_true", help="Show the rich TUI dashboard.")
    parser.add_argument(
        "--event-log",
        type=Path,
        default=None,
        help="Write monitoring events as JSONL to this path.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted).",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> BotConfig:
    """Load config and apply command-line overrides on top."""
    cfg = load_bot_config(args.config)
    if args.transport:
        cfg.connection.transport = args.transport
    if args.log_level:
        cfg.runtime.log_level = args.log_level.upper()
    if args.event_log is not None:
        cfg.runtime.event_log_path = str(args.event_log)
    return cfg


def build_monitoring_stack(
    cfg: BotConfig,
    *,
    dashboard: bool = False,
) -> Tuple[EventBus, Optional[JsonFileLogger], Optional[TuiDashboard]]:
    """EventBus plus whichever sinks the configuration asks for."""
    bus = EventBus()
    json_logger = None
    if cfg.runtime.event_log_path:
        json_logger = JsonFileLogger(Path(cfg.runtime.event_log_path), bus)
    tui = start_dashboard_in_background(bus) if dashboard else None
    return bus, json_logger, tui


async def run_bot(bot: DragonBot, duration: Optional[float]) -> None:
    if duration is not None:
        await bot.run_for(duration)
        return
    await bot.start()
    try:
        await asyncio.Event().wait()
    finally:
        await bot.stop()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        cfg = resolve_config(args)
    except ConfigError as exc:
        configure_logging()
        logger.error("Invalid configuration: %s", exc)
        return 2

    configure_logging(cfg.runtime.log_level)
    bus, json_logger, tui = build_monitoring_stack(cfg, dashboard=args.dashboard)

    bot = DragonBot.from_config(cfg, bus=bus)
    controller = MissionController(bot.mission, bus, state_fn=bot.debug_state)

    try:
        asyncio.run(run_bot(bot, args.duration))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        controller.close()
        if tui is not None:
            tui.close()
        if json_logger is not None:
            json_logger.close()

    if args.duration is not None:
        print(json.dumps(bot.debug_state(), indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
