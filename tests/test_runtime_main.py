# tests/test_runtime_main.py

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

import pytest

from runtime import agent_runtime_main
from runtime.agent_runtime_main import build_arg_parser, build_monitoring_stack, main, resolve_config


ENV_KEYS = (
    "MINECRAFT_HOST",
    "MINECRAFT_PORT",
    "BOT_USERNAME",
    "BOT_TRANSPORT",
    "LLM_MODEL_PATH",
    "MAX_TOKENS",
    "AI_TEMPERATURE",
    "DEBUG_MODE",
    "LOG_LEVEL",
)

FAST_CONFIG = """
runtime:
  threat_tick_interval: 0.01
  combat_tick_interval: 0.01
  simulated_join_delay: 0.01
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def logging_calls(monkeypatch) -> List[Any]:
    calls: List[Any] = []
    monkeypatch.setattr(agent_runtime_main, "configure_logging", lambda *a: calls.append(a))
    return calls


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "bot.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_parser_defaults_and_choices():
    parser = build_arg_parser()

    args = parser.parse_args([])
    assert args.config is None
    assert args.dashboard is False
    assert args.duration is None

    with pytest.raises(SystemExit):
        parser.parse_args(["--transport", "bedrock"])


def test_resolve_config_applies_cli_overrides(tmp_path):
    config_path = write_config(tmp_path, FAST_CONFIG)
    args = build_arg_parser().parse_args(
        [
            "--config", str(config_path),
            "--transport", "simulation",
            "--log-level", "debug",
            "--event-log", str(tmp_path / "events.log"),
        ]
    )

    cfg = resolve_config(args)

    assert cfg.runtime.log_level == "DEBUG"
    assert cfg.runtime.event_log_path == str(tmp_path / "events.log")
    assert cfg.runtime.combat_tick_interval == 0.01


def test_monitoring_stack_without_sinks():
    args = build_arg_parser().parse_args(["--config", "/nonexistent/bot.yaml"])
    bus, json_logger, tui = build_monitoring_stack(resolve_config(args))

    assert bus is not None
    assert json_logger is None
    assert tui is None


def test_main_rejects_bad_config(tmp_path, logging_calls):
    config_path = write_config(tmp_path, "bogus:\n  value: 1\n")

    assert main(["--config", str(config_path)]) == 2
    assert logging_calls == [()]


def test_main_runs_for_duration_and_prints_state(tmp_path, capsys, logging_calls):
    config_path = write_config(tmp_path, FAST_CONFIG)
    event_log = tmp_path / "logs" / "events.log"

    code = main(
        [
            "--config", str(config_path),
            "--event-log", str(event_log),
            "--log-level", "warning",
            "--duration", "0.2",
        ]
    )

    assert code == 0
    assert logging_calls == [("WARNING",)]

    out = capsys.readouterr().out
    state = json.loads(out[out.index('{\n  "combat"'):])
    assert state["running"] is False
    assert state["mission"]["current_phase"] == "preparation"

    lines = event_log.read_text(encoding="utf-8").splitlines()
    assert lines
    event_types = {json.loads(line)["event_type"] for line in lines}
    assert "MISSION_PHASE_CHANGE" in event_types
