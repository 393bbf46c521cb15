from __future__ import annotations

import math
import os
from dataclasses import fields, replace
from pathlib import Path
from typing import (
    Any,
    Dict,
    Mapping,
    Optional,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

import yaml

from .schema import (
    BotConfig,
    CombatConfig,
    ConnectionConfig,
    EventConfig,
    LLMConfig,
    MissionConfig,
    RuntimeConfig,
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_ROOT = PROJECT_ROOT / "config"
DEFAULT_CONFIG_PATH = CONFIG_ROOT / "bot.yaml"

KNOWN_TRANSPORTS = ("simulation",)
THREAT_LEVEL_NAMES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")

T = TypeVar("T")


class ConfigError(ValueError):
    """Raised when bot.yaml or the environment holds an unusable value."""


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping; a missing file yields an empty mapping."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _build_section(cls: Type[T], raw: Any, section: str) -> T:
    """Instantiate a section dataclass, rejecting unknown keys."""
    if raw is None:
        return cls()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Section '{section}' must be a mapping, got {type(raw)}")

    allowed = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(raw) - allowed
    if unknown:
        raise ConfigError(f"Unknown keys in '{section}': {sorted(unknown)}")

    kwargs = dict(raw)
    # YAML has no tuples.
    for key in ("victory_delays", "briefing_delays", "engagement_weights"):
        if key in kwargs and isinstance(kwargs[key], list):
            kwargs[key] = tuple(kwargs[key])
    if "threat_thresholds" in kwargs:
        kwargs["threat_thresholds"] = _normalize_thresholds(kwargs["threat_thresholds"])
    return cls(**kwargs)


def _normalize_thresholds(raw: Any) -> list:
    """Accept {LEVEL: score} or [[LEVEL, score], ...]; return descending pairs."""
    if isinstance(raw, Mapping):
        pairs = [(str(k).upper(), float(v)) for k, v in raw.items()]
    elif isinstance(raw, list):
        try:
            pairs = [(str(k).upper(), float(v)) for k, v in raw]
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Malformed threat_thresholds: {raw!r}") from exc
    else:
        raise ConfigError(f"Malformed threat_thresholds: {raw!r}")
    return sorted(pairs, key=lambda p: p[1], reverse=True)


def _coerce_value(key: str, hint: Any, value: Any) -> Any:
    """Check `value` against a section field annotation, converting YAML-ish shapes."""
    origin = get_origin(hint)
    args = get_args(hint)

    if origin is Union:
        if value is None and type(None) in args:
            return None
        inner = [a for a in args if a is not type(None)]
        return _coerce_value(key, inner[0], value)
    if hint is bool:
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false, got {value!r}")
        return value
    if hint is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an int, got {value!r}")
        return value
    if hint is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{key} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ConfigError(f"{key} must be finite, got {value!r}")
        return float(value)
    if hint is str:
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        return value
    if origin is tuple:
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"{key} must be a list, got {value!r}")
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_coerce_value(key, args[0], v) for v in value)
        if len(value) != len(args):
            raise ConfigError(f"{key} needs exactly {len(args)} values, got {value!r}")
        return tuple(_coerce_value(key, a, v) for a, v in zip(args, value))
    if origin is list:
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"{key} must be a list, got {value!r}")
        return [_coerce_value(key, args[0], v) for v in value]
    if origin is dict:
        if not isinstance(value, Mapping):
            raise ConfigError(f"{key} must be a mapping, got {value!r}")
        return {
            _coerce_value(key, args[0], k): _coerce_value(key, args[1], v)
            for k, v in value.items()
        }
    return value


def _env_str(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None or value.strip() in ("", "undefined"):
        return None
    return value.strip()


def _apply_env_overrides(cfg: BotConfig, environ: Mapping[str, str]) -> None:
    """Environment variables win over bot.yaml."""
    if (host := _env_str(environ, "MINECRAFT_HOST")) is not None:
        cfg.connection.host = host
    if (port := _env_str(environ, "MINECRAFT_PORT")) is not None:
        try:
            cfg.connection.port = int(port)
        except ValueError as exc:
            raise ConfigError(f"MINECRAFT_PORT must be an int, got {port!r}") from exc
    if (username := _env_str(environ, "BOT_USERNAME")) is not None:
        cfg.connection.username = username
    if (transport := _env_str(environ, "BOT_TRANSPORT")) is not None:
        cfg.connection.transport = transport
    if (model_path := _env_str(environ, "LLM_MODEL_PATH")) is not None:
        cfg.llm.model_path = model_path
    if (max_tokens := _env_str(environ, "MAX_TOKENS")) is not None:
        try:
            cfg.llm.max_tokens = int(max_tokens)
        except ValueError as exc:
            raise ConfigError(f"MAX_TOKENS must be an int, got {max_tokens!r}") from exc
    if (temperature := _env_str(environ, "AI_TEMPERATURE")) is not None:
        try:
            cfg.llm.temperature = float(temperature)
        except ValueError as exc:
            raise ConfigError(
                f"AI_TEMPERATURE must be a number, got {temperature!r}"
            ) from exc
    if (debug := _env_str(environ, "DEBUG_MODE")) is not None:
        cfg.runtime.debug_mode = debug.lower() == "true"
        if cfg.runtime.debug_mode:
            cfg.events.enable_event_logging = True
    if (level := _env_str(environ, "LOG_LEVEL")) is not None:
        cfg.runtime.log_level = level.upper()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def config_from_mapping(data: Mapping[str, Any]) -> BotConfig:
    """Build a validated BotConfig from an already-parsed mapping."""
    cfg = BotConfig(
        connection=_build_section(ConnectionConfig, data.get("connection"), "connection"),
        llm=_build_section(LLMConfig, data.get("llm"), "llm"),
        combat=_build_section(CombatConfig, data.get("combat"), "combat"),
        mission=_build_section(MissionConfig, data.get("mission"), "mission"),
        events=_build_section(EventConfig, data.get("events"), "events"),
        runtime=_build_section(RuntimeConfig, data.get("runtime"), "runtime"),
    )
    validate_config(cfg)
    return cfg


def load_bot_config(
    path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> BotConfig:
    """Main entry point: bot.yaml (if present) + environment overrides."""
    data = _load_yaml(path or DEFAULT_CONFIG_PATH)
    unknown = set(data) - {"connection", "llm", "combat", "mission", "events", "runtime"}
    if unknown:
        raise ConfigError(f"Unknown top-level config sections: {sorted(unknown)}")

    cfg = config_from_mapping(data)
    _apply_env_overrides(cfg, os.environ if environ is None else environ)
    validate_config(cfg)
    return cfg


def validate_config(cfg: BotConfig) -> None:
    """Sanity checks that would otherwise surface as odd runtime behaviour."""
    if cfg.connection.transport not in KNOWN_TRANSPORTS:
        raise ConfigError(f"Invalid transport: {cfg.connection.transport}")

    combat = cfg.combat
    if combat.max_combat_range <= 0:
        raise ConfigError("combat.max_combat_range must be positive")
    if combat.optimal_combat_range <= 0:
        raise ConfigError("combat.optimal_combat_range must be positive")
    if combat.flee_health_threshold > combat.critical_health_threshold:
        raise ConfigError(
            "combat.flee_health_threshold must not exceed critical_health_threshold"
        )
    if not 0.0 <= combat.aggression_level <= 1.0:
        raise ConfigError("combat.aggression_level must be within [0, 1]")
    if len(combat.engagement_weights) != 3:
        raise ConfigError("combat.engagement_weights needs exactly three weights")
    for name, _score in combat.threat_thresholds:
        if name not in THREAT_LEVEL_NAMES:
            raise ConfigError(f"Unknown threat level in thresholds: {name}")

    if cfg.mission.progress_log_limit <= 0:
        raise ConfigError("mission.progress_log_limit must be positive")
    if cfg.events.max_recent_events <= 0 or cfg.events.max_error_events <= 0:
        raise ConfigError("event ring buffer sizes must be positive")
    if cfg.runtime.threat_tick_interval <= 0 or cfg.runtime.combat_tick_interval <= 0:
        raise ConfigError("tick intervals must be positive")


def patch_section(section: T, changes: Mapping[str, Any]) -> T:
    """
    Return a copy of a config section with `changes` applied.

    Every value is checked against the field's annotation; the section
    passed in is never modified. Raises ConfigError on unknown keys or
    values of the wrong shape.
    """
    hints = get_type_hints(type(section))
    unknown = set(changes) - {f.name for f in fields(section)}  # type: ignore[arg-type]
    if unknown:
        raise ConfigError(f"Unknown config keys: {sorted(unknown)}")

    coerced: Dict[str, Any] = {}
    for key, value in changes.items():
        if key == "threat_thresholds":
            try:
                coerced[key] = _normalize_thresholds(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Malformed threat_thresholds: {value!r}") from exc
        else:
            coerced[key] = _coerce_value(key, hints[key], value)
    return replace(section, **coerced)  # type: ignore[type-var]
