# BotConfig and section dataclasses
# src/env/schema.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


DEFAULT_PRIORITY_TARGETS: List[str] = [
    "minecraft:ender_dragon",
    "minecraft:wither",
    "minecraft:elder_guardian",
    "minecraft:blaze",
    "minecraft:enderman",
    "minecraft:creeper",
    "minecraft:zombie",
    "minecraft:skeleton",
    "minecraft:spider",
]


@dataclass
class ConnectionConfig:
    """How the bot reaches the game server."""
    transport: str = "simulation"   # only "simulation" ships in this repo
    host: str = "localhost"
    port: int = 19132
    username: str = "DragonSlayerBot"
    version: str = "1.20.0"


@dataclass
class LLMConfig:
    """Local model used as the strategy text provider."""
    model_path: Optional[str] = None   # None => run without an LLM (static fallbacks)
    max_tokens: int = 1000
    temperature: float = 0.7
    n_ctx: int = 4096
    n_gpu_layers: int = 0
    log_calls: bool = False


@dataclass
class CombatConfig:
    """Tunables for threat assessment and engagement."""
    attack_cooldown: float = 0.6           # seconds
    critical_health_threshold: float = 6
    flee_health_threshold: float = 4
    max_combat_range: float = 20.0         # blocks
    optimal_combat_range: float = 3.0
    retreat_distance: float = 15.0
    aggression_level: float = 0.7          # 0.0 .. 1.0
    use_consumables: bool = True
    ai_consultation_cooldown: float = 5.0
    max_combat_history: int = 50
    navigation_timeout: float = 10.0
    reassess_after: float = 10.0
    reassess_interval: float = 5.0
    priority_targets: List[str] = field(
        default_factory=lambda: list(DEFAULT_PRIORITY_TARGETS)
    )

    # Descending (level, minimum score) ladder.
    threat_thresholds: List[Tuple[str, float]] = field(
        default_factory=lambda: [
            ("CRITICAL", 80.0),
            ("HIGH", 60.0),
            ("MEDIUM", 40.0),
            ("LOW", 20.0),
        ]
    )

    # (success, value, risk) weights of the battle decision score.
    engagement_weights: Tuple[float, float, float] = (0.4, 0.3, 0.3)
    engage_threshold: float = 0.5

    retreat_cooldowns: Dict[str, float] = field(
        default_factory=lambda: {
            "LOW_HEALTH": 30.0,
            "CRITICAL_HEALTH": 60.0,
            "STRATEGIC": 15.0,
            "SMART_RETREAT": 20.0,
        }
    )
    default_retreat_cooldown: float = 20.0


@dataclass
class MissionConfig:
    """Pacing and bookkeeping for the mission phase machine."""
    victory_delays: Tuple[float, float] = (2.0, 3.0)
    restart_invite_delay: float = 5.0
    restart_delay: float = 2.0
    briefing_delays: Tuple[float, float] = (1.0, 2.0)
    progress_log_limit: int = 1000


@dataclass
class EventConfig:
    """EventDispatcher ring buffer sizes and diagnostics."""
    max_recent_events: int = 100
    max_error_events: int = 50
    slow_event_threshold: float = 1.0      # seconds
    enable_event_logging: bool = False
    enable_performance_tracking: bool = True


@dataclass
class RuntimeConfig:
    """Periodic loop rates and process-level switches."""
    threat_tick_interval: float = 1.0
    combat_tick_interval: float = 0.1
    debug_mode: bool = False
    log_level: str = "INFO"
    event_log_path: Optional[str] = None
    simulated_join_delay: float = 2.0


@dataclass
class BotConfig:
    """Top-level resolved bot configuration."""
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    combat: CombatConfig = field(default_factory=CombatConfig)
    mission: MissionConfig = field(default_factory=MissionConfig)
    events: EventConfig = field(default_factory=EventConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
