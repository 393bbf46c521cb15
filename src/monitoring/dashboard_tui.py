# rich-based TUI dashboard
#src/monitoring/dashboard_tui.py
"""
TUI dashboard for the dragon bot.

A lightweight terminal UI (using `rich`) that subscribes to the monitoring
EventBus and renders:

- Mission:
    - Phase
    - Current goal
    - Last progress entry

- Threat:
    - Current level
    - Highest score and entity behind it

- Combat:
    - Current target and strategy
    - Win / loss / escape counters, kill streak
    - Last retreat reason

- Errors:
    - Recent handler errors and fallback notices

This runs entirely offline. No web server, no external services.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .bus import EventBus
from .events import EventType, MonitoringEvent


MAX_ERROR_LINES = 8

THREAT_STYLES: Dict[str, str] = {
    "NONE": "green",
    "LOW": "cyan",
    "MEDIUM": "yellow",
    "HIGH": "red",
    "CRITICAL": "bold red",
}


# ============================================================
# TUI Dashboard
# ============================================================

class TuiDashboard:
    """
    Live terminal dashboard bound to a monitoring.EventBus.

    It consumes MonitoringEvents and keeps a small in-memory state
    representation, which is rendered periodically via rich.
    """

    def __init__(self, bus: EventBus, console: Optional[Console] = None) -> None:
        self._bus = bus
        self._console = console or Console()
        self._lock = threading.Lock()
        self._stop = threading.Event()

        # Internal state snapshot for display
        self._state: Dict[str, Any] = {
            "phase": "waiting",
            "goal": "",
            "last_progress": None,
            "threat_level": "NONE",
            "threat_score": 0,
            "threat_entity": None,
            "target": None,
            "strategy": None,
            "combat_stats": {},
            "last_result": None,
            "last_retreat": None,
        }
        self._errors: Deque[str] = deque(maxlen=MAX_ERROR_LINES)

        # Subscribe to events
        self._bus.subscribe(self._on_event)

    @property
    def state(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._state)

    @property
    def errors(self) -> list:
        with self._lock:
            return list(self._errors)

    def close(self) -> None:
        self._stop.set()
        self._bus.unsubscribe(self._on_event)

    # --------------------------------------------------------
    # Event handler
    # --------------------------------------------------------

    def _on_event(self, event: MonitoringEvent) -> None:
        """
        Update dashboard state based on a MonitoringEvent.
        This should be cheap and non-blocking.
        """
        et = event.event_type
        payload = event.payload or {}

        with self._lock:
            if et == EventType.MISSION_PHASE_CHANGE:
                self._state["phase"] = payload.get("new", self._state["phase"])
                if payload.get("goal"):
                    self._state["goal"] = payload["goal"]

            elif et == EventType.MISSION_PROGRESS:
                self._state["last_progress"] = event.message

            elif et == EventType.THREAT_LEVEL_CHANGED:
                self._state["threat_level"] = payload.get("new", "NONE")
                self._state["threat_score"] = payload.get("max_score", 0)
                self._state["threat_entity"] = payload.get("entity")

            elif et == EventType.COMBAT_STARTED:
                strategy = payload.get("strategy") or {}
                self._state["target"] = payload.get("target")
                self._state["strategy"] = strategy.get("approach")

            elif et == EventType.STRATEGY_CHANGED:
                self._state["strategy"] = payload.get("new")

            elif et == EventType.COMBAT_ENDED:
                self._state["target"] = None
                self._state["strategy"] = None
                self._state["last_result"] = payload.get("result")
                self._state["combat_stats"] = payload.get("stats") or {}

            elif et == EventType.RETREAT:
                self._state["last_retreat"] = payload.get("reason")

            elif et == EventType.HANDLER_ERROR:
                self._errors.append(f"{payload.get('event')}: {payload.get('error')}")

            elif et == EventType.LOG and payload.get("subtype"):
                self._errors.append(f"{payload['subtype']}: {event.message}")

    # --------------------------------------------------------
    # Rendering helpers
    # --------------------------------------------------------

    def _render_mission_panel(self) -> Panel:
        """
        Top: mission phase + goal + last progress line.
        """
        phase = self._state["phase"]
        goal = self._state["goal"] or "<none>"
        progress = self._state["last_progress"] or "<none>"

        txt = Text()
        txt.append("Phase: ", style="bold")
        txt.append(f"{phase}\n")
        txt.append("Goal: ", style="bold")
        txt.append(f"{goal}\n")
        txt.append("Last progress: ", style="bold")
        txt.append(f"{progress}\n")

        return Panel(txt, title="Mission", border_style="cyan")

    def _render_threat_panel(self) -> Panel:
        level = self._state["threat_level"]
        table = Table.grid(pad_edge=False)
        table.add_column(justify="left")
        table.add_row(Text(f"Level: {level}", style=THREAT_STYLES.get(level, "white")))
        table.add_row(f"[bold]Max score:[/bold] {self._state['threat_score']}")
        table.add_row(f"[bold]Entity:[/bold] {self._state['threat_entity'] or '<none>'}")
        return Panel(table, title="Threat", border_style="red")

    def _render_combat_panel(self) -> Panel:
        stats = self._state["combat_stats"] or {}

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Stat", style="bold", width=16)
        table.add_column("Value", justify="right")

        table.add_row("Target", str(self._state["target"] or "-"))
        table.add_row("Strategy", str(self._state["strategy"] or "-"))
        table.add_row("Last result", str(self._state["last_result"] or "-"))
        table.add_row("Last retreat", str(self._state["last_retreat"] or "-"))
        for key in ("wins", "losses", "escapes", "kill_streak", "best_kill_streak"):
            table.add_row(key, str(stats.get(key, 0)))

        return Panel(table, title="Combat", border_style="magenta")

    def _render_error_panel(self) -> Panel:
        table = Table.grid()
        table.add_column(justify="left")
        if self._errors:
            for line in self._errors:
                table.add_row(f"[red]{line}[/red]")
        else:
            table.add_row("[bold green]No errors recorded.[/bold green]")
        return Panel(table, title="Errors & fallbacks", border_style="yellow")

    def build_layout(self) -> Layout:
        """
        Construct the overall layout for the dashboard.
        """
        with self._lock:
            layout = Layout()

            layout.split(
                Layout(name="top", size=5),
                Layout(name="middle", ratio=1),
            )
            layout["top"].update(self._render_mission_panel())

            # Middle row: threat | combat | errors
            layout["middle"].split_row(
                Layout(name="threat"),
                Layout(name="combat"),
                Layout(name="errors"),
            )
            layout["threat"].update(self._render_threat_panel())
            layout["combat"].update(self._render_combat_panel())
            layout["errors"].update(self._render_error_panel())

            return layout

    # --------------------------------------------------------
    # Main loop
    # --------------------------------------------------------

    def run(self, refresh_per_second: float = 4.0) -> None:
        """
        Run the TUI render loop until close() is called.

        This blocks the current thread. Use a separate thread if needed.
        """
        refresh_delay = 1.0 / max(refresh_per_second, 0.1)
        with Live(self.build_layout(), console=self._console, refresh_per_second=refresh_per_second) as live:
            while not self._stop.is_set():
                live.update(self.build_layout())
                time.sleep(refresh_delay)


def start_dashboard_in_background(bus: EventBus) -> TuiDashboard:
    """
    Start a TuiDashboard in a daemon thread; call close() to stop it.
    """
    dashboard = TuiDashboard(bus)
    thread = threading.Thread(
        target=dashboard.run,
        name="TuiDashboardThread",
        daemon=True,
    )
    thread.start()
    return dashboard
