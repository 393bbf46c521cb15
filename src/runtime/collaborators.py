# path: src/runtime/collaborators.py

"""
Optional collaborator contracts.

The core calls out to three collaborators it does not implement:

- GameplayActions: long-running phase-entry actions (gathering, nether, ...)
- LearningSink: fire-and-forget outcome notifications
- InventoryStatus: read-only equipment summaries for risk scoring

Each one is held as an Optional reference on BotContext. `None` means the
collaborator is absent; callers log a COLLABORATOR_UNAVAILABLE event and
carry on.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)


class GameplayActions(Protocol):
    async def begin_resource_gathering(self) -> None: ...

    async def start_nether_expedition(self) -> None: ...

    async def search_for_stronghold(self) -> None: ...

    async def enter_the_end(self) -> None: ...


class LearningSink(Protocol):
    """Receives outcomes; results are never awaited by the core."""

    def learn_from_combat(self, outcome: Dict[str, Any]) -> Any: ...

    def learn_from_navigation(self, record: Dict[str, Any]) -> Any: ...

    def learn_from_mission_completion(self, data: Dict[str, Any]) -> Any: ...


class InventoryStatus(Protocol):
    def get_inventory_status(self) -> Dict[str, Any]: ...

    def get_weapon_durability(self) -> float: ...

    def has_healing_items(self) -> bool: ...

    def get_armor_level(self) -> float: ...

    async def use_healing_item(self) -> None: ...

    async def use_buff_items(self) -> None: ...


# ---------------------------------------------------------------------------
# Fire-and-forget
# ---------------------------------------------------------------------------

_background_tasks: Set[asyncio.Task] = set()


def _log_task_failure(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background notification failed: %r", exc, exc_info=exc)


def fire_and_forget(fn: Callable[..., Any], *args: Any) -> None:
    """
    Call `fn(*args)` without waiting on its result.

    Coroutine results are scheduled as detached tasks; failures of either
    kind are logged and never reach the caller.
    """
    try:
        result = fn(*args)
    except Exception:
        logger.exception("Notification %r failed", fn)
        return

    if inspect.isawaitable(result):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running loop for notification %r; dropped", fn)
            if inspect.iscoroutine(result):
                result.close()
            return
        task = asyncio.ensure_future(result, loop=loop)
        _background_tasks.add(task)
        task.add_done_callback(_log_task_failure)


async def wait_for_background_notifications() -> None:
    """Test/shutdown helper: let detached notifications finish."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# In-memory learning sink
# ---------------------------------------------------------------------------


@dataclass
class InMemoryLearning:
    """
    Accumulates outcome notifications in memory.

    Used by the simulation runtime so that outcomes are at least visible in
    `debug_state()`; nothing is written to disk.
    """

    combats: List[Dict[str, Any]] = field(default_factory=list)
    navigations: List[Dict[str, Any]] = field(default_factory=list)
    missions: List[Dict[str, Any]] = field(default_factory=list)
    limit: int = 200

    def _push(self, bucket: List[Dict[str, Any]], item: Dict[str, Any]) -> None:
        bucket.append(item)
        if len(bucket) > self.limit:
            del bucket[0]

    def learn_from_combat(self, outcome: Dict[str, Any]) -> None:
        self._push(self.combats, outcome)

    def learn_from_navigation(self, record: Dict[str, Any]) -> None:
        self._push(self.navigations, record)

    def learn_from_mission_completion(self, data: Dict[str, Any]) -> None:
        self._push(self.missions, data)

    def get_stats(self) -> Dict[str, int]:
        return {
            "combats": len(self.combats),
            "navigations": len(self.navigations),
            "missions": len(self.missions),
        }


ActionFn = Callable[[], Awaitable[Any]]


def gameplay_action(actions: Optional[GameplayActions], name: str) -> Optional[ActionFn]:
    """Resolve a named phase action, or None when no collaborator is wired."""
    if actions is None:
        return None
    table: Dict[str, Callable[[GameplayActions], ActionFn]] = {
        "begin_resource_gathering": lambda a: a.begin_resource_gathering,
        "start_nether_expedition": lambda a: a.start_nether_expedition,
        "search_for_stronghold": lambda a: a.search_for_stronghold,
        "enter_the_end": lambda a: a.enter_the_end,
    }
    resolver = table.get(name)
    if resolver is None:
        return None
    try:
        return resolver(actions)
    except AttributeError:
        return None
