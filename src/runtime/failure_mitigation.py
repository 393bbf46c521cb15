# path: src/runtime/failure_mitigation.py

"""
Failure reporting helpers.

Every recoverable failure in the bot ends in a local fallback (default
strategy, skipped action, dropped payload). These helpers make the fallback
visible as a structured LOG monitoring event so that it shows up in the JSONL
log and on the dashboard.

Failure classes covered:

1) TransientExternalFailure
   - emit_llm_failure(...)         strategy text call failed
   - emit_navigation_failure(...)  movement request timed out / failed

2) DataIntegrityWarning
   - emit_data_integrity_warning(...)  malformed event payload dropped

3) CollaboratorUnavailable
   - emit_collaborator_unavailable(...)  optional manager/method absent

4) FatalProcessError (contained)
   - emit_handler_exception(...)  handler raised inside the dispatcher
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event


JsonDict = Dict[str, Any]


def emit_llm_failure(
    bus: Optional[EventBus],
    *,
    role: str,
    error_repr: str,
    fallback: str,
    meta: Optional[JsonDict] = None,
) -> None:
    """
    Report a failed strategy text call and the fallback that replaced it.

        try:
            text = await provider.generate_content(prompt)
        except Exception as exc:
            emit_llm_failure(bus, role="combat", error_repr=repr(exc),
                             fallback="default_strategy")
    """
    log_event(
        bus=bus,
        module="runtime.llm",
        event_type=EventType.LOG,
        message=f"LLM failure for role={role}, using {fallback}",
        payload={
            "subtype": "LLM_FAILURE",
            "llm_role": role,
            "error": error_repr,
            "fallback": fallback,
            "meta": meta or {},
        },
    )


def emit_navigation_failure(
    bus: Optional[EventBus],
    *,
    purpose: str,
    target: JsonDict,
    error_repr: str,
) -> None:
    log_event(
        bus=bus,
        module="bot_core.nav",
        event_type=EventType.LOG,
        message=f"Navigation failed ({purpose})",
        payload={
            "subtype": "NAVIGATION_FAILURE",
            "purpose": purpose,
            "target": target,
            "error": error_repr,
        },
    )


def emit_data_integrity_warning(
    bus: Optional[EventBus],
    *,
    operation: str,
    reason: str,
    payload_repr: str,
) -> None:
    log_event(
        bus=bus,
        module="bot_core.world_state",
        event_type=EventType.LOG,
        message=f"Dropped malformed payload in {operation}: {reason}",
        payload={
            "subtype": "DATA_INTEGRITY_WARNING",
            "operation": operation,
            "reason": reason,
            "payload": payload_repr,
        },
    )


def emit_collaborator_unavailable(
    bus: Optional[EventBus],
    *,
    collaborator: str,
    action: str,
) -> None:
    log_event(
        bus=bus,
        module="runtime.collaborators",
        event_type=EventType.LOG,
        message=f"{collaborator}.{action} not available, skipped",
        payload={
            "subtype": "COLLABORATOR_UNAVAILABLE",
            "collaborator": collaborator,
            "action": action,
        },
    )


def emit_handler_exception(
    bus: Optional[EventBus],
    *,
    event_name: str,
    error_repr: str,
    event_id: Optional[str] = None,
) -> None:
    log_event(
        bus=bus,
        module="bot_core.dispatcher",
        event_type=EventType.HANDLER_ERROR,
        message=f"Handler for '{event_name}' raised",
        payload={
            "subtype": "HANDLER_EXCEPTION",
            "event": event_name,
            "error": error_repr,
        },
        correlation_id=event_id,
    )
