"""
Structured JSON event emission (shared).

Used by the speech pipeline and the tutor service. Every event carries the same
envelope (ts, session_id, component, event_type, severity, correlation_id,
pii) followed by event-specific fields.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .event_store import event_store


class Component(str, Enum):
    """Event source components."""

    SPEECH = "speech"
    TUTOR = "tutor"
    API = "api"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


def pii_fields(*fields: str) -> Optional[Dict[str, Any]]:
    """PII marker for the given payload fields, or None when there are none."""
    names = [f for f in fields if f]
    if not names:
        return None
    return {"contains_pii": True, "fields": names, "handling": "none"}


class EventEmitter:
    """Emits structured JSON events to stdout and the in-memory event store."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Emit one event and return the envelope that was written.

        Args:
            event_type: Stable event type string (e.g. "speech.completed")
            session_id: Conversation id, or "unknown" outside a conversation
            severity: Event severity level
            correlation_id: Job / turn id; defaults to session_id
            pii: PII metadata (contains_pii, fields, handling)
            **kwargs: Event-specific fields
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
            "pii": pii or DEFAULT_PII,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        event_store.store(event)
        return event
