"""
Risk Events

Every score mutation, lock transition and blocked attempt is described as a
RiskEvent and handed to the host's sinks. The engine never decides where the
audit trail ends up; sinks are plain callables ``sink(event) -> None``.

LoggingEventSink is the default sink and routes events to stdlib logging with
the event payload attached as ``extra["risk_event"]``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict

from pydantic import BaseModel, Field


# =============================================================================
# Event Model
# =============================================================================

class RiskEventType(str, Enum):
    """Kinds of structured events emitted by the engine."""
    SCORE_INCREASED = "RISK_SCORE_UPDATED"
    SCORE_DECAYED = "RISK_SCORE_DECAYED"
    SCORE_RESET = "RISK_SCORE_RESET"
    WARNING = "RISK_WARNING"
    LOCKED = "ACCOUNT_LOCKED"
    UNLOCKED = "ACCOUNT_UNLOCKED"
    BLOCKED = "LOCKED_ACCOUNT_BLOCKED"


class RiskEvent(BaseModel):
    """A single auditable change in a user's risk state."""
    event_type: RiskEventType = Field(..., description="What happened")
    user_id: str = Field(..., description="Affected user")
    identity_label: str = Field("", description="Identity label for diagnostics")
    old_score: float = Field(..., ge=0.0)
    new_score: float = Field(..., ge=0.0)
    cause: str = Field(..., description="Signal or override that caused the event")
    timestamp: float = Field(..., description="Engine clock time of the event")
    details: Dict[str, Any] = Field(default_factory=dict)


EventSink = Callable[[RiskEvent], None]


# =============================================================================
# Logging Sink
# =============================================================================

_WARNING_EVENTS = frozenset({
    RiskEventType.SCORE_INCREASED,
    RiskEventType.WARNING,
    RiskEventType.LOCKED,
    RiskEventType.BLOCKED,
})

_MESSAGES = {
    RiskEventType.SCORE_INCREASED: "Risk score increased",
    RiskEventType.SCORE_DECAYED: "Risk score decayed",
    RiskEventType.SCORE_RESET: "Risk score reset",
    RiskEventType.WARNING: "Account approaching lock threshold",
    RiskEventType.LOCKED: "Account locked due to high risk",
    RiskEventType.UNLOCKED: "Account unlocked",
    RiskEventType.BLOCKED: "Request blocked - account locked",
}


class LoggingEventSink:
    """Route risk events to a stdlib logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, event: RiskEvent) -> None:
        level = logging.WARNING if event.event_type in _WARNING_EVENTS else logging.INFO
        self.logger.log(
            level,
            f"{_MESSAGES[event.event_type]}: user={event.user_id} "
            f"score={event.old_score:.2f}->{event.new_score:.2f} cause={event.cause}",
            extra={"risk_event": event.model_dump(mode="json")},
        )
