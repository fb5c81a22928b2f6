"""
Lockout

Adaptive risk scoring and account lockout for authentication endpoints.
"""

from lockout.config import AnomalyConfig
from lockout.engine import LOCKED_REASON, AnomalyEngine
from lockout.events import LoggingEventSink, RiskEvent, RiskEventType

__all__ = [
    "AnomalyConfig",
    "AnomalyEngine",
    "LOCKED_REASON",
    "LoggingEventSink",
    "RiskEvent",
    "RiskEventType",
]
