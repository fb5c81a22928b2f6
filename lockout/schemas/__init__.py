"""
Lockout Schemas

Public exports for input and output Pydantic models.
"""

from lockout.schemas.inputs import (
    AdminOverride,
    LoginAttempt,
    UserAction,
)

from lockout.schemas.outputs import (
    EngineMetrics,
    FailedLoginRecord,
    ProfileSnapshot,
    RiskDecision,
)

__all__ = [
    # Input
    "LoginAttempt",
    "UserAction",
    "AdminOverride",
    # Output
    "RiskDecision",
    "FailedLoginRecord",
    "ProfileSnapshot",
    "EngineMetrics",
]
