"""
Lockout Output Schemas

Pydantic models returned by the AnomalyEngine.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Decision
# =============================================================================

class RiskDecision(BaseModel):
    """Result of recording a login attempt or user action."""
    risk_score: float = Field(..., ge=0.0, description="Current risk score")
    is_locked: bool = Field(..., description="Whether the account is locked")
    reason: Optional[str] = Field(None, description="Human-readable lock reason (only when locked)")
    lock_expires_at: Optional[float] = Field(
        None,
        description="Unix timestamp at which the lock auto-expires (only when locked)"
    )


# =============================================================================
# Admin Views
# =============================================================================

class FailedLoginRecord(BaseModel):
    """A failed login attempt still inside the detection window."""
    timestamp: float
    ip: str


class ProfileSnapshot(BaseModel):
    """Read-only diagnostic view of a user's risk profile."""
    user_id: str
    identity_label: str
    risk_score: float = Field(..., ge=0.0)
    is_locked: bool
    lock_expires_at: Optional[float] = None
    last_score_update_ts: float
    failed_login_attempts: List[FailedLoginRecord] = Field(default_factory=list)


class EngineMetrics(BaseModel):
    """Aggregate snapshot over all profiles for monitoring."""
    total_profiles: int = Field(..., ge=0)
    locked_count: int = Field(..., ge=0)
    high_risk_count: int = Field(..., ge=0, description="At or above warning threshold, not locked")
    average_score: float = Field(..., ge=0.0)
