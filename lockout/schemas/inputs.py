"""
Lockout Input Schemas

Minimal input contract for hosts that receive signals over the wire. The
engine itself takes plain arguments; these models validate request bodies
before they reach it.
"""

from typing import Optional

from pydantic import BaseModel, Field


class LoginAttempt(BaseModel):
    """Outcome of a credential check reported by an authentication handler."""
    user_id: str = Field(..., min_length=1, description="Stable user identifier")
    identity_label: str = Field("", description="Human-readable identity (e.g. email), logging only")
    source_ip: str = Field("unknown", description="Client IP address of the attempt")
    success: bool = Field(..., description="Whether the credentials were valid")


class UserAction(BaseModel):
    """Authenticated request reported by a route guard."""
    user_id: str = Field(..., min_length=1, description="Stable user identifier")
    identity_label: str = Field("", description="Human-readable identity (e.g. email), logging only")


class AdminOverride(BaseModel):
    """Body for administrative reset/unlock calls."""
    reason: Optional[str] = Field(None, max_length=500, description="Free-text justification")
