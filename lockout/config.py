"""
Anomaly Engine Configuration

Tunables for scoring, windows, decay and locking. Every value can be set at
construction time or from ``ANOMALY_<FIELD>`` environment variables.
Out-of-range values raise pydantic.ValidationError at startup.
"""

from __future__ import annotations

import os
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AnomalyConfig(BaseModel):
    """Immutable, validated engine configuration. Durations are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Score thresholds
    risk_threshold: float = Field(80.0, gt=0, description="Score at which to lock the account")
    warning_threshold: float = Field(50.0, gt=0, description="Score at which to emit warnings")
    max_risk_score: float = Field(100.0, gt=0, description="Upper clamp for the risk score")

    # Rapid authenticated actions
    rapid_request_window_seconds: float = Field(60.0, gt=0)
    rapid_request_threshold: int = Field(10, ge=1, description="Actions per window to trigger")
    rapid_request_penalty: float = Field(20.0, gt=0)

    # Failed logins
    failed_login_window_seconds: float = Field(300.0, gt=0)
    failed_login_threshold: int = Field(3, ge=1, description="Failures before penalties accrue")
    failed_login_penalty: float = Field(10.0, gt=0, description="Points per failure beyond threshold")

    # IP change
    ip_change_window_seconds: float = Field(3600.0, gt=0)
    ip_change_penalty: float = Field(15.0, gt=0)

    # Decay and locking
    decay_rate: float = Field(0.05, gt=0, le=1, description="Fraction of score removed per minute")
    lock_duration_seconds: float = Field(900.0, gt=0)
    decay_interval_seconds: float = Field(60.0, gt=0, description="Background decay period")

    @model_validator(mode="after")
    def _check_threshold_order(self) -> AnomalyConfig:
        if self.warning_threshold >= self.risk_threshold:
            raise ValueError("warning_threshold must be below risk_threshold")
        if self.risk_threshold > self.max_risk_score:
            raise ValueError("risk_threshold must not exceed max_risk_score")
        return self

    @classmethod
    def from_env(cls, prefix: str = "ANOMALY_", **overrides: Any) -> AnomalyConfig:
        """
        Build a config from environment variables.

        ``ANOMALY_RISK_THRESHOLD=70`` sets ``risk_threshold``; unset variables
        keep their defaults. Explicit ``overrides`` win over the environment.
        """
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None and raw.strip() != "":
                values[name] = raw.strip()
        values.update(overrides)
        return cls(**values)

    def with_changes(self, **changes: Any) -> AnomalyConfig:
        """Return a validated copy with ``changes`` applied."""
        return type(self)(**{**self.model_dump(), **changes})
