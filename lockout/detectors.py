"""
Signal Detectors

Pure functions over a profile's history windows. Each detector prunes lazily:
entries at or before ``now - window`` are dropped before counting.
"""

from __future__ import annotations

from typing import Any, Dict, List


def prune_timestamps(timestamps: List[float], now: float, window: float) -> List[float]:
    """Keep timestamps strictly newer than ``now - window``."""
    cutoff = now - window
    return [ts for ts in timestamps if ts > cutoff]


def prune_records(
    records: List[Dict[str, Any]],
    now: float,
    window: float,
) -> List[Dict[str, Any]]:
    """Keep ``{"timestamp": ...}`` records strictly newer than ``now - window``."""
    cutoff = now - window
    return [record for record in records if record["timestamp"] > cutoff]


def failed_login_excess(failure_count: int, threshold: int) -> int:
    """
    Number of failures that accrue a penalty.

    With a threshold of 3, two failures are free and the third counts as one
    excess failure.
    """
    return max(0, failure_count - (threshold - 1))


def is_rapid_activity(request_count: int, threshold: int) -> bool:
    return request_count >= threshold


def is_ip_change(recent_ips: List[Dict[str, Any]], source_ip: str) -> bool:
    """
    True when ``source_ip`` is absent from a non-empty set of known IPs.

    A user's first sighting never counts as a change.
    """
    if not recent_ips:
        return False
    known = {record["ip"] for record in recent_ips}
    return source_ip not in known
