"""
Profile Store Interface

Defines the per-user risk profile state and the small storage contract the
AnomalyEngine depends on. Any backend (process-local dict, Redis, ...) that
implements ProfileStore can be swapped in without touching scoring logic.

Atomicity contract:
    update_atomic(user_id, fn) runs ``fn`` against the stored profile inside a
    per-key critical section and persists the result. Backends with optimistic
    concurrency may call ``fn`` more than once, so it must only mutate the
    profile it is given and return its side effects as data.

Failure contract:
    None always means "no such profile". A backend that cannot answer raises
    ProfileStoreError instead, so callers can tell an outage from an unknown
    user.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar


T = TypeVar("T")


class ProfileStoreError(Exception):
    """The storage backend failed; the profile may or may not exist."""


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class UserProfile:
    """Behavioral risk state for a single user."""

    user_id: str
    identity_label: str = ""
    risk_score: float = 0.0
    last_score_update_ts: float = 0.0

    is_locked: bool = False
    lock_expires_at: Optional[float] = None

    # {"timestamp": float, "ip": str}
    failed_logins: List[Dict[str, Any]] = field(default_factory=list)
    request_timestamps: List[float] = field(default_factory=list)
    # {"ip": str, "timestamp": float}
    recent_ips: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UserProfile:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# =============================================================================
# Store Interface
# =============================================================================

class ProfileStore(ABC):
    """Storage contract for user risk profiles."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserProfile]:
        """
        Return a detached copy of the profile, or None if unknown.

        Raises:
            ProfileStoreError: The backend could not be read.
        """

    @abstractmethod
    def update_atomic(
        self,
        user_id: str,
        update_fn: Callable[[UserProfile], T],
        create: Optional[Callable[[], UserProfile]] = None,
    ) -> Optional[T]:
        """
        Atomically apply ``update_fn`` to a profile and persist it.

        Args:
            user_id: Profile key.
            update_fn: Mutates the profile in place, returns a result.
            create: Factory for a fresh profile. When omitted, unknown users
                are not created and None is returned.

        Returns:
            Whatever ``update_fn`` returned, or None when the profile does not
            exist and ``create`` is None.

        Raises:
            ProfileStoreError: The backend failed or the update could not be
                committed. Nothing was persisted.
        """

    @abstractmethod
    def user_ids(self) -> List[str]:
        """Snapshot of all known profile keys."""

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        """Evict a profile. Returns True if it existed."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every profile."""

    def profiles(self) -> Iterator[UserProfile]:
        """Iterate detached copies of every profile."""
        for user_id in self.user_ids():
            profile = self.get(user_id)
            if profile is not None:
                yield profile

    def __len__(self) -> int:
        return len(self.user_ids())
