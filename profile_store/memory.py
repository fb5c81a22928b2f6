"""
In-Memory Profile Store

Thread-safe, process-local "hot storage" for user risk profiles.

Locking:
    Profiles are guarded by a fixed array of striped locks (user_id hash →
    stripe) so that mutations for different users rarely contend. A separate
    table lock protects the dict itself and is only held for single
    get/insert/delete operations, never while a profile is being mutated.

Usage:
    store = InMemoryProfileStore()
    store.update_atomic("usr_123", lambda p: p.risk_score, create=...)
"""

from __future__ import annotations

import copy
import threading
import zlib
from typing import Callable, Dict, List, Optional, TypeVar

from .base import ProfileStore, UserProfile


T = TypeVar("T")


class InMemoryProfileStore(ProfileStore):
    """
    Dict-backed ProfileStore with lock striping.

    Attributes:
        STRIPE_COUNT: Default number of profile lock stripes.
    """

    STRIPE_COUNT: int = 64

    def __init__(self, stripe_count: Optional[int] = None) -> None:
        count = stripe_count or self.STRIPE_COUNT
        if count < 1:
            raise ValueError("stripe_count must be >= 1")

        self._profiles: Dict[str, UserProfile] = {}
        self._table_lock: threading.Lock = threading.Lock()
        self._stripes: List[threading.Lock] = [threading.Lock() for _ in range(count)]

    def _stripe_for(self, user_id: str) -> threading.Lock:
        # crc32 rather than hash() so stripe assignment is stable across runs
        index = zlib.crc32(user_id.encode("utf-8")) % len(self._stripes)
        return self._stripes[index]

    def get(self, user_id: str) -> Optional[UserProfile]:
        with self._stripe_for(user_id):
            with self._table_lock:
                profile = self._profiles.get(user_id)
            if profile is None:
                return None
            return copy.deepcopy(profile)

    def update_atomic(
        self,
        user_id: str,
        update_fn: Callable[[UserProfile], T],
        create: Optional[Callable[[], UserProfile]] = None,
    ) -> Optional[T]:
        with self._stripe_for(user_id):
            with self._table_lock:
                profile = self._profiles.get(user_id)

            if profile is None:
                if create is None:
                    return None
                # Cold start: only this stripe can create the key, so no double insert
                profile = create()
                with self._table_lock:
                    self._profiles[user_id] = profile

            return update_fn(profile)

    def user_ids(self) -> List[str]:
        with self._table_lock:
            return list(self._profiles.keys())

    def delete(self, user_id: str) -> bool:
        with self._stripe_for(user_id):
            with self._table_lock:
                return self._profiles.pop(user_id, None) is not None

    def clear(self) -> None:
        with self._table_lock:
            self._profiles.clear()
