"""
Redis Profile Store

Redis-backed ProfileStore for multi-instance deployments. Scoring logic is
unchanged; only the backing map moves out of process.

Key Schemas:
    RISK_PROFILE:{user_id}  → UserProfile JSON (sliding TTL)

Profile mutations use WATCH/MULTI/EXEC with a bounded retry loop. Writes only
happen when a profile actually changed, so idle profiles age out on their TTL.
Redis failures are logged and raised as ProfileStoreError; the engine decides
whether to fail open (recording) or surface the outage (admin reads).
"""

from __future__ import annotations

import json
import logging
from typing import Callable, List, Optional, TypeVar

import redis
from redis.exceptions import RedisError, WatchError

from .base import ProfileStore, ProfileStoreError, UserProfile
from .connection import get_redis_client


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisProfileStore(ProfileStore):
    """
    Redis-based profile repository with optimistic per-key atomicity.

    Implements:
    - Per-profile atomicity via WATCH/MULTI/EXEC
    - Sliding TTL refreshed only by real changes (eviction of idle profiles)
    - Key scanning for the decay sweep
    """

    KEY_PREFIX: str = "RISK_PROFILE"
    PROFILE_TTL: int = 86400  # 24 hours
    MAX_RETRIES: int = 5
    SCAN_COUNT: int = 500

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        profile_ttl: Optional[int] = None,
    ) -> None:
        self.client = client if client is not None else get_redis_client()
        self.profile_ttl = profile_ttl or self.PROFILE_TTL

    # -------------------------------------------------------------------------
    # Key Builders
    # -------------------------------------------------------------------------

    def _profile_key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    def _user_id_from_key(self, key: str) -> str:
        return key[len(self.KEY_PREFIX) + 1:]

    # -------------------------------------------------------------------------
    # Profile Operations
    # -------------------------------------------------------------------------

    def get(self, user_id: str) -> Optional[UserProfile]:
        """Get profile, returns None if expired/missing."""
        try:
            data = self.client.get(self._profile_key(user_id))
        except RedisError as e:
            logger.error(f"Failed to get risk profile {user_id}: {e}")
            raise ProfileStoreError(f"Could not read risk profile {user_id}") from e

        if data is None:
            return None
        return self._decode(user_id, data)

    def update_atomic(
        self,
        user_id: str,
        update_fn: Callable[[UserProfile], T],
        create: Optional[Callable[[], UserProfile]] = None,
    ) -> Optional[T]:
        """
        Atomically load, mutate and save one profile.

        ``update_fn`` is re-run against a freshly loaded profile on every
        WATCH conflict. An existing profile that ``update_fn`` left unchanged
        is not written back, so its TTL keeps running down.
        """
        key = self._profile_key(user_id)

        for attempt in range(self.MAX_RETRIES):
            try:
                with self.client.pipeline(True) as pipe:
                    pipe.watch(key)

                    raw = pipe.get(key)
                    if raw is None:
                        if create is None:
                            return None
                        profile = create()
                        before = None
                    else:
                        profile = self._decode(user_id, raw)
                        before = profile.to_dict()

                    result = update_fn(profile)

                    after = profile.to_dict()
                    if after == before:
                        pipe.unwatch()
                        return result

                    pipe.multi()
                    pipe.setex(key, self.profile_ttl, json.dumps(after))
                    pipe.execute()

                    return result

            except WatchError:
                logger.debug(f"Watch conflict on risk profile {user_id}, attempt {attempt + 1}")
                continue
            except RedisError as e:
                logger.error(f"Redis error on risk profile update {user_id}: {e}")
                raise ProfileStoreError(f"Could not update risk profile {user_id}") from e

        logger.warning(f"Max retries exceeded for risk profile update {user_id}")
        raise ProfileStoreError(
            f"Risk profile {user_id} still contended after {self.MAX_RETRIES} attempts"
        )

    def user_ids(self) -> List[str]:
        try:
            return [
                self._user_id_from_key(key)
                for key in self.client.scan_iter(
                    match=f"{self.KEY_PREFIX}:*", count=self.SCAN_COUNT
                )
            ]
        except RedisError as e:
            logger.error(f"Failed to scan risk profiles: {e}")
            raise ProfileStoreError("Could not list risk profiles") from e

    def delete(self, user_id: str) -> bool:
        try:
            return self.client.delete(self._profile_key(user_id)) > 0
        except RedisError as e:
            logger.warning(f"Failed to delete risk profile {user_id}: {e}")
            raise ProfileStoreError(f"Could not delete risk profile {user_id}") from e

    def clear(self) -> None:
        try:
            keys = list(self.client.scan_iter(
                match=f"{self.KEY_PREFIX}:*", count=self.SCAN_COUNT
            ))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"Failed to clear risk profiles: {e}")
            raise ProfileStoreError("Could not clear risk profiles") from e

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    @staticmethod
    def _decode(user_id: str, raw: str) -> UserProfile:
        try:
            return UserProfile.from_dict(json.loads(raw))
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Corrupt risk profile payload for {user_id}: {e}")
            raise ProfileStoreError(f"Corrupt risk profile {user_id}") from e
