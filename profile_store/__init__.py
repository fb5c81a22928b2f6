"""
Lockout Profile Store

Public exports for the profile storage backends and the audit sink.
"""

from .base import ProfileStore, ProfileStoreError, UserProfile
from .memory import InMemoryProfileStore
from .connection import close_redis_client, get_redis_client
from .redis_store import RedisProfileStore
from .audit_logger import AuditLogger

__all__ = [
    "ProfileStore",
    "ProfileStoreError",
    "UserProfile",
    "InMemoryProfileStore",
    "get_redis_client",
    "close_redis_client",
    "RedisProfileStore",
    "AuditLogger",
]
