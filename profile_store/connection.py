"""
Redis Connection

Shared, lazily created Redis client for RedisProfileStore. Only hosts that
select the Redis backend ever call into this module.
"""

import os
import logging
from functools import lru_cache

import redis
from redis.exceptions import RedisError, AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 50
DEFAULT_SOCKET_TIMEOUT = 5.0


def _pool_from_env() -> redis.ConnectionPool:
    max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", DEFAULT_MAX_CONNECTIONS))
    socket_timeout = float(os.getenv("REDIS_SOCKET_TIMEOUT", DEFAULT_SOCKET_TIMEOUT))

    url = os.getenv("REDIS_URL")
    if url:
        return redis.ConnectionPool.from_url(
            url,
            decode_responses=True,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
        )

    password = os.getenv("REDIS_PASSWORD")
    if not password:
        logger.critical("Neither REDIS_URL nor REDIS_PASSWORD is set.")
        raise ValueError("REDIS_PASSWORD is required for the Redis profile store.")

    return redis.ConnectionPool(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", 6379)),
        db=int(os.getenv("REDIS_DB", 0)),
        password=password,
        decode_responses=True,
        max_connections=max_connections,
        socket_timeout=socket_timeout,
    )


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """
    Return the process-wide Redis client, connecting on first use.

    Environment:
    - REDIS_URL: Full connection URL; takes precedence over the fields below
    - REDIS_HOST / REDIS_PORT / REDIS_DB: Defaults localhost / 6379 / 0
    - REDIS_PASSWORD: Required unless REDIS_URL is set
    - REDIS_MAX_CONNECTIONS / REDIS_SOCKET_TIMEOUT: Pool tuning

    Raises:
        ValueError: No credentials configured.
        redis.RedisError: The server is unreachable or rejects the credentials.
    """
    pool = _pool_from_env()
    client = redis.Redis(connection_pool=pool)

    try:
        client.ping()
    except AuthenticationError:
        logger.critical("Redis authentication failed. Check REDIS_PASSWORD.")
        pool.disconnect()
        raise
    except RedisError as e:
        logger.critical(f"Could not connect to Redis: {e}")
        pool.disconnect()
        raise

    kwargs = pool.connection_kwargs
    logger.info(
        f"Profile store connected to Redis at "
        f"{kwargs.get('host')}:{kwargs.get('port')}/{kwargs.get('db', 0)}"
    )
    return client


def close_redis_client() -> None:
    """Disconnect the shared client's pool, if one was created."""
    if get_redis_client.cache_info().currsize == 0:
        return
    get_redis_client().connection_pool.disconnect()
    get_redis_client.cache_clear()
    logger.info("Redis connection pool closed")
