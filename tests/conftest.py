"""
Lockout Test Suite - Shared Pytest Fixtures

This conftest.py provides fixtures for all test categories including:
- A controllable clock and engine instances
- Redis connection and cleanup for store integration tests
- GeoIP mocking utilities for the audit logger

Usage:
    pytest tests/ -v
"""

import os
import pytest
from contextlib import contextmanager
from typing import Dict, List
from unittest.mock import patch, MagicMock

from lockout.config import AnomalyConfig
from lockout.engine import AnomalyEngine
from lockout.events import RiskEvent, RiskEventType
from profile_store.memory import InMemoryProfileStore


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Manually advanced clock passed to the engine as ``clock``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def event_types(events: List[RiskEvent]) -> List[RiskEventType]:
    return [event.event_type for event in events]


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> List[RiskEvent]:
    """Collected events; the list's append is used as an event sink."""
    return []


@pytest.fixture
def config() -> AnomalyConfig:
    return AnomalyConfig()


@pytest.fixture
def store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def engine(config, store, clock, events) -> AnomalyEngine:
    """Fresh engine per test; the decay scheduler is not started."""
    return AnomalyEngine(
        config=config,
        store=store,
        clock=clock,
        event_sinks=[events.append],
    )


# =============================================================================
# Redis Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def redis_client():
    """
    Session-scoped Redis client for integration tests.

    Skipped when no Redis server is reachable.
    """
    import redis

    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", "6379"))
    password = os.environ.get("REDIS_PASSWORD")

    try:
        client = redis.Redis(
            host=host,
            port=port,
            password=password,
            decode_responses=True,
            socket_timeout=1.0,
        )
        client.ping()
    except redis.RedisError:
        pytest.skip(f"Redis not available at {host}:{port}")

    yield client
    client.close()


@pytest.fixture
def clean_redis(redis_client):
    """
    Function-scoped fixture that provides a clean Redis state.
    Flushes the database after each test for isolation.
    """
    yield redis_client
    redis_client.flushdb()


# =============================================================================
# GeoIP Fixtures
# =============================================================================

@pytest.fixture
def mock_geoip():
    """
    Fixture that returns a context manager for mocking GeoIP responses.

    Usage:
        def test_example(mock_geoip):
            ip_responses = {
                "8.8.8.8": {"latitude": 37.7749, "longitude": -122.4194, ...}
            }
            with mock_geoip(ip_responses):
                # Your test code here
                pass
    """
    @contextmanager
    def _mock_geoip(ip_responses: Dict[str, dict]):
        def create_mock_response(ip: str):
            if ip not in ip_responses:
                raise Exception(f"IP {ip} not in mock database")

            data = ip_responses[ip]

            mock_response = MagicMock()
            mock_response.location.latitude = data.get("latitude", 0.0)
            mock_response.location.longitude = data.get("longitude", 0.0)
            mock_response.city.name = data.get("city_name", "MockCity")
            mock_response.country.iso_code = data.get("country_iso", "US")

            return mock_response

        mock_reader = MagicMock()
        mock_reader.city.side_effect = create_mock_response

        with patch("geoip2.database.Reader") as MockReader:
            MockReader.return_value = mock_reader
            yield mock_reader

    return _mock_geoip
