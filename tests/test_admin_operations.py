"""
Administrative Operation Tests

get_status, reset_risk_score, unlock_account, get_metrics and runtime
configuration changes.
"""

import pytest
from pydantic import ValidationError

from lockout.events import RiskEventType
from tests.conftest import event_types


def fail(engine, user_id="u1", times=1, ip="1.1.1.1"):
    decision = None
    for _ in range(times):
        decision = engine.record_login_attempt(user_id, f"{user_id}@example.com", ip, False)
    return decision


# =============================================================================
# Status
# =============================================================================

class TestGetStatus:
    """Diagnostic profile snapshots."""

    def test_unknown_user(self, engine):
        assert engine.get_status("ghost") is None

    def test_known_user_with_zero_score(self, engine):
        """A user who has been seen is distinguishable from an unknown one."""
        engine.record_user_action("u1", "u1@example.com")
        snapshot = engine.get_status("u1")

        assert snapshot is not None
        assert snapshot.risk_score == 0.0
        assert snapshot.is_locked is False
        assert snapshot.identity_label == "u1@example.com"

    def test_lists_failed_attempts_in_window(self, engine, clock):
        fail(engine, times=1, ip="2.2.2.2")
        clock.advance(200)
        fail(engine, times=1, ip="2.2.2.2")
        clock.advance(200)

        snapshot = engine.get_status("u1")
        assert len(snapshot.failed_login_attempts) == 1
        assert snapshot.failed_login_attempts[0].ip == "2.2.2.2"

    def test_reports_lock(self, engine, clock):
        fail(engine, times=6)
        snapshot = engine.get_status("u1")
        assert snapshot.is_locked is True
        assert snapshot.lock_expires_at == clock.now + 900

    def test_applies_lazy_expiry(self, engine, clock, events):
        fail(engine, times=6)
        clock.advance(901)
        events.clear()

        snapshot = engine.get_status("u1")
        assert snapshot.is_locked is False
        assert snapshot.lock_expires_at is None
        assert engine.store.get("u1").is_locked is False
        assert event_types(events) == [RiskEventType.UNLOCKED]

    def test_read_does_not_mutate_unlocked_profile(self, engine, clock):
        fail(engine, times=4)
        before = engine.store.get("u1").to_dict()
        clock.advance(120)
        engine.get_status("u1")
        assert engine.store.get("u1").to_dict() == before


# =============================================================================
# Reset
# =============================================================================

class TestResetRiskScore:
    """Full administrative reset."""

    def test_reset_unknown_user(self, engine):
        assert engine.reset_risk_score("ghost") is False
        assert engine.store.get("ghost") is None

    def test_reset_clears_score_history_and_lock(self, engine, events):
        fail(engine, times=6)
        events.clear()

        assert engine.reset_risk_score("u1", "false positive") is True

        profile = engine.store.get("u1")
        assert profile.risk_score == 0.0
        assert profile.failed_logins == []
        assert profile.is_locked is False
        assert event_types(events) == [RiskEventType.SCORE_RESET, RiskEventType.UNLOCKED]
        assert events[0].old_score == 100.0
        assert events[0].cause == "false positive"

    def test_reset_behaves_like_new_user(self, engine):
        """After reset, the next failure scores exactly like a first failure."""
        fail(engine, times=6)
        engine.reset_risk_score("u1")

        after_reset = fail(engine)
        fresh = fail(engine, user_id="fresh")
        assert after_reset.risk_score == fresh.risk_score == 0.0
        assert after_reset.is_locked is fresh.is_locked is False

    def test_reset_keeps_known_networks(self, engine):
        engine.record_login_attempt("u1", "e", "9.9.9.9", True)
        engine.reset_risk_score("u1")
        decision = engine.record_login_attempt("u1", "e", "9.9.9.9", True)
        assert decision.risk_score == 0.0


# =============================================================================
# Unlock
# =============================================================================

class TestUnlockAccount:
    """Lock removal without touching the score."""

    def test_unlock_unknown_user(self, engine):
        assert engine.unlock_account("ghost") is False

    def test_unlock_keeps_score(self, engine, events):
        fail(engine, times=6)
        events.clear()

        assert engine.unlock_account("u1") is True

        profile = engine.store.get("u1")
        assert profile.is_locked is False
        assert profile.lock_expires_at is None
        assert profile.risk_score == 100.0
        assert event_types(events) == [RiskEventType.UNLOCKED]
        assert events[0].details["manual"] is True

    def test_unlock_of_unlocked_account_is_noop(self, engine, events):
        fail(engine)
        events.clear()
        assert engine.unlock_account("u1") is True
        assert events == []

    def test_successful_login_after_unlock_stays_unlocked(self, engine):
        fail(engine, times=6)
        engine.unlock_account("u1")
        decision = engine.record_login_attempt("u1", "e", "1.1.1.1", True)
        assert decision.is_locked is False
        assert decision.risk_score == 100.0

    def test_new_penalty_after_unlock_relocks(self, engine):
        fail(engine, times=6)
        engine.unlock_account("u1")
        decision = engine.record_login_attempt("u1", "e", "5.5.5.5", True)
        assert decision.is_locked is True


# =============================================================================
# Metrics
# =============================================================================

class TestMetrics:
    """Aggregate counters across all profiles."""

    def test_empty_engine(self, engine):
        metrics = engine.get_metrics()
        assert metrics.total_profiles == 0
        assert metrics.locked_count == 0
        assert metrics.high_risk_count == 0
        assert metrics.average_score == 0.0

    def test_counts(self, engine):
        fail(engine, user_id="locked", times=6)   # 100, locked
        fail(engine, user_id="warned", times=5)   # 60
        engine.record_user_action("calm", "e")    # 0

        metrics = engine.get_metrics()
        assert metrics.total_profiles == 3
        assert metrics.locked_count == 1
        assert metrics.high_risk_count == 1
        assert metrics.average_score == pytest.approx(160 / 3)

    def test_expired_lock_counts_as_high_risk(self, engine, clock):
        fail(engine, user_id="locked", times=6)
        fail(engine, user_id="warned", times=5)
        clock.advance(901)

        metrics = engine.get_metrics()
        assert metrics.locked_count == 0
        assert metrics.high_risk_count == 2


# =============================================================================
# Configuration
# =============================================================================

class TestRuntimeConfig:
    """get_config / update_config."""

    def test_get_config_returns_active(self, engine, config):
        assert engine.get_config() is config

    def test_update_config_applies_to_next_event(self, engine):
        engine.update_config(failed_login_penalty=50.0)
        decisions = [fail(engine) for _ in range(3)]
        assert decisions[-1].risk_score == 50.0
        assert engine.get_config().failed_login_penalty == 50.0

    def test_invalid_update_keeps_previous_config(self, engine, config):
        with pytest.raises(ValidationError):
            engine.update_config(warning_threshold=90.0)
        assert engine.get_config() is config

    def test_unknown_field_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.update_config(not_a_setting=1)
