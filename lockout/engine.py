"""
Anomaly Engine

Adaptive risk scoring and account lockout for authentication endpoints.

Signals:
    Failed logins → Rapid actions → IP change → Threshold → Lock

Each profile is either Unlocked or Locked:
- Unlocked → Locked when a score increase leaves risk_score >= risk_threshold
- Locked → Unlocked when now > lock_expires_at (checked lazily on access and
  by the decay sweep) or by an administrative unlock/reset

While locked, recording operations short-circuit and the score does not move.
Scores decay in proportion to elapsed time, not to the number of sweeps.

The engine does no I/O of its own. Profiles live in a ProfileStore, and every
state change is reported to event sinks as a RiskEvent after the mutation
commits.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional, Tuple

from lockout.config import AnomalyConfig
from lockout.detectors import (
    failed_login_excess,
    is_ip_change,
    is_rapid_activity,
    prune_records,
    prune_timestamps,
)
from lockout.events import EventSink, LoggingEventSink, RiskEvent, RiskEventType
from lockout.scheduler import DecayScheduler
from lockout.schemas.outputs import (
    EngineMetrics,
    FailedLoginRecord,
    ProfileSnapshot,
    RiskDecision,
)
from profile_store.base import ProfileStore, ProfileStoreError, UserProfile
from profile_store.memory import InMemoryProfileStore


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

LOCKED_REASON = "Account temporarily locked due to suspicious activity"

# Decays smaller than this are applied silently
MATERIAL_DECAY_AMOUNT = 0.1

SECONDS_PER_MINUTE = 60.0


Outcome = Tuple[RiskDecision, List[RiskEvent]]


# =============================================================================
# Engine
# =============================================================================

class AnomalyEngine:
    """
    Per-user risk scoring with time-bounded account locks.

    Construct one per host application and share it between request
    handlers. ``start()`` launches the background decay sweep; ``stop()``
    cancels it.
    """

    def __init__(
        self,
        config: Optional[AnomalyConfig] = None,
        store: Optional[ProfileStore] = None,
        clock: Optional[Callable[[], float]] = None,
        event_sinks: Optional[List[EventSink]] = None,
    ) -> None:
        self._config = config or AnomalyConfig()
        self.store = store if store is not None else InMemoryProfileStore()
        self.clock = clock or time.time
        self._sinks: List[EventSink] = (
            list(event_sinks) if event_sinks is not None else [LoggingEventSink()]
        )
        self._scheduler: Optional[DecayScheduler] = None

        logger.info(
            f"AnomalyEngine initialized (store={type(self.store).__name__}, "
            f"risk_threshold={self._config.risk_threshold}, "
            f"lock_duration={self._config.lock_duration_seconds}s)"
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic decay sweep."""
        if self._scheduler is None:
            self._scheduler = DecayScheduler(
                self.decay_tick,
                interval_seconds=self._config.decay_interval_seconds,
            )
        self._scheduler.start()

    def stop(self) -> None:
        """Stop the decay sweep, interrupting a pass in progress."""
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_running

    def __enter__(self) -> AnomalyEngine:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def config(self) -> AnomalyConfig:
        return self._config

    def get_config(self) -> AnomalyConfig:
        return self._config

    def update_config(self, **changes: Any) -> AnomalyConfig:
        """
        Validate and swap in a new configuration.

        Raises:
            pydantic.ValidationError: If the resulting config is invalid. The
                active config is left untouched in that case.
        """
        new_config = self._config.with_changes(**changes)
        self._config = new_config
        if self._scheduler is not None:
            self._scheduler.interval_seconds = new_config.decay_interval_seconds
        logger.info(f"Anomaly detection config updated: {changes}")
        return new_config

    def add_event_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    # -------------------------------------------------------------------------
    # Recording Operations
    # -------------------------------------------------------------------------

    def record_login_attempt(
        self,
        user_id: str,
        identity_label: str,
        source_ip: str,
        success: bool,
    ) -> RiskDecision:
        """Score a login attempt and return the resulting lock decision."""
        now = self.clock()
        config = self._config
        return self._record(
            user_id,
            identity_label,
            now,
            lambda p: self._apply_login(p, now, config, source_ip, success),
        )

    def record_user_action(self, user_id: str, identity_label: str) -> RiskDecision:
        """Score an authenticated action and return the resulting lock decision."""
        now = self.clock()
        config = self._config
        return self._record(
            user_id,
            identity_label,
            now,
            lambda p: self._apply_action(p, now, config),
        )

    def _record(
        self,
        user_id: str,
        identity_label: str,
        now: float,
        apply_fn: Callable[[UserProfile], Outcome],
    ) -> RiskDecision:
        def update(profile: UserProfile) -> Outcome:
            if identity_label:
                profile.identity_label = identity_label
            return apply_fn(profile)

        try:
            outcome = self.store.update_atomic(
                user_id,
                update,
                create=lambda: UserProfile(
                    user_id=user_id,
                    identity_label=identity_label,
                    last_score_update_ts=now,
                ),
            )
        except Exception:
            # Sits on the request path: fail open rather than break the caller
            logger.exception(f"Risk scoring failed for {user_id}")
            return self._fail_open()

        if outcome is None:
            logger.error(f"Profile store returned no profile, failing open for {user_id}")
            return self._fail_open()

        decision, events = outcome
        self._emit(events)
        return decision

    def _apply_login(
        self,
        profile: UserProfile,
        now: float,
        config: AnomalyConfig,
        source_ip: str,
        success: bool,
    ) -> Outcome:
        events: List[RiskEvent] = []

        if self._enforce_lock(profile, now, events):
            return self._blocked(profile, now, events, operation="login", source_ip=source_ip)

        raised = False

        if not success:
            profile.failed_logins.append({"timestamp": now, "ip": source_ip})
            profile.failed_logins = prune_records(
                profile.failed_logins, now, config.failed_login_window_seconds
            )
            excess = failed_login_excess(len(profile.failed_logins), config.failed_login_threshold)
            if excess > 0:
                self._add_risk(
                    profile, excess * config.failed_login_penalty, now, config,
                    "Multiple failed login attempts", events,
                    source_ip=source_ip, failed_attempts=len(profile.failed_logins),
                )
                raised = True
        else:
            # Only the failed-login signal resets; the score keeps decaying normally
            profile.failed_logins = []

        profile.recent_ips = prune_records(profile.recent_ips, now, config.ip_change_window_seconds)
        if is_ip_change(profile.recent_ips, source_ip):
            self._add_risk(
                profile, config.ip_change_penalty, now, config,
                "IP address changed", events,
                source_ip=source_ip,
                known_ips=sorted({record["ip"] for record in profile.recent_ips}),
            )
            raised = True
        profile.recent_ips.append({"ip": source_ip, "timestamp": now})

        return self._finalize(profile, now, config, raised, events, warn=True), events

    def _apply_action(
        self,
        profile: UserProfile,
        now: float,
        config: AnomalyConfig,
    ) -> Outcome:
        events: List[RiskEvent] = []

        if self._enforce_lock(profile, now, events):
            return self._blocked(profile, now, events, operation="action")

        profile.request_timestamps.append(now)
        profile.request_timestamps = prune_timestamps(
            profile.request_timestamps, now, config.rapid_request_window_seconds
        )

        raised = False
        if is_rapid_activity(len(profile.request_timestamps), config.rapid_request_threshold):
            self._add_risk(
                profile, config.rapid_request_penalty, now, config,
                "Rapid requests detected", events,
                requests_in_window=len(profile.request_timestamps),
            )
            raised = True

        return self._finalize(profile, now, config, raised, events, warn=False), events

    # -------------------------------------------------------------------------
    # Decay
    # -------------------------------------------------------------------------

    def decay_tick(self, should_stop: Optional[Callable[[], bool]] = None) -> int:
        """
        Decay every profile's score and expire stale locks.

        Each profile is handled in its own critical section. ``should_stop``
        is polled between profiles.

        Returns:
            Number of profiles visited.
        """
        now = self.clock()
        config = self._config
        visited = 0

        for user_id in self.store.user_ids():
            if should_stop is not None and should_stop():
                logger.info(f"Decay sweep interrupted after {visited} profiles")
                break

            try:
                events = self.store.update_atomic(
                    user_id,
                    lambda p: self._decay_profile(p, now, config),
                )
            except ProfileStoreError as e:
                logger.error(f"Decay skipped for {user_id}: {e}")
                continue
            if events is None:
                continue

            visited += 1
            self._emit(events)

        return visited

    def _decay_profile(
        self,
        profile: UserProfile,
        now: float,
        config: AnomalyConfig,
    ) -> List[RiskEvent]:
        events: List[RiskEvent] = []

        if profile.risk_score > 0:
            minutes_elapsed = max(0.0, now - profile.last_score_update_ts) / SECONDS_PER_MINUTE
            decay_amount = profile.risk_score * config.decay_rate * minutes_elapsed
            old_score = profile.risk_score

            profile.risk_score = max(0.0, old_score - decay_amount)
            profile.last_score_update_ts = now

            if decay_amount > MATERIAL_DECAY_AMOUNT:
                events.append(self._event(
                    profile, RiskEventType.SCORE_DECAYED, old_score, now, "Time decay",
                    decay_amount=round(decay_amount, 2),
                    minutes_elapsed=round(minutes_elapsed, 2),
                ))

        if (profile.is_locked and profile.lock_expires_at is not None
                and now > profile.lock_expires_at):
            self._unlock(profile, now, "lock_expired", events)

        return events

    # -------------------------------------------------------------------------
    # Administrative Operations
    # -------------------------------------------------------------------------

    def get_status(self, user_id: str) -> Optional[ProfileSnapshot]:
        """
        Diagnostic snapshot of a profile, or None if the user was never seen.

        Raises:
            ProfileStoreError: The store could not be read. An outage is never
                reported as an unknown user.
        """
        profile = self.store.get(user_id)
        if profile is None:
            return None

        now = self.clock()
        if self._lock_expired(profile, now):
            def expire(p: UserProfile) -> Tuple[UserProfile, List[RiskEvent]]:
                events: List[RiskEvent] = []
                self._enforce_lock(p, now, events)
                return UserProfile.from_dict(p.to_dict()), events

            outcome = self.store.update_atomic(user_id, expire)
            if outcome is None:
                return None
            profile, events = outcome
            self._emit(events)

        failed = prune_records(profile.failed_logins, now, self._config.failed_login_window_seconds)
        return ProfileSnapshot(
            user_id=profile.user_id,
            identity_label=profile.identity_label,
            risk_score=profile.risk_score,
            is_locked=profile.is_locked,
            lock_expires_at=profile.lock_expires_at,
            last_score_update_ts=profile.last_score_update_ts,
            failed_login_attempts=[FailedLoginRecord(**record) for record in failed],
        )

    def reset_risk_score(self, user_id: str, reason: str = "Admin reset") -> bool:
        """
        Zero the score, clear failed-login history and unlock.

        Returns:
            False if the user has no profile.

        Raises:
            ProfileStoreError: The store could not be updated.
        """
        now = self.clock()

        def reset(profile: UserProfile) -> List[RiskEvent]:
            events: List[RiskEvent] = []
            old_score = profile.risk_score
            profile.risk_score = 0.0
            profile.last_score_update_ts = now
            profile.failed_logins = []
            events.append(self._event(profile, RiskEventType.SCORE_RESET, old_score, now, reason))
            if profile.is_locked:
                self._unlock(profile, now, reason, events)
            return events

        events = self.store.update_atomic(user_id, reset)
        if events is None:
            logger.info(f"Risk reset requested for unknown user {user_id}")
            return False

        self._emit(events)
        return True

    def unlock_account(self, user_id: str, reason: str = "Admin unlock") -> bool:
        """
        Clear the lock without touching the score.

        Returns:
            False if the user has no profile.

        Raises:
            ProfileStoreError: The store could not be updated.
        """
        now = self.clock()

        def unlock(profile: UserProfile) -> List[RiskEvent]:
            events: List[RiskEvent] = []
            if profile.is_locked:
                self._unlock(profile, now, reason, events, manual=True)
            return events

        events = self.store.update_atomic(user_id, unlock)
        if events is None:
            logger.info(f"Unlock requested for unknown user {user_id}")
            return False

        self._emit(events)
        return True

    def get_metrics(self) -> EngineMetrics:
        now = self.clock()
        config = self._config

        total = 0
        locked = 0
        high_risk = 0
        score_sum = 0.0

        for profile in self.store.profiles():
            total += 1
            score_sum += profile.risk_score
            if profile.is_locked and not self._lock_expired(profile, now):
                locked += 1
            elif profile.risk_score >= config.warning_threshold:
                high_risk += 1

        return EngineMetrics(
            total_profiles=total,
            locked_count=locked,
            high_risk_count=high_risk,
            average_score=score_sum / total if total else 0.0,
        )

    # -------------------------------------------------------------------------
    # State Transition Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _lock_expired(profile: UserProfile, now: float) -> bool:
        if not profile.is_locked:
            return False
        return profile.lock_expires_at is None or now > profile.lock_expires_at

    def _enforce_lock(self, profile: UserProfile, now: float, events: List[RiskEvent]) -> bool:
        """Expire a stale lock. Returns True if the profile is still locked."""
        if not profile.is_locked:
            return False
        if not self._lock_expired(profile, now):
            return True
        self._unlock(profile, now, "lock_expired", events)
        return False

    def _blocked(
        self,
        profile: UserProfile,
        now: float,
        events: List[RiskEvent],
        **details: Any,
    ) -> Outcome:
        events.append(self._event(
            profile, RiskEventType.BLOCKED, profile.risk_score, now, LOCKED_REASON,
            lock_expires_at=profile.lock_expires_at, **details,
        ))
        return self._decision(profile), events

    def _add_risk(
        self,
        profile: UserProfile,
        points: float,
        now: float,
        config: AnomalyConfig,
        cause: str,
        events: List[RiskEvent],
        **details: Any,
    ) -> None:
        old_score = profile.risk_score
        profile.risk_score = min(config.max_risk_score, old_score + points)
        profile.last_score_update_ts = now
        events.append(self._event(
            profile, RiskEventType.SCORE_INCREASED, old_score, now, cause,
            points_added=points, **details,
        ))

    def _finalize(
        self,
        profile: UserProfile,
        now: float,
        config: AnomalyConfig,
        raised: bool,
        events: List[RiskEvent],
        warn: bool,
    ) -> RiskDecision:
        if raised and profile.risk_score >= config.risk_threshold:
            profile.is_locked = True
            profile.lock_expires_at = now + config.lock_duration_seconds
            events.append(self._event(
                profile, RiskEventType.LOCKED, profile.risk_score, now, "Risk threshold reached",
                lock_expires_at=profile.lock_expires_at,
                risk_threshold=config.risk_threshold,
            ))
        elif warn and config.warning_threshold <= profile.risk_score < config.risk_threshold:
            events.append(self._event(
                profile, RiskEventType.WARNING, profile.risk_score, now, "Warning threshold reached",
                risk_threshold=config.risk_threshold,
            ))

        return self._decision(profile)

    def _unlock(
        self,
        profile: UserProfile,
        now: float,
        cause: str,
        events: List[RiskEvent],
        manual: bool = False,
    ) -> None:
        previous_expiry = profile.lock_expires_at
        profile.is_locked = False
        profile.lock_expires_at = None
        events.append(self._event(
            profile, RiskEventType.UNLOCKED, profile.risk_score, now, cause,
            previous_lock_expires_at=previous_expiry, manual=manual,
        ))

    # -------------------------------------------------------------------------
    # Output Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _decision(profile: UserProfile) -> RiskDecision:
        if profile.is_locked:
            return RiskDecision(
                risk_score=profile.risk_score,
                is_locked=True,
                reason=LOCKED_REASON,
                lock_expires_at=profile.lock_expires_at,
            )
        return RiskDecision(risk_score=profile.risk_score, is_locked=False)

    @staticmethod
    def _fail_open() -> RiskDecision:
        return RiskDecision(risk_score=0.0, is_locked=False)

    @staticmethod
    def _event(
        profile: UserProfile,
        event_type: RiskEventType,
        old_score: float,
        now: float,
        cause: str,
        **details: Any,
    ) -> RiskEvent:
        return RiskEvent(
            event_type=event_type,
            user_id=profile.user_id,
            identity_label=profile.identity_label,
            old_score=old_score,
            new_score=profile.risk_score,
            cause=cause,
            timestamp=now,
            details=details,
        )

    def _emit(self, events: List[RiskEvent]) -> None:
        for event in events:
            for sink in list(self._sinks):
                try:
                    sink(event)
                except Exception:
                    logger.exception(f"Risk event sink {sink!r} failed")
