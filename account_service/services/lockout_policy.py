"""
Lockout policy for consecutive authentication failures.

Counter state is an immutable value: every operation returns a new state
which the caller persists inside its locked unit of work.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from account_service.core.config import Settings


@dataclass(frozen=True)
class CounterState:
    """Consecutive failure count and lock expiry"""
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None


@dataclass(frozen=True)
class LockoutPolicy:
    """Threshold and lock duration for one failure counter"""
    threshold: int
    lock_duration: timedelta

    def is_locked(self, state: CounterState, now: datetime) -> bool:
        return state.locked_until is not None and state.locked_until > now

    def remaining(self, state: CounterState, now: datetime) -> int:
        """Seconds until the lock expires (0 if unlocked)"""
        if not self.is_locked(state, now):
            return 0
        return math.ceil((state.locked_until - now).total_seconds())

    def should_lock(self, state: CounterState) -> bool:
        return state.failed_attempts >= self.threshold

    def record_failure(self, state: CounterState, now: datetime) -> CounterState:
        """
        Count one more failure, locking once the threshold is reached.

        A failure recorded after a lock has expired starts a fresh count.
        """
        if state.locked_until is not None and state.locked_until <= now:
            state = CounterState()

        next_state = replace(state, failed_attempts=state.failed_attempts + 1)
        if self.should_lock(next_state):
            next_state = replace(next_state, locked_until=now + self.lock_duration)
        return next_state

    def reset(self, state: CounterState) -> CounterState:
        return CounterState()


DEFAULT_THRESHOLD = 5

ACCOUNT_LOCKOUT = LockoutPolicy(threshold=DEFAULT_THRESHOLD, lock_duration=timedelta(minutes=30))
SECOND_FACTOR_LOCKOUT = LockoutPolicy(threshold=DEFAULT_THRESHOLD, lock_duration=timedelta(minutes=15))


def account_policy(settings: Settings) -> LockoutPolicy:
    return LockoutPolicy(
        threshold=settings.LOGIN_LOCKOUT_THRESHOLD,
        lock_duration=timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES),
    )


def second_factor_policy(settings: Settings) -> LockoutPolicy:
    return LockoutPolicy(
        threshold=settings.SECOND_FACTOR_LOCKOUT_THRESHOLD,
        lock_duration=timedelta(minutes=settings.SECOND_FACTOR_LOCKOUT_MINUTES),
    )
