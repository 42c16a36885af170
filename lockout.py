"""
Login lockout state

The lockout fields live on the user document as one embedded value object,
`user["lockout"]`. Every transition returns a new LockoutState; the caller
persists it with a single `$set` next to the credential check.

    normal --fail x N--> temporarily locked --fail--> permanently locked
       ^                        |                            |
       +---- success / reset ---+-------- admin unlock ------+
"""
import math
from datetime import datetime, timedelta
from typing import Literal, Optional

from pydantic import BaseModel

from database import as_utc

LockStatus = Literal["normal", "temporarily_locked", "permanently_locked"]


class LockoutState(BaseModel):
    failed_attempts: int = 0
    lock_until: Optional[datetime] = None
    permanently_locked: bool = False
    last_failed_attempt_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: dict) -> "LockoutState":
        raw = dict(user.get("lockout") or {})
        for key in ("lock_until", "last_failed_attempt_at"):
            raw[key] = as_utc(raw.get(key))
        return cls(**raw)

    def status(self, now: datetime) -> LockStatus:
        if self.permanently_locked:
            return "permanently_locked"
        if self.lock_until and self.lock_until > now:
            return "temporarily_locked"
        return "normal"

    def remaining_lock_minutes(self, now: datetime) -> int:
        if not self.lock_until or self.lock_until <= now:
            return 0
        return max(1, math.ceil((self.lock_until - now).total_seconds() / 60))

    def is_stale(self, now: datetime, reset_window: timedelta) -> bool:
        """True when old failures should be forgotten."""
        return (
            self.failed_attempts > 0
            and self.last_failed_attempt_at is not None
            and now - self.last_failed_attempt_at > reset_window
        )

    def cleared(self) -> "LockoutState":
        return LockoutState()

    def is_clear(self) -> bool:
        return self == LockoutState()

    def register_failure(self, now: datetime, threshold: int, lock_duration: timedelta) -> "LockoutState":
        attempts = self.failed_attempts + 1
        if attempts > threshold:
            # counters are dropped; only an admin unlock lifts this
            return LockoutState(permanently_locked=True)
        lock_until = now + lock_duration if attempts == threshold else None
        return LockoutState(
            failed_attempts=attempts,
            lock_until=lock_until,
            last_failed_attempt_at=now,
        )
