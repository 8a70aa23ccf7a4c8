"""Cooldown window gating outbound alert notifications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass
class ThrottleState:
    last_notified_at: datetime | None = None
    last_failed_at: datetime | None = None


class NotificationThrottler:
    """At most one notification per window; state only moves via ``record_*`` calls."""

    def __init__(
        self,
        window: timedelta = timedelta(minutes=30),
        retry_after_failure: timedelta | None = None,
        state: ThrottleState | None = None,
    ) -> None:
        self.window = window
        self.retry_after_failure = window if retry_after_failure is None else retry_after_failure
        self.state = state or ThrottleState()

    def should_notify(self, now: datetime) -> bool:
        failed = self.state.last_failed_at
        if failed is not None and now - failed < self.retry_after_failure:
            return False
        last = self.state.last_notified_at
        return last is None or now - last >= self.window

    def record_sent(self, now: datetime) -> None:
        self.state.last_notified_at = now
        self.state.last_failed_at = None

    def record_failed(self, now: datetime) -> None:
        self.state.last_failed_at = now
