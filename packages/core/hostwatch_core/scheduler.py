"""Periodic collection loop: collect, normalize, broadcast, evaluate, log, notify."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from hostwatch_telemetry.models import MetricsSnapshot, MetricsSourceError, RawMetrics
from hostwatch_telemetry.normalizer import normalize

from .alert_log import AlertLogEntry, AlertLogger
from .evaluator import Evaluation, ThresholdEvaluator
from .hub import BroadcastHub
from .logging_setup import get_logger
from .notifier import NotificationDispatcher, SendResult, build_alert_body
from .throttle import NotificationThrottler


_log = get_logger("scheduler")


class RawMetricsSource(Protocol):
    def collect(self) -> RawMetrics: ...


@dataclass
class TickResult:
    at: datetime
    snapshot: MetricsSnapshot | None = None
    evaluation: Evaluation | None = None
    logged: bool = False
    notification_dispatched: bool = False
    error: str | None = None


@dataclass
class LoopStatus:
    running: bool = False
    ticks: int = 0
    failed_ticks: int = 0
    skipped_ticks: int = 0
    breaches: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None


class CollectionLoop:
    def __init__(
        self,
        source: RawMetricsSource,
        evaluator: ThresholdEvaluator,
        throttler: NotificationThrottler,
        hub: BroadcastHub,
        alert_log: AlertLogger,
        dispatcher: NotificationDispatcher,
        period_s: float = 5.0,
        normalizer: Callable[[RawMetrics], MetricsSnapshot] = normalize,
        title: str = "Server Alert: Metrics Report",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.source = source
        self.evaluator = evaluator
        self.throttler = throttler
        self.hub = hub
        self.alert_log = alert_log
        self.dispatcher = dispatcher
        self.period_s = period_s
        self.normalizer = normalizer
        self.title = title
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._status = LoopStatus()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._pending: tuple[datetime, Future[SendResult]] | None = None

    @property
    def status(self) -> LoopStatus:
        return self._status

    def status_payload(self) -> dict[str, Any]:
        st = self._status
        last_sent = self.throttler.state.last_notified_at
        return {
            "running": st.running,
            "period_s": self.period_s,
            "ticks": st.ticks,
            "failed_ticks": st.failed_ticks,
            "skipped_ticks": st.skipped_ticks,
            "breaches": st.breaches,
            "notifications_sent": st.notifications_sent,
            "notifications_failed": st.notifications_failed,
            "last_tick_at": st.last_tick_at.isoformat() if st.last_tick_at else None,
            "last_notified_at": last_sent.isoformat() if last_sent else None,
            "last_error": st.last_error,
        }

    def tick(self, now: datetime | None = None) -> TickResult:
        """Run one pipeline pass synchronously on the calling thread."""
        self._reap_notification()
        now = now or self._clock()
        result = TickResult(at=now)
        self._status.ticks += 1
        self._status.last_tick_at = now

        try:
            raw = self.source.collect()
        except MetricsSourceError as exc:
            self._status.failed_ticks += 1
            self._status.last_error = str(exc)
            result.error = str(exc)
            _log.warning(f"collection failed, skipping tick: {exc}", extra={"event": "collect_failed"})
            return result

        if raw.failures:
            _log.debug(f"partial collection: {sorted(raw.failures)}", extra={"event": "collect_partial"})

        snapshot = self.normalizer(raw)
        result.snapshot = snapshot
        self.hub.broadcast(snapshot)

        evaluation = self.evaluator.evaluate(snapshot)
        result.evaluation = evaluation
        if not evaluation.any_breach:
            return result

        self._status.breaches += 1
        lines = evaluation.rendered()
        result.logged = self.alert_log.append(AlertLogEntry(timestamp=snapshot.timestamp, lines=tuple(lines)))

        if self._pending is None and self.throttler.should_notify(now):
            future = self.dispatcher.submit(self.title, build_alert_body(snapshot.timestamp, lines))
            self._pending = (now, future)
            result.notification_dispatched = True
            _log.info("alert notification dispatched", extra={"event": "notify_dispatched"})
        return result

    def wait_for_notifications(self, timeout: float | None = None) -> bool:
        """Wait for an in-flight send and apply its outcome to the throttle state."""
        if self._pending is None:
            return True
        _at, future = self._pending
        done, _ = wait([future], timeout=timeout)
        if not done:
            return False
        self._reap_notification()
        return True

    def _reap_notification(self) -> None:
        if self._pending is None:
            return
        dispatched_at, future = self._pending
        if not future.done():
            return
        self._pending = None
        outcome = future.result()
        if outcome.ok:
            self.throttler.record_sent(dispatched_at)
            self._status.notifications_sent += 1
        else:
            self.throttler.record_failed(dispatched_at)
            self._status.notifications_failed += 1
            self._status.last_error = outcome.reason
            _log.error(f"alert notification failed: {outcome.reason}", extra={"event": "notify_failed"})

    # ---- threaded run ----
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._status.running = True
        self._thread = threading.Thread(target=self._run, name="hostwatch-collector", daemon=True)
        self._thread.start()
        _log.info(f"collection loop started, period {self.period_s}s", extra={"event": "loop_started"})

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self.wait_for_notifications(timeout=timeout)
        self._status.running = False
        _log.info("collection loop stopped", extra={"event": "loop_stopped"})

    def _run(self) -> None:
        next_due = time.monotonic()
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as exc:  # noqa: BLE001
                self._status.last_error = f"{type(exc).__name__}: {exc}"
                _log.exception("tick raised", extra={"event": "tick_error"})

            next_due += self.period_s
            now = time.monotonic()
            if now > next_due:
                # Skip overlapping ticks instead of queueing them.
                missed = int((now - next_due) // self.period_s) + 1
                next_due += missed * self.period_s
                self._status.skipped_ticks += missed
                _log.warning(f"tick overran, skipped {missed}", extra={"event": "tick_skipped"})
            self._stop.wait(max(0.0, next_due - time.monotonic()))
