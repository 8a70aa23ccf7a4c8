"""Fan-out of snapshots to live subscribers, one worker thread per subscriber."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from hostwatch_telemetry.models import MetricsSnapshot

from .logging_setup import get_logger


_log = get_logger("hub")


class Subscriber(Protocol):
    def deliver(self, snapshot: MetricsSnapshot) -> None: ...


@dataclass(eq=False)
class Subscription:
    id: int
    name: str
    subscriber: Subscriber
    queue: "queue.Queue[MetricsSnapshot]"
    stop: threading.Event = field(default_factory=threading.Event)
    closed: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    pending: int = 0

    @property
    def active(self) -> bool:
        return not self.closed.is_set()

    def wait_closed(self, timeout: float | None = None) -> bool:
        return self.closed.wait(timeout)


class BroadcastHub:
    """
    Live snapshot distribution.

    - broadcast only enqueues; it never waits on subscriber I/O
    - each subscriber sees snapshots in order, from a bounded queue (oldest dropped)
    - a subscriber whose deliver() raises is dropped; others are unaffected
    - nothing is replayed to late subscribers; latest() is for pull-style backfill
    """

    def __init__(self, queue_size: int = 4) -> None:
        self.queue_size = max(1, int(queue_size))
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._subs: dict[int, Subscription] = {}
        self._next_id = 0
        self._latest: MetricsSnapshot | None = None
        self._closed = False
        self._stats = {"broadcasts": 0, "delivered": 0, "dropped_snapshots": 0, "dropped_subscribers": 0}

    def subscribe(self, subscriber: Subscriber, name: str | None = None) -> Subscription:
        if not callable(getattr(subscriber, "deliver", None)):
            raise ValueError("subscriber must provide deliver(snapshot)")
        with self._lock:
            if self._closed:
                raise RuntimeError("hub is closed")
            self._next_id += 1
            sub = Subscription(
                id=self._next_id,
                name=name or f"subscriber-{self._next_id}",
                subscriber=subscriber,
                queue=queue.Queue(maxsize=self.queue_size),
            )
            sub.thread = threading.Thread(target=self._run, args=(sub,), name=f"hub-{sub.name}", daemon=True)
            self._subs[sub.id] = sub
        sub.thread.start()
        _log.info(f"subscriber added: {sub.name}", extra={"event": "subscriber_added"})
        return sub

    def unsubscribe(self, sub: Subscription) -> bool:
        removed = self._detach(sub)
        if sub.thread is not None and sub.thread is not threading.current_thread():
            sub.thread.join(timeout=0.5)
        if removed:
            _log.info(f"subscriber removed: {sub.name}", extra={"event": "subscriber_removed"})
        return removed

    def broadcast(self, snapshot: MetricsSnapshot) -> int:
        with self._lock:
            self._latest = snapshot
            self._stats["broadcasts"] += 1
            targets = list(self._subs.values())
            for sub in targets:
                try:
                    sub.queue.put_nowait(snapshot)
                except queue.Full:
                    try:
                        sub.queue.get_nowait()
                        sub.pending -= 1
                        self._stats["dropped_snapshots"] += 1
                    except queue.Empty:
                        pass
                    sub.queue.put_nowait(snapshot)
                sub.pending += 1
            return len(targets)

    def latest(self) -> MetricsSnapshot | None:
        with self._lock:
            return self._latest

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            out: dict[str, Any] = dict(self._stats)
            out["subscribers"] = len(self._subs)
        return out

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every queued snapshot has been handled (delivered or dropped)."""
        with self._idle:
            return self._idle.wait_for(lambda: all(s.pending <= 0 for s in self._subs.values()), timeout)

    def close(self, grace_seconds: float = 1.0) -> None:
        with self._lock:
            self._closed = True
        self.wait_idle(timeout=grace_seconds)
        with self._lock:
            subs = list(self._subs.values())
        for sub in subs:
            self.unsubscribe(sub)

    # ---- internals ----
    def _detach(self, sub: Subscription) -> bool:
        with self._idle:
            removed = self._subs.pop(sub.id, None) is not None
            sub.stop.set()
            while True:
                try:
                    sub.queue.get_nowait()
                except queue.Empty:
                    break
                sub.pending -= 1
            sub.closed.set()
            self._idle.notify_all()
        return removed

    def _run(self, sub: Subscription) -> None:
        while not sub.stop.is_set():
            try:
                snapshot = sub.queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                sub.subscriber.deliver(snapshot)
            except Exception as exc:  # noqa: BLE001
                with self._lock:
                    self._stats["dropped_subscribers"] += 1
                _log.warning(
                    f"subscriber {sub.name} failed, dropping: {exc}",
                    extra={"event": "subscriber_dropped"},
                )
                self._finish(sub)
                self._detach(sub)
                return
            with self._lock:
                self._stats["delivered"] += 1
            self._finish(sub)

    def _finish(self, sub: Subscription) -> None:
        with self._idle:
            sub.pending -= 1
            self._idle.notify_all()
