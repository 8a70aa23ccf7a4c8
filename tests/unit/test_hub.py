import sys
import threading
import time
import unittest
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hostwatch_core.hub import BroadcastHub
from hostwatch_telemetry.models import MetricsSnapshot

SNAP = MetricsSnapshot(
    timestamp=datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc),
    cpu_load_percent=10.0,
    cpu_temp_c=None,
    memory_used_percent=50.0,
    disk_used_percent=10.0,
    gpu_model=None,
    gpu_temp_c=None,
    top_processes=(),
    containers=(),
)


class _Recorder:
    def __init__(self):
        self.got = []

    def deliver(self, snapshot):
        self.got.append(snapshot)


class _Disconnected:
    def deliver(self, snapshot):
        raise BrokenPipeError("client went away")


class _Blocking:
    def __init__(self):
        self.got = []
        self.started = threading.Event()
        self.release = threading.Event()

    def deliver(self, snapshot):
        self.started.set()
        self.release.wait(5.0)
        self.got.append(snapshot)


class BroadcastHubTests(unittest.TestCase):
    def setUp(self):
        self.hub = BroadcastHub()

    def tearDown(self):
        self.hub.close(grace_seconds=0.5)

    def test_fan_out_to_all_subscribers(self):
        a, b = _Recorder(), _Recorder()
        self.hub.subscribe(a)
        self.hub.subscribe(b)
        self.assertEqual(self.hub.broadcast(SNAP), 2)
        self.assertTrue(self.hub.wait_idle(2.0))
        self.assertEqual(a.got, [SNAP])
        self.assertEqual(b.got, [SNAP])

    def test_disconnected_subscriber_is_dropped_without_affecting_others(self):
        good = _Recorder()
        bad_sub = self.hub.subscribe(_Disconnected(), name="bad")
        self.hub.subscribe(good)

        self.hub.broadcast(SNAP)
        self.assertTrue(self.hub.wait_idle(2.0))
        self.assertTrue(bad_sub.wait_closed(2.0))
        second = replace(SNAP, cpu_load_percent=20.0)
        self.hub.broadcast(second)
        self.assertTrue(self.hub.wait_idle(2.0))

        self.assertEqual(good.got, [SNAP, second])
        self.assertEqual(self.hub.subscriber_count(), 1)
        self.assertEqual(self.hub.stats()["dropped_subscribers"], 1)

    def test_broadcast_does_not_wait_for_slow_subscriber(self):
        slow = _Blocking()
        self.hub.subscribe(slow)
        self.hub.broadcast(SNAP)
        self.assertTrue(slow.started.wait(2.0))

        start = time.monotonic()
        for _ in range(10):
            self.hub.broadcast(SNAP)
        self.assertLess(time.monotonic() - start, 0.5)
        slow.release.set()

    def test_overflow_drops_oldest(self):
        hub = BroadcastHub(queue_size=1)
        slow = _Blocking()
        hub.subscribe(slow)
        s1, s2, s3 = (replace(SNAP, cpu_load_percent=v) for v in (1.0, 2.0, 3.0))

        hub.broadcast(s1)
        self.assertTrue(slow.started.wait(2.0))
        hub.broadcast(s2)
        hub.broadcast(s3)
        slow.release.set()

        self.assertTrue(hub.wait_idle(2.0))
        self.assertEqual(slow.got, [s1, s3])
        self.assertEqual(hub.stats()["dropped_snapshots"], 1)
        hub.close(grace_seconds=0.5)

    def test_no_replay_for_late_subscribers(self):
        self.hub.broadcast(SNAP)
        late = _Recorder()
        self.hub.subscribe(late)
        self.assertTrue(self.hub.wait_idle(1.0))
        self.assertEqual(late.got, [])
        self.assertIs(self.hub.latest(), SNAP)

    def test_unsubscribe_stops_delivery(self):
        rec = _Recorder()
        sub = self.hub.subscribe(rec)
        self.assertTrue(self.hub.unsubscribe(sub))
        self.assertFalse(sub.active)
        self.assertEqual(self.hub.broadcast(SNAP), 0)
        self.assertEqual(rec.got, [])
        self.assertFalse(self.hub.unsubscribe(sub))

    def test_subscriber_must_deliver(self):
        with self.assertRaises(ValueError):
            self.hub.subscribe(object())


if __name__ == "__main__":
    unittest.main()
