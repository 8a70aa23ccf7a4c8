import http.client
import json
import sys
import time
import unittest
import urllib.error
import urllib.request
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "apps" / "daemon"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from hostwatch_app.server import MetricsServer
from hostwatch_core.hub import BroadcastHub
from hostwatch_telemetry.models import MetricsSnapshot, MetricsSourceError, ProcessUsage

SNAP = MetricsSnapshot(
    timestamp=datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc),
    cpu_load_percent=12.5,
    cpu_temp_c=None,
    memory_used_percent=40.0,
    disk_used_percent=70.0,
    gpu_model="RTX",
    gpu_temp_c=55.0,
    top_processes=(ProcessUsage("python", 128.0),),
    containers=(),
)


class HttpBoundaryTests(unittest.TestCase):
    def setUp(self):
        self.hub = BroadcastHub()
        self.backfills = 0
        self.backfill_error = None
        self.server = MetricsServer(
            hub=self.hub,
            backfill=self._backfill,
            status=lambda: {"running": True, "ticks": 3},
            port=0,
            keepalive_s=0.2,
        )
        self.server.start()
        host, port = self.server.address
        self.base = f"http://{host}:{port}"

    def tearDown(self):
        self.hub.close(grace_seconds=0.5)
        self.server.stop()

    def _backfill(self):
        self.backfills += 1
        if self.backfill_error is not None:
            raise self.backfill_error
        return replace(SNAP, cpu_load_percent=1.0)

    def _get(self, path):
        with urllib.request.urlopen(self.base + path, timeout=5) as resp:
            return resp.status, json.loads(resp.read().decode("utf-8"))

    def test_metrics_backfills_then_serves_latest(self):
        status, body = self._get("/metrics")
        self.assertEqual(status, 200)
        self.assertEqual(body["cpu_load_percent"], 1.0)
        self.assertEqual(self.backfills, 1)

        self.hub.broadcast(SNAP)
        _, body = self._get("/metrics")
        self.assertEqual(body["cpu_load_percent"], 12.5)
        self.assertIsNone(body["cpu_temp_c"])
        self.assertEqual(body["top_processes"], [{"name": "python", "memory_mb": 128.0}])
        self.assertEqual(self.backfills, 1)

    def test_metrics_collect_failure_is_500(self):
        self.backfill_error = MetricsSourceError("all categories failed")
        with self.assertRaises(urllib.error.HTTPError) as ctx:
            self._get("/metrics")
        self.assertEqual(ctx.exception.code, 500)
        body = json.loads(ctx.exception.read().decode("utf-8"))
        self.assertTrue(body["error"].startswith("Failed to fetch metrics"))

    def test_health_and_not_found(self):
        self.assertEqual(self._get("/health"), (200, {"running": True, "ticks": 3}))
        with self.assertRaises(urllib.error.HTTPError) as ctx:
            self._get("/nope")
        self.assertEqual(ctx.exception.code, 404)

    def test_stream_pushes_metrics_frames(self):
        host, port = self.server.address
        conn = http.client.HTTPConnection(host, port, timeout=5)
        try:
            conn.request("GET", "/stream")
            resp = conn.getresponse()
            self.assertEqual(resp.status, 200)
            self.assertEqual(resp.getheader("Content-Type"), "text/event-stream")

            deadline = time.monotonic() + 2.0
            while self.hub.subscriber_count() == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
            self.hub.broadcast(SNAP)

            line = resp.readline()
            while line.startswith(b":") or line == b"\n":
                line = resp.readline()
            self.assertEqual(line, b"event: metrics\n")
            data = resp.readline()
            self.assertTrue(data.startswith(b"data: "))
            self.assertEqual(json.loads(data[len(b"data: "):])["gpu_model"], "RTX")
        finally:
            conn.close()


if __name__ == "__main__":
    unittest.main()
