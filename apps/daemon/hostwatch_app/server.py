"""HTTP boundary: JSON pull endpoint and a server-sent-events live stream."""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import urlparse

from hostwatch_core.hub import BroadcastHub
from hostwatch_core.logging_setup import get_logger
from hostwatch_telemetry.models import MetricsSnapshot, MetricsSourceError, snapshot_to_payload


_log = get_logger("server")

SnapshotFactory = Callable[[], MetricsSnapshot]


def _json_response(handler: BaseHTTPRequestHandler, data: Any, status: int = 200) -> None:
    body = json.dumps(data, default=str).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json")
    handler.send_header("Content-Length", str(len(body)))
    handler.send_header("Cache-Control", "no-cache")
    handler.end_headers()
    handler.wfile.write(body)


class SseSubscriber:
    """Hub subscriber writing ``event: metrics`` frames to one HTTP client."""

    def __init__(self, wfile) -> None:
        self._wfile = wfile
        self._lock = threading.Lock()

    def write_frame(self, event: str, data: dict[str, Any]) -> None:
        frame = f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n".encode("utf-8")
        with self._lock:
            self._wfile.write(frame)
            self._wfile.flush()

    def deliver(self, snapshot: MetricsSnapshot) -> None:
        # BrokenPipe / ConnectionReset propagate so the hub drops this client.
        self.write_frame("metrics", snapshot_to_payload(snapshot))

    def keepalive(self) -> None:
        with self._lock:
            self._wfile.write(b": keepalive\n\n")
            self._wfile.flush()


def _make_handler_class(
    hub: BroadcastHub,
    backfill: SnapshotFactory,
    status: Callable[[], dict[str, Any]],
    keepalive_s: float,
) -> type[BaseHTTPRequestHandler]:
    """Create a request handler class bound to one hub."""

    class _Handler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            _log.debug(f"{self.address_string()} {format % args}", extra={"event": "http_access"})

        def do_GET(self) -> None:  # noqa: N802
            path = urlparse(self.path).path.rstrip("/") or "/"
            if path == "/metrics":
                self._handle_metrics()
            elif path == "/stream":
                self._handle_stream()
            elif path == "/health":
                _json_response(self, status())
            else:
                _json_response(self, {"error": "not found"}, 404)

        def _handle_metrics(self) -> None:
            snapshot = hub.latest()
            if snapshot is None:
                try:
                    snapshot = backfill()
                except MetricsSourceError as exc:
                    _json_response(self, {"error": f"Failed to fetch metrics\n{exc}"}, 500)
                    return
            _json_response(self, snapshot_to_payload(snapshot))

        def _handle_stream(self) -> None:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Connection", "keep-alive")
            self.end_headers()

            client = SseSubscriber(self.wfile)
            sub = hub.subscribe(client, name=f"sse-{self.client_address[0]}:{self.client_address[1]}")
            try:
                while not sub.wait_closed(timeout=keepalive_s):
                    client.keepalive()
            except OSError:
                pass
            finally:
                hub.unsubscribe(sub)
            self.close_connection = True

    return _Handler


class MetricsServer:
    def __init__(
        self,
        hub: BroadcastHub,
        backfill: SnapshotFactory,
        status: Callable[[], dict[str, Any]],
        host: str = "127.0.0.1",
        port: int = 3000,
        keepalive_s: float = 15.0,
    ) -> None:
        handler = _make_handler_class(hub, backfill, status, keepalive_s)
        self._httpd = ThreadingHTTPServer((host, port), handler)
        self._httpd.daemon_threads = True
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._httpd.serve_forever, name="hostwatch-http", daemon=True)
        self._thread.start()
        host, port = self.address
        _log.info(f"serving on http://{host}:{port}", extra={"event": "server_started"})

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
