"""Daemon runtime: wires source, loop, hub and HTTP boundary from AppConfig."""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass
from datetime import timedelta

from hostwatch_core import (
    AlertLogger,
    AppConfig,
    BroadcastHub,
    CollectionLoop,
    NotificationDispatcher,
    NotificationThrottler,
    ThresholdEvaluator,
    Thresholds,
    alert_log_path,
    build_notifier,
)
from hostwatch_core.logging_setup import get_logger
from hostwatch_core.scheduler import RawMetricsSource
from hostwatch_telemetry import GPU_SELECTORS, MetricsSnapshot, RawMetrics, normalize

from .server import MetricsServer


_log = get_logger("app")


def thresholds_from_config(cfg: AppConfig) -> Thresholds:
    t = cfg.thresholds
    return Thresholds(
        cpu_percent=t.cpu_percent,
        cpu_temp_c=t.cpu_temp_c,
        memory_percent=t.memory_percent,
        disk_percent=t.disk_percent,
        gpu_temp_c=t.gpu_temp_c,
        container_memory_percent=t.container_memory_percent,
    )


def build_source(cfg: AppConfig) -> RawMetricsSource:
    from hostwatch_telemetry.provider import MetricsSource

    return MetricsSource(docker_timeout_s=cfg.collector.docker_timeout_s)


@dataclass
class Runtime:
    cfg: AppConfig
    loop: CollectionLoop
    hub: BroadcastHub
    dispatcher: NotificationDispatcher
    server: MetricsServer | None = None

    def start(self) -> None:
        self.loop.start()
        if self.server is not None:
            self.server.start()

    def stop(self) -> None:
        if self.server is not None:
            self.server.stop()
        self.loop.stop(timeout=max(5.0, self.cfg.notifier.timeout_s))
        self.hub.close()
        self.dispatcher.shutdown(wait=False)


def build_runtime(cfg: AppConfig, source: RawMetricsSource | None = None, with_server: bool | None = None) -> Runtime:
    source = source or build_source(cfg)
    select_gpu = GPU_SELECTORS[cfg.collector.gpu_select]
    top_n = cfg.collector.top_processes

    def normalizer(raw: RawMetrics) -> MetricsSnapshot:
        return normalize(raw, select_gpu=select_gpu, top_n=top_n)

    hub = BroadcastHub()
    dispatcher = NotificationDispatcher(build_notifier(cfg.notifier))
    loop = CollectionLoop(
        source=source,
        evaluator=ThresholdEvaluator(thresholds_from_config(cfg)),
        throttler=NotificationThrottler(
            window=timedelta(minutes=cfg.throttle.window_minutes),
            retry_after_failure=timedelta(minutes=cfg.throttle.retry_after_failure_minutes),
        ),
        hub=hub,
        alert_log=AlertLogger(alert_log_path(cfg)),
        dispatcher=dispatcher,
        period_s=cfg.collector.period_s,
        normalizer=normalizer,
        title=cfg.notifier.title,
    )

    server = None
    serve = cfg.server.enabled if with_server is None else with_server
    if serve:
        server = MetricsServer(
            hub=hub,
            backfill=lambda: normalizer(source.collect()),
            status=loop.status_payload,
            host=cfg.server.host,
            port=cfg.server.port,
        )
    return Runtime(cfg=cfg, loop=loop, hub=hub, dispatcher=dispatcher, server=server)


def run_daemon(cfg: AppConfig) -> int:
    runtime = build_runtime(cfg)
    stop = threading.Event()

    def _on_signal(signum, _frame) -> None:
        _log.info(f"signal {signum} received, shutting down", extra={"event": "shutdown_requested"})
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _on_signal)

    runtime.start()
    try:
        while not stop.wait(1.0):
            pass
    finally:
        runtime.stop()
    return 0
