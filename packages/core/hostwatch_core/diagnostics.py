"""Doctor payload: host facts, redacted config and per-category collection status."""

from __future__ import annotations

import platform
import re
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from hostwatch_telemetry.models import ALL_CATEGORIES, MetricsSourceError, snapshot_to_payload
from hostwatch_telemetry.normalizer import GPU_SELECTORS, normalize

from .config import AppConfig, alert_log_path, config_path
from .logging_setup import log_dir
from .scheduler import RawMetricsSource


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***" if v else v
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def build_doctor_payload(cfg: AppConfig, source: RawMetricsSource | None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config_path": str(config_path()),
        "alert_log_path": str(alert_log_path(cfg)),
        "log_dir": str(cfg.logging.directory or log_dir()),
        "config": redact(asdict(cfg)),
    }

    if source is None:
        payload["collection"] = {"ok": False, "error": "metrics source unavailable (psutil not installed)"}
        return payload

    try:
        raw = source.collect()
    except MetricsSourceError as exc:
        payload["collection"] = {"ok": False, "error": str(exc)}
        return payload

    snapshot = normalize(raw, select_gpu=GPU_SELECTORS[cfg.collector.gpu_select], top_n=cfg.collector.top_processes)
    payload["collection"] = {
        "ok": True,
        "categories": {c: ("failed: " + raw.failures[c] if c in raw.failures else "ok") for c in ALL_CATEGORIES},
        "gpu_controllers": [g.model for g in raw.gpus],
        "volumes": [v.mountpoint for v in raw.volumes],
        "snapshot": snapshot_to_payload(snapshot),
    }
    return payload
