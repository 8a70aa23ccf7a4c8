"""Persistent collector settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 1

# Reports never list more processes than this.
MAX_TOP_PROCESSES = 5

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class CollectorConfig:
    period_s: float = 5.0
    top_processes: int = 5
    gpu_select: str = "last"
    docker_timeout_s: float = 4.0


@dataclass
class ThresholdConfig:
    cpu_percent: float = 80.0
    cpu_temp_c: float = 85.0
    memory_percent: float = 80.0
    disk_percent: float = 90.0
    gpu_temp_c: float = 75.0
    container_memory_percent: float = 50.0


@dataclass
class ThrottleConfig:
    window_minutes: float = 30.0
    retry_after_failure_minutes: float = 30.0


@dataclass
class NotifierConfig:
    enabled: bool = True
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    use_starttls: bool = True
    username: str | None = None
    password: str | None = None
    sender: str | None = None
    recipients: list[str] = field(default_factory=list)
    timeout_s: float = 10.0
    title: str = "Server Alert: Metrics Report"


@dataclass
class AlertLogConfig:
    path: str | None = None


@dataclass
class ServerConfig:
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class LoggingConfig:
    keep_files: int = 7
    console: bool = True
    level: str = "INFO"
    directory: str | None = None


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    alert_log: AlertLogConfig = field(default_factory=AlertLogConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "hostwatch"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "hostwatch"
    return Path.home() / ".config" / "hostwatch"


def config_path() -> Path:
    override = os.environ.get("HOSTWATCH_CONFIG", "").strip()
    if override:
        return Path(override).expanduser()
    return config_root() / "config.json"


def alert_log_path(cfg: AppConfig) -> Path:
    if cfg.alert_log.path:
        return Path(cfg.alert_log.path).expanduser()
    return config_root() / "alerts.log"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in (raw or {}).items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        return float(max(low, min(high, float(value))))
    except (TypeError, ValueError):
        return default


def _normalize_collector(cfg: AppConfig) -> None:
    defaults = CollectorConfig()
    cfg.collector.period_s = _clamp(cfg.collector.period_s, 1.0, 3600.0, defaults.period_s)
    cfg.collector.top_processes = int(_clamp(cfg.collector.top_processes, 1, MAX_TOP_PROCESSES, defaults.top_processes))
    cfg.collector.docker_timeout_s = _clamp(cfg.collector.docker_timeout_s, 0.5, 60.0, defaults.docker_timeout_s)
    if cfg.collector.gpu_select not in ("last", "first"):
        cfg.collector.gpu_select = "last"


def _normalize_thresholds(cfg: AppConfig) -> None:
    defaults = ThresholdConfig()
    t = cfg.thresholds
    t.cpu_percent = _clamp(t.cpu_percent, 0.0, 100.0, defaults.cpu_percent)
    t.memory_percent = _clamp(t.memory_percent, 0.0, 100.0, defaults.memory_percent)
    t.disk_percent = _clamp(t.disk_percent, 0.0, 100.0, defaults.disk_percent)
    t.container_memory_percent = _clamp(t.container_memory_percent, 0.0, 100.0, defaults.container_memory_percent)
    t.cpu_temp_c = _clamp(t.cpu_temp_c, 0.0, 150.0, defaults.cpu_temp_c)
    t.gpu_temp_c = _clamp(t.gpu_temp_c, 0.0, 150.0, defaults.gpu_temp_c)


def _normalize_throttle(cfg: AppConfig) -> None:
    defaults = ThrottleConfig()
    cfg.throttle.window_minutes = _clamp(cfg.throttle.window_minutes, 0.0, 7 * 24 * 60, defaults.window_minutes)
    cfg.throttle.retry_after_failure_minutes = _clamp(
        cfg.throttle.retry_after_failure_minutes, 0.0, 7 * 24 * 60, defaults.retry_after_failure_minutes
    )


def _normalize_notifier(cfg: AppConfig) -> None:
    n = cfg.notifier
    n.smtp_port = int(_clamp(n.smtp_port, 1, 65535, 587))
    n.timeout_s = _clamp(n.timeout_s, 1.0, 120.0, 10.0)
    if isinstance(n.recipients, str):
        n.recipients = [r.strip() for r in n.recipients.split(",") if r.strip()]
    n.recipients = [str(r) for r in (n.recipients or [])]


def _normalize_server(cfg: AppConfig) -> None:
    cfg.server.port = int(_clamp(cfg.server.port, 0, 65535, 3000))


def _normalize_logging(cfg: AppConfig) -> None:
    cfg.logging.keep_files = int(_clamp(cfg.logging.keep_files, 1, 365, 7))
    level = str(cfg.logging.level or "").upper()
    cfg.logging.level = level if level in _LOG_LEVELS else "INFO"


def _apply_env(cfg: AppConfig) -> None:
    username = os.environ.get("HOSTWATCH_SMTP_USERNAME", "").strip()
    password = os.environ.get("HOSTWATCH_SMTP_PASSWORD", "").strip()
    if username:
        cfg.notifier.username = username
    if password:
        cfg.notifier.password = password


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    cfg = AppConfig()
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            data = None
        if isinstance(data, dict):
            cfg = AppConfig(
                config_version=int(data.get("config_version", CONFIG_VERSION)),
                collector=_merge(CollectorConfig, data.get("collector", {})),
                thresholds=_merge(ThresholdConfig, data.get("thresholds", {})),
                throttle=_merge(ThrottleConfig, data.get("throttle", {})),
                notifier=_merge(NotifierConfig, data.get("notifier", {})),
                alert_log=_merge(AlertLogConfig, data.get("alert_log", {})),
                server=_merge(ServerConfig, data.get("server", {})),
                logging=_merge(LoggingConfig, data.get("logging", {})),
            )

    _apply_env(cfg)
    _normalize_collector(cfg)
    _normalize_thresholds(cfg)
    _normalize_throttle(cfg)
    _normalize_notifier(cfg)
    _normalize_server(cfg)
    _normalize_logging(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_legacy_credentials(cfg: AppConfig, path: Path) -> AppConfig:
    """Import ``EMAIL=`` / ``PASSWORD=`` lines from a legacy ``config.txt``.

    The address doubles as SMTP login, sender and sole recipient, which is how the
    old single-file setup used it.
    """
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip() and value.strip():
            values[key.strip().upper()] = value.strip()

    email = values.get("EMAIL")
    if email:
        cfg.notifier.username = cfg.notifier.username or email
        cfg.notifier.sender = cfg.notifier.sender or email
        if not cfg.notifier.recipients:
            cfg.notifier.recipients = [email]
    if values.get("PASSWORD"):
        cfg.notifier.password = values["PASSWORD"]
    return cfg
