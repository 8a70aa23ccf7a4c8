"""Core collector services: config, evaluation, throttling, fan-out, alert log and scheduling."""

from .alert_log import AlertLogEntry, AlertLogger
from .config import AppConfig, alert_log_path, load_config, load_legacy_credentials, save_config
from .diagnostics import build_doctor_payload, redact
from .evaluator import AlertCategory, AlertLine, AlertRow, Evaluation, ThresholdEvaluator, Thresholds
from .hub import BroadcastHub, Subscriber, Subscription
from .notifier import (
    LogNotifier,
    NotificationDispatcher,
    Notifier,
    SendResult,
    SmtpNotifier,
    build_alert_body,
    build_notifier,
)
from .scheduler import CollectionLoop, LoopStatus, TickResult
from .throttle import NotificationThrottler, ThrottleState

__all__ = [
    "AlertCategory",
    "AlertLine",
    "AlertLogEntry",
    "AlertLogger",
    "AlertRow",
    "AppConfig",
    "BroadcastHub",
    "CollectionLoop",
    "Evaluation",
    "LogNotifier",
    "LoopStatus",
    "NotificationDispatcher",
    "NotificationThrottler",
    "Notifier",
    "SendResult",
    "SmtpNotifier",
    "Subscriber",
    "Subscription",
    "ThresholdEvaluator",
    "Thresholds",
    "ThrottleState",
    "TickResult",
    "alert_log_path",
    "build_alert_body",
    "build_doctor_payload",
    "build_notifier",
    "load_config",
    "load_legacy_credentials",
    "redact",
    "save_config",
]
