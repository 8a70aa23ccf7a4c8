"""Outbound alert notifications: SMTP transport and off-thread dispatch."""

from __future__ import annotations

import os
import smtplib
import ssl
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol, Sequence

from .config import NotifierConfig
from .logging_setup import get_logger

try:
    import certifi
except Exception:  # pragma: no cover - fallback when optional dependency unavailable
    certifi = None


_log = get_logger("notifier")


@dataclass(frozen=True)
class SendResult:
    ok: bool
    reason: str | None = None
    latency_ms: float = 0.0


class Notifier(Protocol):
    def send(self, title: str, body: str) -> SendResult: ...


def build_alert_body(timestamp: datetime, lines: Sequence[str]) -> str:
    return f"Current server status at {timestamp.isoformat()}:\n\n" + "\n\n".join(lines)


def _build_ssl_context() -> ssl.SSLContext:
    ca_bundle = os.environ.get("HOSTWATCH_CA_BUNDLE", "").strip()
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)

    if certifi is not None:
        return ssl.create_default_context(cafile=certifi.where())

    return ssl.create_default_context()


class SmtpNotifier:
    """Sends one plain-text mail per alert; the socket timeout bounds every call."""

    def __init__(self, cfg: NotifierConfig) -> None:
        self.cfg = cfg

    @property
    def sender(self) -> str | None:
        return self.cfg.sender or self.cfg.username

    @property
    def recipients(self) -> list[str]:
        if self.cfg.recipients:
            return list(self.cfg.recipients)
        return [self.sender] if self.sender else []

    def send(self, title: str, body: str) -> SendResult:
        if not self.sender or not self.recipients:
            return SendResult(ok=False, reason="notifier has no sender/recipients configured")

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = title
        msg.set_content(body)

        start = time.monotonic()
        try:
            with smtplib.SMTP(self.cfg.smtp_host, self.cfg.smtp_port, timeout=self.cfg.timeout_s) as smtp:
                if self.cfg.use_starttls:
                    smtp.starttls(context=_build_ssl_context())
                if self.cfg.username and self.cfg.password:
                    smtp.login(self.cfg.username, self.cfg.password)
                smtp.send_message(msg)
        except smtplib.SMTPException as exc:
            _log.error(f"SMTP error: {exc}", extra={"event": "notify_smtp_error"})
            return SendResult(ok=False, reason=str(exc))
        except OSError as exc:
            _log.error(
                f"cannot reach {self.cfg.smtp_host}:{self.cfg.smtp_port}: {exc}",
                extra={"event": "notify_connect_error"},
            )
            return SendResult(ok=False, reason=f"connection failed: {exc}")

        latency = (time.monotonic() - start) * 1000
        _log.info(f"alert mail sent to {msg['To']}: {title}", extra={"event": "notify_sent"})
        return SendResult(ok=True, latency_ms=latency)


class LogNotifier:
    """Used when mail is disabled; writes the alert to the application log."""

    def send(self, title: str, body: str) -> SendResult:
        _log.warning(f"{title}\n{body}", extra={"event": "notify_logged"})
        return SendResult(ok=True)


def build_notifier(cfg: NotifierConfig) -> Notifier:
    if cfg.enabled and (cfg.sender or cfg.username):
        return SmtpNotifier(cfg)
    return LogNotifier()


class NotificationDispatcher:
    """Runs sends on a single background worker so the collection tick never waits on them."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hostwatch-notify")

    def submit(self, title: str, body: str) -> "Future[SendResult]":
        return self._executor.submit(self._send, title, body)

    def _send(self, title: str, body: str) -> SendResult:
        try:
            return self.notifier.send(title, body)
        except Exception as exc:  # noqa: BLE001
            _log.exception("notifier raised", extra={"event": "notify_error"})
            return SendResult(ok=False, reason=f"{type(exc).__name__}: {exc}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
