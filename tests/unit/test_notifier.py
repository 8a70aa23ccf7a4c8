import smtplib
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hostwatch_core.config import NotifierConfig
from hostwatch_core.notifier import (
    LogNotifier,
    NotificationDispatcher,
    SendResult,
    SmtpNotifier,
    build_alert_body,
    build_notifier,
)


def _cfg(**overrides) -> NotifierConfig:
    cfg = NotifierConfig(username="ops@example.com", password="app-password")
    for k, v in overrides.items():
        setattr(cfg, k, v)
    return cfg


class SmtpNotifierTests(unittest.TestCase):
    def test_send_uses_starttls_login_and_defaults_recipient_to_sender(self):
        with patch("hostwatch_core.notifier.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            result = SmtpNotifier(_cfg()).send("Server Alert: Metrics Report", "body text")

        self.assertTrue(result.ok)
        smtp_cls.assert_called_once_with("smtp.gmail.com", 587, timeout=10.0)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("ops@example.com", "app-password")
        msg = smtp.send_message.call_args.args[0]
        self.assertEqual(msg["Subject"], "Server Alert: Metrics Report")
        self.assertEqual(msg["From"], "ops@example.com")
        self.assertEqual(msg["To"], "ops@example.com")
        self.assertIn("body text", msg.get_content())

    def test_explicit_recipients_without_tls(self):
        cfg = _cfg(use_starttls=False, sender="bot@example.com", recipients=["a@example.com", "b@example.com"])
        with patch("hostwatch_core.notifier.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            result = SmtpNotifier(cfg).send("t", "b")
        self.assertTrue(result.ok)
        smtp.starttls.assert_not_called()
        msg = smtp.send_message.call_args.args[0]
        self.assertEqual(msg["From"], "bot@example.com")
        self.assertEqual(msg["To"], "a@example.com, b@example.com")

    def test_auth_failure_is_reported(self):
        with patch("hostwatch_core.notifier.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            result = SmtpNotifier(_cfg()).send("t", "b")
        self.assertFalse(result.ok)
        self.assertIn("bad credentials", result.reason)

    def test_connection_failure_is_reported(self):
        with patch("hostwatch_core.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            result = SmtpNotifier(_cfg()).send("t", "b")
        self.assertFalse(result.ok)
        self.assertTrue(result.reason.startswith("connection failed"))

    def test_missing_identity(self):
        result = SmtpNotifier(NotifierConfig()).send("t", "b")
        self.assertFalse(result.ok)


class DispatcherTests(unittest.TestCase):
    def test_raising_notifier_becomes_failure_result(self):
        class _Boom:
            def send(self, title, body):
                raise ValueError("transport exploded")

        dispatcher = NotificationDispatcher(_Boom())
        try:
            result = dispatcher.submit("t", "b").result(timeout=2.0)
        finally:
            dispatcher.shutdown()
        self.assertFalse(result.ok)
        self.assertIn("transport exploded", result.reason)

    def test_result_passed_through(self):
        class _Ok:
            def send(self, title, body):
                return SendResult(ok=True)

        dispatcher = NotificationDispatcher(_Ok())
        try:
            self.assertTrue(dispatcher.submit("t", "b").result(timeout=2.0).ok)
        finally:
            dispatcher.shutdown()


class HelperTests(unittest.TestCase):
    def test_body_joins_lines_with_blank_lines(self):
        ts = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        body = build_alert_body(ts, ["CPU Usage: *85.00%* (exceeds 80%)", "Memory: 50.00%"])
        self.assertEqual(
            body,
            "Current server status at 2026-03-01T12:00:00+00:00:\n\n"
            "CPU Usage: *85.00%* (exceeds 80%)\n\nMemory: 50.00%",
        )

    def test_build_notifier_selection(self):
        self.assertIsInstance(build_notifier(_cfg()), SmtpNotifier)
        self.assertIsInstance(build_notifier(_cfg(enabled=False)), LogNotifier)
        self.assertIsInstance(build_notifier(NotifierConfig()), LogNotifier)


if __name__ == "__main__":
    unittest.main()
