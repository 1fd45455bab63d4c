import logging

import pytest

from nek.services.notifications import (
    EmailDispatcher,
    EmailMessage,
    SmtpTransport,
    diagnostic_email,
    order_confirmation_email,
    password_reset_email,
)


class RecordingTransport:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise RuntimeError("SMTP down")
        self.sent.append(message)


def test_failed_delivery_is_logged_not_raised(caplog):
    dispatcher = EmailDispatcher(RecordingTransport(fail=True))
    with caplog.at_level(logging.ERROR, logger="nek.services.notifications"):
        dispatcher.enqueue(EmailMessage(to="jane@example.com", subject="Hello", html="<p>hi</p>"))
        dispatcher.join()
    dispatcher.stop()
    assert "Failed to send email 'Hello' to jane@example.com" in caplog.text


def test_worker_keeps_going_after_a_failure():
    class Flaky(RecordingTransport):
        def send(self, message):
            if message.subject == "boom":
                raise RuntimeError("SMTP down")
            super().send(message)

    transport = Flaky()
    dispatcher = EmailDispatcher(transport)
    dispatcher.enqueue(EmailMessage(to="a@example.com", subject="boom", html=""))
    dispatcher.enqueue(EmailMessage(to="b@example.com", subject="ok", html=""))
    dispatcher.join()
    dispatcher.stop()
    assert [m.to for m in transport.sent] == ["b@example.com"]


def test_send_now_reports_outcome():
    assert EmailDispatcher(RecordingTransport()).send_now(diagnostic_email("a@example.com")) == {"success": True}
    assert EmailDispatcher(RecordingTransport(fail=True)).send_now(diagnostic_email("a@example.com")) == {
        "success": False,
        "error": "SMTP down",
    }


def test_smtp_transport_requires_host():
    with pytest.raises(RuntimeError):
        SmtpTransport(host=None).send(diagnostic_email("a@example.com"))


def test_templates():
    confirmation = order_confirmation_email("jane@example.com", "NEK-1-ABC", 231.99)
    assert confirmation.subject == "Order Confirmation - NEK-1-ABC"
    assert "$231.99" in confirmation.html

    reset = password_reset_email("jane@example.com", "abc123")
    assert "/reset-password?token=abc123&email=jane%40example.com" in reset.html


def test_admin_test_email(client, auth, admin, mailer):
    resp = client.post("/api/admin/test-email", params={"to": "ops@example.com"}, headers=auth(admin))
    assert resp.json() == {"success": True}
    assert [m.to for m in mailer.transport.sent] == ["ops@example.com"]
