"""Outbound email.

Request handlers never talk to the mail server. They build an
``EmailMessage`` and hand it to the ``EmailDispatcher`` queue; a single
worker thread delivers it. Delivery failures are logged and dropped, never
retried and never reported back to the caller.
"""
import logging
import queue
import smtplib
import threading
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import quote

from nek.core.config import (
    EMAIL_FROM,
    SITE_URL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USER,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class SmtpTransport:
    def __init__(self, host=SMTP_HOST, port=SMTP_PORT, user=SMTP_USER, password=SMTP_PASSWORD, sender=EMAIL_FROM):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def send(self, message: EmailMessage):
        if not self.host:
            raise RuntimeError("SMTP_HOST not configured. See .env")

        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = self.sender
        mime["To"] = message.to
        mime.attach(MIMEText(message.html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.sendmail(self.sender, message.to, mime.as_string())


_STOP = object()


class EmailDispatcher:
    def __init__(self, transport=None):
        self.transport = transport or SmtpTransport()
        self._queue = queue.Queue()
        self._worker = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._worker and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._run, name="email-dispatcher", daemon=True)
            self._worker.start()

    def stop(self, timeout: float = 5.0):
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker and worker.is_alive():
            self._queue.put(_STOP)
            worker.join(timeout)

    def enqueue(self, message: EmailMessage):
        self.start()
        self._queue.put(message)
        logger.info("Queued email '%s' to %s", message.subject, message.to)

    def join(self):
        """Block until every queued message has been handled."""
        self._queue.join()

    def send_now(self, message: EmailMessage) -> dict:
        """Synchronous send for diagnostics; reports the outcome."""
        try:
            self.transport.send(message)
        except Exception as e:
            logger.error("Diagnostic email to %s failed: %s", message.to, e)
            return {"success": False, "error": str(e)}
        return {"success": True}

    def _run(self):
        while True:
            message = self._queue.get()
            try:
                if message is _STOP:
                    return
                self._deliver(message)
            finally:
                self._queue.task_done()

    def _deliver(self, message: EmailMessage):
        try:
            self.transport.send(message)
            logger.info("Email '%s' sent to %s", message.subject, message.to)
        except Exception:
            # best effort: the triggering request already succeeded
            logger.exception("Failed to send email '%s' to %s", message.subject, message.to)


dispatcher = EmailDispatcher()


def get_dispatcher() -> EmailDispatcher:
    return dispatcher


# --- Templates ---

_LAYOUT = """
<html><body style="font-family: Arial, sans-serif; color: #333; line-height: 1.6;">
  <div style="max-width: 600px; margin: 0 auto;">
    <div style="background: #000; color: #fff; padding: 30px 20px; text-align: center;">
      <h1 style="margin: 0;">NEK</h1>
    </div>
    <div style="padding: 30px 20px;">{body}</div>
    <div style="padding: 20px; text-align: center; color: #666; font-size: 12px;">
      <p>&copy; {year} NEK. All rights reserved.</p>
    </div>
  </div>
</body></html>
"""

_BUTTON = (
    '<a href="{href}" style="display: inline-block; padding: 12px 24px; background-color: #000; '
    'color: #fff; text-decoration: none; border-radius: 4px;">{label}</a>'
)


def _render(body: str) -> str:
    return _LAYOUT.format(body=body, year=datetime.now().year)


def order_confirmation_email(to: str, order_number: str, total) -> EmailMessage:
    body = f"""
      <h2>Order Confirmed!</h2>
      <p>Thank you for your purchase. Your order has been confirmed and we're preparing it for shipment.</p>
      <p><strong>Order Number:</strong> {order_number}<br><strong>Total:</strong> ${float(total):.2f}</p>
      <p>We'll send you another email when your order ships with tracking information.</p>
      {_BUTTON.format(href=f"{SITE_URL}/order-tracking/{order_number}", label="Track Your Order")}
    """
    return EmailMessage(to=to, subject=f"Order Confirmation - {order_number}", html=_render(body))


def welcome_email(to: str, first_name: str) -> EmailMessage:
    body = f"""
      <h2>Welcome to NEK, {first_name}!</h2>
      <p>Thank you for joining us. Start exploring our collection of handcrafted jewelry.</p>
      {_BUTTON.format(href=f"{SITE_URL}/products", label="Shop Now")}
    """
    return EmailMessage(to=to, subject="Welcome to NEK", html=_render(body))


def password_reset_email(to: str, token: str) -> EmailMessage:
    reset_url = f"{SITE_URL}/reset-password?token={token}&email={quote(to)}"
    body = f"""
      <h2>Reset Your Password</h2>
      <p>You requested to reset your password. Click the button below to create a new password:</p>
      {_BUTTON.format(href=reset_url, label="Reset Password")}
      <p>This link will expire in 1 hour.</p>
      <p>If you didn't request this, please ignore this email.</p>
    """
    return EmailMessage(to=to, subject="Reset Your Password - NEK", html=_render(body))


def diagnostic_email(to: str) -> EmailMessage:
    return EmailMessage(to=to, subject="NEK email diagnostic", html=_render("<p>Email delivery is working.</p>"))
