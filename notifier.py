"""
Outbound email.

Mail is best effort: routes schedule ``notify_safely`` as a background task
and a failed send is logged, never raised to the caller.
"""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import Optional

from config import EMAIL_FROM_NAME, EMAIL_HOST, EMAIL_PASS, EMAIL_PORT, EMAIL_USER, HTTP_TIMEOUT_SECONDS
from schemas import Order

logger = logging.getLogger(__name__)


class Notifier:
    def send(self, to: str, subject: str, html: str) -> None:
        raise NotImplementedError


class NullNotifier(Notifier):
    """Used when no SMTP credentials are configured."""

    def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Email disabled, dropping %r to %s", subject, to)


class SmtpNotifier(Notifier):
    def __init__(self, host: str, port: int, user: str, password: str,
                 from_name: str = EMAIL_FROM_NAME, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_name = from_name
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> None:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.user))
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls()
            smtp.login(self.user, self.password)
            smtp.send_message(msg)


def notify_safely(notifier: Notifier, to: str, subject: str, html: str) -> bool:
    try:
        notifier.send(to, subject, html)
    except Exception as e:
        logger.warning("Email to %s failed (%s): %s", to, subject, e)
        return False
    return True


def custom_request_confirmation(name: str, product: str) -> tuple[str, str]:
    subject = "Custom Product Request Received"
    html = (
        f"<h3>Hi {escape(name)},</h3>"
        f"<p>We received your request for <strong>{escape(product)}</strong>. "
        "We'll contact you soon.</p>"
    )
    return subject, html


def order_receipt(order: Order) -> tuple[str, str]:
    rows = "".join(
        f"<li>{escape(item.name)} x{item.quantity} - {item.price:.2f}</li>"
        for item in order.cart_items
    )
    subject = f"Order {order.order_id} received"
    html = (
        f"<h3>Hi {escape(order.full_name)},</h3>"
        f"<p>Thanks for your order <strong>{order.order_id}</strong>.</p>"
        f"<ul>{rows}</ul>"
        f"<p>Total: {order.total_amount:.2f}</p>"
    )
    return subject, html


_default_notifier: Optional[Notifier] = None


def default_notifier() -> Notifier:
    global _default_notifier
    if _default_notifier is None:
        if EMAIL_USER and EMAIL_PASS:
            _default_notifier = SmtpNotifier(EMAIL_HOST, EMAIL_PORT, EMAIL_USER, EMAIL_PASS)
        else:
            _default_notifier = NullNotifier()
    return _default_notifier
