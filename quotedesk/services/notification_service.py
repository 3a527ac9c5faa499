from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.orm import Session

from quotedesk.config import settings
from quotedesk.services.audit_service import log_audit
from quotedesk.services.pricing_service import compute_quote_total


logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'
_templates = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(['html']),
)


@dataclass(frozen=True)
class NotificationMessage:
    to: str
    subject: str
    text_body: str
    html_body: str


class Notifier(Protocol):
    def send(self, message: NotificationMessage) -> None: ...


class LoggingNotifier:
    """Used when no SMTP server is configured; records the message instead."""

    def __init__(self) -> None:
        self.sent: list[NotificationMessage] = []

    def send(self, message: NotificationMessage) -> None:
        self.sent.append(message)
        logger.info('Notification stub for %s: %s', message.to, message.subject)


class SmtpNotifier:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        sender: str,
        use_tls: bool = True,
        timeout: int = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, message: NotificationMessage) -> None:
        email = EmailMessage()
        email['From'] = self.sender
        email['To'] = message.to
        email['Subject'] = message.subject
        email.set_content(message.text_body)
        email.add_alternative(message.html_body, subtype='html')

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(email)
        logger.info('Notification sent to %s: %s', message.to, message.subject)


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    if settings.smtp_configured:
        return SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.notification_sender,
            use_tls=settings.smtp_use_tls,
        )
    return LoggingNotifier()


def build_sanction_notification(quote, line_items) -> NotificationMessage:
    # Built from the quote and its line items only; confidential notes never reach the customer.
    totals = compute_quote_total(quote, line_items)
    items = [{'description': item.description, 'price': f'{item.price:.2f}'} for item in line_items]
    context = {
        'quote_id': quote.id,
        'items': items,
        'subtotal': f'{totals.subtotal:.2f}',
        'discount': f'{totals.discount_amount:.2f}',
        'total': f'{totals.total:.2f}',
    }
    lines = ['Hello,', '', 'Your quote has been approved.', '', f'Quote ID: {quote.id}', '']
    lines.extend(f"- {item['description']}: ${item['price']}" for item in items)
    lines.extend(
        [
            '',
            f"Subtotal: ${context['subtotal']}",
            f"Discount: ${context['discount']}",
            f"Total: ${context['total']}",
            '',
            'Thank you for your business!',
        ]
    )
    return NotificationMessage(
        to=quote.email,
        subject=f'Your quote #{quote.id} has been approved',
        text_body='\n'.join(lines),
        html_body=_templates.get_template('quote_sanctioned.html').render(**context),
    )


def notify_quote_sanctioned(
    db: Session,
    notifier: Notifier,
    *,
    quote,
    line_items,
    actor_employee_id: int | None,
    ip: str | None = None,
) -> bool:
    """Send the sanction notice. Delivery problems are logged, never raised."""
    try:
        message = build_sanction_notification(quote, line_items)
        notifier.send(message)
    except Exception as exc:
        logger.exception('Sanction notification for quote %s failed', quote.id)
        log_audit(
            db,
            actor_employee_id=actor_employee_id,
            action='QUOTE_SANCTION_NOTIFICATION_FAILED',
            quote_id=quote.id,
            ip=ip,
            metadata={'error': str(exc)},
        )
        return False

    log_audit(
        db,
        actor_employee_id=actor_employee_id,
        action='QUOTE_SANCTION_NOTIFICATION_SENT',
        quote_id=quote.id,
        ip=ip,
        metadata={'to': message.to, 'line_items': len(line_items)},
    )
    return True
