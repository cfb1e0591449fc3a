"""
Отправка email-уведомлений через SMTP.

Если SMTP не настроен (SMTP_HOST пуст), письма не отправляются: пишем
предупреждение и возвращаем False, уведомление в системе всё равно создаётся.
"""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any

from qms.core.config import settings
from qms.core.logging import get_logger
from qms.db.enums import NotificationType

log = get_logger("email")


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    text: str
    html: str


def _html(title: str, paragraphs: list[str], link: str | None = None) -> str:
    body = "".join(f"<p>{escape(p)}</p>" for p in paragraphs)
    if link:
        body += f'<p><a href="{escape(link)}">Open in QMS</a></p>'
    return f"<html><body><h2>{escape(title)}</h2>{body}</body></html>"


def render_notification_email(
    notification_type: NotificationType,
    data: dict[str, Any],
    link: str | None = None,
) -> EmailMessage | None:
    """Письмо для типа уведомления. Для general писем не шлём."""
    user_name = data.get("user_name", "")
    training = data.get("training_title", "")
    pharmacy = data.get("pharmacy_name") or "QMS Pharmacy"
    url = f"{settings.frontend_url.rstrip('/')}{link}" if link else None

    if notification_type == NotificationType.TRAINING_ASSIGNED:
        subject = f"New Training Assigned: {training}"
        lines = [
            f"Hello {user_name},",
            f'You have been assigned the training "{training}" at {pharmacy}.',
        ]
        if data.get("due_date"):
            lines.append(f"Due date: {data['due_date']}")
    elif notification_type in (NotificationType.TRAINING_REMINDER, NotificationType.TRAINING_OVERDUE):
        subject = f"Training Reminder: {training}"
        lines = [
            f"Hello {user_name},",
            f'This is a reminder to complete the training "{training}".',
        ]
        if data.get("due_date"):
            lines.append(f"Due date: {data['due_date']}")
    elif notification_type == NotificationType.EXAM_AVAILABLE:
        subject = f"Exam Available: {training}"
        lines = [
            f"Hello {user_name},",
            f'You have completed all content for "{training}". The exam is now available.',
            f"Passing score: {data.get('passing_score', '')}%",
        ]
        if data.get("time_limit"):
            lines.append(f"Time limit: {data['time_limit']} minutes")
    elif notification_type == NotificationType.CERTIFICATE_ISSUED:
        subject = f"Certificate Issued: {training}"
        lines = [
            f"Congratulations {user_name}!",
            f'Your certificate for "{training}" has been issued.',
            f"Certificate number: {data.get('certificate_number', '')}",
        ]
    else:
        return None

    return EmailMessage(subject=subject, text="\n".join(lines + ([url] if url else [])), html=_html(subject, lines, url))


class EmailSender:
    """SMTP-отправитель. Блокирующий smtplib выполняется в отдельном потоке."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        from_address: str | None = None,
        use_tls: bool | None = None,
    ) -> None:
        self.host = host if host is not None else settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.from_address = from_address or settings.smtp_from_address
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _send_sync(self, to: str, message: EmailMessage) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.from_address
        msg["To"] = to
        msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def send(self, to: str, message: EmailMessage) -> bool:
        """Отправляет письмо. Возвращает True при успешной отправке."""
        if not self.configured:
            log.warning(f"SMTP is not configured, email to {to} skipped: {message.subject!r}")
            return False
        try:
            await asyncio.to_thread(self._send_sync, to, message)
        except (smtplib.SMTPException, OSError) as exc:
            log.error(f"Failed to send email to {to}: {exc}")
            return False
        log.info(f"Email sent to {to}: {message.subject!r}")
        return True
