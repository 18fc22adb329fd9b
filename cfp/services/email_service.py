"""Email service - outgoing mail with plugin hooks"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from sqlalchemy.orm import Session

from cfp.config import settings
from cfp.plugins import hooks

logger = logging.getLogger(__name__)


class EmailService:
    """Sends mail through SMTP, or logs it when SMTP is not configured"""

    @staticmethod
    def _deliver(to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = settings.EMAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as smtp:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USER:
                smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            smtp.send_message(message)

    @staticmethod
    def send(
        db: Optional[Session],
        *,
        to: str,
        subject: str,
        body: str,
        template: Optional[str] = None,
    ) -> bool:
        """
        Send one email

        Plugins see the message on email.beforeSend and may rewrite the
        recipient, subject or body, or set "cancel" to drop it.

        Args:
            db: Database session (unused by delivery, kept for callers in a request)
            to: Recipient address
            subject: Subject line
            body: Plain text body
            template: Optional template name passed through to hooks

        Returns:
            True if the message was handed off, False if cancelled or delivery failed
        """
        payload = hooks.dispatch("email.beforeSend", {
            "to": to,
            "subject": subject,
            "body": body,
            "template": template,
        })
        if payload.get("cancel"):
            logger.info(f"Email to {to} cancelled by plugin")
            return False

        to = payload.get("to") or to
        subject = payload.get("subject") or subject
        body = payload.get("body") or body

        if settings.SMTP_HOST:
            try:
                EmailService._deliver(to, subject, body)
            except (smtplib.SMTPException, OSError) as e:
                logger.error(f"Failed to send email to {to}: {e}")
                return False
        else:
            logger.info(f"SMTP not configured; email to {to}: {subject}\n{body}")

        hooks.dispatch("email.sent", {"to": to, "subject": subject, "template": template})
        return True


email_service = EmailService()
