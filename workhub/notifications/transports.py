import logging
import smtplib
from email.message import EmailMessage
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from workhub.core.clock import Clock, utcnow
from workhub.core.db.session import session_scope
from workhub.models import Notification, User
from workhub.notifications.delivery import OutgoingNotification, Transport

logger = logging.getLogger(__name__)


class DatabaseTransport(Transport):
    """Stores the notification row.

    The dedup key is unique, so a retried job that reaches a recipient twice
    leaves a single row behind.
    """

    def __init__(self, session_factory, clock: Clock = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def send(self, notification: OutgoingNotification) -> None:
        row = Notification(
            user_id=notification.user_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            action_url=notification.action_url,
            dedup_key=notification.dedup_key,
            created_at=self.clock(),
        )
        try:
            with session_scope(self.session_factory) as db:
                db.add(row)
        except IntegrityError:
            if notification.dedup_key is None:
                raise
            logger.info(f"Notification {notification.dedup_key} already stored, skipping")


class EmailTransport(Transport):
    def __init__(self, settings, email_lookup: Callable[[int], Optional[str]]):
        self.settings = settings
        self.email_lookup = email_lookup

    def send(self, notification: OutgoingNotification) -> None:
        to_email = self.email_lookup(notification.user_id)
        if not to_email:
            raise RuntimeError(f"No email address for user {notification.user_id}")
        body = notification.message
        if notification.action_url:
            body = f"{body}\n\n{notification.action_url}"
        self._send_email(to_email, subject=notification.title, body=body)

    def _send_email(self, to_email: str, subject: str, body: str):
        smtp_email = self.settings.SMTP_EMAIL
        smtp_password = self.settings.SMTP_PASSWORD
        smtp_server = self.settings.SMTP_SERVER
        smtp_port_str = self.settings.SMTP_PORT

        if not all([smtp_email, smtp_password, smtp_server, smtp_port_str]):
            raise RuntimeError("Missing SMTP settings")

        try:
            smtp_port = int(smtp_port_str)
        except ValueError:
            raise RuntimeError("SMTP_PORT must be an integer")

        msg = EmailMessage()
        msg.set_content(body)
        msg["Subject"] = subject
        msg["From"] = smtp_email
        msg["To"] = to_email

        with smtplib.SMTP(smtp_server, smtp_port) as smtp:
            smtp.ehlo()
            smtp.starttls()
            smtp.login(smtp_email, smtp_password)
            smtp.send_message(msg)


class LoggingTransport(Transport):
    """Stand-in for channels without a configured backend."""

    def __init__(self, channel: str):
        self.channel = channel

    def send(self, notification: OutgoingNotification) -> None:
        logger.info(
            f"[{self.channel}] user={notification.user_id} "
            f"title={notification.title!r} data={notification.data}"
        )


def user_email_lookup(session_factory) -> Callable[[int], Optional[str]]:
    def lookup(user_id: int) -> Optional[str]:
        with session_scope(session_factory) as db:
            user = (
                db.query(User)
                .filter(User.id == user_id, User.deleted_at.is_(None))
                .first()
            )
            return user.email if user else None

    return lookup
