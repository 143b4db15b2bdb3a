"""
Notification Module

Fire-and-forget client notifications (payment reminders, payment receipts)
through pluggable channel providers. Every attempt is recorded in the
notification log; delivery failures are logged and never propagate to the
loan or payment operation that triggered them.
"""

from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Dict, List, Optional
import smtplib

import requests

from .config import ServicingConfig
from .logging_config import get_logger, log_action
from .models import (
    Client, NotificationLog, NotificationChannel, NotificationCategory,
    NotificationStatus, new_id, utc_now
)
from .repositories import ClientRepository, NotificationLogRepository


class ChannelProvider(ABC):
    """Abstract base class for notification channel providers"""

    @abstractmethod
    def send(self, client: Client, subject: str, body: str) -> bool:
        """Deliver a message to the client. Returns True if successful."""
        pass


class LogChannelProvider(ChannelProvider):
    """Writes the message to the application log instead of delivering it"""

    def __init__(self, channel: NotificationChannel = NotificationChannel.EMAIL):
        self.channel = channel
        self.logger = get_logger("loan_servicing.notifications")

    def send(self, client: Client, subject: str, body: str) -> bool:
        log_action(
            self.logger, "info", f"{self.channel.value} to {client.email}: {subject} | {body[:100]}",
            action="notification.log_only", client_id=client.id
        )
        return True


class EmailChannelProvider(ChannelProvider):
    """SMTP email delivery"""

    def __init__(self, host: str, port: int = 587, username: str = "",
                 password: str = "", sender: Optional[str] = None, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    def send(self, client: Client, subject: str, body: str) -> bool:
        if not client.email:
            return False

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = client.email
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        return True


class WebhookChannelProvider(ChannelProvider):
    """Posts the message to an HTTP gateway (e.g. a WhatsApp relay)"""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def send(self, client: Client, subject: str, body: str) -> bool:
        payload = {
            "client_id": client.id,
            "name": client.name,
            "email": client.email,
            "phone": client.phone,
            "subject": subject,
            "body": body,
            "timestamp": utc_now().isoformat(),
        }
        response = requests.post(
            self.url,
            json=payload,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"}
        )
        return response.status_code < 300


class NotificationService:
    """Sends notifications and keeps the notification log"""

    def __init__(
        self,
        logs: NotificationLogRepository,
        clients: ClientRepository,
        default_channel: NotificationChannel = NotificationChannel.EMAIL
    ):
        self.logs = logs
        self.clients = clients
        self.default_channel = default_channel
        self.providers: Dict[NotificationChannel, ChannelProvider] = {
            channel: LogChannelProvider(channel) for channel in NotificationChannel
        }
        self.logger = get_logger("loan_servicing.notifications")

    @classmethod
    def from_config(cls, logs: NotificationLogRepository, clients: ClientRepository,
                    config: ServicingConfig) -> 'NotificationService':
        service = cls(logs, clients, NotificationChannel(config.notification_channel))
        if config.smtp_host:
            service.register_provider(NotificationChannel.EMAIL, EmailChannelProvider(
                host=config.smtp_host,
                port=config.smtp_port,
                username=config.smtp_user,
                password=config.smtp_password,
                sender=config.smtp_sender
            ))
        if config.notification_webhook_url:
            service.register_provider(NotificationChannel.WHATSAPP, WebhookChannelProvider(
                config.notification_webhook_url, timeout=config.notification_timeout
            ))
        return service

    def register_provider(self, channel: NotificationChannel, provider: ChannelProvider) -> None:
        self.providers[channel] = provider

    def notify(
        self,
        client_id: str,
        category: NotificationCategory,
        message: str,
        loan_id: Optional[str] = None,
        channel: Optional[NotificationChannel] = None,
        subject: Optional[str] = None
    ) -> bool:
        """
        Send a notification to a client and log the attempt.

        Never raises; returns False when the client is unknown or delivery fails.
        """
        channel = channel or self.default_channel
        subject = subject or f"Payment Reminder: {category.value}"

        try:
            client = self.clients.get(client_id)
            if not client:
                log_action(self.logger, "warning", "Notification skipped: client not found",
                           action="notification.skip", client_id=client_id)
                return False

            try:
                delivered = self.providers[channel].send(client, subject, message)
                failure = None if delivered else "Provider reported failure"
            except Exception as exc:
                delivered = False
                failure = str(exc)

            self._record(
                client_id, loan_id, channel, category,
                message if delivered else f"Failed: {failure}",
                NotificationStatus.SENT if delivered else NotificationStatus.FAILED
            )
            if not delivered:
                log_action(self.logger, "warning", f"{channel.value} notification failed: {failure}",
                           action="notification.failed", client_id=client_id, loan_id=loan_id)
            return delivered
        except Exception:
            self.logger.exception("Notification bookkeeping failed")
            return False

    def log_manual(self, client_id: str, channel: NotificationChannel, message: str) -> NotificationLog:
        """Record a reminder sent by staff outside the system (e.g. a WhatsApp chat)"""
        return self._record(client_id, None, channel, NotificationCategory.MANUAL, message,
                            NotificationStatus.SENT)

    def list_logs(self, assigned_staff: Optional[str] = None, limit: int = 50) -> List[NotificationLog]:
        client_ids = None
        if assigned_staff:
            client_ids = [c.id for c in self.clients.list(assigned_staff)]
        return self.logs.recent(client_ids, limit)

    def _record(self, client_id: str, loan_id: Optional[str], channel: NotificationChannel,
                category: NotificationCategory, message: str,
                status: NotificationStatus) -> NotificationLog:
        now = utc_now()
        entry = NotificationLog(
            id=new_id(),
            created_at=now,
            updated_at=now,
            client_id=client_id,
            channel=channel,
            category=category,
            message=message,
            status=status,
            loan_id=loan_id,
            sent_at=now
        )
        self.logs.add(entry)
        return entry
