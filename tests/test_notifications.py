"""
Tests for Notification Module

Tests notification logging, channel providers, provider failures, manual
reminder logs and configuration-driven provider registration.
"""

import pytest
from unittest.mock import MagicMock, patch

from loan_servicing.config import ServicingConfig
from loan_servicing.models import (
    Client, NotificationCategory, NotificationChannel, NotificationStatus, new_id, utc_now
)
from loan_servicing.notifications import (
    ChannelProvider, EmailChannelProvider, LogChannelProvider,
    NotificationService, WebhookChannelProvider
)
from loan_servicing.repositories import ClientRepository, NotificationLogRepository
from loan_servicing.storage import InMemoryStorage


class FailingProvider(ChannelProvider):
    """Provider that raises on every send"""

    def send(self, client, subject, body):
        raise ConnectionError("gateway unreachable")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clients(storage):
    return ClientRepository(storage)


@pytest.fixture
def logs(storage):
    return NotificationLogRepository(storage)


@pytest.fixture
def service(logs, clients):
    return NotificationService(logs, clients)


def _add_client(clients, staff="staff-1", email="kim@example.com"):
    now = utc_now()
    client = Client(id=new_id(), created_at=now, updated_at=now, name="Kim",
                    email=email, phone="+15550144", assigned_staff=staff)
    clients.add(client)
    return client


class TestNotify:
    """Test notification sending and logging"""

    def test_sent_and_logged(self, service, clients, logs):
        client = _add_client(clients)

        assert service.notify(client.id, NotificationCategory.DUE_SOON, "Payment due soon", loan_id="L1")

        entries = logs.recent()
        assert len(entries) == 1
        assert entries[0].channel == NotificationChannel.EMAIL
        assert entries[0].category == NotificationCategory.DUE_SOON
        assert entries[0].status == NotificationStatus.SENT
        assert entries[0].message == "Payment due soon"
        assert entries[0].loan_id == "L1"

    def test_unknown_client(self, service, logs):
        assert not service.notify("missing", NotificationCategory.OVERDUE, "Pay now")
        assert logs.recent() == []

    def test_provider_exception_logged_as_failure(self, service, clients, logs):
        client = _add_client(clients)
        service.register_provider(NotificationChannel.WHATSAPP, FailingProvider())

        delivered = service.notify(client.id, NotificationCategory.OVERDUE, "Pay now",
                                   channel=NotificationChannel.WHATSAPP)

        assert not delivered
        entry = logs.recent()[0]
        assert entry.status == NotificationStatus.FAILED
        assert entry.message == "Failed: gateway unreachable"

    def test_log_provider_delivers(self):
        client = Client(id="c1", created_at=utc_now(), updated_at=utc_now(), name="Kim",
                        email="kim@example.com", phone="1", assigned_staff="s")
        assert LogChannelProvider(NotificationChannel.WHATSAPP).send(client, "Hi", "Body")


class TestManualLogs:
    """Test manual reminder logging and listing"""

    def test_log_manual(self, service, clients):
        client = _add_client(clients)

        entry = service.log_manual(client.id, NotificationChannel.WHATSAPP, "Called about week 3")

        assert entry.category == NotificationCategory.MANUAL
        assert entry.status == NotificationStatus.SENT
        assert entry.channel == NotificationChannel.WHATSAPP

    def test_list_logs_by_staff(self, service, clients):
        mine = _add_client(clients, staff="staff-1", email="a@example.com")
        theirs = _add_client(clients, staff="staff-2", email="b@example.com")
        service.log_manual(mine.id, NotificationChannel.EMAIL, "mine")
        service.log_manual(theirs.id, NotificationChannel.EMAIL, "theirs")

        assert [e.message for e in service.list_logs("staff-1")] == ["mine"]
        assert len(service.list_logs()) == 2
        assert len(service.list_logs(limit=1)) == 1


class TestProviders:
    """Test real channel providers with their transports mocked"""

    def test_webhook_provider(self, clients):
        client = _add_client(clients)
        provider = WebhookChannelProvider("https://hooks.example.com/wa", timeout=2.0)

        with patch("loan_servicing.notifications.requests.post") as post:
            post.return_value = MagicMock(status_code=202)
            assert provider.send(client, "Reminder", "Pay soon")

        args, kwargs = post.call_args
        assert args[0] == "https://hooks.example.com/wa"
        assert kwargs["json"]["client_id"] == client.id
        assert kwargs["json"]["phone"] == "+15550144"
        assert kwargs["timeout"] == 2.0

    def test_webhook_provider_error_status(self, clients):
        client = _add_client(clients)
        provider = WebhookChannelProvider("https://hooks.example.com/wa")

        with patch("loan_servicing.notifications.requests.post") as post:
            post.return_value = MagicMock(status_code=500)
            assert not provider.send(client, "Reminder", "Pay soon")

    def test_email_provider(self, clients):
        client = _add_client(clients)
        provider = EmailChannelProvider("smtp.example.com", 587, "bot@example.com", "secret")

        with patch("loan_servicing.notifications.smtplib.SMTP") as smtp_class:
            assert provider.send(client, "Payment Reminder: Due Today", "Pay today")

        smtp = smtp_class.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot@example.com", "secret")
        message = smtp.send_message.call_args[0][0]
        assert message["To"] == "kim@example.com"
        assert message["Subject"] == "Payment Reminder: Due Today"

    def test_from_config_registers_providers(self, logs, clients):
        config = ServicingConfig(
            smtp_host="smtp.example.com",
            notification_webhook_url="https://hooks.example.com/wa",
            notification_channel="WhatsApp"
        )

        service = NotificationService.from_config(logs, clients, config)

        assert service.default_channel == NotificationChannel.WHATSAPP
        assert isinstance(service.providers[NotificationChannel.EMAIL], EmailChannelProvider)
        assert isinstance(service.providers[NotificationChannel.WHATSAPP], WebhookChannelProvider)

    def test_from_config_defaults_to_log_only(self, logs, clients):
        service = NotificationService.from_config(logs, clients, ServicingConfig(smtp_host=""))
        assert isinstance(service.providers[NotificationChannel.EMAIL], LogChannelProvider)
