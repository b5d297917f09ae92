"""
Notification sinks for delivering spills to moderators.

Two interchangeable sinks share one interface:
- SmtpSink: sends a plain text email over implicit-TLS SMTP
- WebhookSink: posts Slack Block Kit JSON to an incoming webhook

Each sink renders a Submission into its own NotificationMessage and makes
exactly one delivery attempt. Any failure is raised as SinkDeliveryError;
the caller decides what the submitter is told.

Usage:
    from integrations import notification_sinks

    sink = notification_sinks.build_sink(config)
    sink.deliver(sink.render(submission))
"""

import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from email.message import EmailMessage

import httpx

from config import RelayConfig, SINK_SMTP, SINK_WEBHOOK, ConfigurationError
from domain.models import EmailNotification, NotificationMessage, Submission, WebhookNotification
from services import formatting

logger = logging.getLogger(__name__)


class SinkDeliveryError(Exception):
    """Raised when a sink fails to deliver a notification."""
    pass


class NotificationSink(ABC):
    """A channel that surfaces spills to a human moderator."""

    name = 'sink'

    @abstractmethod
    def render(self, submission: Submission) -> NotificationMessage:
        """Render a validated submission in this sink's message shape."""

    @abstractmethod
    def deliver(self, notification: NotificationMessage) -> None:
        """
        Deliver a rendered notification (single attempt, no retry).

        Raises:
            SinkDeliveryError: If delivery fails for any reason
        """


class SmtpSink(NotificationSink):
    """Email sink using implicit-TLS SMTP with login."""

    name = SINK_SMTP

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        recipient: str,
        timezone: str = formatting.DEFAULT_TIMEZONE,
        timeout: float = 30.0
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.recipient = recipient
        self.timezone = timezone
        self.timeout = timeout

    def render(self, submission: Submission) -> EmailNotification:
        return formatting.format_email_notification(submission, self.timezone)

    def _build_message(self, notification: EmailNotification) -> EmailMessage:
        message = EmailMessage()
        message['From'] = self.username
        message['To'] = self.recipient
        message['Subject'] = notification.subject
        message.set_content(notification.text)
        return message

    def deliver(self, notification: EmailNotification) -> None:
        message = self._build_message(notification)
        context = ssl.create_default_context()

        try:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as server:
                server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise SinkDeliveryError(f"SMTP delivery to {self.host}:{self.port} failed: {e}") from e

        logger.info(f"Spill email sent via {self.host}:{self.port}")


class WebhookSink(NotificationSink):
    """Chat sink posting Block Kit messages to an incoming webhook."""

    name = SINK_WEBHOOK

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def render(self, submission: Submission) -> WebhookNotification:
        return formatting.format_webhook_notification(submission)

    def deliver(self, notification: WebhookNotification) -> None:
        # The webhook URL is a credential and httpx errors embed it, so they are not chained
        try:
            response = httpx.post(self.webhook_url, json=notification.payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SinkDeliveryError(f"Webhook returned HTTP {e.response.status_code}") from None
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise SinkDeliveryError(f"Webhook request failed: {type(e).__name__}") from None

        logger.info(f"Spill posted to webhook ({len(notification.blocks)} blocks)")


def build_sink(config: RelayConfig) -> NotificationSink:
    """
    Create the sink selected by the configuration.

    Raises:
        ConfigurationError: If the sink type is unknown
    """
    if config.sink_type == SINK_WEBHOOK:
        return WebhookSink(config.webhook_url, timeout=config.http_timeout)

    if config.sink_type == SINK_SMTP:
        return SmtpSink(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            recipient=config.recipient_email,
            timezone=config.timezone,
            timeout=config.smtp_timeout
        )

    raise ConfigurationError(f"Unknown sink type: {config.sink_type}")
