"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src and hooks to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../hooks'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-2')
os.environ.setdefault('RECAPTCHA_SECRET_KEY', 'test-recaptcha-secret')
os.environ.setdefault('SINK_TYPE', 'webhook')
os.environ.setdefault('WEBHOOK_URL', 'https://hooks.slack.com/services/T000/B000/test')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')

from domain.models import NotificationMessage, Submission  # noqa: E402
from integrations.notification_sinks import NotificationSink, SinkDeliveryError  # noqa: E402
from services import formatting  # noqa: E402


class RecordingSink(NotificationSink):
    """Sink double that keeps delivered notifications (or fails on demand)."""

    name = 'recording'

    def __init__(self, error=None):
        self.error = error
        self.delivered = []

    def render(self, submission: Submission) -> NotificationMessage:
        return formatting.format_webhook_notification(submission)

    def deliver(self, notification: NotificationMessage) -> None:
        if self.error is not None:
            raise self.error
        self.delivered.append(notification)


@pytest.fixture
def recording_sink():
    """Sink that records deliveries."""
    return RecordingSink()


@pytest.fixture
def failing_sink():
    """Sink whose delivery always fails."""
    return RecordingSink(error=SinkDeliveryError("Webhook returned HTTP 500"))


@pytest.fixture
def crashing_sink():
    """Sink raising an unexpected exception."""
    return RecordingSink(error=RuntimeError("boom"))
