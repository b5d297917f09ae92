"""
Notification rendering for validated spills.

Pure functions: the same submission and timestamp always render the same
notification. Both renderings carry the same information (header, message
body, confidential sender section); only the layout differs per sink.

Message bodies are embedded verbatim. The email is sent as text/plain and
the webhook uses plain_text objects, so neither sink interprets markup in
submitted text.
"""

from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from domain.models import EmailNotification, Submission, WebhookNotification

DEFAULT_TIMEZONE = 'America/Chicago'

# Slack rejects section text longer than this
SLACK_SECTION_TEXT_LIMIT = 3000

# Slack rejects messages with more blocks than this
SLACK_MAX_BLOCKS = 50

# Header, dividers and sender info around the message sections
WEBHOOK_FRAME_BLOCKS = 6

MAX_WEBHOOK_MESSAGE_LENGTH = (SLACK_MAX_BLOCKS - WEBHOOK_FRAME_BLOCKS) * SLACK_SECTION_TEXT_LIMIT


def format_received_at(moment: datetime, timezone: str = DEFAULT_TIMEZONE) -> str:
    """
    Render a timestamp the way en-US toLocaleString does.

    Example:
        >>> format_received_at(datetime(2024, 3, 5, 20, 7, 9, tzinfo=dt_timezone.utc))
        '3/5/2024, 2:07:09 PM'
    """
    local = moment.astimezone(ZoneInfo(timezone))
    hour = local.hour % 12 or 12
    meridiem = 'AM' if local.hour < 12 else 'PM'
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def format_email_notification(
    submission: Submission,
    timezone: str = DEFAULT_TIMEZONE,
    received_at: Optional[datetime] = None
) -> EmailNotification:
    """
    Render a spill as an email subject/body pair.

    Args:
        submission: Validated submission
        timezone: IANA timezone for the received timestamp
        received_at: Time the spill was received (defaults to now)

    Returns:
        EmailNotification with subject and plain text body
    """
    if received_at is None:
        received_at = datetime.now(dt_timezone.utc)
    date_string = format_received_at(received_at, timezone)

    text = (
        f"Date/time received: {date_string}\n"
        f"IP Address: {submission.source_address}\n"
        f"\n"
        f"---- Begin Message ----\n"
        f"\n"
        f"{submission.message}\n"
        f"\n"
        f"---- End Message ----\n"
        f"\n\n\n"
        f"**Keep confidential**\n"
        f"Sender email: {submission.sender_email}\n"
    )

    return EmailNotification(subject=f"New Spill [{date_string}]", text=text)


def _mrkdwn_section(text: str) -> Dict[str, Any]:
    return {'type': 'section', 'text': {'type': 'mrkdwn', 'text': text}}


def _plain_text_section(text: str) -> Dict[str, Any]:
    return {'type': 'section', 'text': {'type': 'plain_text', 'text': text, 'emoji': True}}


def _split_message(message: str, limit: int = SLACK_SECTION_TEXT_LIMIT) -> List[str]:
    return [message[i:i + limit] for i in range(0, len(message), limit)]


def format_webhook_notification(submission: Submission) -> WebhookNotification:
    """
    Render a spill as Slack Block Kit blocks.

    Long messages are split over consecutive plain_text sections so the
    whole body survives Slack's per-section limit. Messages up to
    MAX_WEBHOOK_MESSAGE_LENGTH characters also stay within the block limit.
    """
    blocks: List[Dict[str, Any]] = [
        _mrkdwn_section('*New spill received!*'),
        {'type': 'divider'},
    ]
    blocks.extend(_plain_text_section(chunk) for chunk in _split_message(submission.message))
    blocks.extend([
        {'type': 'divider'},
        _mrkdwn_section('*Sender info, keep confidential!*'),
        _plain_text_section(f"Email: {submission.sender_email}"),
        _plain_text_section(f"IP Address: {submission.source_address}"),
    ])

    return WebhookNotification(blocks=blocks)
