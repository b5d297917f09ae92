"""
Data models for the spill relay domain.

These type-safe data structures define clear contracts between components.
None of them outlive the request that created them.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Union


OUTCOME_DELIVERED = 'delivered'
OUTCOME_REJECTED = 'rejected'
OUTCOME_FAILED = 'failed'


@dataclass(frozen=True)
class Submission:
    """
    A validated anonymous submission ("spill").

    Only built after the verification gate and the input validator have
    both accepted the request.

    Attributes:
        sender_email: Lower-cased sender address within the required domain
        message: Free-text body, verbatim
        verification_token: Token accepted by the verification provider
        source_address: Client network address (audit trail for moderators)
    """
    sender_email: str
    message: str
    verification_token: str
    source_address: str

    def __repr__(self) -> str:
        """Log-safe representation (no sender, body or token)."""
        return f"Submission(message_length={len(self.message)})"


@dataclass(frozen=True)
class EmailNotification:
    """
    Notification rendered for an email sink.

    Attributes:
        subject: Email subject line
        text: Plain text body
    """
    subject: str
    text: str


@dataclass(frozen=True)
class WebhookNotification:
    """
    Notification rendered for a chat webhook sink (Slack Block Kit).

    Attributes:
        blocks: List of Block Kit block objects
    """
    blocks: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def payload(self) -> Dict[str, Any]:
        """JSON body expected by the incoming webhook."""
        return {'blocks': self.blocks}


NotificationMessage = Union[EmailNotification, WebhookNotification]


@dataclass
class SpillResult:
    """
    Result of handling one spill request.

    This explicit result type makes success/failure handling clear
    and prevents exceptions from being used for control flow.

    Attributes:
        status_code: HTTP status code returned to the submitter
        body: Plain text body returned to the submitter
        outcome: One of 'delivered', 'rejected' or 'failed'
        reason: Internal reason for logging (never sent to the caller)
    """
    status_code: int
    body: str
    outcome: str
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        """True only when the sink accepted the spill."""
        return self.outcome == OUTCOME_DELIVERED

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.reason:
            return f"SpillResult(status={self.status_code}, outcome={self.outcome}, reason={self.reason})"
        return f"SpillResult(status={self.status_code}, outcome={self.outcome})"
