"""
Spill relay pipeline - core business logic.

This module handles one spill submission end to end:
1. Reject requests without a body
2. Verify the reCAPTCHA token (fail closed)
3. Validate the sender email, then the message
4. Render the notification for the configured sink
5. Make a single delivery attempt
6. Return a SpillResult (status code and plain text body)

All errors are caught and returned as SpillResult. No exceptions propagate
out of the public methods, and nothing is queued for later delivery.
"""

import logging
import time
from typing import Any, Mapping, Optional

from config import RelayConfig
from .models import (
    OUTCOME_DELIVERED,
    OUTCOME_FAILED,
    OUTCOME_REJECTED,
    SpillResult,
    Submission,
)
from services import validation
from services.recaptcha import RecaptchaVerifier
from integrations.notification_sinks import NotificationSink

logger = logging.getLogger(__name__)

MISSING_BODY_TEXT = "No body attached to request."
CAPTCHA_FAILED_TEXT = 'Please complete the captcha (the "I\'m not a robot" checkbox) and try again.'
SUCCESS_TEXT = "Your spill has been sent successfully!"


class SpillProcessor:
    """
    Runs the verification, validation and delivery pipeline for spills.

    Holds only read-only collaborators, so a single instance serves every
    invocation in an execution environment.
    """

    def __init__(self, config: RelayConfig, verifier: RecaptchaVerifier, sink: NotificationSink):
        self.config = config
        self.verifier = verifier
        self.sink = sink

    @property
    def invalid_email_text(self) -> str:
        domain = self.config.required_email_domain
        return (
            f"A {domain} email must be specified so that we can respond to your message. "
            f"Only students with valid {domain} email may submit messages."
        )

    @property
    def invalid_message_text(self) -> str:
        return (
            f"A message must be included. "
            f"Messages cannot be longer than {self.config.max_message_length} characters."
        )

    @property
    def server_error_text(self) -> str:
        return (
            f"There was an error. Please email {self.config.support_email} to let us know "
            f"something went wrong. We will fix our server issues, and then you can resubmit "
            f"your message."
        )

    def process(self, payload: Optional[Mapping[str, Any]], source_address: Optional[str]) -> SpillResult:
        """
        Handle a single spill submission.

        Args:
            payload: Decoded JSON body (None if missing or unparseable)
            source_address: Client network address, if known

        Returns:
            SpillResult with the status code and body for the submitter
        """
        if payload is None:
            return self._reject(MISSING_BODY_TEXT, 'missing body')

        if not self.verifier.verify(payload):
            return self._reject(CAPTCHA_FAILED_TEXT, 'captcha failed')

        try:
            email, message = validation.validate_submission(
                payload,
                required_domain=self.config.required_email_domain,
                max_message_length=self.config.max_message_length,
                max_email_length=self.config.max_email_length
            )
        except validation.InvalidEmailError as e:
            return self._reject(self.invalid_email_text, f"invalid email ({e})")
        except validation.InvalidMessageError as e:
            return self._reject(self.invalid_message_text, f"invalid message ({e})")

        if not source_address:
            logger.error("Client address unavailable, cannot relay spill")
            return self._fail('client address unavailable')

        submission = Submission(
            sender_email=email,
            message=message,
            verification_token=self.verifier.extract_token(payload),
            source_address=source_address
        )

        return self._deliver(submission)

    def _deliver(self, submission: Submission) -> SpillResult:
        """Render and deliver the submission in a single attempt."""
        start_time = time.time()

        try:
            notification = self.sink.render(submission)
            self.sink.deliver(notification)
        except Exception as e:
            logger.error(f"Failed to deliver spill via {self.sink.name} sink: {e}", exc_info=True)
            return self._fail(f"{self.sink.name} delivery failed")

        logger.info(
            f"Spill delivered via {self.sink.name} sink in {time.time() - start_time:.3f}s: {submission!r}"
        )
        return SpillResult(status_code=200, body=SUCCESS_TEXT, outcome=OUTCOME_DELIVERED)

    def _reject(self, body: str, reason: str) -> SpillResult:
        return SpillResult(status_code=400, body=body, outcome=OUTCOME_REJECTED, reason=reason)

    def _fail(self, reason: str) -> SpillResult:
        return SpillResult(status_code=500, body=self.server_error_text, outcome=OUTCOME_FAILED, reason=reason)
