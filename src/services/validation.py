"""
Input validation for spill submissions.

This module turns the raw API Gateway body into a payload dict and checks
the submitted fields in a fixed order:
1. A body is present and is a JSON object
2. The sender email is valid and belongs to the required domain
3. The message is present and within the length limit

The first failing check raises; later checks are not evaluated.
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from email_validator import EmailNotValidError, validate_email as check_email_syntax

logger = logging.getLogger(__name__)

EMAIL_FIELD = 'email'
MESSAGE_FIELD = 'message'

DEFAULT_MAX_EMAIL_LENGTH = 50
DEFAULT_MAX_MESSAGE_LENGTH = 10000


class SubmissionValidationError(ValueError):
    """Base class for submissions rejected by the validator."""
    pass


class MissingBodyError(SubmissionValidationError):
    """Raised when the request carries no usable JSON object."""
    pass


class InvalidEmailError(SubmissionValidationError):
    """Raised when the sender email is missing, malformed or outside the required domain."""
    pass


class InvalidMessageError(SubmissionValidationError):
    """Raised when the message is missing, empty or too long."""
    pass


def parse_body(raw_body: Optional[str], is_base64_encoded: bool = False) -> Optional[Dict[str, Any]]:
    """
    Decode an API Gateway request body into a payload dict.

    Args:
        raw_body: Body string from the proxy event (may be None)
        is_base64_encoded: Value of the event's isBase64Encoded flag

    Returns:
        The decoded JSON object, or None if the body is missing,
        undecodable, not JSON, or not a JSON object
    """
    if not raw_body:
        return None

    if is_base64_encoded:
        try:
            raw_body = base64.b64decode(raw_body).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.info(f"Could not decode base64 body: {e}")
            return None

    try:
        payload = json.loads(raw_body)
    except json.JSONDecodeError as e:
        logger.info(f"Request body is not valid JSON: {e}")
        return None

    if not isinstance(payload, dict):
        logger.info(f"Request body is a JSON {type(payload).__name__}, expected an object")
        return None

    return payload


def _belongs_to_domain(email: str, required_domain: str) -> bool:
    domain = email.rsplit('@', 1)[-1]
    required = required_domain.lower().lstrip('@')
    return domain == required or domain.endswith('.' + required)


def validate_email(
    value: Any,
    required_domain: str,
    max_length: int = DEFAULT_MAX_EMAIL_LENGTH
) -> str:
    """
    Validate the sender email and return it lower-cased.

    Args:
        value: Raw value of the email field
        required_domain: Domain the address must belong to (e.g. "wisc.edu");
                         subdomains such as "cs.wisc.edu" are accepted
        max_length: Maximum address length

    Returns:
        str: The lower-cased address

    Raises:
        InvalidEmailError: If the address is missing, malformed, too long,
                           or outside the required domain
    """
    if not value or not isinstance(value, str):
        raise InvalidEmailError("email is missing")

    email = value.lower()

    try:
        check_email_syntax(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidEmailError("email is not valid") from e

    if len(email) > max_length:
        raise InvalidEmailError(f"email longer than {max_length} characters")

    if not _belongs_to_domain(email, required_domain):
        raise InvalidEmailError(f"email is not in the {required_domain} domain")

    return email


def validate_message(value: Any, max_length: int = DEFAULT_MAX_MESSAGE_LENGTH) -> str:
    """
    Validate the message body and return it unchanged.

    Raises:
        InvalidMessageError: If the message is missing, empty, not a string,
                             or longer than max_length
    """
    if not value or not isinstance(value, str):
        raise InvalidMessageError("message is missing")

    if len(value) > max_length:
        raise InvalidMessageError(f"message is {len(value)} characters, limit is {max_length}")

    return value


def validate_submission(
    payload: Optional[Mapping[str, Any]],
    required_domain: str,
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    max_email_length: int = DEFAULT_MAX_EMAIL_LENGTH
) -> Tuple[str, str]:
    """
    Run all field checks in order and return the validated fields.

    Args:
        payload: Decoded request body
        required_domain: Required sender email domain
        max_message_length: Message length limit
        max_email_length: Email length limit

    Returns:
        Tuple of (lower-cased email, verbatim message)

    Raises:
        MissingBodyError: If payload is missing
        InvalidEmailError: If the email check fails
        InvalidMessageError: If the message check fails
    """
    if not isinstance(payload, Mapping):
        raise MissingBodyError("no body attached to request")

    email = validate_email(payload.get(EMAIL_FIELD), required_domain, max_email_length)
    message = validate_message(payload.get(MESSAGE_FIELD), max_message_length)

    return email, message
