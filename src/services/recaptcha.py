"""
Human verification via Google reCAPTCHA.

The verifier makes a single siteverify call per request and fails closed:
any transport error, timeout, error status or malformed response counts
as a failed check. Nothing raised here reaches the caller.
"""

import logging
from typing import Any, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)

TOKEN_FIELD = 'g-recaptcha-response'
DEFAULT_VERIFY_URL = 'https://www.google.com/recaptcha/api/siteverify'
DEFAULT_TIMEOUT_SECONDS = 10.0


class RecaptchaVerifier:
    """
    Confirms that a submission passed the reCAPTCHA challenge.

    Holds only read-only settings, so one instance is shared by all
    invocations in an execution environment.
    """

    def __init__(
        self,
        secret: str,
        verify_url: str = DEFAULT_VERIFY_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout

    @staticmethod
    def extract_token(payload: Optional[Mapping[str, Any]]) -> Optional[str]:
        """Return the verification token from the payload, if any."""
        if not isinstance(payload, Mapping):
            return None
        token = payload.get(TOKEN_FIELD)
        if not token or not isinstance(token, str):
            return None
        return token

    def verify(self, payload: Optional[Mapping[str, Any]]) -> bool:
        """
        Verify the reCAPTCHA token carried in the payload.

        Args:
            payload: Decoded request body

        Returns:
            True only if the provider answered with success == true.
            Missing tokens return False without contacting the provider.
        """
        token = self.extract_token(payload)
        if token is None:
            logger.info("No reCAPTCHA token in request")
            return False

        try:
            response = httpx.post(
                self.verify_url,
                params={'secret': self.secret, 'response': token},
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"reCAPTCHA verification returned HTTP {e.response.status_code}")
            return False
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # The request URL carries the secret and token, so only the error type is logged
            logger.warning(f"reCAPTCHA verification request failed: {type(e).__name__}")
            return False
        except ValueError as e:
            logger.warning(f"reCAPTCHA verification returned malformed JSON: {e}")
            return False

        if not isinstance(result, dict):
            logger.warning("reCAPTCHA verification returned a non-object response")
            return False

        success = result.get('success') is True
        if not success:
            logger.info(f"reCAPTCHA verification rejected: {result.get('error-codes', [])}")
        return success
