"""
Relay configuration loaded once per execution environment.

All settings come from environment variables. Secrets may instead be given
as SSM parameter names through the matching *_PARAMETER variable. The
resulting RelayConfig is immutable and passed explicitly to the components
that need it.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services import parameters as parameter_service
from services.formatting import MAX_WEBHOOK_MESSAGE_LENGTH
from services.recaptcha import DEFAULT_VERIFY_URL

logger = logging.getLogger(__name__)

SINK_WEBHOOK = 'webhook'
SINK_SMTP = 'smtp'
SINK_TYPES = (SINK_WEBHOOK, SINK_SMTP)

DEFAULT_ALLOWED_ORIGINS = (
    'https://thebadgerspill.com',
    'https://badger-spill.github.io',
    'http://localhost:4321',
)


class ConfigurationError(Exception):
    """Raised when relay configuration is invalid or missing."""
    pass


@dataclass(frozen=True)
class RelayConfig:
    """
    Process-wide relay settings (read-only after cold start).

    Attributes:
        allowed_origins: Origins allowed to submit the form (CORS)
        required_email_domain: Domain every sender email must belong to
        max_message_length: Longest accepted message
        max_email_length: Longest accepted sender email
        support_email: Fallback contact shown when delivery fails
        recaptcha_secret: reCAPTCHA shared secret
        recaptcha_verify_url: reCAPTCHA siteverify endpoint
        sink_type: 'webhook' or 'smtp'
        webhook_url: Incoming webhook URL (webhook sink)
        smtp_host: SMTP server host (smtp sink)
        smtp_port: SMTP server port, implicit TLS (smtp sink)
        smtp_username: SMTP login, also used as the From address
        smtp_password: SMTP password
        recipient_email: Moderator inbox (smtp sink)
        timezone: IANA timezone for rendered timestamps
        behind_reverse_proxy: Trust X-Forwarded-For for the client address
        http_timeout: Timeout in seconds for outbound HTTP calls
        smtp_timeout: Timeout in seconds for SMTP delivery
        environment: Deployment environment label
    """
    recaptcha_secret: str
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    required_email_domain: str = 'wisc.edu'
    max_message_length: int = 10000
    max_email_length: int = 50
    support_email: str = 'dev.badgerspill@gmail.com'
    recaptcha_verify_url: str = DEFAULT_VERIFY_URL
    sink_type: str = SINK_WEBHOOK
    webhook_url: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 465
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    recipient_email: Optional[str] = None
    timezone: str = 'America/Chicago'
    behind_reverse_proxy: bool = False
    http_timeout: float = 10.0
    smtp_timeout: float = 30.0
    environment: str = 'dev'


def _read_secret(environ: Mapping[str, str], name: str) -> Optional[str]:
    """
    Read a secret from NAME, or from the SSM parameter named by NAME_PARAMETER.

    Raises:
        ConfigurationError: If the named parameter cannot be read
    """
    value = environ.get(name)
    if value:
        return value

    parameter_name = environ.get(f"{name}_PARAMETER")
    if not parameter_name:
        return None

    try:
        return parameter_service.get_secure_parameter(parameter_name)
    except Exception as e:
        raise ConfigurationError(f"Could not read {name} from SSM parameter {parameter_name}: {e}")


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigurationError(f"{name} environment variable is required but not set.")
    return value


def _read_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got: '{raw}'")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got: {value}")
    return value


def _read_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got: '{raw}'")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got: {value}")
    return value


def _read_bool(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, '').strip().lower() == 'true'


def _read_origins(environ: Mapping[str, str]) -> Tuple[str, ...]:
    raw = environ.get('ALLOWED_ORIGINS')
    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(origin.strip().rstrip('/') for origin in raw.split(',') if origin.strip())


def load_config(environ: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """
    Build the relay configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        RelayConfig: The validated configuration

    Raises:
        ConfigurationError: If a required value is missing or a value is invalid
    """
    if environ is None:
        environ = os.environ

    sink_type = environ.get('SINK_TYPE', SINK_WEBHOOK).strip().lower()
    if sink_type not in SINK_TYPES:
        raise ConfigurationError(
            f"SINK_TYPE must be one of {', '.join(SINK_TYPES)}, got: '{sink_type}'"
        )

    timezone = environ.get('TIMEZONE', 'America/Chicago')
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"TIMEZONE is not a known IANA timezone: '{timezone}'")

    recaptcha_secret = _require(_read_secret(environ, 'RECAPTCHA_SECRET_KEY'), 'RECAPTCHA_SECRET_KEY')

    webhook_url = None
    smtp_host = None
    smtp_username = None
    smtp_password = None
    recipient_email = None

    if sink_type == SINK_WEBHOOK:
        webhook_url = _require(_read_secret(environ, 'WEBHOOK_URL'), 'WEBHOOK_URL')
    else:
        smtp_host = _require(environ.get('SMTP_HOST'), 'SMTP_HOST')
        smtp_username = _require(environ.get('EMAIL_USERNAME'), 'EMAIL_USERNAME')
        smtp_password = _require(_read_secret(environ, 'EMAIL_PASSWORD'), 'EMAIL_PASSWORD')
        recipient_email = _require(environ.get('SPILL_RECIPIENT_EMAIL'), 'SPILL_RECIPIENT_EMAIL')

    config = RelayConfig(
        recaptcha_secret=recaptcha_secret,
        allowed_origins=_read_origins(environ),
        required_email_domain=environ.get('REQUIRED_EMAIL_DOMAIN', 'wisc.edu').strip().lower(),
        max_message_length=_read_int(environ, 'MAX_MESSAGE_LENGTH', 10000),
        max_email_length=_read_int(environ, 'MAX_EMAIL_LENGTH', 50),
        support_email=environ.get('SUPPORT_EMAIL', 'dev.badgerspill@gmail.com'),
        recaptcha_verify_url=environ.get('RECAPTCHA_VERIFY_URL', DEFAULT_VERIFY_URL),
        sink_type=sink_type,
        webhook_url=webhook_url,
        smtp_host=smtp_host,
        smtp_port=_read_int(environ, 'SMTP_PORT', 465),
        smtp_username=smtp_username,
        smtp_password=smtp_password,
        recipient_email=recipient_email,
        timezone=timezone,
        behind_reverse_proxy=_read_bool(environ, 'BEHIND_REVERSE_PROXY'),
        http_timeout=_read_float(environ, 'HTTP_TIMEOUT_SECONDS', 10.0),
        smtp_timeout=_read_float(environ, 'SMTP_TIMEOUT_SECONDS', 30.0),
        environment=environ.get('ENVIRONMENT', 'dev'),
    )

    if sink_type == SINK_WEBHOOK and config.max_message_length > MAX_WEBHOOK_MESSAGE_LENGTH:
        raise ConfigurationError(
            f"MAX_MESSAGE_LENGTH must be at most {MAX_WEBHOOK_MESSAGE_LENGTH} for the webhook sink, "
            f"got: {config.max_message_length}"
        )

    logger.info(
        f"Relay configured: environment={config.environment}, sink={config.sink_type}, "
        f"domain={config.required_email_domain}, max_message_length={config.max_message_length}, "
        f"origins={len(config.allowed_origins)}, behind_reverse_proxy={config.behind_reverse_proxy}"
    )
    return config
