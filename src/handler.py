"""
AWS Lambda handler for the spill relay API (API Gateway proxy events).

Thin orchestration layer that routes requests and delegates spills to
SpillProcessor. Supports REST API (payload v1) and HTTP API (payload v2)
events.

Routes:
    GET  /status   liveness probe, empty 200
    POST /spill    submit a spill (JSON body)
    OPTIONS        CORS preflight for either route
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

from config import ConfigurationError, RelayConfig, load_config
from domain.spill_processor import SpillProcessor
from integrations.notification_sinks import build_sink
from services import validation
from services.recaptcha import RecaptchaVerifier

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# httpx logs full request URLs at INFO, including the reCAPTCHA secret and webhook URL
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('httpcore').setLevel(logging.WARNING)

STATUS_ROUTE = '/status'
SPILL_ROUTE = '/spill'

ALLOWED_METHODS = 'GET,POST,OPTIONS'
DEFAULT_ALLOWED_HEADERS = 'Content-Type'


def _create_processor(config: RelayConfig) -> SpillProcessor:
    verifier = RecaptchaVerifier(
        secret=config.recaptcha_secret,
        verify_url=config.recaptcha_verify_url,
        timeout=config.http_timeout
    )
    return SpillProcessor(config, verifier, build_sink(config))


# Initialize once at module level (reused across invocations)
try:
    relay_config = load_config()
    spill_processor = _create_processor(relay_config)
except ConfigurationError as e:
    logger.error(f"Module initialization failed: {e}")
    raise


def _headers(event: Dict[str, Any]) -> Dict[str, str]:
    """Request headers with lower-cased names (API Gateway may send None)."""
    return {str(k).lower(): v for k, v in (event.get('headers') or {}).items()}


def _request_route(event: Dict[str, Any]) -> Tuple[str, str]:
    """
    Extract (method, path) from a v1 or v2 proxy event.

    Returns:
        Tuple of upper-cased method and path without a trailing slash
    """
    http_context = (event.get('requestContext') or {}).get('http') or {}
    method = event.get('httpMethod') or http_context.get('method') or ''
    path = event.get('rawPath') or event.get('path') or http_context.get('path') or ''
    return method.upper(), path.rstrip('/')


def _route_name(path: str) -> Optional[str]:
    # Stage prefixes such as /prod/spill are tolerated
    for route in (STATUS_ROUTE, SPILL_ROUTE):
        if path == route or path.endswith(route):
            return route
    return None


def resolve_client_address(event: Dict[str, Any], behind_reverse_proxy: bool = False) -> Optional[str]:
    """
    Determine the submitter's network address.

    Args:
        event: API Gateway proxy event
        behind_reverse_proxy: Trust the left-most X-Forwarded-For entry

    Returns:
        The client address, or None if the event carries none
    """
    if behind_reverse_proxy:
        forwarded_for = _headers(event).get('x-forwarded-for') or ''
        first_hop = forwarded_for.split(',')[0].strip()
        if first_hop:
            return first_hop

    request_context = event.get('requestContext') or {}
    source_ip = (request_context.get('http') or {}).get('sourceIp')
    if not source_ip:
        source_ip = (request_context.get('identity') or {}).get('sourceIp')
    return source_ip or None


def cors_headers(origin: Optional[str], allowed_origins) -> Dict[str, str]:
    """CORS response headers for an allowed origin, empty otherwise."""
    if not origin or origin.rstrip('/') not in allowed_origins:
        return {}
    return {
        'Access-Control-Allow-Origin': origin,
        'Vary': 'Origin'
    }


def _response(status_code: int, body: str = '', headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    response_headers = {'Content-Type': 'text/plain; charset=utf-8'}
    response_headers.update(headers or {})
    return {
        'statusCode': status_code,
        'headers': response_headers,
        'body': body
    }


def health_check(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Liveness probe. No side effects.
    """
    return _response(200)


def submit_spill(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Handle POST /spill.

    Expected body:
    {
        "email": "student@wisc.edu",
        "message": "Free text",
        "g-recaptcha-response": "token"
    }
    """
    payload = validation.parse_body(event.get('body'), bool(event.get('isBase64Encoded')))
    source_address = resolve_client_address(event, relay_config.behind_reverse_proxy)

    result = spill_processor.process(payload, source_address)

    if result.success:
        logger.info(f"✓ Spill relayed: {result!r}")
    elif result.status_code >= 500:
        logger.warning(f"⚠ Spill failed: {result!r}")
    else:
        logger.info(f"Spill rejected: {result!r}")

    return _response(result.status_code, result.body)


def _preflight(event: Dict[str, Any], cors: Dict[str, str]) -> Dict[str, Any]:
    if not cors:
        return _response(204)

    requested_headers = _headers(event).get('access-control-request-headers')
    headers = dict(cors)
    headers['Access-Control-Allow-Methods'] = ALLOWED_METHODS
    headers['Access-Control-Allow-Headers'] = requested_headers or DEFAULT_ALLOWED_HEADERS
    return _response(204, headers=headers)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Route an API Gateway proxy event.

    Args:
        event: API Gateway proxy event (v1 or v2)
        context: Lambda context

    Returns:
        Dict with statusCode, headers and a plain text body
    """
    method, path = _request_route(event)
    cors = cors_headers(_headers(event).get('origin'), relay_config.allowed_origins)
    route = _route_name(path)

    logger.info(f"Environment: {relay_config.environment}, request: {method} {path}")

    if route is None:
        return _response(404, "Not found.", cors)

    try:
        if method == 'OPTIONS':
            return _preflight(event, cors)

        if route == STATUS_ROUTE and method in ('GET', 'HEAD'):
            response = health_check(event, context)
        elif route == SPILL_ROUTE and method == 'POST':
            response = submit_spill(event, context)
        else:
            response = _response(405, "Method not allowed.", {'Allow': f"{'GET' if route == STATUS_ROUTE else 'POST'},OPTIONS"})

    except Exception as e:
        logger.error(f"Unhandled error for {method} {path}: {e}", exc_info=True)
        response = _response(500, spill_processor.server_error_text)

    response['headers'].update(cors)
    return response
