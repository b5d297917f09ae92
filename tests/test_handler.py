"""
Tests for the API Gateway Lambda handler.
"""

import base64
import dataclasses
import json
import logging
import pytest
from unittest.mock import Mock, patch
import sys
import os

import httpx

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

import handler
from services.recaptcha import DEFAULT_VERIFY_URL

ALLOWED_ORIGIN = 'https://thebadgerspill.com'


@pytest.fixture
def lambda_context():
    """Mock Lambda context."""
    context = Mock()
    context.aws_request_id = "test-request-id"
    context.invoked_function_arn = "arn:aws:lambda:us-east-2:123456789012:function:spill-relay"
    return context


@pytest.fixture
def use_sink(recording_sink):
    """Route deliveries to the recording sink."""
    with patch.object(handler.spill_processor, 'sink', recording_sink):
        yield recording_sink


@pytest.fixture
def captcha_passes():
    """reCAPTCHA provider answering success: true."""
    response = httpx.Response(200, json={'success': True}, request=httpx.Request('POST', DEFAULT_VERIFY_URL))
    with patch('services.recaptcha.httpx.post', return_value=response) as mock_post:
        yield mock_post


def rest_event(method, path, body=None, headers=None, source_ip='203.0.113.7'):
    """API Gateway REST (payload v1) proxy event."""
    return {
        'httpMethod': method,
        'path': path,
        'headers': headers,
        'body': body,
        'isBase64Encoded': False,
        'requestContext': {'identity': {'sourceIp': source_ip}}
    }


def http_api_event(method, path, body=None, headers=None, source_ip='203.0.113.7'):
    """API Gateway HTTP API (payload v2) proxy event."""
    return {
        'version': '2.0',
        'rawPath': path,
        'headers': headers or {},
        'body': body,
        'isBase64Encoded': False,
        'requestContext': {'http': {'method': method, 'path': path, 'sourceIp': source_ip}}
    }


def spill_body(email='Student@wisc.edu', message='hello', token='valid'):
    return json.dumps({'email': email, 'message': message, 'g-recaptcha-response': token})


class TestStatusRoute:
    """Test GET /status."""

    def test_status(self, lambda_context):
        """Test the liveness probe returns an empty 200."""
        response = handler.lambda_handler(rest_event('GET', '/status'), lambda_context)

        assert response['statusCode'] == 200
        assert response['body'] == ''

    def test_status_http_api_with_stage(self, lambda_context):
        """Test a v2 event with a stage prefix and trailing slash."""
        response = handler.lambda_handler(http_api_event('GET', '/prod/status/'), lambda_context)

        assert response['statusCode'] == 200

    def test_health_check(self, lambda_context):
        """Test health check function directly."""
        assert handler.health_check({}, lambda_context)['statusCode'] == 200


class TestSpillRoute:
    """Test POST /spill."""

    def test_spill_delivered(self, lambda_context, use_sink, captcha_passes):
        """Test a valid spill is relayed and acknowledged."""
        event = rest_event('POST', '/spill', body=spill_body())

        response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 200
        assert response['body'] == "Your spill has been sent successfully!"
        assert response['headers']['Content-Type'] == 'text/plain; charset=utf-8'

        texts = [block['text']['text'] for block in use_sink.delivered[0].blocks if 'text' in block]
        assert "hello" in texts
        assert "Email: student@wisc.edu" in texts
        assert "IP Address: 203.0.113.7" in texts

    def test_spill_http_api_base64(self, lambda_context, use_sink, captcha_passes):
        """Test a v2 event with a base64 body."""
        event = http_api_event('POST', '/spill', source_ip='198.51.100.4')
        event['body'] = base64.b64encode(spill_body().encode('utf-8')).decode('ascii')
        event['isBase64Encoded'] = True

        response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 200
        texts = [block['text']['text'] for block in use_sink.delivered[0].blocks if 'text' in block]
        assert "IP Address: 198.51.100.4" in texts

    @pytest.mark.parametrize('body', [None, '', 'not json'])
    def test_missing_body(self, lambda_context, use_sink, captcha_passes, body):
        """Test unusable bodies are rejected before verification."""
        response = handler.lambda_handler(rest_event('POST', '/spill', body=body), lambda_context)

        assert response['statusCode'] == 400
        assert response['body'] == "No body attached to request."
        captcha_passes.assert_not_called()
        assert use_sink.delivered == []

    def test_failed_captcha(self, lambda_context, use_sink):
        """Test provider rejection returns the captcha message."""
        response = httpx.Response(200, json={'success': False}, request=httpx.Request('POST', DEFAULT_VERIFY_URL))
        with patch('services.recaptcha.httpx.post', return_value=response):
            result = handler.lambda_handler(rest_event('POST', '/spill', body=spill_body()), lambda_context)

        assert result['statusCode'] == 400
        assert "I'm not a robot" in result['body']
        assert use_sink.delivered == []

    def test_non_institutional_email(self, lambda_context, use_sink, captcha_passes):
        """Test other domains are rejected."""
        event = rest_event('POST', '/spill', body=spill_body(email='student@gmail.com'))

        response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 400
        assert "wisc.edu email must be specified" in response['body']
        assert use_sink.delivered == []

    def test_sink_failure(self, lambda_context, failing_sink, captcha_passes):
        """Test delivery errors return 500 with the fallback contact."""
        with patch.object(handler.spill_processor, 'sink', failing_sink):
            response = handler.lambda_handler(rest_event('POST', '/spill', body=spill_body()), lambda_context)

        assert response['statusCode'] == 500
        assert "Please email dev.badgerspill@gmail.com" in response['body']

    def test_unexpected_error(self, lambda_context):
        """Test unexpected errors never escape the handler."""
        with patch.object(handler.spill_processor, 'process', side_effect=RuntimeError("boom")):
            response = handler.lambda_handler(rest_event('POST', '/spill', body=spill_body()), lambda_context)

        assert response['statusCode'] == 500
        assert "boom" not in response['body']
        assert "dev.badgerspill@gmail.com" in response['body']

    def test_forwarded_for_behind_proxy(self, lambda_context, use_sink, captcha_passes):
        """Test X-Forwarded-For is trusted only behind a reverse proxy."""
        proxied_config = dataclasses.replace(handler.relay_config, behind_reverse_proxy=True)
        event = rest_event(
            'POST', '/spill',
            body=spill_body(),
            headers={'X-Forwarded-For': '192.0.2.10, 10.0.0.1'}
        )

        with patch.object(handler, 'relay_config', proxied_config):
            handler.lambda_handler(event, lambda_context)

        texts = [block['text']['text'] for block in use_sink.delivered[0].blocks if 'text' in block]
        assert "IP Address: 192.0.2.10" in texts

    def test_null_forwarded_for_behind_proxy(self, lambda_context, use_sink, captcha_passes):
        """Test a null X-Forwarded-For is not an unhandled error."""
        proxied_config = dataclasses.replace(handler.relay_config, behind_reverse_proxy=True)
        event = rest_event('POST', '/spill', body=spill_body(), headers={'X-Forwarded-For': None})

        with patch.object(handler, 'relay_config', proxied_config):
            response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 200
        texts = [block['text']['text'] for block in use_sink.delivered[0].blocks if 'text' in block]
        assert "IP Address: 203.0.113.7" in texts


class TestRouting:
    """Test unknown routes and methods."""

    def test_unknown_path(self, lambda_context):
        """Test unknown paths return 404."""
        response = handler.lambda_handler(rest_event('GET', '/admin'), lambda_context)

        assert response['statusCode'] == 404

    def test_wrong_method(self, lambda_context):
        """Test other methods on a known path return 405."""
        response = handler.lambda_handler(rest_event('GET', '/spill'), lambda_context)

        assert response['statusCode'] == 405
        assert response['headers']['Allow'] == 'POST,OPTIONS'


class TestCors:
    """Test CORS handling."""

    def test_allowed_origin(self, lambda_context):
        """Test allowed origins are echoed back."""
        event = rest_event('GET', '/status', headers={'Origin': ALLOWED_ORIGIN})

        response = handler.lambda_handler(event, lambda_context)

        assert response['headers']['Access-Control-Allow-Origin'] == ALLOWED_ORIGIN
        assert response['headers']['Vary'] == 'Origin'

    def test_unknown_origin(self, lambda_context):
        """Test other origins get no CORS headers."""
        event = rest_event('GET', '/status', headers={'origin': 'https://evil.example.com'})

        response = handler.lambda_handler(event, lambda_context)

        assert 'Access-Control-Allow-Origin' not in response['headers']

    def test_cors_on_rejection(self, lambda_context):
        """Test rejections still carry CORS headers so the form can show them."""
        event = rest_event('POST', '/spill', body=None, headers={'Origin': ALLOWED_ORIGIN})

        response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 400
        assert response['headers']['Access-Control-Allow-Origin'] == ALLOWED_ORIGIN

    def test_preflight(self, lambda_context):
        """Test OPTIONS preflight from an allowed origin."""
        event = rest_event('OPTIONS', '/spill', headers={
            'Origin': ALLOWED_ORIGIN,
            'Access-Control-Request-Method': 'POST',
            'Access-Control-Request-Headers': 'content-type'
        })

        response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 204
        assert response['headers']['Access-Control-Allow-Origin'] == ALLOWED_ORIGIN
        assert 'POST' in response['headers']['Access-Control-Allow-Methods']
        assert response['headers']['Access-Control-Allow-Headers'] == 'content-type'

    def test_preflight_unknown_origin(self, lambda_context):
        """Test preflight from other origins grants nothing."""
        event = rest_event('OPTIONS', '/spill', headers={'Origin': 'https://evil.example.com'})

        response = handler.lambda_handler(event, lambda_context)

        assert response['statusCode'] == 204
        assert 'Access-Control-Allow-Origin' not in response['headers']
        assert 'Access-Control-Allow-Methods' not in response['headers']


class TestResolveClientAddress:
    """Test client address resolution."""

    def test_rest_source_ip(self):
        """Test REST API identity source IP."""
        assert handler.resolve_client_address(rest_event('POST', '/spill')) == '203.0.113.7'

    def test_http_api_source_ip(self):
        """Test HTTP API source IP."""
        assert handler.resolve_client_address(http_api_event('POST', '/spill', source_ip='::1')) == '::1'

    def test_forwarded_for_ignored_without_proxy(self):
        """Test X-Forwarded-For is not trusted by default."""
        event = rest_event('POST', '/spill', headers={'X-Forwarded-For': '192.0.2.10'})

        assert handler.resolve_client_address(event) == '203.0.113.7'

    def test_forwarded_for_falls_back(self):
        """Test an empty X-Forwarded-For falls back to the source IP."""
        event = rest_event('POST', '/spill', headers={'X-Forwarded-For': ''})

        assert handler.resolve_client_address(event, behind_reverse_proxy=True) == '203.0.113.7'

    def test_null_forwarded_for_falls_back(self):
        """Test a null X-Forwarded-For header falls back to the source IP."""
        event = rest_event('POST', '/spill', headers={'X-Forwarded-For': None})

        assert handler.resolve_client_address(event, behind_reverse_proxy=True) == '203.0.113.7'

    def test_missing_address(self):
        """Test events without any address."""
        assert handler.resolve_client_address({'requestContext': {}}) is None


class TestLogging:
    """Test what the handler writes to the logs."""

    def test_rejection_logged_once(self, lambda_context, caplog):
        """Test each rejected spill produces a single log line."""
        with caplog.at_level(logging.INFO):
            handler.lambda_handler(rest_event('POST', '/spill', body=None), lambda_context)

        rejections = [record for record in caplog.records if 'rejected' in record.getMessage()]
        assert len(rejections) == 1
        assert 'missing body' in rejections[0].getMessage()

    def test_httpx_request_logging_disabled(self):
        """Test httpx does not log request URLs, which carry credentials."""
        assert logging.getLogger('httpx').getEffectiveLevel() >= logging.WARNING
        assert logging.getLogger('httpcore').getEffectiveLevel() >= logging.WARNING
