"""
SSM Parameter Store access for secrets.

Secrets such as the reCAPTCHA key or the webhook URL can be supplied either
directly as environment variables or as the name of a SecureString parameter.
Parameters are read once at cold start.
"""

import logging
import os

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Configure SSM client with timeouts to prevent infinite hangs
ssm_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=5,
    read_timeout=10
)

region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-east-2'))

# Initialize SSM client at module level (thread-safe, reused across invocations)
ssm_client = boto3.client('ssm', region_name=region, config=ssm_config)


def get_secure_parameter(name: str) -> str:
    """
    Fetch and decrypt a parameter value.

    Args:
        name: Parameter name (e.g. "/spill-relay/prod/recaptcha-secret")

    Returns:
        str: The decrypted parameter value

    Raises:
        ValueError: If the name is empty or the parameter does not exist
        ClientError: For other AWS service errors
    """
    if not name:
        raise ValueError("Parameter name cannot be empty")

    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code == 'ParameterNotFound':
            logger.error(f"SSM parameter not found: {name}")
            raise ValueError(f"SSM parameter not found: {name}")
        logger.error(f"Failed to read SSM parameter {name}: {e}")
        raise

    logger.info(f"Loaded SSM parameter: {name}")
    return response['Parameter']['Value']
