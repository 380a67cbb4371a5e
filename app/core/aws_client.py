"""
Centralized AWS client factory to ensure proper credential handling.
This module creates AWS clients with explicit credential configuration.
"""
import boto3
from botocore.config import Config
from core.config import settings
from core.logger import logger
import os


def _client_config() -> Config:
    """Timeouts and SDK-level retries shared by every client."""
    return Config(
        connect_timeout=settings.AWS_CONNECT_TIMEOUT_SECS,
        read_timeout=settings.AWS_READ_TIMEOUT_SECS,
        retries={'max_attempts': settings.AWS_MAX_ATTEMPTS, 'mode': 'standard'}
    )


def get_cloudformation_client():
    """Get CloudFormation client with proper credentials."""
    try:
        # Get credentials from settings (which loads from .env) or environment
        aws_access_key_id = getattr(settings, 'AWS_ACCESS_KEY_ID', None) or os.getenv('AWS_ACCESS_KEY_ID')
        aws_secret_access_key = getattr(settings, 'AWS_SECRET_ACCESS_KEY', None) or os.getenv('AWS_SECRET_ACCESS_KEY')
        aws_session_token = getattr(settings, 'AWS_SESSION_TOKEN', None) or os.getenv('AWS_SESSION_TOKEN')

        client = boto3.client(
            "cloudformation",
            region_name=settings.AWS_REGION,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,  # Optional for temporary credentials
            config=_client_config()
        )
        logger.info("CloudFormation client initialized with credentials")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize CloudFormation client: {str(e)}")
        raise


def get_secretsmanager_client():
    """Get Secrets Manager client with proper credentials."""
    try:
        # Get credentials from settings (which loads from .env) or environment
        aws_access_key_id = getattr(settings, 'AWS_ACCESS_KEY_ID', None) or os.getenv('AWS_ACCESS_KEY_ID')
        aws_secret_access_key = getattr(settings, 'AWS_SECRET_ACCESS_KEY', None) or os.getenv('AWS_SECRET_ACCESS_KEY')
        aws_session_token = getattr(settings, 'AWS_SESSION_TOKEN', None) or os.getenv('AWS_SESSION_TOKEN')

        client = boto3.client(
            "secretsmanager",
            region_name=settings.AWS_REGION,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,  # Optional for temporary credentials
            config=_client_config()
        )
        logger.info("Secrets Manager client initialized with credentials")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize Secrets Manager client: {str(e)}")
        raise


def validate_aws_credentials():
    """Validate that AWS credentials are properly configured."""
    # Check both settings and environment variables
    aws_access_key_id = getattr(settings, 'AWS_ACCESS_KEY_ID', None) or os.getenv('AWS_ACCESS_KEY_ID')
    aws_secret_access_key = getattr(settings, 'AWS_SECRET_ACCESS_KEY', None) or os.getenv('AWS_SECRET_ACCESS_KEY')

    if not aws_access_key_id or not aws_secret_access_key:
        logger.warning("No static AWS credentials in settings or environment")
        logger.info("Falling back to the default boto3 credential chain (instance profile, "
                    "shared config or web identity)")
        return False

    logger.info("AWS credentials found and validated")
    return True
