import boto3
from botocore.config import Config
import logging
import threading
import time
import os
from botocore.exceptions import ClientError

from ..networking.errors import ReconcileCancelled

# Constants
AWS_RETRY_ATTEMPTS = 3
AWS_RETRY_DELAY = 1  # seconds
DEFAULT_API_MAX_RETRIES = 10

logger = logging.getLogger(__name__)

def get_credentials():
    """Get AWS credentials using the credential chain.

    The chain will try:
    1. IRSA (IAM Roles for Service Accounts)
    2. EC2 Instance Profile (Node IAM Role)
    3. Environment variables
    4. Shared credentials file

    Returns:
        botocore.credentials.Credentials: AWS credentials if found, None otherwise
    """
    try:
        session = boto3.Session()
        credentials = session.get_credentials()
        if credentials is None:
            logger.warning("No AWS credentials found in the credential chain")
            return None
        return credentials
    except Exception as e:
        logger.error(f"Error getting AWS credentials: {str(e)}")
        return None

def _build_client(service_name, region=None, max_retries=None):
    client_kwargs = {
        'config': Config(retries={'max_attempts': max_retries or DEFAULT_API_MAX_RETRIES})
    }

    # Use specified region or fall back to environment variable
    if region:
        client_kwargs['region_name'] = region
    elif os.environ.get('AWS_DEFAULT_REGION'):
        client_kwargs['region_name'] = os.environ.get('AWS_DEFAULT_REGION')

    # Use regional STS endpoints for IRSA whenever a region is known
    if 'region_name' in client_kwargs:
        os.environ['AWS_STS_REGIONAL_ENDPOINTS'] = 'regional'

    credentials = get_credentials()
    if credentials:
        client_kwargs['aws_access_key_id'] = credentials.access_key
        client_kwargs['aws_secret_access_key'] = credentials.secret_key
        if credentials.token:
            client_kwargs['aws_session_token'] = credentials.token

    return boto3.client(service_name, **client_kwargs)

def get_ec2_client(region=None, max_retries=None):
    """Get AWS EC2 client with retry configuration.

    Args:
        region (str, optional): AWS region to use. If not provided, uses default region.
        max_retries (int, optional): Max attempts for the botocore retry handler.

    Returns:
        boto3.client: AWS EC2 client
    """
    return _build_client('ec2', region=region, max_retries=max_retries)

def get_elbv2_client(region=None, max_retries=None):
    """Get AWS ELBv2 client with retry configuration.

    Args:
        region (str, optional): AWS region to use. If not provided, uses default region.
        max_retries (int, optional): Max attempts for the botocore retry handler.

    Returns:
        boto3.client: AWS ELBv2 client
    """
    return _build_client('elbv2', region=region, max_retries=max_retries)

def retry_aws_operation(operation_func, *args, cancel_event: threading.Event = None, resource_id: str = None, **kwargs):
    """
    Retry an AWS operation with exponential backoff.
    Returns the result of the operation or raises the last exception.

    A set cancel_event stops the operation before the next attempt and
    interrupts the backoff wait, raising ReconcileCancelled for resource_id.
    """
    for attempt in range(AWS_RETRY_ATTEMPTS):
        if cancel_event is not None and cancel_event.is_set():
            raise ReconcileCancelled(f"AWS operation on {resource_id} cancelled after {attempt} attempts", resource_id)
        try:
            return operation_func(*args, **kwargs)
        except ClientError as e:
            if attempt == AWS_RETRY_ATTEMPTS - 1:
                raise
            wait_time = (2 ** attempt) * AWS_RETRY_DELAY
            logger.warning(f"AWS operation failed, retrying in {wait_time}s: {str(e)}")
            if cancel_event is not None:
                if cancel_event.wait(wait_time):
                    raise ReconcileCancelled(f"AWS operation on {resource_id} cancelled while waiting to retry", resource_id)
            else:
                time.sleep(wait_time)
