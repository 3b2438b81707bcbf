"""
S3 operations for the email pipeline.

Raw emails are delivered to S3 by SES; extraction results are persisted back
to S3 as JSON for the downstream store.
"""

import logging
import os
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

s3_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=60
)

s3_client = boto3.client('s3', config=s3_config)

RESULTS_BUCKET = os.environ.get('RESULTS_S3_BUCKET', '')
RESULTS_KEY_PREFIX = os.environ.get('RESULTS_KEY_PREFIX', 'results/')


def fetch_email_from_s3(bucket: str, key: str) -> bytes:
    """
    Fetch raw email content from S3.

    Args:
        bucket: S3 bucket name
        key: S3 object key (path to the email file)

    Returns:
        bytes: The raw email content

    Raises:
        ValueError: If the bucket or object does not exist
        ClientError: For other S3 errors
    """
    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
        return response['Body'].read()
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code == 'NoSuchKey':
            logger.error(f"S3 object not found: s3://{bucket}/{key}")
            raise ValueError(f"Email file not found in S3: {key}")
        elif error_code == 'NoSuchBucket':
            logger.error(f"S3 bucket not found: {bucket}")
            raise ValueError(f"S3 bucket not found: {bucket}")
        logger.error(f"Failed to fetch from S3 s3://{bucket}/{key}: {e}")
        raise


def is_results_storage_configured() -> bool:
    """True when a results bucket is configured."""
    return bool(RESULTS_BUCKET)


def build_result_key(message_id: str) -> str:
    """Key for a message's result: {prefix}{message_id}.json"""
    safe_id = message_id.strip('<>').replace('/', '_')
    return f"{RESULTS_KEY_PREFIX}{safe_id}.json"


def upload_processed_result(
    bucket: str,
    key: str,
    content: str,
    content_type: str = 'application/json'
) -> None:
    """
    Upload a processed result to S3.

    Args:
        bucket: S3 bucket name
        key: S3 object key
        content: Serialized result
        content_type: MIME type of the content

    Raises:
        ValueError: If parameters are invalid
        ClientError: If the S3 operation fails
    """
    if not bucket:
        raise ValueError("S3 bucket name cannot be empty")
    if not key:
        raise ValueError("S3 object key cannot be empty")
    if content is None:
        raise ValueError("Content cannot be None")

    try:
        s3_client.put_object(
            Bucket=bucket,
            Key=key,
            Body=content.encode('utf-8'),
            ContentType=content_type
        )
        logger.info(f"Uploaded result to s3://{bucket}/{key} ({len(content)} chars)")

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        error_message = e.response.get('Error', {}).get('Message', str(e))
        logger.error(
            f"Failed to upload result to S3: bucket={bucket}, key={key}, "
            f"error_code={error_code}, error_message={error_message}"
        )
        raise


def persist_result(message_id: str, content: str) -> Optional[str]:
    """
    Store a serialized result in the configured results bucket.

    Returns:
        The object key, or None when results storage is not configured
    """
    if not is_results_storage_configured():
        logger.info("Results bucket not configured, skipping persistence")
        return None

    key = build_result_key(message_id)
    upload_processed_result(RESULTS_BUCKET, key, content)
    return key
