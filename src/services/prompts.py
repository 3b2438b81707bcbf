"""
Prompt management for the extraction calls.

Two concerns live here:

1. System prompt templates (routing / minimal / deep). Loaded with the
   following priority and cached in memory with a TTL for warm invocations:
   - S3 override (optional, for runtime updates without redeploy)
   - Local filesystem (prompts/ directory packaged with the Lambda)

2. Message rendering. The snippet and full renderers turn a Message into the
   user prompt. Their output is the exact text the evidence validator later
   scans, so the rendering must stay deterministic.
"""

import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.models import Message

logger = logging.getLogger(__name__)

# Seconds before a cached template is reloaded (default: 5 minutes)
CACHE_TTL_SECONDS = int(os.environ.get('PROMPT_CACHE_TTL', '300'))

# {cache_key: (template, loaded_at)}
_prompt_cache: Dict[str, Tuple[str, float]] = {}

s3_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=30
)

s3_client = boto3.client('s3', config=s3_config)

PROMPT_BUCKET = os.environ.get('PROMPT_BUCKET')
PROMPT_KEY_PREFIX = os.environ.get('PROMPT_KEY_PREFIX', 'prompts/')

# src/services/prompts.py -> src/prompts/
PROMPTS_DIR = Path(__file__).parent.parent / 'prompts'

# Shared output rules embedded into every system prompt as {output_rules}
OUTPUT_RULES_PROMPT = 'output_rules.txt'

ROUTING_SYSTEM_PROMPT = 'routing_system.txt'
MINIMAL_SYSTEM_PROMPT = 'minimal_system.txt'
DEEP_SYSTEM_PROMPT = 'deep_system.txt'


def _load_from_filesystem(prompt_name: str) -> str:
    """
    Load a packaged template.

    Raises:
        FileNotFoundError: If the template file doesn't exist
    """
    prompt_path = PROMPTS_DIR / prompt_name
    logger.debug(f"Loading prompt from filesystem: {prompt_path}")

    with open(prompt_path, 'r', encoding='utf-8') as f:
        return f.read()


def _load_from_s3(prompt_name: str) -> str:
    """
    Load a template override from S3.

    Raises:
        ValueError: If PROMPT_BUCKET is not set
        ClientError: If the object cannot be read
    """
    if not PROMPT_BUCKET:
        raise ValueError("PROMPT_BUCKET environment variable not set")

    s3_key = f"{PROMPT_KEY_PREFIX}{prompt_name}"
    logger.info(f"Loading prompt from S3: s3://{PROMPT_BUCKET}/{s3_key}")

    response = s3_client.get_object(Bucket=PROMPT_BUCKET, Key=s3_key)
    return response['Body'].read().decode('utf-8')


def load_prompt(prompt_name: str, use_cache: bool = True) -> str:
    """
    Load a prompt template with caching and fallback.

    Priority: Cache -> S3 override -> Local filesystem

    Args:
        prompt_name: Template file name (e.g., "routing_system.txt")
        use_cache: Use cached version if still within TTL (default: True)

    Returns:
        str: Template content

    Raises:
        ValueError: If the template is found nowhere
    """
    cache_key = f"prompt:{prompt_name}"
    now = time.time()

    if use_cache and cache_key in _prompt_cache:
        cached_content, cached_at = _prompt_cache[cache_key]
        if now - cached_at < CACHE_TTL_SECONDS:
            return cached_content
        logger.info(f"Cache expired for prompt: {prompt_name}, reloading")

    content = None

    if PROMPT_BUCKET:
        try:
            content = _load_from_s3(prompt_name)
            logger.info(f"Using S3 override for prompt: {prompt_name}")
        except (ClientError, ValueError) as e:
            logger.info(
                f"S3 override not available ({e.__class__.__name__}), "
                f"falling back to local filesystem"
            )

    if content is None:
        try:
            content = _load_from_filesystem(prompt_name)
        except FileNotFoundError:
            logger.error(f"Prompt not found: {prompt_name} (looked in {PROMPTS_DIR})")
            raise ValueError(
                f"Prompt '{prompt_name}' not found in S3 or local filesystem"
            )

    _prompt_cache[cache_key] = (content, now)
    return content


def format_prompt(template: str, **variables) -> str:
    """
    Substitute {variable} placeholders in a template.

    String values have their braces escaped first so text such as an email
    body containing "{variable}" cannot inject format fields.

    Raises:
        ValueError: If the template references a variable that was not given
    """
    escaped = {
        key: value.replace('{', '{{').replace('}', '}}') if isinstance(value, str) else value
        for key, value in variables.items()
    }
    try:
        return template.format(**escaped)
    except KeyError as e:
        missing_var = str(e).strip("'")
        logger.error(f"Missing variable in prompt template: {missing_var}")
        raise ValueError(f"Missing required variable in prompt: {missing_var}")


def load_system_prompt(prompt_name: str) -> str:
    """Load a system prompt template and embed the shared output rules."""
    template = load_prompt(prompt_name)
    output_rules = load_prompt(OUTPUT_RULES_PROMPT).strip()
    return format_prompt(template, output_rules=output_rules).strip()


def clear_cache() -> None:
    """Clear the template cache (tests, forced reload from S3)."""
    _prompt_cache.clear()
    logger.info("Prompt cache cleared")


# ============================================================================
# Message rendering
# ============================================================================

def _attachment_lines(message: Message) -> List[str]:
    """Metadata line naming attachments; omitted when there are none."""
    if not message.attachment_names:
        return []
    return [f"Attachments: {', '.join(message.attachment_names)}"]


def build_email_prompt_snippet(message: Message, max_body_chars: int) -> str:
    """
    Render the cheap routing prompt: From/Subject, attachment names and a
    truncated body.

    Args:
        message: Inbound message
        max_body_chars: Maximum number of body characters to include

    Returns:
        str: Snippet prompt text
    """
    body_snippet = (message.body or '')[:max(max_body_chars, 0)]
    lines = [
        "<EMAIL_METADATA>",
        f"From: {message.from_address or ''}",
        f"Subject: {message.subject or ''}",
        *_attachment_lines(message),
        "</EMAIL_METADATA>",
        "",
        "<EMAIL_BODY_SNIPPET>",
        body_snippet,
        "</EMAIL_BODY_SNIPPET>",
    ]
    return "\n".join(lines).strip()


def build_email_prompt(message: Message) -> str:
    """
    Render the full extraction prompt: metadata and the untruncated body.

    Args:
        message: Inbound message

    Returns:
        str: Full prompt text
    """
    lines = [
        "Extract campaign data according to the output schema.",
        "Prefer the newest reply content; ignore outdated quoted text.",
        "",
        "<EMAIL_METADATA>",
        f"From: {message.from_address or ''}",
        f"Subject: {message.subject or ''}",
        f"ReceivedAt: {message.received_at or ''}",
        *_attachment_lines(message),
        "</EMAIL_METADATA>",
        "",
        "<EMAIL_BODY>",
        message.body or '',
        "</EMAIL_BODY>",
    ]
    return "\n".join(lines).strip()
