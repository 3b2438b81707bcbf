"""
Amazon Bedrock schema-constrained completion client

This module issues one structured-output completion per call through the
Bedrock Runtime Converse API. The strict JSON schema is passed as the input
schema of a single forced tool, so the model's tool input is the payload.

Error policy:
- Rate limiting (ThrottlingException / HTTP 429) is retried with backoff, up
  to MAX_COMPLETION_RETRIES retries. A server hint (retry-after-ms, or
  retry-after in seconds) wins over the exponential fallback.
- Empty content, undecodable JSON and schema violations are fatal for the
  call and raised immediately. Retrying content errors only burns quota.
- Any other service error propagates immediately.

Usage:
    from integrations import bedrock_completion
    from domain.schemas import ROUTING_SCHEMA

    payload = bedrock_completion.execute(system_prompt, user_prompt, ROUTING_SCHEMA)
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

T = TypeVar('T')


# ============================================================================
# Custom Exception Classes
# ============================================================================

class ConfigurationError(Exception):
    """Raised when module configuration is invalid."""
    pass


class ValidationException(Exception):
    """Raised when call arguments are invalid."""
    pass


class CompletionError(Exception):
    """Base class for fatal, non-retryable completion failures."""
    pass


class EmptyCompletionError(CompletionError):
    """Raised when the service returned no content."""
    pass


class CompletionParseError(CompletionError):
    """Raised when the returned content is not valid JSON."""
    pass


class SchemaViolationError(CompletionError):
    """Raised when the payload does not conform to the requested schema."""
    pass


# ============================================================================
# Module-Level Configuration and Initialization
# ============================================================================

def _read_int_env(name: str, default: int) -> int:
    """
    Read a non-negative integer setting from the environment.

    Raises:
        ConfigurationError: If the value is not a non-negative integer
    """
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got: '{raw}'")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got: {value}")
    return value


BEDROCK_MODEL_ID = os.environ.get('BEDROCK_MODEL_ID', 'anthropic.claude-3-5-haiku-20241022-v1:0')
COMPLETION_MAX_TOKENS = _read_int_env('COMPLETION_MAX_TOKENS', 4096)
MAX_COMPLETION_RETRIES = _read_int_env('MAX_COMPLETION_RETRIES', 5)
BASE_RETRY_DELAY_MS = _read_int_env('BASE_RETRY_DELAY_MS', 500)

RATE_LIMIT_ERROR_CODES = frozenset({
    'ThrottlingException',
    'TooManyRequestsException',
    'rate_limit_exceeded',
})


def _initialize_bedrock_client():
    """
    Initialize boto3 Bedrock Runtime client with timeout configuration.

    botocore's own retries are disabled; rate limiting is handled by
    call_with_retry so the attempt ceiling and delays are ours.
    """
    client_config = Config(
        retries={
            'max_attempts': 0,
            'mode': 'standard'
        },
        connect_timeout=10,
        read_timeout=120
    )

    region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-west-2'))

    client = boto3.client(
        'bedrock-runtime',
        region_name=region,
        config=client_config
    )

    logger.info(
        f"Bedrock Runtime client initialized: region={region}, model={BEDROCK_MODEL_ID}, "
        f"max_retries={MAX_COMPLETION_RETRIES}, base_delay={BASE_RETRY_DELAY_MS}ms"
    )
    return client


bedrock_client = _initialize_bedrock_client()


# ============================================================================
# Retry Policy
# ============================================================================

def is_rate_limit_error(error: BaseException) -> bool:
    """Detect a rate-limit signal from the service (error code or HTTP 429)."""
    if not isinstance(error, ClientError):
        return False
    error_code = error.response.get('Error', {}).get('Code')
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    return status == 429 or error_code in RATE_LIMIT_ERROR_CODES


def get_retry_after_ms(error: BaseException) -> Optional[float]:
    """
    Extract the server-suggested delay in milliseconds, if any.

    "retry-after-ms" is taken literally; "retry-after" is in seconds.
    A hint that is not a non-negative number is skipped in favor of the next
    header.
    """
    if not isinstance(error, ClientError):
        return None

    raw_headers = error.response.get('ResponseMetadata', {}).get('HTTPHeaders') or {}
    headers = {str(key).lower(): value for key, value in raw_headers.items()}

    for header, multiplier in (('retry-after-ms', 1), ('retry-after', 1000)):
        raw_value = headers.get(header)
        if raw_value is None or str(raw_value).strip() == '':
            continue
        try:
            value = float(raw_value)
        except (TypeError, ValueError):
            continue
        if value < 0:
            continue
        return value * multiplier

    return None


def backoff_delay_ms(attempt: int) -> float:
    """Exponential fallback delay for the given 1-based retry attempt."""
    return BASE_RETRY_DELAY_MS * (2 ** (attempt - 1))


def _rate_limit_delay_ms(error: BaseException, attempt: int) -> float:
    retry_after = get_retry_after_ms(error)
    return retry_after if retry_after is not None else backoff_delay_ms(attempt)


def call_with_retry(
    fn: Callable[[], T],
    label: str,
    max_retries: Optional[int] = None,
    should_retry: Callable[[BaseException], bool] = is_rate_limit_error,
    delay_ms_for: Callable[[BaseException, int], float] = _rate_limit_delay_ms,
    sleep: Optional[Callable[[float], Any]] = None,
) -> Tuple[T, int]:
    """
    Run fn, retrying failures accepted by should_retry.

    Args:
        fn: Zero-argument callable performing one attempt
        label: Operation name for log messages
        max_retries: Retries after the first attempt (default: MAX_COMPLETION_RETRIES)
        should_retry: Predicate deciding whether an error is retryable
        delay_ms_for: Delay in ms before retry number `attempt` (1-based)
        sleep: Sleep function taking seconds (default: time.sleep)

    Returns:
        Tuple of (fn result, number of retries performed)

    Raises:
        The last error from fn once it is not retryable or the ceiling is hit.
    """
    if max_retries is None:
        max_retries = MAX_COMPLETION_RETRIES
    if sleep is None:
        sleep = time.sleep

    attempt = 0
    while True:
        try:
            return fn(), attempt
        except Exception as e:
            attempt += 1
            if not should_retry(e) or attempt > max_retries:
                raise
            delay_ms = delay_ms_for(e, attempt)
            logger.warning(
                f"{label} hit rate limit, retrying in {delay_ms:g}ms "
                f"(attempt {attempt}/{max_retries})"
            )
            sleep(delay_ms / 1000)


# ============================================================================
# Core Completion Functions
# ============================================================================

@dataclass
class CompletionResult:
    """
    Payload of one completion call plus call metadata.

    Attributes:
        payload: Decoded, schema-validated JSON payload
        retries: Number of rate-limit retries before success
        latency_ms: Wall time including retries
        model_id: Model that served the call
        usage: Token usage reported by the service, if any
    """
    payload: Any
    retries: int
    latency_ms: int
    model_id: str
    usage: Optional[Dict[str, Any]] = None


_validators: Dict[int, Tuple[Dict[str, Any], Draft7Validator]] = {}


def _get_validator(schema: Dict[str, Any]) -> Draft7Validator:
    # Keyed on the schema body itself; contracts sharing a name stay distinct
    body = schema['schema']
    cached = _validators.get(id(body))
    if cached is None or cached[0] is not body:
        cached = (body, Draft7Validator(body))
        _validators[id(body)] = cached
    return cached[1]


def _validate_arguments(system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> None:
    for arg_name, value in (('system_prompt', system_prompt), ('user_prompt', user_prompt)):
        if not value or not isinstance(value, str):
            raise ValidationException(
                f"{arg_name} must be a non-empty string. Got: {type(value).__name__}"
            )
    if not isinstance(schema, dict) or 'name' not in schema or 'schema' not in schema:
        raise ValidationException("schema must be a contract dict with 'name' and 'schema'")


def _converse(system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    tool_name = schema['name']
    return bedrock_client.converse(
        modelId=BEDROCK_MODEL_ID,
        system=[{'text': system_prompt}],
        messages=[{'role': 'user', 'content': [{'text': user_prompt}]}],
        inferenceConfig={'temperature': 0, 'maxTokens': COMPLETION_MAX_TOKENS},
        toolConfig={
            'tools': [{
                'toolSpec': {
                    'name': tool_name,
                    'description': f"Record the {tool_name} result as structured JSON.",
                    'inputSchema': {'json': schema['schema']},
                }
            }],
            'toolChoice': {'tool': {'name': tool_name}},
        },
    )


def _extract_payload(response: Dict[str, Any], tool_name: str) -> Any:
    """
    Pull the JSON payload out of a Converse response.

    Raises:
        EmptyCompletionError: No tool input and no text content
        CompletionParseError: Text content is not valid JSON
    """
    content = (response.get('output') or {}).get('message', {}).get('content') or []

    for block in content:
        tool_use = block.get('toolUse')
        if tool_use and tool_use.get('name') == tool_name and tool_use.get('input') is not None:
            tool_input = tool_use['input']
            if not isinstance(tool_input, str):
                return tool_input
            content = [{'text': tool_input}]
            break

    text = ''.join(block.get('text', '') for block in content).strip()
    if not text:
        raise EmptyCompletionError(
            f"Bedrock returned no content for {tool_name} "
            f"(stopReason={response.get('stopReason')})"
        )

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse completion for {tool_name}: {e}, content: {text[:200]}")
        raise CompletionParseError(f"Failed to parse completion for {tool_name}: {e}") from e


def _validate_payload(payload: Any, schema: Dict[str, Any]) -> None:
    errors = sorted(_get_validator(schema).iter_errors(payload), key=lambda err: list(err.path))
    if errors:
        details = "; ".join(
            f"{'/'.join(str(p) for p in err.path) or '<root>'}: {err.message}"
            for err in errors[:5]
        )
        raise SchemaViolationError(
            f"Completion for {schema['name']} violates schema ({len(errors)} error(s)): {details}"
        )


def execute_with_meta(system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> CompletionResult:
    """
    Issue one schema-constrained completion and return payload plus metadata.

    Args:
        system_prompt: Instructions for the model
        user_prompt: Rendered message text (the only valid evidence source)
        schema: Contract dict from domain.schemas

    Returns:
        CompletionResult

    Raises:
        ValidationException: Invalid arguments
        EmptyCompletionError / CompletionParseError / SchemaViolationError:
            Fatal content errors, never retried
        ClientError: Rate limit after the retry ceiling, or any other
            service error
    """
    _validate_arguments(system_prompt, user_prompt, schema)

    tool_name = schema['name']
    start_time = time.time()

    response, retries = call_with_retry(
        lambda: _converse(system_prompt, user_prompt, schema),
        label=f"bedrock.converse[{tool_name}]",
    )

    payload = _extract_payload(response, tool_name)
    _validate_payload(payload, schema)

    latency_ms = int((time.time() - start_time) * 1000)
    usage = response.get('usage')
    logger.info(
        f"Completion succeeded: schema={tool_name}, model={BEDROCK_MODEL_ID}, "
        f"latency={latency_ms}ms, retries={retries}, usage={usage}"
    )

    return CompletionResult(
        payload=payload,
        retries=retries,
        latency_ms=latency_ms,
        model_id=BEDROCK_MODEL_ID,
        usage=usage,
    )


def execute(system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> Any:
    """Issue one schema-constrained completion and return its payload."""
    return execute_with_meta(system_prompt, user_prompt, schema).payload
