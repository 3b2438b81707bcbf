"""
Extraction stage of the decision tree.

The minimal extraction always runs for deals. The deep extraction runs
alongside it when the deal stage, the router's attachment flag or an
attachment keyword in the text suggests contractual detail. Both calls see
the same full prompt and each payload is sanitized against that exact text.

The two calls are joined all-or-nothing: if either fails the whole stage
fails and no partial payload is returned.
"""

import logging
import re
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .enums import DEEP_ELIGIBLE_STAGES
from .evidence import sanitize_evidence
from .models import Message, Routing
from .schemas import DEEP_SCHEMA, MINIMAL_SCHEMA
from services import prompts as prompt_service
from integrations import bedrock_completion

logger = logging.getLogger(__name__)

ATTACHMENT_KEYWORDS = (
    'contract',
    'agreement',
    'sow',
    'statement of work',
    'msa',
    'master service',
    'brief',
    'insertion order',
    'io',
    'terms and conditions',
)

_ATTACHMENT_KEYWORD_RE = re.compile(
    r'\b(?:' + '|'.join(re.escape(keyword) for keyword in ATTACHMENT_KEYWORDS) + r')',
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ExtractionOutcome:
    """Sanitized payloads of the extraction stage."""
    minimal: Optional[Dict[str, Any]] = None
    deep: Optional[Dict[str, Any]] = None


def has_attachment_keywords(message: Message) -> bool:
    """
    Case-insensitive keyword match over subject and body.

    Keywords must start a word but may be inflected ("contracts",
    "briefs"), so "ratio" does not count as "io".
    """
    haystack = f"{message.subject or ''} {message.body or ''}"
    return _ATTACHMENT_KEYWORD_RE.search(haystack) is not None


def should_run_deep(message: Message, routing: Routing) -> bool:
    """Decide whether the deep extraction is warranted for this message."""
    return (
        routing.deal_stage in DEEP_ELIGIBLE_STAGES
        or routing.should_parse_attachments
        or has_attachment_keywords(message)
    )


def _run_extraction(system_prompt_name: str, user_prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    system_prompt = prompt_service.load_system_prompt(system_prompt_name)
    payload = bedrock_completion.execute(system_prompt, user_prompt, schema)
    return sanitize_evidence(payload, user_prompt)


def _join(futures: List[Future]) -> None:
    """Wait for all futures, raising the first failure as soon as it happens."""
    done, _ = wait(futures, return_when=FIRST_EXCEPTION)
    for future in futures:
        if future in done and future.exception() is not None:
            raise future.exception()


def extract(message: Message, routing: Routing) -> ExtractionOutcome:
    """
    Run the minimal (and, when warranted, deep) extraction for a deal.

    Args:
        message: Inbound message
        routing: Result of the routing stage

    Returns:
        ExtractionOutcome with sanitized payloads; empty when not a deal

    Raises:
        The first error raised by either extraction call
    """
    if not routing.is_deal:
        return ExtractionOutcome()

    full_prompt = prompt_service.build_email_prompt(message)

    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix='extraction')
    try:
        minimal_future = pool.submit(
            _run_extraction, prompt_service.MINIMAL_SYSTEM_PROMPT, full_prompt, MINIMAL_SCHEMA
        )

        deep_future = None
        if should_run_deep(message, routing):
            logger.info(f"Running deep extraction (stage={routing.deal_stage.value})")
            deep_future = pool.submit(
                _run_extraction, prompt_service.DEEP_SYSTEM_PROMPT, full_prompt, DEEP_SCHEMA
            )

        futures = [minimal_future] + ([deep_future] if deep_future else [])
        _join(futures)

        return ExtractionOutcome(
            minimal=minimal_future.result(),
            deep=deep_future.result() if deep_future else None,
        )
    finally:
        # Do not wait for a call still in flight after a failure
        pool.shutdown(wait=False, cancel_futures=True)
