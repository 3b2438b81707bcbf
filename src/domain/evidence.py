"""
Evidence grounding for extracted payloads.

The completion service is asked to quote the text backing every extracted
field. Those quotes are not trusted: after each extraction call the payload
is walked and every Evidence object whose quote is not a literal substring of
the exact prompt text shown for that call is discarded, together with the
claim it was supposed to support.

Node shapes handled by the walk:
- list: elements are sanitized, elements that collapse to None are dropped
- Evidence leaf ({quote, source, page}): kept only if grounded
- wrapper (any other dict): values sanitized; collapses to None when its
  'evidence' was rejected
- scalar / None: unchanged
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


def is_grounded(quote: Any, source_text: str) -> bool:
    """True when quote is a non-empty, case-sensitive substring of source_text."""
    return isinstance(quote, str) and len(quote) > 0 and quote in source_text


def _is_evidence(node: dict) -> bool:
    return (
        isinstance(node.get('quote'), str)
        and isinstance(node.get('source'), str)
        and 'page' in node
    )


def sanitize_evidence(payload: Any, source_text: str) -> Any:
    """
    Return a copy of payload with every ungrounded claim removed.

    Args:
        payload: Decoded completion payload (dicts, lists, scalars)
        source_text: The exact user prompt the model was shown for this call

    Returns:
        Sanitized payload. The input is not modified. Running the function
        again on its own output returns an equal value.
    """
    dropped = 0

    def visit(node: Any) -> Any:
        nonlocal dropped

        if isinstance(node, list):
            kept = [visit(item) for item in node]
            return [item for item in kept if item is not None]

        if isinstance(node, dict):
            if _is_evidence(node):
                if is_grounded(node['quote'], source_text):
                    return dict(node)
                dropped += 1
                logger.debug(f"Rejected ungrounded evidence quote: {node['quote'][:80]!r}")
                return None

            out = {key: visit(value) for key, value in node.items()}

            # A claim whose evidence was rejected is discarded as a unit
            if 'evidence' in out and out['evidence'] is None:
                return None

            return out

        return node

    sanitized = visit(payload)

    if dropped:
        logger.info(f"Evidence validation rejected {dropped} ungrounded quote(s)")

    return sanitized
