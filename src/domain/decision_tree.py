"""
Decision tree pipeline: routing, then conditional extraction.

    message -> route (1 call) -> not a deal? done
                              -> extract (minimal, + deep if warranted)
                              -> DecisionTreeResult

The pipeline is stateless and reentrant. Failures are re-raised as
PipelineStageError subclasses naming the stage; an extraction failure keeps
the routing result so callers still learn isDeal/dealStage.
"""

import logging
import time
from typing import Optional

from . import extraction, routing as routing_stage
from .models import DecisionTreeResult, Message, Routing

logger = logging.getLogger(__name__)


class PipelineStageError(Exception):
    """Raised when a pipeline stage fails; wraps the original error."""

    stage = 'unknown'

    def __init__(self, message: str, routing: Optional[Routing] = None):
        super().__init__(message)
        self.routing = routing


class RoutingStageError(PipelineStageError):
    stage = 'routing'


class ExtractionStageError(PipelineStageError):
    stage = 'extraction'


def extract_deal_decision_tree(message: Message) -> DecisionTreeResult:
    """
    Run the full decision tree for one message.

    Args:
        message: Inbound message

    Returns:
        DecisionTreeResult: routing only for non-deals, otherwise routing
        plus sanitized minimal (and deep, when it ran) payloads

    Raises:
        RoutingStageError: The routing call failed
        ExtractionStageError: Minimal or deep extraction failed
    """
    start_time = time.time()

    try:
        routing = routing_stage.route(message)
    except Exception as e:
        logger.error(f"Routing stage failed: {e}")
        raise RoutingStageError(f"Routing failed: {e}") from e

    if not routing.is_deal:
        logger.info("Not a deal, skipping extraction")
        return DecisionTreeResult(routing=routing)

    try:
        outcome = extraction.extract(message, routing)
    except Exception as e:
        logger.error(f"Extraction stage failed (stage={routing.deal_stage.value}): {e}")
        raise ExtractionStageError(f"Extraction failed: {e}", routing=routing) from e

    logger.info(
        f"Decision tree complete: deep={'yes' if outcome.deep is not None else 'no'}, "
        f"elapsed={time.time() - start_time:.2f}s"
    )
    return DecisionTreeResult(routing=routing, minimal=outcome.minimal, deep=outcome.deep)
