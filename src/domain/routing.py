"""
Routing stage: the cheap first call of the decision tree.

Classifies a message on a truncated snippet: is it a deal, at which stage,
and do attachments look worth a deeper pass. A negative answer ends the
pipeline before any extraction call is issued.
"""

import logging
import os

from .models import Message, Routing
from .schemas import ROUTING_SCHEMA
from services import prompts as prompt_service
from integrations import bedrock_completion

logger = logging.getLogger(__name__)

# Body characters shown to the router
ROUTING_SNIPPET_CHARS = int(os.environ.get('ROUTING_SNIPPET_CHARS', '1000'))


def route(message: Message) -> Routing:
    """
    Classify a message with one completion call on its snippet prompt.

    Args:
        message: Inbound message

    Returns:
        Routing: Validated routing decision

    Raises:
        Errors from bedrock_completion.execute (after its retry policy)
    """
    system_prompt = prompt_service.load_system_prompt(prompt_service.ROUTING_SYSTEM_PROMPT)
    user_prompt = prompt_service.build_email_prompt_snippet(message, ROUTING_SNIPPET_CHARS)

    payload = bedrock_completion.execute(system_prompt, user_prompt, ROUTING_SCHEMA)
    routing = Routing.from_payload(payload)

    logger.info(
        f"Routing: is_deal={routing.is_deal}, stage={routing.deal_stage.value}, "
        f"parse_attachments={routing.should_parse_attachments}, reason={routing.routing_reason}"
    )
    return routing
