"""
AWS Lambda handler for extracting deal terms from SES email notifications.

Thin orchestration layer that delegates to EmailProcessor.
Policy: Always delete messages (no retries). Errors logged to CloudWatch;
message-level retry/backlog is owned by whoever replays failed messages.
"""

import logging
from typing import Dict, Any

from domain.email_processor import EmailProcessor

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# AWS Lambda provides handlers; add one for local runs
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(name)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Reused across warm invocations
email_processor = EmailProcessor()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Process SES email notifications from SQS.

    Args:
        event: Lambda event with SQS records
        context: Lambda context

    Returns:
        Dict with batchItemFailures (always empty - no retries)
    """
    records = event.get('Records', [])
    logger.info(f"Deal extraction batch started: {len(records)} message(s)")

    results = []
    for record in records:
        result = email_processor.process_ses_record(record)
        results.append(result)

        if result.success:
            logger.info(f"Processed message {result.message_id} (result_key={result.result_key})")
        else:
            logger.warning(
                f"Processed message {result.message_id} with ERRORS at "
                f"{result.failed_stage} stage: {result.error_message}"
            )

    success_count = sum(1 for r in results if r.success)
    deal_count = sum(1 for r in results if r.routing is not None and r.routing.is_deal)
    logger.info(
        f"Batch complete: total={len(results)}, success={success_count}, "
        f"errors={len(results) - success_count}, deals={deal_count}"
    )

    return {"batchItemFailures": []}
