"""
Email processing pipeline - core business logic.

This module handles the end-to-end processing of SES email notifications:
1. Parse SES notification from SQS record
2. Fetch email from S3 and build a normalized Message
3. Run the deal extraction decision tree
4. Persist the DecisionTreeResult to S3 (if configured)
5. Return result (success or failure)

All errors are caught and returned as ProcessingResult with success=False.
No exceptions propagate out of the public methods.
"""

import json
import logging
from typing import Any, Dict, List

from .models import EmailMetadata, EmailContent, Message, ProcessingResult
from .decision_tree import PipelineStageError, extract_deal_decision_tree
from services import email as email_service
from services import s3 as s3_service

logger = logging.getLogger(__name__)


def _as_address_list(value: Any) -> List[str]:
    """SES commonHeaders carry addresses as a list, occasionally as a bare string."""
    if isinstance(value, list):
        return [address for address in value if address]
    if isinstance(value, str) and value:
        return [value]
    return []


class EmailProcessor:
    """
    Handles end-to-end email processing pipeline.

    Turns SES email notifications into evidence-grounded deal records.
    Returns ProcessingResult for explicit success/failure handling.
    """

    def process_ses_record(self, record: Dict[str, Any]) -> ProcessingResult:
        """
        Process a single SQS record containing SES notification.

        Args:
            record: SQS record dict containing SES notification

        Returns:
            ProcessingResult with success=True or success=False (errors logged)
        """
        message_id = record.get('messageId', 'UNKNOWN')
        logger.info(f"Processing SQS message: {message_id}")

        stage = 'notification'
        metadata = None
        try:
            metadata = self._parse_ses_notification(record)
            logger.info(f"Parsed: from={metadata.from_address}, subject={metadata.subject}")

            stage = 'fetch'
            email_content = self._fetch_email(metadata)
            logger.info(
                f"Fetched: text={len(email_content.text_body)}, "
                f"html={len(email_content.html_body)}, "
                f"attachments={len(email_content.attachment_names)}"
            )

            message = self._build_message(metadata, email_content)

            stage = 'extraction'
            result = extract_deal_decision_tree(message)

            stage = 'persistence'
            result_key = s3_service.persist_result(
                metadata.message_id,
                json.dumps(result.to_dict(), ensure_ascii=False)
            )

            self._log_processing_success(metadata, result)

            return ProcessingResult(
                success=True,
                message_id=message_id,
                metadata=metadata,
                result=result,
                result_key=result_key,
                routing=result.routing
            )

        except PipelineStageError as e:
            logger.error(f"Failed to process {message_id} at {e.stage} stage: {e}", exc_info=True)

            return ProcessingResult(
                success=False,
                message_id=message_id,
                metadata=metadata,
                failed_stage=e.stage,
                routing=e.routing,
                error_message=str(e)
            )

        except Exception as e:
            logger.error(f"Failed to process {message_id} at {stage} stage: {e}", exc_info=True)

            return ProcessingResult(
                success=False,
                message_id=message_id,
                metadata=metadata,
                failed_stage=stage,
                error_message=str(e)
            )

    def _parse_ses_notification(self, record: Dict[str, Any]) -> EmailMetadata:
        """
        Read the S3 location and envelope fields of an SES receipt.

        Accepts the notification either as the SQS body itself or inside
        an SNS envelope (SES -> SNS -> SQS).

        Raises:
            ValueError: If the receipt or its S3 action is missing
            json.JSONDecodeError: If the body is not JSON
        """
        notification = json.loads(record['body'])
        if notification.get('Type') == 'Notification' and 'Message' in notification:
            logger.info("Unwrapping SNS envelope")
            notification = json.loads(notification['Message'])

        mail = notification.get('mail')
        receipt = notification.get('receipt')
        if not mail or not receipt:
            raise ValueError("SES notification missing 'mail' or 'receipt' fields")

        action = receipt.get('action') or {}
        if not action.get('bucketName') or not action.get('objectKey'):
            raise ValueError("Missing S3 location in SES notification")

        common_headers = mail.get('commonHeaders') or {}
        senders = _as_address_list(common_headers.get('from'))

        return EmailMetadata(
            message_id=record.get('messageId', 'UNKNOWN'),
            from_address=senders[0] if senders else (mail.get('source') or 'Unknown'),
            subject=common_headers.get('subject', ''),
            timestamp=mail.get('timestamp', ''),
            bucket_name=action['bucketName'],
            object_key=action['objectKey']
        )

    def _fetch_email(self, metadata: EmailMetadata) -> EmailContent:
        """
        Fetch email from S3 and parse content.

        Raises:
            ValueError: If S3 fetch fails or email parsing fails
        """
        logger.info(f"Fetching email from: s3://{metadata.bucket_name}/{metadata.object_key}")

        raw_email = s3_service.fetch_email_from_s3(
            metadata.bucket_name,
            metadata.object_key
        )
        logger.info(f"Fetched {len(raw_email):,} bytes from S3")

        parsed = email_service.extract_email_body(raw_email)
        headers = email_service.parse_email_headers(raw_email)

        return EmailContent(
            text_body=parsed.get('text_body', ''),
            html_body=parsed.get('html_body', ''),
            headers=headers,
            attachment_names=[att.get('filename', '') for att in parsed.get('attachments', [])]
        )

    def _build_message(self, metadata: EmailMetadata, content: EmailContent) -> Message:
        """Normalize SES metadata and parsed MIME content into a pipeline Message."""
        if not content.has_content:
            logger.warning("Email body is empty, extraction will rely on metadata only")

        return Message(
            from_address=metadata.from_address,
            subject=metadata.subject,
            body=content.body_for_extraction,
            received_at=metadata.timestamp or None,
            thread_id=content.thread_id,
            attachment_names=tuple(name for name in content.attachment_names if name)
        )

    def _log_processing_success(self, metadata: EmailMetadata, result) -> None:
        """Log successful processing summary."""
        routing = result.routing
        logger.info("=" * 50)
        logger.info("EMAIL PROCESSED SUCCESSFULLY")
        logger.info(f"From: {metadata.from_address}")
        logger.info(f"Subject: {metadata.subject}")
        logger.info(f"Deal: {routing.is_deal} ({routing.deal_stage.value})")
        logger.info(f"Minimal: {'yes' if result.minimal is not None else 'no'}")
        logger.info(f"Deep: {'yes' if result.deep is not None else 'no'}")
        logger.info("=" * 50)
