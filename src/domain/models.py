"""
Data models for the deal extraction domain.

These type-safe data structures define clear contracts between components.
Extraction payloads (minimal/deep) stay as plain JSON-shaped dicts: they are
validated against the strict schemas and sanitized as trees, then handed to
persistence unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .enums import DealStage


@dataclass
class EmailMetadata:
    """
    Structured email metadata extracted from SES notification.

    Attributes:
        message_id: Unique SQS message identifier
        from_address: Email sender address
        subject: Email subject line
        timestamp: ISO 8601 timestamp when email was received
        bucket_name: S3 bucket containing the raw email
        object_key: S3 object key for the raw email
    """
    message_id: str
    from_address: str
    subject: str
    timestamp: str
    bucket_name: str
    object_key: str


@dataclass
class EmailContent:
    """
    Parsed email content.

    Attributes:
        text_body: Plain text body (empty string if not present)
        html_body: HTML body (empty string if not present)
        headers: Selected RFC 822 headers (Message-ID, References, ...)
        attachment_names: Filenames of attachments (content is not parsed)
    """
    text_body: str
    html_body: str
    headers: Dict[str, str] = field(default_factory=dict)
    attachment_names: List[str] = field(default_factory=list)

    @property
    def body_for_extraction(self) -> str:
        """
        Get best available body content for extraction.

        Priority: text_body > html_body > empty string
        """
        return self.text_body or self.html_body or ""

    @property
    def has_content(self) -> bool:
        """Check if email has any body content."""
        return bool(self.text_body or self.html_body)

    @property
    def thread_id(self) -> Optional[str]:
        """
        Conversation identifier derived from threading headers.

        The first id in References is the thread root; replies without
        References fall back to In-Reply-To, new threads to Message-ID.
        """
        for header in ('References', 'In-Reply-To', 'Message-ID'):
            value = self.headers.get(header, '').split()
            if value:
                return value[0].strip('<>')
        return None


@dataclass(frozen=True)
class Message:
    """
    Normalized inbound message, the only input of the extraction pipeline.

    Immutable for the duration of one pipeline run. attachment_names lists
    filenames only; attachment content never reaches the pipeline.
    """
    from_address: str
    subject: str
    body: str
    received_at: Optional[str] = None
    thread_id: Optional[str] = None
    attachment_names: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """
        Build from the retrieval wire format
        {from, subject, receivedAt, body, threadId, attachmentNames}.
        """
        return cls(
            from_address=data.get('from') or '',
            subject=data.get('subject') or '',
            body=data.get('body') or '',
            received_at=data.get('receivedAt'),
            thread_id=data.get('threadId'),
            attachment_names=tuple(data.get('attachmentNames') or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from': self.from_address,
            'subject': self.subject,
            'receivedAt': self.received_at,
            'body': self.body,
            'threadId': self.thread_id,
            'attachmentNames': list(self.attachment_names),
        }


@dataclass(frozen=True)
class Routing:
    """
    Result of the routing call.

    Attributes:
        is_deal: Whether the message is about a brand deal
        deal_stage: Lifecycle stage of the deal
        should_parse_attachments: Model thinks attachments hold deal terms
        routing_reason: Short free-text justification (optional)
    """
    is_deal: bool
    deal_stage: DealStage
    should_parse_attachments: bool
    routing_reason: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'Routing':
        """
        Build from a schema-validated routing payload.

        Raises:
            ValueError: If dealStage is not a known stage
        """
        return cls(
            is_deal=bool(payload['isDeal']),
            deal_stage=DealStage(payload['dealStage']),
            should_parse_attachments=bool(payload['shouldParseAttachments']),
            routing_reason=payload.get('routingReason'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isDeal': self.is_deal,
            'dealStage': self.deal_stage.value,
            'shouldParseAttachments': self.should_parse_attachments,
            'routingReason': self.routing_reason,
        }


@dataclass(frozen=True)
class DecisionTreeResult:
    """
    Output of the extraction pipeline, handed to persistence.

    minimal and deep are None when routing says the message is not a deal;
    deep is also None when the deep pass was not warranted.
    """
    routing: Routing
    minimal: Optional[Dict[str, Any]] = None
    deep: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire/storage representation; stages that did not run are omitted."""
        result: Dict[str, Any] = {'routing': self.routing.to_dict()}
        if self.minimal is not None:
            result['minimal'] = self.minimal
        if self.deep is not None:
            result['deep'] = self.deep
        return result


@dataclass
class ProcessingResult:
    """
    Result of email processing operation.

    This explicit result type makes success/failure handling clear
    and prevents exceptions from being used for control flow.

    Attributes:
        success: Whether processing succeeded
        message_id: SQS message identifier
        metadata: Email metadata (if parsing succeeded)
        result: Decision tree result (if extraction succeeded)
        result_key: S3 key of the persisted result (if persisted)
        failed_stage: Pipeline stage that failed ("routing", "extraction", ...)
        routing: Routing result, kept even when extraction failed
        error_message: Error description (if processing failed)
    """
    success: bool
    message_id: str
    metadata: Optional[EmailMetadata] = None
    result: Optional[DecisionTreeResult] = None
    result_key: Optional[str] = None
    failed_stage: Optional[str] = None
    routing: Optional[Routing] = None
    error_message: Optional[str] = None

    @property
    def should_delete_message(self) -> bool:
        """Always True - delete all messages to prevent infinite retries."""
        return True

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.success:
            return f"ProcessingResult(success=True, message_id={self.message_id})"
        else:
            return (
                f"ProcessingResult(success=False, message_id={self.message_id}, "
                f"stage={self.failed_stage}, error={self.error_message})"
            )
