"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys

import pytest
from botocore.exceptions import ClientError

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('BEDROCK_MODEL_ID', 'anthropic.claude-3-5-haiku-20241022-v1:0')
os.environ.setdefault('MAX_COMPLETION_RETRIES', '5')
os.environ.setdefault('BASE_RETRY_DELAY_MS', '500')


DEAL_SUBJECT = "Brand Partnership Agreement - Summer Launch"
DEAL_BODY = (
    "Hi Sam,\n\n"
    "Glow Co would love to have you on the Summer Launch campaign.\n"
    "We need 2 Instagram Reels live between June 1 and June 15.\n"
    "Paid $5,000 net-30, see contract attached.\n\n"
    "Best,\nDana"
)


@pytest.fixture
def deal_message():
    """A message that is clearly a late-stage brand deal."""
    from domain.models import Message

    return Message(
        from_address="Dana <dana@glowco.com>",
        subject=DEAL_SUBJECT,
        body=DEAL_BODY,
        received_at="2025-05-20T10:30:00.000Z",
        thread_id="thread-abc",
    )


@pytest.fixture
def newsletter_message():
    """A message with no deal content and no attachment keywords."""
    from domain.models import Message

    return Message(
        from_address="news@example.com",
        subject="Weekly digest",
        body="Here are this week's top stories. Thanks for reading!",
        received_at="2025-05-20T10:30:00.000Z",
    )


@pytest.fixture
def evidence():
    """Factory for Evidence objects quoting the email body."""
    def _make(quote, source='EMAIL_BODY', page=None):
        return {'quote': quote, 'source': source, 'page': page}
    return _make


@pytest.fixture
def routing_payload():
    """Factory for routing payloads."""
    def _make(is_deal=True, stage='NEGOTIATION', parse_attachments=False, reason=None):
        return {
            'isDeal': is_deal,
            'dealStage': stage,
            'shouldParseAttachments': parse_attachments,
            'routingReason': reason,
        }
    return _make


@pytest.fixture
def minimal_payload(evidence):
    """A schema-valid minimal extraction grounded in DEAL_BODY."""
    return {
        'campaignName': {'value': 'Summer Launch', 'evidence': evidence('Summer Launch campaign')},
        'brandName': {'value': 'Glow Co', 'evidence': evidence('Glow Co would love')},
        'lastActionNeededBy': None,
        'draftRequired': None,
        'goLiveWindow': {
            'rawText': 'between June 1 and June 15',
            'startDate': None,
            'endDate': None,
            'evidence': evidence('live between June 1 and June 15'),
        },
        'payment': {
            'amount': 5000,
            'currency': 'USD',
            'paymentTerms': 'net-30',
            'evidence': evidence('Paid $5,000 net-30'),
        },
        'deliverablesSummary': {
            'value': '2 Instagram Reels',
            'evidence': evidence('2 Instagram Reels'),
        },
    }


@pytest.fixture
def deep_payload(evidence):
    """A schema-valid deep extraction grounded in DEAL_BODY."""
    return {
        'exclusivityRightsSummary': None,
        'usageRightsSummary': None,
        'payment': {
            'amount': 5000,
            'currency': 'USD',
            'paymentTerms': 'net-30',
            'paymentStatus': None,
            'invoiceSentAt': None,
            'invoiceExpectedAt': None,
            'evidence': evidence('Paid $5,000 net-30'),
        },
        'keyDates': [{
            'name': 'Go live',
            'dateRawText': 'between June 1 and June 15',
            'startDate': None,
            'endDate': None,
            'description': None,
            'evidence': evidence('live between June 1 and June 15'),
        }],
        'requiredActions': [],
        'mustAvoids': [],
        'deliverables': [{
            'platform': 'INSTAGRAM',
            'type': 'REEL',
            'quantity': 2,
            'dueDate': None,
            'dueDateRawText': None,
            'description': None,
            'evidence': evidence('2 Instagram Reels'),
        }],
    }


@pytest.fixture
def converse_response():
    """Factory for a Bedrock Converse response carrying a forced tool input."""
    def _make(tool_name, payload, usage=None):
        return {
            'output': {
                'message': {
                    'role': 'assistant',
                    'content': [{
                        'toolUse': {
                            'toolUseId': 'tooluse_test',
                            'name': tool_name,
                            'input': payload,
                        }
                    }],
                }
            },
            'stopReason': 'tool_use',
            'usage': usage or {'inputTokens': 100, 'outputTokens': 50, 'totalTokens': 150},
        }
    return _make


@pytest.fixture
def throttling_error():
    """Factory for a Bedrock rate-limit ClientError with optional headers."""
    def _make(headers=None):
        return ClientError(
            {
                'Error': {'Code': 'ThrottlingException', 'Message': 'Too many requests'},
                'ResponseMetadata': {'HTTPStatusCode': 429, 'HTTPHeaders': headers or {}},
            },
            'Converse'
        )
    return _make


@pytest.fixture
def fake_converse(converse_response):
    """
    Factory for a converse side effect that answers per forced tool name.

    Usage:
        mock_client.converse.side_effect = fake_converse({'routing_v1': payload})
    """
    def _make(payloads_by_tool):
        def _converse(**kwargs):
            tool_name = kwargs['toolConfig']['toolChoice']['tool']['name']
            answer = payloads_by_tool[tool_name]
            if isinstance(answer, Exception):
                raise answer
            return converse_response(tool_name, answer)
        return _converse
    return _make
