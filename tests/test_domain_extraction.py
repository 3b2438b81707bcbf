"""
Tests for the extraction stage (minimal + conditional deep).
"""

import threading
import pytest
from unittest.mock import patch
from botocore.exceptions import ClientError
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain import extraction
from domain.enums import DealStage
from domain.models import Message, Routing
from integrations import bedrock_completion


def _routing(stage=DealStage.INBOUND, is_deal=True, parse_attachments=False):
    return Routing(is_deal=is_deal, deal_stage=stage, should_parse_attachments=parse_attachments)


def _tool_names(mock_client):
    return sorted(
        c[1]['toolConfig']['toolChoice']['tool']['name']
        for c in mock_client.converse.call_args_list
    )


class TestAttachmentKeywords:
    """Test the attachment keyword heuristic."""

    @pytest.mark.parametrize('subject, body', [
        ("Brand Partnership Agreement", "Hello"),
        ("Hi", "Please sign the CONTRACT"),
        ("Hi", "The SOW is attached."),
        ("Hi", "Attached is the statement of work."),
        ("Hi", "See the creative brief."),
        ("Hi", "Our IO is ready"),
        ("Hi", "Review the terms and conditions"),
        ("Hi", "Insertion order for Q3"),
    ])
    def test_keywords_match(self, subject, body):
        message = Message(from_address="a@b.com", subject=subject, body=body)
        assert extraction.has_attachment_keywords(message) is True

    @pytest.mark.parametrize('body', [
        "Attached are the signed contracts for the campaign.",
        "Please review the agreements before Friday.",
        "The creative briefs are in the shared folder.",
        "Contractual terms are in the PDF.",
    ])
    def test_inflected_keywords_match(self, body):
        message = Message(from_address="a@b.com", subject="Hello", body=body)
        assert extraction.has_attachment_keywords(message) is True

    @pytest.mark.parametrize('body', [
        "Would love a collaboration on our new ratio tool.",
        "Our audio studio has great news.",
        "Thanks for reading the newsletter!",
    ])
    def test_keywords_must_start_a_word(self, body):
        message = Message(from_address="a@b.com", subject="Hello", body=body)
        assert extraction.has_attachment_keywords(message) is False


class TestShouldRunDeep:
    """Test the deep-eligibility decision."""

    def test_inbound_without_signals_skips_deep(self, newsletter_message):
        assert extraction.should_run_deep(newsletter_message, _routing(DealStage.INBOUND)) is False

    @pytest.mark.parametrize('stage', [
        DealStage.CONTRACTING, DealStage.SCHEDULING, DealStage.FULFILLMENT,
        DealStage.PAYMENT, DealStage.COMPLETED,
    ])
    def test_late_stages_run_deep(self, newsletter_message, stage):
        assert extraction.should_run_deep(newsletter_message, _routing(stage)) is True

    @pytest.mark.parametrize('stage', [DealStage.NEGOTIATION, DealStage.DEAD, DealStage.OTHER])
    def test_early_stages_without_signals_skip_deep(self, newsletter_message, stage):
        assert extraction.should_run_deep(newsletter_message, _routing(stage)) is False

    def test_attachment_flag_runs_deep(self, newsletter_message):
        routing = _routing(DealStage.INBOUND, parse_attachments=True)
        assert extraction.should_run_deep(newsletter_message, routing) is True

    def test_keywords_run_deep(self):
        message = Message(
            from_address="dana@glowco.com",
            subject="Brand Partnership Agreement",
            body="Paid $5,000 net-30, see contract attached.",
        )
        assert extraction.should_run_deep(message, _routing(DealStage.NEGOTIATION)) is True

    def test_plural_contract_wording_runs_deep(self):
        message = Message(
            from_address="dana@glowco.com",
            subject="Next steps",
            body="Attached are the signed contracts for the campaign.",
        )
        assert extraction.should_run_deep(message, _routing(DealStage.INBOUND)) is True


class TestExtract:
    """Test the extract orchestration."""

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_not_a_deal_issues_no_calls(self, mock_client, deal_message):
        outcome = extraction.extract(deal_message, _routing(is_deal=False))

        assert outcome.minimal is None
        assert outcome.deep is None
        mock_client.converse.assert_not_called()

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_minimal_only(self, mock_client, newsletter_message, fake_converse, minimal_payload):
        mock_client.converse.side_effect = fake_converse({
            'deal_minimal_extraction_v1': minimal_payload,
        })

        outcome = extraction.extract(newsletter_message, _routing(DealStage.INBOUND))

        assert outcome.deep is None
        assert outcome.minimal is not None
        assert _tool_names(mock_client) == ['deal_minimal_extraction_v1']

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_minimal_and_deep(self, mock_client, deal_message, fake_converse, minimal_payload, deep_payload):
        mock_client.converse.side_effect = fake_converse({
            'deal_minimal_extraction_v1': minimal_payload,
            'deal_deep_extraction_v1': deep_payload,
        })

        outcome = extraction.extract(deal_message, _routing(DealStage.CONTRACTING))

        assert outcome.minimal == minimal_payload
        assert outcome.deep == deep_payload
        assert _tool_names(mock_client) == ['deal_deep_extraction_v1', 'deal_minimal_extraction_v1']

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_both_calls_see_full_prompt(self, mock_client, deal_message, fake_converse,
                                        minimal_payload, deep_payload):
        from services.prompts import build_email_prompt

        mock_client.converse.side_effect = fake_converse({
            'deal_minimal_extraction_v1': minimal_payload,
            'deal_deep_extraction_v1': deep_payload,
        })

        extraction.extract(deal_message, _routing(DealStage.CONTRACTING))

        expected = build_email_prompt(deal_message)
        for c in mock_client.converse.call_args_list:
            assert c[1]['messages'][0]['content'][0]['text'] == expected

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_calls_run_concurrently(self, mock_client, deal_message, converse_response,
                                    minimal_payload, deep_payload):
        payloads = {
            'deal_minimal_extraction_v1': minimal_payload,
            'deal_deep_extraction_v1': deep_payload,
        }
        barrier = threading.Barrier(2, timeout=5)

        def _converse(**kwargs):
            # Both calls must be in flight at the same time to pass the barrier
            barrier.wait()
            tool_name = kwargs['toolConfig']['toolChoice']['tool']['name']
            return converse_response(tool_name, payloads[tool_name])

        mock_client.converse.side_effect = _converse

        outcome = extraction.extract(deal_message, _routing(DealStage.PAYMENT))

        assert outcome.minimal is not None
        assert outcome.deep is not None

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_ungrounded_claims_removed(self, mock_client, deal_message, fake_converse,
                                       minimal_payload, deep_payload, evidence):
        minimal_payload['campaignName'] = {
            'value': 'Winter Promo', 'evidence': evidence('Winter Promo campaign'),
        }
        mock_client.converse.side_effect = fake_converse({
            'deal_minimal_extraction_v1': minimal_payload,
            'deal_deep_extraction_v1': deep_payload,
        })

        outcome = extraction.extract(deal_message, _routing(DealStage.INBOUND))

        assert outcome.minimal['campaignName'] is None
        assert outcome.minimal['brandName']['value'] == 'Glow Co'

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_deep_failure_fails_whole_stage(self, mock_client, deal_message, fake_converse,
                                            minimal_payload):
        mock_client.converse.side_effect = fake_converse({
            'deal_minimal_extraction_v1': minimal_payload,
            'deal_deep_extraction_v1': ClientError(
                {'Error': {'Code': 'ValidationException', 'Message': 'bad input'}}, 'Converse'
            ),
        })

        with pytest.raises(ClientError):
            extraction.extract(deal_message, _routing(DealStage.CONTRACTING))

    @patch('integrations.bedrock_completion.bedrock_client')
    def test_minimal_failure_fails_whole_stage(self, mock_client, deal_message, fake_converse,
                                               deep_payload):
        mock_client.converse.side_effect = fake_converse({
            'deal_minimal_extraction_v1': {'campaignName': None},
            'deal_deep_extraction_v1': deep_payload,
        })

        with pytest.raises(bedrock_completion.SchemaViolationError):
            extraction.extract(deal_message, _routing(DealStage.CONTRACTING))


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
