"""Tests for the LLM helpers (product enrichment, cancellation letters)."""

import json
from datetime import date
from unittest.mock import MagicMock

import httpx
import pytest

from clo_core.exceptions import NotConfiguredError, UpstreamError, ValidationError
from clo_core.integrations import CancellationRequest, LLMClient


def _completion(content, status_code=200):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    body = content if isinstance(content, str) else json.dumps(content)
    resp.json.return_value = {"choices": [{"message": {"content": body}}]}
    return resp


@pytest.fixture
def http():
    return MagicMock(spec=httpx.Client)


@pytest.fixture
def llm(http):
    return LLMClient(api_key="sk-test", http_client=http, today=lambda: date(2025, 6, 1))


class TestCompleteJson:
    def test_request_shape(self, llm, http):
        http.post.return_value = _completion({"ok": True})
        assert llm.complete_json("system", "prompt") == {"ok": True}

        args, kwargs = http.post.call_args
        assert args[0] == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        body = kwargs["json"]
        assert body["model"] == "gpt-4o"
        assert body["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    def test_missing_key(self, http):
        client = LLMClient(api_key=None, http_client=http)
        with pytest.raises(NotConfiguredError):
            client.complete_json("s", "p")
        http.post.assert_not_called()

    def test_non_2xx(self, llm, http):
        http.post.return_value = _completion({}, status_code=429)
        with pytest.raises(UpstreamError) as exc_info:
            llm.complete_json("s", "p")
        assert exc_info.value.status_code == 429

    def test_unparseable_content(self, llm, http):
        http.post.return_value = _completion("not json at all")
        with pytest.raises(UpstreamError):
            llm.complete_json("s", "p")

    def test_transport_error(self, llm, http):
        http.post.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(UpstreamError):
            llm.complete_json("s", "p")


class TestEnrichProduct:
    def test_requires_barcode_or_name(self, llm, http):
        with pytest.raises(ValidationError):
            llm.enrich_product(category="Appliance", brand="Dyson")
        with pytest.raises(ValidationError):
            llm.enrich_product(name="   ")
        http.post.assert_not_called()

    def test_parses_enrichment(self, llm, http):
        http.post.return_value = _completion({
            "warranty_months": 24,
            "manual_url": "https://example.com/manual.pdf",
            "support_phone": None,
            "support_url": "https://example.com/support",
            "suggested_maintenance": [
                {"task": "Wash filter", "frequency_months": 1},
                {"frequency_months": 3},
            ],
            "product_info": {"full_name": "Dyson V11", "brand": "Dyson", "model": "V11", "category": "Vacuum"},
            "confidence": "high",
        })
        result = llm.enrich_product(name="Dyson V11", brand="Dyson")

        assert result.warranty_months == 24
        assert [t.task for t in result.suggested_maintenance] == ["Wash filter"]
        assert result.product_info.model == "V11"
        assert result.confidence == "high"

        prompt = http.post.call_args.kwargs["json"]["messages"][1]["content"]
        assert "Dyson V11" in prompt

    def test_unknown_confidence_downgraded(self, llm, http):
        http.post.return_value = _completion({"confidence": "certain"})
        assert llm.enrich_product(barcode="012345678905").confidence == "low"

    @pytest.mark.parametrize("product_info", ["Dyson V11 cordless", ["Dyson", "V11"], 42])
    def test_non_object_product_info_ignored(self, llm, http, product_info):
        http.post.return_value = _completion({
            "warranty_months": 24,
            "product_info": product_info,
            "suggested_maintenance": "Empty the bin weekly",
        })
        result = llm.enrich_product(name="Dyson V11")
        assert result.warranty_months == 24
        assert result.product_info.brand is None
        assert result.product_info.full_name is None
        assert result.suggested_maintenance == []


class TestGenerateCancellation:
    def test_requires_names(self, llm, http):
        with pytest.raises(ValidationError):
            llm.generate_cancellation(CancellationRequest(subscription_name="", user_name="Alice"))
        with pytest.raises(ValidationError):
            llm.generate_cancellation(CancellationRequest(subscription_name="Gym", user_name=" "))
        http.post.assert_not_called()

    def test_follow_up_is_two_weeks_out(self, llm, http):
        http.post.return_value = _completion({
            "letter": "Dear Gym, ...",
            "subject_line": "Cancellation",
            "key_points": ["Cancel now"],
            "legal_references": ["FTC Negative Option Rule"],
            "recommended_send_method": "certified_mail",
            "follow_up_date": "2030-01-01",
        })
        letter = llm.generate_cancellation(CancellationRequest(
            subscription_name="Gym", user_name="Alice", state="CA",
            subscription_cost=49.99, billing_frequency="month",
        ))
        assert letter.follow_up_date == "2025-06-15"
        assert letter.recommended_send_method == "certified_mail"
        assert letter.legal_references == ["FTC Negative Option Rule"]

        prompt = http.post.call_args.kwargs["json"]["messages"][1]["content"]
        assert "2025-06-15" in prompt
        assert "CA" in prompt
        assert "$49.99 per month" in prompt

    def test_missing_letter(self, llm, http):
        http.post.return_value = _completion({"subject_line": "x"})
        with pytest.raises(UpstreamError):
            llm.generate_cancellation(CancellationRequest(subscription_name="Gym", user_name="Alice"))

    def test_unknown_send_method_defaults_to_email(self, llm, http):
        http.post.return_value = _completion({"letter": "Dear...", "recommended_send_method": "pigeon"})
        letter = llm.generate_cancellation(CancellationRequest(subscription_name="Gym", user_name="Alice"))
        assert letter.recommended_send_method == "email"
        assert letter.subject_line == "Cancellation of Gym"
