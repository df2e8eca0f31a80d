"""
Tests for the Gemini client
"""
import base64
import json

import httpx
import pytest
from unittest.mock import patch

from wastewatch.core.errors import OracleResponseError, OracleUnavailableError
from wastewatch.ingestion.gemini_client import GeminiClient, ImagePart


def answer(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(handler, **kwargs):
    transport = httpx.MockTransport(handler)
    kwargs.setdefault("backoff_seconds", 0)
    return GeminiClient(api_key="test_api_key", client=httpx.Client(transport=transport), **kwargs)


class TestGeminiClient:
    """Test suite for GeminiClient."""

    def test_client_without_api_key(self):
        with pytest.raises(ValueError):
            GeminiClient(api_key="")

    def test_endpoint(self):
        client = GeminiClient(api_key="k", model="gemini-1.5-flash")
        assert client.endpoint == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
        )

    def test_payload_images_before_text(self):
        client = GeminiClient(api_key="k")
        payload = client.build_payload(
            [ImagePart(b"before", "image/jpeg"), ImagePart(b"after", "image/png")],
            "compare these",
        )

        parts = payload["contents"][0]["parts"]
        assert base64.b64decode(parts[0]["inline_data"]["data"]) == b"before"
        assert parts[1]["inline_data"]["mime_type"] == "image/png"
        assert parts[2] == {"text": "compare these"}
        assert payload["generationConfig"]["responseMimeType"] == "application/json"

    def test_judge_returns_text(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=answer('{"isFake": false}'))

        client = make_client(handler)

        text = client.judge([ImagePart(b"img")], "analyze")

        assert text == '{"isFake": false}'
        assert seen["key"] == "test_api_key"
        assert seen["body"]["contents"][0]["parts"][-1] == {"text": "analyze"}

    def test_retries_on_server_errors(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) < 3:
                return httpx.Response(503, text="overloaded")
            return httpx.Response(200, json=answer("{}"))

        client = make_client(handler, max_retries=3)

        assert client.judge([ImagePart(b"img")], "analyze") == "{}"
        assert len(calls) == 3

    def test_retries_on_timeout_then_gives_up(self):
        calls = []

        def handler(request):
            calls.append(1)
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler, max_retries=2)

        with pytest.raises(OracleUnavailableError):
            client.judge([ImagePart(b"img")], "analyze")
        assert len(calls) == 2

    def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(400, text="bad request")

        client = make_client(handler, max_retries=3)

        with pytest.raises(OracleUnavailableError):
            client.judge([ImagePart(b"img")], "analyze")
        assert len(calls) == 1

    @patch("wastewatch.ingestion.gemini_client.time.sleep")
    def test_exponential_backoff(self, mock_sleep):
        client = make_client(lambda request: httpx.Response(429), max_retries=3, backoff_seconds=1.0)

        with pytest.raises(OracleUnavailableError):
            client.judge([ImagePart(b"img")], "analyze")

        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    def test_no_candidates(self):
        client = make_client(lambda request: httpx.Response(
            200, json={"promptFeedback": {"blockReason": "SAFETY"}}
        ))

        with pytest.raises(OracleResponseError) as exc_info:
            client.judge([ImagePart(b"img")], "analyze")

        assert "SAFETY" in str(exc_info.value)

    def test_empty_text(self):
        client = make_client(lambda request: httpx.Response(200, json=answer("  ")))

        with pytest.raises(OracleResponseError):
            client.judge([ImagePart(b"img")], "analyze")
