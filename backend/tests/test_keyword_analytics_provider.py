"""
Tests for the HTTP keyword analytics connector using httpx.MockTransport.
"""
import httpx
import pytest

from ideabrief.services.connectors.base import KeywordProviderError
from ideabrief.services.connectors.keyword_analytics import (
    HttpKeywordAnalyticsProvider,
    normalize_intent,
)

API_URL = "https://keywords.example/v1/analyze"

PROVIDER_BODY = {
    "primaryKeyword": "office catering",
    "totalSearchVolume": 5400.0,
    "averageGrowth": 7.5,
    "history": [{"date": "2026-09-01", "value": 50}],
    "keywords": [
        {
            "term": "office catering",
            "volume": 5400.7,
            "growth": 7.5,
            "intent": "Commercial",
            "trend": [{"date": "2026-09-01", "value": 50}],
        },
        {"term": "bakery b2b", "volume": 300, "growth": 2.0, "intent": "sales"},
    ],
}


def _provider(handler):
    return HttpKeywordAnalyticsProvider(
        api_url=API_URL,
        api_key="test-key",
        timeout_seconds=5,
        transport=httpx.MockTransport(handler),
    )


class TestHttpKeywordAnalyticsProvider:

    def test_successful_response_is_adapted(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.read()
            return httpx.Response(200, json=PROVIDER_BODY)

        result = _provider(handler).fetch("bakery catering", ["office catering"])

        assert seen["auth"] == "Bearer test-key"
        assert b"office catering" in seen["body"]
        assert result.source == "provider"
        assert result.primary_keyword == "office catering"
        assert result.total_search_volume == 5400
        assert result.keywords[0].volume == 5400
        assert result.keywords[0].intent == "commercial"
        assert result.keywords[1].intent == "other"

    def test_http_error_raises(self):
        provider = _provider(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(KeywordProviderError, match="503"):
            provider.fetch("bakery catering", [])

    def test_malformed_body_raises(self):
        provider = _provider(lambda request: httpx.Response(200, json={"unexpected": True}))

        with pytest.raises(KeywordProviderError, match="Malformed"):
            provider.fetch("bakery catering", [])

    def test_non_json_body_raises(self):
        provider = _provider(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(KeywordProviderError):
            provider.fetch("bakery catering", [])

    def test_missing_configuration_raises_without_a_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=PROVIDER_BODY)

        provider = HttpKeywordAnalyticsProvider(
            api_url="", api_key="", transport=httpx.MockTransport(handler)
        )

        with pytest.raises(KeywordProviderError, match="not configured"):
            provider.fetch("bakery catering", [])
        assert calls == []


@pytest.mark.parametrize("raw,expected", [
    ("Informational", "informational"),
    (" transactional ", "transactional"),
    ("unknown", "other"),
    (None, "other"),
])
def test_normalize_intent(raw, expected):
    assert normalize_intent(raw) == expected
