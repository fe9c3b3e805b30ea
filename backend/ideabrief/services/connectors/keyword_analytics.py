# backend/ideabrief/services/connectors/keyword_analytics.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, wait_exponential, stop_after_attempt, retry_if_exception_type

from .base import BaseKeywordProvider, KeywordProviderError
from ...core.config import get_settings
from ...schemas.keywords import (
    KeywordAnalyticsResult,
    KeywordInsight,
    KeywordTrendPoint,
)

logger = logging.getLogger(__name__)

_KNOWN_INTENTS = {"informational", "navigational", "transactional", "commercial"}


class _RawTrendPoint(BaseModel):
    date: str
    value: float


class _RawKeyword(BaseModel):
    term: str
    volume: float
    growth: float
    intent: Optional[str] = None
    trend: List[_RawTrendPoint] = []
    notes: Optional[str] = None


class _RawAnalytics(BaseModel):
    primaryKeyword: str
    totalSearchVolume: float
    averageGrowth: float
    history: List[_RawTrendPoint] = []
    keywords: List[_RawKeyword]


def normalize_intent(intent: str | None) -> str:
    if not intent:
        return "other"
    normalized = intent.strip().lower()
    return normalized if normalized in _KNOWN_INTENTS else "other"


def _adapt_trend(points: List[_RawTrendPoint]) -> List[KeywordTrendPoint]:
    return [KeywordTrendPoint(date=p.date, value=p.value) for p in points]


def adapt_analytics(raw: _RawAnalytics) -> KeywordAnalyticsResult:
    return KeywordAnalyticsResult(
        primary_keyword=raw.primaryKeyword,
        total_search_volume=int(raw.totalSearchVolume),
        average_growth=raw.averageGrowth,
        history=_adapt_trend(raw.history),
        keywords=[
            KeywordInsight(
                term=k.term,
                volume=int(k.volume),
                growth=k.growth,
                intent=normalize_intent(k.intent),
                trend=_adapt_trend(k.trend),
                notes=k.notes,
            )
            for k in raw.keywords
        ],
        source="provider",
    )


class HttpKeywordAnalyticsProvider(BaseKeywordProvider):
    """
    Keyword analytics over a generic JSON HTTP API.

    Request:  POST {topic, keywords, includeHistory: true} with a bearer key.
    Response: {primaryKeyword, totalSearchVolume, averageGrowth, history, keywords[]}.

    Transport errors are retried; HTTP errors and malformed bodies raise
    KeywordProviderError immediately.
    """

    name = "keyword_analytics_http"

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_url = api_url if api_url is not None else settings.KEYWORD_ANALYTICS_API_URL
        self.api_key = api_key if api_key is not None else settings.KEYWORD_ANALYTICS_API_KEY
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.KEYWORD_ANALYTICS_TIMEOUT_SECONDS
        )
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
            return client.post(self.api_url, json=payload, headers=self._headers())

    def fetch(self, summary: str, keywords: List[str]) -> KeywordAnalyticsResult:
        if not self.api_url or not self.api_key:
            raise KeywordProviderError("Keyword analytics API is not configured.")

        try:
            resp = self._post(
                {"topic": summary, "keywords": keywords, "includeHistory": True}
            )
        except httpx.HTTPError as e:
            raise KeywordProviderError(f"Keyword analytics request failed: {e}") from e

        if resp.status_code >= 400:
            raise KeywordProviderError(
                f"Keyword analytics API failed ({resp.status_code}): {resp.text[:200]}"
            )

        try:
            raw = _RawAnalytics.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise KeywordProviderError(f"Malformed keyword analytics response: {e}") from e

        return adapt_analytics(raw)
