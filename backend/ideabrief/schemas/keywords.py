# backend/ideabrief/schemas/keywords.py
from datetime import datetime, timezone
from typing import Literal

from pydantic import Field, field_serializer, field_validator

from .research import CamelModel

MIN_KEYWORD_SUMMARY_LEN = 10
MAX_KEYWORD_SUMMARY_LEN = 20000

KeywordIntent = Literal["informational", "navigational", "transactional", "commercial", "other"]
KeywordSource = Literal["provider", "fallback"]


class KeywordTrendPoint(CamelModel):
    date: str
    value: float


class KeywordInsight(CamelModel):
    term: str
    volume: int | None = None
    growth: float | None = None
    intent: KeywordIntent = "other"
    trend: list[KeywordTrendPoint] = []
    notes: str | None = None
    cpc: float | None = None
    competition: Literal["LOW", "MEDIUM", "HIGH"] | None = None


class KeywordAnalyticsResult(CamelModel):
    primary_keyword: str
    total_search_volume: int | None = None
    average_growth: float | None = None
    history: list[KeywordTrendPoint] = []
    keywords: list[KeywordInsight]
    source: KeywordSource = "provider"


class KeywordSeed(CamelModel):
    term: str
    intent: KeywordIntent = "other"
    rationale: str | None = None


class KeywordAnalyzeRequest(CamelModel):
    summary: str
    force_refresh: bool = False

    @field_validator("summary")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_KEYWORD_SUMMARY_LEN:
            raise ValueError(
                f"summary must be at least {MIN_KEYWORD_SUMMARY_LEN} characters"
            )
        if len(v) > MAX_KEYWORD_SUMMARY_LEN:
            raise ValueError(
                f"summary is too long; maximum length is {MAX_KEYWORD_SUMMARY_LEN} characters"
            )
        return v


class KeywordMetadata(CamelModel):
    cache_hit: bool
    cost_estimate: float = Field(ge=0)
    source: str
    expires_at: datetime

    @field_serializer("expires_at")
    def serialize_expires_at(self, value: datetime) -> str:
        # Stored timestamps are naive UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class KeywordAnalyzeResponse(CamelModel):
    summary: str
    keywords: KeywordAnalyticsResult
    seeds: list[KeywordSeed]
    metadata: KeywordMetadata
