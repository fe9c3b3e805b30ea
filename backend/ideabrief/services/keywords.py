from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..models.keyword_cache import KeywordCacheEntry
from ..schemas.keywords import (
    KeywordAnalyticsResult,
    KeywordAnalyzeResponse,
    KeywordMetadata,
    KeywordSeed,
)
from .connectors.base import BaseKeywordProvider
from .keyword_fallback import build_fallback_analytics, generate_keyword_seeds

logger = logging.getLogger(__name__)


def normalize_summary(summary: str) -> str:
    return (summary or "").strip().casefold()


def hash_summary(summary: str) -> str:
    """Content address of a summary: SHA-256 of its normalized text."""
    return hashlib.sha256(normalize_summary(summary).encode("utf-8")).hexdigest()


@dataclass
class KeywordAnalysis:
    summary: str
    keywords: KeywordAnalyticsResult
    seeds: List[KeywordSeed]
    cache_hit: bool
    cost_estimate: float
    source: str
    expires_at: datetime
    # Stage -> message for failures masked by the fallback path
    errors: Dict[str, str] = field(default_factory=dict)

    def to_response(self) -> KeywordAnalyzeResponse:
        return KeywordAnalyzeResponse(
            summary=self.summary,
            keywords=self.keywords,
            seeds=self.seeds,
            metadata=KeywordMetadata(
                cache_hit=self.cache_hit,
                cost_estimate=self.cost_estimate,
                source=self.source,
                expires_at=self.expires_at,
            ),
        )


class KeywordAnalyticsService:
    """
    Content-addressed keyword analytics with write-through caching.

    Every computed result, provider or fallback, is upserted with a fixed
    TTL, which bounds calls against a failing provider to one per TTL window
    per distinct summary.
    """

    def __init__(
        self,
        db: Session,
        provider: BaseKeywordProvider,
        seed_generator: Callable[[str], List[KeywordSeed]] = generate_keyword_seeds,
        clock: Callable[[], datetime] = datetime.utcnow,
        ttl: timedelta | None = None,
        cost_per_call: float | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.provider = provider
        self.seed_generator = seed_generator
        self.clock = clock
        self.ttl = ttl or timedelta(hours=settings.KEYWORD_CACHE_TTL_HOURS)
        self.cost_per_call = max(
            0.0,
            cost_per_call if cost_per_call is not None else settings.KEYWORD_ANALYTICS_COST_PER_CALL,
        )

    def analyze(self, summary: str, force_refresh: bool = False) -> KeywordAnalysis:
        summary = summary.strip()
        cache_key = hash_summary(summary)
        now = self.clock()

        if not force_refresh:
            cached = self._read_cache(cache_key, summary, now)
            if cached is not None:
                return cached

        errors: Dict[str, str] = {}

        try:
            seeds = list(self.seed_generator(summary))
        except Exception as e:
            errors["keyword_generation"] = str(e)
            logger.exception(
                "Keyword seed generation failed; continuing without seeds",
                extra={"stage": "keyword_generation", "summary_hash": cache_key},
            )
            seeds = []

        try:
            result = self.provider.fetch(summary, [s.term for s in seeds])
            result = result.model_copy(update={"source": "provider"})
            cost_estimate = self.cost_per_call
        except Exception as e:
            errors["keyword_provider"] = str(e)
            logger.warning(
                "Keyword provider failed; using fallback analytics: %s", e,
                extra={"stage": "keyword_provider", "summary_hash": cache_key},
            )
            result = build_fallback_analytics(summary, seeds, as_of=now.date())
            cost_estimate = 0.0

        expires_at = now + self.ttl
        self._upsert(cache_key, summary, result, seeds, cost_estimate, expires_at)

        return KeywordAnalysis(
            summary=summary,
            keywords=result,
            seeds=seeds,
            cache_hit=False,
            cost_estimate=cost_estimate,
            source=result.source,
            expires_at=expires_at,
            errors=errors,
        )

    # ------------------------------------------------------------------

    def _read_cache(self, cache_key: str, summary: str, now: datetime) -> Optional[KeywordAnalysis]:
        entry = self.db.get(KeywordCacheEntry, cache_key)
        if entry is None or not entry.is_valid(now):
            return None

        try:
            result = KeywordAnalyticsResult.model_validate(entry.result)
            seeds = [KeywordSeed.model_validate(s) for s in entry.seeds or []]
        except ValidationError:
            logger.warning(
                "Discarding unreadable keyword cache entry",
                extra={"stage": "keyword_cache", "summary_hash": cache_key},
            )
            return None

        return KeywordAnalysis(
            summary=summary,
            keywords=result,
            seeds=seeds,
            cache_hit=True,
            cost_estimate=0.0,
            source=result.source,
            expires_at=entry.expires_at,
        )

    def _upsert(
        self,
        cache_key: str,
        summary: str,
        result: KeywordAnalyticsResult,
        seeds: List[KeywordSeed],
        cost_estimate: float,
        expires_at: datetime,
    ) -> None:
        values: Dict[str, Any] = {
            "summary": summary,
            "result": result.model_dump(by_alias=True, mode="json"),
            "seeds": [s.model_dump(by_alias=True, mode="json") for s in seeds],
            "cost_estimate": cost_estimate,
            "expires_at": expires_at,
        }

        entry = self.db.get(KeywordCacheEntry, cache_key)
        if entry is None:
            self.db.add(KeywordCacheEntry(summary_hash=cache_key, **values))
        else:
            for key, value in values.items():
                setattr(entry, key, value)

        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the same key first; overwrite it
            self.db.rollback()
            entry = self.db.get(KeywordCacheEntry, cache_key)
            if entry is None:
                raise
            for key, value in values.items():
                setattr(entry, key, value)
            self.db.commit()
