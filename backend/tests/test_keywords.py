"""
Tests for keywords.py - content-addressed cache, TTL boundaries and the
provider -> fallback degradation path.
"""
from datetime import datetime, timedelta

import pytest

from ideabrief.models.keyword_cache import KeywordCacheEntry
from ideabrief.services.keywords import (
    KeywordAnalyticsService,
    hash_summary,
    normalize_summary,
)

from tests.fixtures.research_fixtures import SUMMARY, unavailable_keyword_provider

T0 = datetime(2026, 10, 1, 12, 0, 0)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(T0)


def _service(db, provider, clock, **kwargs):
    return KeywordAnalyticsService(db, provider, clock=clock, cost_per_call=0.35, **kwargs)


class TestSummaryHashing:

    def test_whitespace_and_case_do_not_change_the_key(self):
        assert hash_summary("  Bakery Catering  ") == hash_summary("bakery catering")

    def test_different_summaries_have_different_keys(self):
        assert hash_summary("bakery catering") != hash_summary("bakery delivery")

    def test_hash_is_hex_sha256(self):
        digest = hash_summary(SUMMARY)
        assert len(digest) == 64
        int(digest, 16)

    def test_normalize_handles_none(self):
        assert normalize_summary(None) == ""


class TestCacheLifecycle:

    def test_first_request_calls_provider_and_caches(self, db, keyword_provider, clock):
        analysis = _service(db, keyword_provider, clock).analyze(SUMMARY)

        assert analysis.cache_hit is False
        assert analysis.source == "provider"
        assert analysis.cost_estimate == 0.35
        assert analysis.expires_at == T0 + timedelta(hours=24)
        assert len(keyword_provider.calls) == 1
        assert keyword_provider.calls[0]["keywords"]

        entry = db.get(KeywordCacheEntry, hash_summary(SUMMARY))
        assert entry is not None
        assert entry.result["primaryKeyword"] == "bakery catering"
        assert entry.expires_at == T0 + timedelta(hours=24)

    def test_hit_just_before_expiry(self, db, keyword_provider, clock):
        service = _service(db, keyword_provider, clock)
        service.analyze(SUMMARY)

        clock.now = T0 + timedelta(hours=23, minutes=59)
        analysis = service.analyze(SUMMARY)

        assert analysis.cache_hit is True
        assert analysis.cost_estimate == 0
        assert analysis.expires_at == T0 + timedelta(hours=24)
        assert analysis.keywords.primary_keyword == "bakery catering"
        assert len(keyword_provider.calls) == 1

    def test_entry_is_expired_at_exactly_ttl(self, db, keyword_provider, clock):
        service = _service(db, keyword_provider, clock)
        service.analyze(SUMMARY)

        clock.now = T0 + timedelta(hours=24)
        analysis = service.analyze(SUMMARY)

        assert analysis.cache_hit is False
        assert len(keyword_provider.calls) == 2

    def test_miss_after_expiry_refreshes_the_row(self, db, keyword_provider, clock):
        service = _service(db, keyword_provider, clock)
        service.analyze(SUMMARY)

        clock.now = T0 + timedelta(hours=24, minutes=1)
        analysis = service.analyze(SUMMARY)

        assert analysis.cache_hit is False
        assert analysis.cost_estimate == 0.35
        assert len(keyword_provider.calls) == 2
        db.expire_all()
        entry = db.get(KeywordCacheEntry, hash_summary(SUMMARY))
        assert entry.expires_at == clock.now + timedelta(hours=24)
        assert db.query(KeywordCacheEntry).count() == 1

    def test_force_refresh_bypasses_a_valid_entry(self, db, keyword_provider, clock):
        service = _service(db, keyword_provider, clock)
        service.analyze(SUMMARY)

        analysis = service.analyze(SUMMARY, force_refresh=True)

        assert analysis.cache_hit is False
        assert len(keyword_provider.calls) == 2

    def test_equivalent_summaries_share_an_entry(self, db, keyword_provider, clock):
        service = _service(db, keyword_provider, clock)
        service.analyze(SUMMARY)

        analysis = service.analyze("   " + SUMMARY.upper() + "  ")

        assert analysis.cache_hit is True
        # The response echoes what this caller sent, trimmed
        assert analysis.summary == SUMMARY.upper()

    def test_custom_ttl(self, db, keyword_provider, clock):
        service = _service(db, keyword_provider, clock, ttl=timedelta(hours=1))
        service.analyze(SUMMARY)

        clock.now = T0 + timedelta(hours=1, seconds=1)

        assert service.analyze(SUMMARY).cache_hit is False


class TestFallbackPath:

    def test_provider_failure_serves_fallback_at_zero_cost(self, db, clock):
        provider = unavailable_keyword_provider()

        analysis = _service(db, provider, clock).analyze(SUMMARY)

        assert analysis.cache_hit is False
        assert analysis.source == "fallback"
        assert analysis.keywords.source == "fallback"
        assert analysis.cost_estimate == 0
        assert analysis.keywords.keywords
        assert "keyword_provider" in analysis.errors

    def test_fallback_result_is_cached(self, db, clock):
        provider = unavailable_keyword_provider()
        service = _service(db, provider, clock)
        first = service.analyze(SUMMARY)

        clock.now = T0 + timedelta(hours=1)
        second = service.analyze(SUMMARY)

        assert len(provider.calls) == 1
        assert second.cache_hit is True
        assert second.source == "fallback"
        assert second.keywords == first.keywords

    def test_seed_generation_failure_continues_without_seeds(self, db, keyword_provider, clock):
        def broken_seeds(summary):
            raise RuntimeError("seed model unavailable")

        analysis = _service(
            db, keyword_provider, clock, seed_generator=broken_seeds
        ).analyze(SUMMARY)

        assert analysis.seeds == []
        assert analysis.source == "provider"
        assert keyword_provider.calls[0]["keywords"] == []
        assert "keyword_generation" in analysis.errors

    def test_seed_and_provider_failure_still_returns_analytics(self, db, clock):
        def broken_seeds(summary):
            raise RuntimeError("seed model unavailable")

        analysis = _service(
            db, unavailable_keyword_provider(), clock, seed_generator=broken_seeds
        ).analyze(SUMMARY)

        assert analysis.source == "fallback"
        assert analysis.keywords.keywords
        assert set(analysis.errors) == {"keyword_generation", "keyword_provider"}

    def test_response_model_uses_camel_case(self, db, keyword_provider, clock):
        response = _service(db, keyword_provider, clock).analyze(SUMMARY).to_response()

        dumped = response.model_dump(by_alias=True, mode="json")
        assert dumped["metadata"]["cacheHit"] is False
        assert dumped["metadata"]["costEstimate"] == 0.35
        assert dumped["keywords"]["primaryKeyword"] == "bakery catering"

    def test_expiry_is_serialized_as_utc(self, db, keyword_provider, clock):
        response = _service(db, keyword_provider, clock).analyze(SUMMARY).to_response()

        dumped = response.model_dump(by_alias=True, mode="json")
        assert dumped["metadata"]["expiresAt"] == "2026-10-02T12:00:00.000Z"
