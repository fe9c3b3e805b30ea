"""
Tests for keyword_fallback.py - deterministic local analytics.
"""
from datetime import date

import pytest

from ideabrief.schemas.keywords import KeywordSeed
from ideabrief.services.keyword_fallback import (
    DEFAULT_SEED_TERM,
    MAX_FALLBACK_KEYWORDS,
    build_fallback_analytics,
    generate_keyword_seeds,
    select_keyword_seeds,
)

from tests.fixtures.research_fixtures import SUMMARY

AS_OF = date(2026, 3, 15)


class TestSeedSelection:

    def test_frequent_words_rank_first(self):
        seeds = select_keyword_seeds("catering catering bakery offices bakery catering")
        assert seeds[:2] == ["catering", "bakery"]

    def test_stop_words_and_single_letters_are_dropped(self):
        seeds = select_keyword_seeds("The app is a platform for x and y")
        assert "the" not in seeds
        assert "app" not in seeds
        assert "x" not in seeds

    def test_empty_summary_uses_default_term(self):
        assert select_keyword_seeds("") == [DEFAULT_SEED_TERM]
        assert select_keyword_seeds("the and for") == [DEFAULT_SEED_TERM]

    def test_generate_keyword_seeds_wraps_terms(self):
        seeds = generate_keyword_seeds(SUMMARY)
        assert seeds
        assert all(isinstance(s, KeywordSeed) for s in seeds)
        assert len(seeds) <= 5


class TestFallbackAnalytics:

    def test_identical_inputs_give_identical_output(self):
        first = build_fallback_analytics(SUMMARY, as_of=AS_OF)
        second = build_fallback_analytics(SUMMARY, as_of=AS_OF)
        assert first.model_dump() == second.model_dump()

    def test_result_is_tagged_fallback(self):
        result = build_fallback_analytics(SUMMARY, as_of=AS_OF)
        assert result.source == "fallback"

    def test_trend_dates_are_month_starts_ending_at_as_of(self):
        result = build_fallback_analytics(SUMMARY, as_of=AS_OF)

        dates = [p.date for p in result.history]
        assert dates == [
            "2025-10-01",
            "2025-11-01",
            "2025-12-01",
            "2026-01-01",
            "2026-02-01",
            "2026-03-01",
        ]
        for keyword in result.keywords:
            assert [p.date for p in keyword.trend] == dates

    def test_history_is_sum_of_keyword_trends(self):
        result = build_fallback_analytics(SUMMARY, as_of=AS_OF)
        for idx, point in enumerate(result.history):
            assert point.value == sum(k.trend[idx].value for k in result.keywords)

    def test_totals_are_consistent(self):
        result = build_fallback_analytics(SUMMARY, as_of=AS_OF)
        assert result.total_search_volume == sum(k.volume for k in result.keywords)
        assert result.primary_keyword == result.keywords[0].term

    def test_seeds_are_used_in_order_and_deduplicated(self):
        seeds = [
            KeywordSeed(term="office catering", intent="commercial"),
            "bakery b2b",
            {"term": "Office Catering"},
            {"term": "artisan bread", "intent": "informational"},
        ]

        result = build_fallback_analytics(SUMMARY, seeds=seeds, as_of=AS_OF)

        assert [k.term for k in result.keywords] == [
            "office catering",
            "bakery b2b",
            "artisan bread",
        ]
        assert result.keywords[2].intent == "informational"

    def test_first_keyword_defaults_to_commercial_intent(self):
        result = build_fallback_analytics(SUMMARY, seeds=["bakery"], as_of=AS_OF)
        assert result.keywords[0].intent == "commercial"

    def test_keyword_count_is_capped(self):
        seeds = [f"term{i}" for i in range(25)]
        result = build_fallback_analytics(SUMMARY, seeds=seeds, as_of=AS_OF)
        assert len(result.keywords) == MAX_FALLBACK_KEYWORDS

    def test_figures_are_positive(self):
        result = build_fallback_analytics(SUMMARY, as_of=AS_OF)
        for keyword in result.keywords:
            assert keyword.volume > 0
            assert keyword.growth > 0
            assert all(p.value >= 1 for p in keyword.trend)

    @pytest.mark.parametrize("summary", ["", "   ", "!!!", "word " * 2000, "é" * 10000])
    def test_never_raises(self, summary):
        result = build_fallback_analytics(summary, as_of=AS_OF)
        assert result.source == "fallback"
        assert result.keywords

    def test_bad_seed_degrades_to_minimal_result(self):
        result = build_fallback_analytics(SUMMARY, seeds=[42], as_of=AS_OF)

        assert result.source == "fallback"
        assert result.primary_keyword == DEFAULT_SEED_TERM
        assert result.history[0].date == "2026-03-01"
