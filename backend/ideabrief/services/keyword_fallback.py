"""
Deterministic keyword analytics used when the provider cannot answer.

Everything here is local computation: figures are derived from SHA-256
digests of the terms, so identical (summary, seeds, month) inputs always give
byte-identical results. `build_fallback_analytics` never raises.
"""
from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from datetime import date
from typing import Any, Dict, Iterable, List, Sequence, Union

from ..schemas.keywords import (
    KeywordAnalyticsResult,
    KeywordInsight,
    KeywordSeed,
    KeywordTrendPoint,
)

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "that", "this", "from", "into", "your",
        "their", "about", "idea", "solution", "platform", "service", "app",
        "are", "our", "who", "what", "which", "will", "can", "help", "helps",
        "using", "based", "them", "they", "you", "its", "has", "have", "not",
    }
)
DEFAULT_SEED_TERM = "market research"
MAX_SEED_TERMS = 5
MAX_FALLBACK_KEYWORDS = 10
HISTORY_MONTHS = 6

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]")

SeedLike = Union[KeywordSeed, str, Dict[str, Any]]


def select_keyword_seeds(summary: str, limit: int = MAX_SEED_TERMS) -> List[str]:
    """
    Rank summary words by frequency (ties keep first appearance) after
    dropping stop words and single characters.
    """
    words = _NON_WORD_RE.sub(" ", (summary or "").lower()).split()
    counts = Counter(w for w in words if len(w) > 1 and w not in STOP_WORDS)
    ranked = [word for word, _ in counts.most_common(limit)]
    return ranked or [DEFAULT_SEED_TERM]


def generate_keyword_seeds(summary: str) -> List[KeywordSeed]:
    return [
        KeywordSeed(
            term=term,
            intent="other",
            rationale="Heuristic keyword derived from summary.",
        )
        for term in select_keyword_seeds(summary)
    ]


def _digest(term: str) -> bytes:
    return hashlib.sha256(term.strip().lower().encode("utf-8")).digest()


def _month_starts(as_of: date, months: int) -> List[date]:
    starts = []
    year, month = as_of.year, as_of.month
    for _ in range(months):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def _trend(term_digest: bytes, base: int, months: List[date]) -> List[KeywordTrendPoint]:
    points = []
    for idx, month_start in enumerate(months):
        jitter = term_digest[(idx + 8) % len(term_digest)] % 21 - 10
        points.append(
            KeywordTrendPoint(
                date=month_start.isoformat(),
                value=max(base + idx * 3 + jitter, 1),
            )
        )
    return points


def _unique_terms(seeds: Iterable[SeedLike]) -> List[KeywordSeed]:
    seen = set()
    unique: List[KeywordSeed] = []
    for seed in seeds:
        if isinstance(seed, str):
            seed = KeywordSeed(term=seed)
        elif isinstance(seed, dict):
            seed = KeywordSeed.model_validate(seed)
        term = seed.term.strip()
        key = term.lower()
        if not term or key in seen:
            continue
        seen.add(key)
        unique.append(seed)
    return unique[:MAX_FALLBACK_KEYWORDS]


def _insight(seed: KeywordSeed, index: int, months: List[date]) -> KeywordInsight:
    digest = _digest(seed.term)
    volume = max(600 - index * 120, 120) + int.from_bytes(digest[:2], "big") % 200
    growth = round(max(3.0, 12.0 - index * 2) + (digest[2] % 50) / 10.0, 2)
    if index == 0:
        notes = "Estimated search metrics derived from the summary. Validate with keyword tools."
    elif seed.rationale:
        notes = f"Suggested keyword: {seed.rationale}"
    else:
        notes = None
    intent = seed.intent
    if intent == "other" and index == 0:
        intent = "commercial"
    return KeywordInsight(
        term=seed.term.strip(),
        volume=volume,
        growth=growth,
        intent=intent,
        trend=_trend(digest, 20 + digest[3] % 30, months),
        notes=notes,
    )


def _minimal_result(as_of: date | None) -> KeywordAnalyticsResult:
    month = (as_of or date.today()).replace(day=1).isoformat()
    return KeywordAnalyticsResult(
        primary_keyword=DEFAULT_SEED_TERM,
        total_search_volume=0,
        average_growth=0.0,
        history=[KeywordTrendPoint(date=month, value=0)],
        keywords=[KeywordInsight(term=DEFAULT_SEED_TERM, volume=0, growth=0.0)],
        source="fallback",
    )


def build_fallback_analytics(
    summary: str,
    seeds: Sequence[SeedLike] | None = None,
    as_of: date | None = None,
) -> KeywordAnalyticsResult:
    """
    Plausibly shaped analytics for `summary`, tagged source="fallback".

    Seeds are used in order when given, otherwise terms are selected from the
    summary. Trend dates are the month starts ending at `as_of`'s month
    (today when omitted).
    """
    try:
        months = _month_starts(as_of or date.today(), HISTORY_MONTHS)
        terms = _unique_terms(seeds or []) or _unique_terms(select_keyword_seeds(summary))
        keywords = [_insight(seed, idx, months) for idx, seed in enumerate(terms)]

        history = [
            KeywordTrendPoint(
                date=month_start.isoformat(),
                value=sum(k.trend[idx].value for k in keywords),
            )
            for idx, month_start in enumerate(months)
        ]
        return KeywordAnalyticsResult(
            primary_keyword=keywords[0].term,
            total_search_volume=sum(k.volume for k in keywords),
            average_growth=round(sum(k.growth for k in keywords) / len(keywords), 2),
            history=history,
            keywords=keywords,
            source="fallback",
        )
    except Exception:
        logger.exception("Fallback keyword analytics failed; returning minimal result",
                         extra={"stage": "keyword_fallback"})
        return _minimal_result(as_of)
