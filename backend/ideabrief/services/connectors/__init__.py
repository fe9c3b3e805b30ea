from __future__ import annotations

from functools import lru_cache

from .base import (
    BaseKeywordProvider,
    BaseResearchProvider,
    ConnectorError,
    KeywordProviderError,
    ResearchProviderError,
    ResearchProviderStatus,
)
from .keyword_analytics import HttpKeywordAnalyticsProvider
from .openai_deep_research import OpenAIDeepResearchProvider

__all__ = [
    "BaseKeywordProvider",
    "BaseResearchProvider",
    "ConnectorError",
    "KeywordProviderError",
    "ResearchProviderError",
    "ResearchProviderStatus",
    "get_keyword_provider",
    "get_research_provider",
]


@lru_cache(maxsize=1)
def get_research_provider() -> BaseResearchProvider:
    """
    Process-wide deep research client. Routes depend on this so tests can
    swap in a fake via dependency overrides.
    """
    return OpenAIDeepResearchProvider()


@lru_cache(maxsize=1)
def get_keyword_provider() -> BaseKeywordProvider:
    return HttpKeywordAnalyticsProvider()
