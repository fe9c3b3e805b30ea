from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from ...schemas.keywords import KeywordAnalyticsResult

ProviderJobState = Literal["running", "completed", "failed"]


class ConnectorError(RuntimeError):
    """An external provider call failed or returned something unusable."""


class ResearchProviderError(ConnectorError):
    """Transient failure talking to the deep-research provider."""


class KeywordProviderError(ConnectorError):
    """Keyword analytics provider unavailable, failing or misconfigured."""


@dataclass
class ResearchProviderStatus:
    """
    Normalised view of a provider job.

    `payload` keeps the full parsed document for storage; the fields the
    poller actually branches on are typed explicitly.
    """
    status: ProviderJobState
    payload: Optional[Dict[str, Any]] = None
    proof_signals: List[Dict[str, Any]] = field(default_factory=list)
    usage: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    summary: Optional[str] = None
    market_stage: Optional[str] = None
    disclaimer: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.status != "running"


class BaseResearchProvider(ABC):
    name: str

    @abstractmethod
    def create_job(self, prompt: str) -> str:
        """Submit a research prompt; returns the provider's job id."""

    @abstractmethod
    def get_status(self, external_job_id: str) -> ResearchProviderStatus:
        ...


class BaseKeywordProvider(ABC):
    name: str

    @abstractmethod
    def fetch(self, summary: str, keywords: List[str]) -> KeywordAnalyticsResult:
        ...
