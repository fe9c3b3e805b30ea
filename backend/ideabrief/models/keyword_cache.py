"""
KeywordCacheEntry model for content-addressed keyword analytics results.

Rows are keyed by the SHA-256 of the normalized summary and are only ever
upserted; an expired row is simply overwritten by the next computation.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, JSON, String, Text

from ..core.db import Base


class KeywordCacheEntry(Base):
    __tablename__ = "keyword_cache"

    summary_hash = Column(String(64), primary_key=True)
    summary = Column(Text, nullable=False)
    result = Column(JSON, nullable=False)  # KeywordAnalyticsResult, camelCase keys
    seeds = Column(JSON, nullable=False)  # List[KeywordSeed]
    cost_estimate = Column(Float, nullable=False, default=0.0)
    expires_at = Column(DateTime, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at
