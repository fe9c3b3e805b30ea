from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Uuid
from datetime import datetime

from ..core.db import Base

class ResearchTraceEvent(Base):
    __tablename__ = "research_trace_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Uuid,
                    ForeignKey("research_jobs.id"),
                    index=True,
                    nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    phase = Column(String, nullable=False)   # "SUBMISSION", "POLL", "COMPLETION", …
    step = Column(String, nullable=True)     # "provider:create_job", "brief_merge", …
    label = Column(String, nullable=False)   # short human-readable summary
    detail = Column(String, nullable=True)   # one-paragraph explanation
    meta = Column(JSON, nullable=True)       # small, structured extras for UI
