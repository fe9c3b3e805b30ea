from sqlalchemy import Column, String, Text, JSON, Enum, DateTime, ForeignKey, Numeric, Uuid
from datetime import datetime
import uuid
import enum
from ..core.db import Base

class JobStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.IN_PROGRESS)


class ResearchJob(Base):
    __tablename__ = "research_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, index=True, nullable=False)
    idea_id = Column(Uuid, ForeignKey("ideas.id"), index=True, nullable=True)
    # Set once the provider accepts the request
    external_job_id = Column(String, index=True, nullable=True)
    prompt = Column(Text, nullable=True)
    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.PENDING)
    result = Column(JSON, nullable=True)  # only set when COMPLETED
    proof_signals = Column(JSON, nullable=True)
    error_message = Column(String, nullable=True)
    token_usage = Column(JSON, nullable=True)
    total_cost_usd = Column(Numeric(14, 6), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
