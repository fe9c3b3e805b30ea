from sqlalchemy import Column, DateTime, String, Uuid
from datetime import datetime
import uuid

from ..core.db import Base


class IdeaStatus:
    """Status values for Idea."""
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    # Research failed but whatever partial brief exists stays visible
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"


class Idea(Base):
    __tablename__ = "ideas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String(200), nullable=False)
    status = Column(String(32), default=IdeaStatus.ANALYZING, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
