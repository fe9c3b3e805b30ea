from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, Uuid
from datetime import datetime
import enum
import uuid
from ..core.db import Base


class BriefStatus(str, enum.Enum):
    DRAFT = "draft"
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"


class Brief(Base):
    __tablename__ = "briefs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    idea_id = Column(Uuid, ForeignKey("ideas.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    status = Column(Enum(BriefStatus), nullable=False, default=BriefStatus.DRAFT)
    content = Column(JSON, nullable=False, default=dict)
    generation_time_ms = Column(Integer, nullable=True)
    share_token = Column(String, unique=True, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
