# backend/ideabrief/services/tracing.py
from __future__ import annotations

from typing import Any, List
from uuid import UUID
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.db import SessionLocal
from ..models.research_trace_event import ResearchTraceEvent

logger = logging.getLogger(__name__)

def trace_job_step(
    job_id: UUID,
    *,
    phase: str,
    step: str | None = None,
    label: str,
    detail: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """
    Best-effort, fire-and-forget trace writer.

    Uses its own session so a trace survives (and never disturbs) the caller's
    transaction. Failure must NEVER break polling or submission.
    """
    db = SessionLocal()
    try:
        evt = ResearchTraceEvent(
            job_id=job_id,
            phase=phase,
            step=step,
            label=label,
            detail=detail,
            meta=meta or {},
            created_at=datetime.utcnow(),
        )
        db.add(evt)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to write research trace event", extra={"job_id": str(job_id)})
    finally:
        db.close()


def list_job_trace(db: Session, job_id: UUID) -> List[ResearchTraceEvent]:
    return (
        db.query(ResearchTraceEvent)
        .filter(ResearchTraceEvent.job_id == job_id)
        .order_by(ResearchTraceEvent.created_at.asc(), ResearchTraceEvent.id.asc())
        .all()
    )
