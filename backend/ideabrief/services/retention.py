from __future__ import annotations

from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..core.db import SessionLocal
from ..models.research_job import ResearchJob, TERMINAL_STATUSES
from ..models.research_trace_event import ResearchTraceEvent

logger = logging.getLogger(__name__)
settings = get_settings()


def delete_expired_jobs(db: Session, now: datetime | None = None) -> int:
    """
    Delete terminal research jobs (and their trace events) created more than
    RESEARCH_RETENTION_DAYS ago. Ideas and briefs are user content and stay.
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=settings.RESEARCH_RETENTION_DAYS)
    job_ids = [
        row.id
        for row in db.query(ResearchJob.id)
        .filter(
            ResearchJob.created_at < cutoff,
            ResearchJob.status.in_(TERMINAL_STATUSES),
        )
        .all()
    ]

    if not job_ids:
        logger.info(
            "No expired research jobs found for cleanup",
            extra={"step": "retention"},
        )
        return 0

    db.query(ResearchTraceEvent).filter(ResearchTraceEvent.job_id.in_(job_ids)).delete(
        synchronize_session=False
    )
    deleted_jobs = (
        db.query(ResearchJob)
        .filter(ResearchJob.id.in_(job_ids))
        .delete(synchronize_session=False)
    )
    db.commit()

    logger.info(
        "Deleted expired research jobs: %s", deleted_jobs,
        extra={"step": "retention"},
    )
    return deleted_jobs


@celery_app.task(name="ideabrief.services.retention.cleanup_expired")
def cleanup_expired() -> int:
    """Periodic task enforcing the research job retention policy."""
    db: Session = SessionLocal()
    try:
        return delete_expired_jobs(db)
    except Exception:
        db.rollback()
        logger.exception(
            "Error during cleanup_expired",
            extra={"step": "retention"},
        )
        raise
    finally:
        db.close()
