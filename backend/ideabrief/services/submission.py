from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..core.db import SessionLocal
from ..models.brief import Brief, BriefStatus
from ..models.idea import Idea, IdeaStatus
from ..models.research_job import ResearchJob, JobStatus, ACTIVE_STATUSES
from .briefs import close_draft_brief, deep_merge, find_draft_brief, set_idea_status
from .connectors import get_research_provider
from .connectors.base import BaseResearchProvider
from .tracing import trace_job_step

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_TITLE_LEN = 120


class IdeaNotFoundError(LookupError):
    """The referenced idea does not exist or is not owned by the caller."""


class ResearchAlreadyRunningError(RuntimeError):
    """The idea already has a pending or in-progress research job."""

    def __init__(self, job: ResearchJob):
        super().__init__("Research already in progress for this idea")
        self.job = job


@dataclass
class ResearchSubmission:
    job: ResearchJob
    idea: Idea
    brief: Brief


def create_research_request(
    db: Session,
    user_id: str,
    summary: str,
    idea_id: UUID | None = None,
    draft_content: Optional[Dict[str, Any]] = None,
) -> ResearchSubmission:
    """
    Create the rows a research run needs: an owned idea in `analyzing`, its
    draft brief and a `pending` job. Provider submission happens later in
    the `submit_research_job` task.
    """
    if idea_id is not None:
        idea = (
            db.query(Idea)
            .filter(Idea.id == idea_id, Idea.user_id == user_id)
            .first()
        )
        if idea is None:
            raise IdeaNotFoundError("Idea not found")
        active = (
            db.query(ResearchJob)
            .filter(
                ResearchJob.idea_id == idea.id,
                ResearchJob.user_id == user_id,
                ResearchJob.status.in_(ACTIVE_STATUSES),
            )
            .first()
        )
        if active is not None:
            # One running job per idea; its draft brief is the one it completes
            raise ResearchAlreadyRunningError(active)
        idea.status = IdeaStatus.ANALYZING
    else:
        idea = Idea(
            user_id=user_id,
            title=summary[:MAX_TITLE_LEN] or "Research brief",
            status=IdeaStatus.ANALYZING,
        )
        db.add(idea)
    db.flush()

    brief = find_draft_brief(db, idea.id, user_id)
    if brief is None:
        brief = Brief(
            idea_id=idea.id,
            user_id=user_id,
            status=BriefStatus.DRAFT,
            content=deep_merge({"summary": summary}, draft_content or {}),
        )
        db.add(brief)
    elif draft_content:
        brief.content = deep_merge(brief.content, draft_content)

    job = ResearchJob(
        user_id=user_id,
        idea_id=idea.id,
        prompt=summary,
        status=JobStatus.PENDING,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    db.refresh(idea)
    db.refresh(brief)

    logger.info(
        "Research job created",
        extra={"job_id": str(job.id), "user_id": user_id, "idea_id": str(idea.id), "step": "job_created"},
    )
    return ResearchSubmission(job=job, idea=idea, brief=brief)


def enqueue_research_submission(job_id: UUID) -> None:
    celery_app.send_task(
        "ideabrief.services.submission.submit_research_job",
        args=[str(job_id)],
        queue="research",
    )


def _is_rejection(exc: Exception) -> bool:
    """4xx answers (other than rate limiting) will not succeed on retry."""
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and 400 <= status < 500 and status != 429


def submit_job(db: Session, provider: BaseResearchProvider, job_id: UUID) -> Optional[str]:
    """
    Submit a pending job to the provider and record its external id.

    Returns the external job id, or None when the job is gone or was
    rejected. Transient provider errors propagate so the caller can retry.
    """
    job = db.query(ResearchJob).filter(ResearchJob.id == job_id).first()
    if not job:
        logger.warning("Research job vanished before submission", extra={"job_id": str(job_id)})
        return None

    if job.status != JobStatus.PENDING or job.external_job_id:
        logger.info(
            "Research job already submitted",
            extra={"job_id": str(job.id), "external_job_id": job.external_job_id, "step": "submit:skip"},
        )
        return job.external_job_id

    trace_job_step(
        job.id,
        phase="SUBMISSION",
        step="provider:create_job:start",
        label="Submitting deep research request",
        detail=f"Sending research prompt to {provider.name}.",
    )

    try:
        external_job_id = provider.create_job(job.prompt or "")
    except Exception as e:
        if not _is_rejection(e):
            raise
        logger.warning(
            "Deep research request rejected: %s", e,
            extra={"job_id": str(job.id), "step": "submit:rejected"},
        )
        mark_submission_failed(db, job.id, f"Research request rejected: {e}")
        return None

    updated = (
        db.query(ResearchJob)
        .filter(
            ResearchJob.id == job.id,
            ResearchJob.status == JobStatus.PENDING,
            ResearchJob.external_job_id.is_(None),
        )
        .update(
            {
                ResearchJob.external_job_id: external_job_id,
                ResearchJob.status: JobStatus.IN_PROGRESS,
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if updated != 1:
        logger.warning(
            "Research job changed during submission; provider job left untracked",
            extra={"job_id": str(job_id), "external_job_id": external_job_id, "step": "submit:race"},
        )
        return None

    trace_job_step(
        job_id,
        phase="SUBMISSION",
        step="provider:create_job:done",
        label="Deep research accepted",
        detail="Provider accepted the request; poll for completion.",
        meta={"external_job_id": external_job_id},
    )
    logger.info(
        "Research job submitted",
        extra={"job_id": str(job_id), "external_job_id": external_job_id, "step": "submitted"},
    )
    return external_job_id


def mark_submission_failed(db: Session, job_id: UUID, message: str) -> bool:
    """
    Fail a job that never reached the provider. Only pending jobs move; the
    idea and draft brief are finalised with warnings.
    """
    updated = (
        db.query(ResearchJob)
        .filter(ResearchJob.id == job_id, ResearchJob.status == JobStatus.PENDING)
        .update(
            {
                ResearchJob.status: JobStatus.FAILED,
                ResearchJob.error_message: message[:500],
                ResearchJob.completed_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if updated != 1:
        return False

    job = db.query(ResearchJob).filter(ResearchJob.id == job_id).first()
    if job is not None and job.idea_id is not None:
        set_idea_status(db, job.idea_id, job.user_id, IdeaStatus.COMPLETED_WITH_WARNINGS)
        close_draft_brief(db, job.idea_id, job.user_id)
        db.commit()

    trace_job_step(
        job_id,
        phase="SUBMISSION",
        step="provider:create_job:failed",
        label="Deep research could not be started",
        detail=message[:500],
    )
    return True


@celery_app.task(
    name="ideabrief.services.submission.submit_research_job",
    bind=True,
    queue="research",
    max_retries=settings.DEEP_RESEARCH_SUBMIT_MAX_RETRIES,
)
def submit_research_job(self, job_id: str):
    db: Session = SessionLocal()
    try:
        return submit_job(db, get_research_provider(), UUID(job_id))
    except Exception as exc:
        db.rollback()
        if self.request.retries >= self.max_retries:
            logger.exception(
                "Research submission failed after retries",
                extra={"job_id": job_id, "step": "submit:failed"},
            )
            mark_submission_failed(db, UUID(job_id), f"Research submission failed: {exc}")
            raise
        logger.warning(
            "Research submission failed; retrying: %s", exc,
            extra={"job_id": job_id, "step": "submit:retry"},
        )
        raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))
    finally:
        db.close()
