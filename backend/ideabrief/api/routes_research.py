from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..schemas.research import (
    BriefOut,
    ResearchJobDetailOut,
    ResearchJobOut,
    ResearchRequest,
    ResearchStatusOut,
    ResearchSubmissionOut,
    ResearchTraceEventOut,
)
from ..models.research_job import ResearchJob
from ..models.brief import Brief
from ..services.connectors import get_research_provider
from ..services.connectors.base import BaseResearchProvider
from ..services.research_status import (
    JobNotFoundError,
    ProviderUnavailableError,
    ResearchStatusPoller,
)
from ..services.submission import (
    IdeaNotFoundError,
    ResearchAlreadyRunningError,
    create_research_request,
    enqueue_research_submission,
)
from ..services.tracing import list_job_trace
from .deps import get_current_user_id, rate_limited, verify_api_key

router = APIRouter(tags=["research"], dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)


@router.post(
    "/research",
    response_model=ResearchSubmissionOut,
    response_model_by_alias=True,
    status_code=202,
    dependencies=[Depends(rate_limited("research", "RATE_LIMIT_RESEARCH_PER_WINDOW"))],
)
def create_research_job(
    payload: ResearchRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        submission = create_research_request(
            db,
            user_id=user_id,
            summary=payload.summary,
            idea_id=payload.idea_id,
            draft_content=payload.draft_content,
        )
    except IdeaNotFoundError:
        raise HTTPException(status_code=404, detail="Idea not found")
    except ResearchAlreadyRunningError as e:
        logger.info(
            "Research request rejected; job already active",
            extra={"job_id": str(e.job.id), "user_id": user_id, "idea_id": str(e.job.idea_id)},
        )
        raise HTTPException(status_code=409, detail="Research already in progress for this idea")

    enqueue_research_submission(submission.job.id)

    return ResearchSubmissionOut(
        job_id=submission.job.id,
        idea_id=submission.idea.id,
        brief_id=submission.brief.id,
        status=submission.job.status,
    )


@router.get(
    "/research/{job_id}/status",
    response_model=ResearchStatusOut,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
def get_research_status(
    job_id: UUID,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    provider: BaseResearchProvider = Depends(get_research_provider),
):
    try:
        result = ResearchStatusPoller(db, provider).poll(job_id, user_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except ProviderUnavailableError:
        raise HTTPException(status_code=500, detail="Failed to check job status")

    return ResearchStatusOut(
        status=result.status,
        is_complete=result.is_complete,
        result=result.result,
        proof_signals=result.proof_signals,
        error=result.error,
        message=result.message,
        idea_id=result.idea_id,
        brief_id=result.brief_id,
    )


@router.get(
    "/research/{job_id}",
    response_model=ResearchJobDetailOut,
    response_model_by_alias=True,
)
def get_research_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    job = (
        db.query(ResearchJob)
        .filter(ResearchJob.id == job_id, ResearchJob.user_id == user_id)
        .first()
    )
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    brief = None
    if job.idea_id is not None:
        brief = (
            db.query(Brief)
            .filter(Brief.idea_id == job.idea_id, Brief.user_id == user_id)
            .order_by(Brief.created_at.desc())
            .first()
        )

    return ResearchJobDetailOut(
        job=ResearchJobOut.model_validate(job),
        brief=BriefOut.model_validate(brief) if brief else None,
        trace=[ResearchTraceEventOut.model_validate(e) for e in list_job_trace(db, job.id)],
    )
