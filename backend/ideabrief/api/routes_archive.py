from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..models.research_job import ResearchJob
from ..models.brief import Brief, BriefStatus
from ..schemas.research import ArchiveItemOut, ResearchJobOut
from .deps import get_current_user_id, verify_api_key

router = APIRouter(tags=["archive"])


@router.get("/archive", response_model=list[ArchiveItemOut], response_model_by_alias=True)
def list_jobs(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    _: None = Depends(verify_api_key),
):
    """
    The caller's research jobs, newest first.

    Supports basic pagination via limit/offset.
    """
    # Hard cap to avoid unbounded scans
    safe_limit = max(1, min(limit, 100))

    jobs = (
        db.query(ResearchJob)
        .filter(ResearchJob.user_id == user_id)
        .order_by(ResearchJob.created_at.desc())
        .offset(max(0, offset))
        .limit(safe_limit)
        .all()
    )

    return [
        ArchiveItemOut(
            job=ResearchJobOut.model_validate(j),
            has_brief=j.idea_id is not None
            and db.query(Brief.id)
            .filter(
                Brief.idea_id == j.idea_id,
                Brief.user_id == user_id,
                Brief.status != BriefStatus.DRAFT,
            )
            .first()
            is not None,
        )
        for j in jobs
    ]
