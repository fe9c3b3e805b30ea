import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..schemas.keywords import KeywordAnalyzeRequest, KeywordAnalyzeResponse
from ..services.connectors import get_keyword_provider
from ..services.connectors.base import BaseKeywordProvider
from ..services.keywords import KeywordAnalyticsService
from .deps import rate_limited, verify_api_key

router = APIRouter(tags=["keywords"], dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)


@router.post(
    "/keywords/analyze",
    response_model=KeywordAnalyzeResponse,
    response_model_by_alias=True,
    dependencies=[Depends(rate_limited("keywords", "RATE_LIMIT_KEYWORDS_PER_WINDOW"))],
)
def analyze_keywords(
    payload: KeywordAnalyzeRequest,
    db: Session = Depends(get_db),
    provider: BaseKeywordProvider = Depends(get_keyword_provider),
):
    """
    Keyword analytics for a summary. Provider failures are absorbed by the
    deterministic fallback, so this only fails on storage errors.
    """
    analysis = KeywordAnalyticsService(db, provider).analyze(
        payload.summary, force_refresh=payload.force_refresh
    )
    if analysis.errors:
        logger.info(
            "Keyword analysis served with degraded inputs: %s",
            ", ".join(sorted(analysis.errors)),
            extra={"stage": "keywords"},
        )
    return analysis.to_response()
