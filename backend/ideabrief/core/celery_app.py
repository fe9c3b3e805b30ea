from celery import Celery
from celery.schedules import crontab

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "ideabrief_research",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_routes={"ideabrief.services.submission.submit_research_job": {"queue": "research"}},
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    imports=("ideabrief.services.submission", "ideabrief.services.retention"),
    beat_schedule={
        # Daily cleanup of old terminal research jobs based on RESEARCH_RETENTION_DAYS
        "cleanup-expired-research-jobs": {
            "task": "ideabrief.services.retention.cleanup_expired",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)
