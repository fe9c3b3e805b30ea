# backend/ideabrief/schemas/research.py
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ..models.research_job import JobStatus
from ..models.brief import BriefStatus

MIN_SUMMARY_LEN = 20
MAX_SUMMARY_LEN = 20000


class CamelModel(BaseModel):
    """Wire models speak camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResearchRequest(CamelModel):
    summary: str
    idea_id: UUID | None = None
    draft_content: dict[str, Any] | None = None

    @field_validator("summary")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_SUMMARY_LEN:
            raise ValueError(
                f"summary must be at least {MIN_SUMMARY_LEN} characters"
            )
        if len(v) > MAX_SUMMARY_LEN:
            raise ValueError(
                f"summary is too long; maximum length is {MAX_SUMMARY_LEN} characters"
            )
        return v


class ResearchJobOut(CamelModel):
    id: UUID
    status: JobStatus
    idea_id: UUID | None = None
    external_job_id: str | None = None
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    total_cost_usd: float | None = None
    token_usage: dict | None = None

    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )


class ResearchSubmissionOut(CamelModel):
    job_id: UUID
    idea_id: UUID
    brief_id: UUID
    status: JobStatus


class ResearchStatusOut(CamelModel):
    """
    Poll response for a research job.

    `is_complete` is True only for terminal states; `result` and
    `proof_signals` are present once completed, `error` once failed.
    """
    status: Literal["pending", "in_progress", "completed", "failed"]
    is_complete: bool
    result: dict[str, Any] | None = None
    proof_signals: list[dict[str, Any]] | None = None
    error: str | None = None
    message: str | None = None
    idea_id: UUID | None = None
    brief_id: UUID | None = None


class BriefOut(CamelModel):
    id: UUID
    idea_id: UUID
    status: BriefStatus
    content: dict[str, Any]
    generation_time_ms: int | None = None
    is_public: bool = False
    created_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )


class ResearchTraceEventOut(CamelModel):
    id: int
    created_at: datetime
    phase: str
    step: str | None = None
    label: str
    detail: str | None = None
    meta: dict | None = None

    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )


class ResearchJobDetailOut(CamelModel):
    job: ResearchJobOut
    brief: BriefOut | None = None
    trace: list[ResearchTraceEventOut] = []


class ArchiveItemOut(CamelModel):
    job: ResearchJobOut
    has_brief: bool
