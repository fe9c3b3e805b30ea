"""
Status poller for deep-research jobs.

Progress is pull-based: nothing advances a job except a client polling it.
Each poll either answers from stored state (terminal jobs, never touching the
provider) or asks the provider and, when the provider reports a terminal
outcome, performs the completion transaction.

The terminal transition is a conditional UPDATE guarded on the job still
being active, so when two pollers race only the winner runs the brief and
idea side effects; the loser re-reads and reports the stored outcome.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.research_job import ResearchJob, JobStatus, ACTIVE_STATUSES
from ..models.brief import Brief, BriefStatus
from ..models.idea import IdeaStatus
from .briefs import (
    close_draft_brief,
    merge_into_draft_brief,
    proof_signal_patch,
    set_idea_status,
)
from .connectors.base import BaseResearchProvider, ResearchProviderStatus
from .tracing import trace_job_step

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LEN = 500


class JobNotFoundError(LookupError):
    """No job with this id is owned by the caller."""


class ProviderUnavailableError(RuntimeError):
    """The provider could not be checked; the job is untouched and may be re-polled."""


@dataclass
class SideEffectOutcome:
    name: str
    ok: bool = True
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class CompletionSideEffects:
    """
    Secondary work done after a job reaches a terminal state.

    Failures here are logged and recorded but never change the primary
    outcome reported to the caller.
    """
    brief: SideEffectOutcome
    idea: SideEffectOutcome
    brief_id: Optional[UUID] = None

    @property
    def ok(self) -> bool:
        return self.brief.ok and self.idea.ok


@dataclass
class ResearchStatusResult:
    status: str
    is_complete: bool
    result: Optional[Dict[str, Any]] = None
    proof_signals: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None
    message: Optional[str] = None
    idea_id: Optional[UUID] = None
    brief_id: Optional[UUID] = None
    provider_checked: bool = False
    side_effects: Optional[CompletionSideEffects] = field(default=None, repr=False)


class ResearchStatusPoller:
    def __init__(
        self,
        db: Session,
        provider: BaseResearchProvider,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.provider = provider
        self.clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def poll(self, job_id: UUID, user_id: str) -> ResearchStatusResult:
        job = self._load_owned_job(job_id, user_id)

        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            return self._stored_result(job)

        if not job.external_job_id:
            return ResearchStatusResult(
                status=JobStatus.PENDING.value,
                is_complete=False,
                message="Job queued, waiting to start",
                idea_id=job.idea_id,
            )

        try:
            provider_status = self.provider.get_status(job.external_job_id)
        except Exception as e:
            logger.exception(
                "Error checking research job status: %s", e,
                extra={
                    "job_id": str(job.id),
                    "user_id": user_id,
                    "external_job_id": job.external_job_id,
                    "step": "poll:provider_error",
                },
            )
            raise ProviderUnavailableError("Failed to check job status") from e

        if not provider_status.is_complete:
            return ResearchStatusResult(
                status=JobStatus.IN_PROGRESS.value,
                is_complete=False,
                message="Deep research in progress...",
                idea_id=job.idea_id,
                provider_checked=True,
            )

        if provider_status.status == "completed":
            return self._complete(job, provider_status)
        return self._fail(job, provider_status)

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _complete(self, job: ResearchJob, provider_status: ResearchProviderStatus) -> ResearchStatusResult:
        if provider_status.proof_signals is None:
            provider_status = replace(provider_status, proof_signals=[])
        payload = provider_status.payload or {}
        usage = provider_status.usage
        values = {
            ResearchJob.status: JobStatus.COMPLETED,
            ResearchJob.result: payload,
            ResearchJob.proof_signals: provider_status.proof_signals,
            ResearchJob.token_usage: usage,
            ResearchJob.total_cost_usd: _usage_cost(usage),
            ResearchJob.error_message: None,
            ResearchJob.completed_at: self.clock(),
        }
        if not self._transition(job, values):
            return self._lost_race(job)

        logger.info(
            "Research job completed",
            extra={"job_id": str(job.id), "user_id": job.user_id, "step": "completed"},
        )
        trace_job_step(
            job.id,
            phase="COMPLETION",
            step="job:completed",
            label="Deep research completed",
            detail=f"{len(provider_status.proof_signals)} proof signals received.",
            meta={"usage": usage} if usage else None,
        )

        side_effects = self._finalize_completed(job, provider_status)
        return ResearchStatusResult(
            status=JobStatus.COMPLETED.value,
            is_complete=True,
            result=payload,
            proof_signals=provider_status.proof_signals,
            idea_id=job.idea_id,
            brief_id=side_effects.brief_id,
            provider_checked=True,
            side_effects=side_effects,
        )

    def _fail(self, job: ResearchJob, provider_status: ResearchProviderStatus) -> ResearchStatusResult:
        message = (provider_status.message or "Research failed")[:MAX_ERROR_MESSAGE_LEN]
        values = {
            ResearchJob.status: JobStatus.FAILED,
            ResearchJob.error_message: message,
            ResearchJob.token_usage: provider_status.usage,
            ResearchJob.completed_at: self.clock(),
        }
        if not self._transition(job, values):
            return self._lost_race(job)

        logger.warning(
            "Research job failed at provider: %s", message,
            extra={"job_id": str(job.id), "user_id": job.user_id, "step": "failed"},
        )
        trace_job_step(
            job.id,
            phase="COMPLETION",
            step="job:failed",
            label="Deep research failed",
            detail=message,
        )

        side_effects = self._finalize_failed(job)
        return ResearchStatusResult(
            status=JobStatus.FAILED.value,
            is_complete=True,
            error=message,
            idea_id=job.idea_id,
            brief_id=side_effects.brief_id,
            provider_checked=True,
            side_effects=side_effects,
        )

    def _transition(self, job: ResearchJob, values: Dict[Any, Any]) -> bool:
        """
        Compare-and-swap on the job row: apply `values` only while the job is
        still active. Returns True when this caller won the transition.
        """
        job_id = job.id
        updated = (
            self.db.query(ResearchJob)
            .filter(ResearchJob.id == job_id, ResearchJob.status.in_(ACTIVE_STATUSES))
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def _lost_race(self, job: ResearchJob) -> ResearchStatusResult:
        logger.info(
            "Research job already finalised by a concurrent poll",
            extra={"job_id": str(job.id), "step": "poll:race_lost"},
        )
        self.db.refresh(job)
        result = self._stored_result(job)
        result.provider_checked = True
        return result

    # ------------------------------------------------------------------
    # Side effects (best-effort)
    # ------------------------------------------------------------------

    def _finalize_completed(
        self, job: ResearchJob, provider_status: ResearchProviderStatus
    ) -> CompletionSideEffects:
        if job.idea_id is None:
            return _skipped_side_effects()

        patch = proof_signal_patch(
            provider_status.proof_signals,
            summary=provider_status.summary,
            market_stage=provider_status.market_stage,
            disclaimer=provider_status.disclaimer,
        )
        brief_outcome = SideEffectOutcome(name="brief_merge")
        brief_id: Optional[UUID] = None
        try:
            brief = merge_into_draft_brief(self.db, job.idea_id, job.user_id, patch)
            self.db.commit()
            if brief is None:
                brief_outcome.skipped = True
            else:
                brief_id = brief.id
        except Exception as e:
            self.db.rollback()
            brief_outcome.ok = False
            brief_outcome.error = str(e)
            logger.exception(
                "Failed to merge research into brief",
                extra={"job_id": str(job.id), "idea_id": str(job.idea_id), "step": "brief_merge"},
            )
            trace_job_step(
                job.id,
                phase="COMPLETION",
                step="brief_merge:error",
                label="Brief update failed",
                detail="Research result is stored on the job; the brief was not updated.",
            )

        idea_outcome = self._update_idea(job, IdeaStatus.COMPLETED)
        return CompletionSideEffects(brief=brief_outcome, idea=idea_outcome, brief_id=brief_id)

    def _finalize_failed(self, job: ResearchJob) -> CompletionSideEffects:
        if job.idea_id is None:
            return _skipped_side_effects()

        brief_outcome = SideEffectOutcome(name="brief_close")
        brief_id: Optional[UUID] = None
        try:
            brief = close_draft_brief(self.db, job.idea_id, job.user_id)
            self.db.commit()
            if brief is None:
                brief_outcome.skipped = True
            else:
                brief_id = brief.id
        except Exception as e:
            self.db.rollback()
            brief_outcome.ok = False
            brief_outcome.error = str(e)
            logger.exception(
                "Failed to close brief after research failure",
                extra={"job_id": str(job.id), "idea_id": str(job.idea_id), "step": "brief_close"},
            )

        idea_outcome = self._update_idea(job, IdeaStatus.COMPLETED_WITH_WARNINGS)
        return CompletionSideEffects(brief=brief_outcome, idea=idea_outcome, brief_id=brief_id)

    def _update_idea(self, job: ResearchJob, status: str) -> SideEffectOutcome:
        outcome = SideEffectOutcome(name="idea_status")
        try:
            updated = set_idea_status(self.db, job.idea_id, job.user_id, status)
            self.db.commit()
            outcome.skipped = updated == 0
        except Exception as e:
            self.db.rollback()
            outcome.ok = False
            outcome.error = str(e)
            logger.exception(
                "Failed to update idea status",
                extra={"job_id": str(job.id), "idea_id": str(job.idea_id), "step": "idea_status"},
            )
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_owned_job(self, job_id: UUID, user_id: str) -> ResearchJob:
        job = (
            self.db.query(ResearchJob)
            .filter(ResearchJob.id == job_id, ResearchJob.user_id == user_id)
            .first()
        )
        if job is None:
            raise JobNotFoundError("Research job not found")
        return job

    def _stored_result(self, job: ResearchJob) -> ResearchStatusResult:
        if job.status == JobStatus.COMPLETED:
            return ResearchStatusResult(
                status=JobStatus.COMPLETED.value,
                is_complete=True,
                result=job.result,
                proof_signals=job.proof_signals,
                idea_id=job.idea_id,
                brief_id=self._finished_brief_id(job),
            )
        if job.status == JobStatus.FAILED:
            return ResearchStatusResult(
                status=JobStatus.FAILED.value,
                is_complete=True,
                error=job.error_message or "Research failed",
                idea_id=job.idea_id,
                brief_id=self._finished_brief_id(job),
            )
        raise ValueError(f"Job {job.id} is not terminal (status={job.status})")

    def _finished_brief_id(self, job: ResearchJob) -> Optional[UUID]:
        if job.idea_id is None:
            return None
        brief = (
            self.db.query(Brief.id)
            .filter(
                Brief.idea_id == job.idea_id,
                Brief.user_id == job.user_id,
                Brief.status != BriefStatus.DRAFT,
            )
            .order_by(Brief.completed_at.desc())
            .first()
        )
        return brief.id if brief else None


def _skipped_side_effects() -> CompletionSideEffects:
    return CompletionSideEffects(
        brief=SideEffectOutcome(name="brief", skipped=True),
        idea=SideEffectOutcome(name="idea_status", skipped=True),
    )


def _usage_cost(usage: Optional[Dict[str, Any]]) -> Optional[Decimal]:
    if not usage or usage.get("costUsd") is None:
        return None
    return Decimal(str(usage["costUsd"]))


def poll_research_status(
    db: Session,
    provider: BaseResearchProvider,
    job_id: UUID,
    user_id: str,
) -> ResearchStatusResult:
    return ResearchStatusPoller(db, provider).poll(job_id, user_id)
