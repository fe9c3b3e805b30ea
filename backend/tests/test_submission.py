"""
Tests for submission.py and retention.py - getting jobs to the provider and
cleaning them up afterwards.
"""
from datetime import datetime, timedelta

import pytest

from ideabrief.models.brief import Brief, BriefStatus
from ideabrief.models.idea import Idea, IdeaStatus
from ideabrief.models.research_job import JobStatus, ResearchJob
from ideabrief.models.research_trace_event import ResearchTraceEvent
from ideabrief.services import submission
from ideabrief.services.retention import delete_expired_jobs
from ideabrief.services.submission import (
    IdeaNotFoundError,
    ResearchAlreadyRunningError,
    create_research_request,
    mark_submission_failed,
    submit_job,
)

from tests.fixtures.research_fixtures import (
    OTHER_USER_ID,
    SUMMARY,
    USER_ID,
    HTTPStatusError,
    make_draft_brief,
    make_idea,
    make_job,
)


def _reload(db, model, row_id):
    db.expire_all()
    return db.get(model, row_id)


class TestCreateResearchRequest:

    def test_new_idea_gets_a_draft_brief_and_pending_job(self, db):
        created = create_research_request(db, USER_ID, SUMMARY)

        assert created.idea.user_id == USER_ID
        assert created.idea.title == SUMMARY[:120]
        assert created.idea.status == IdeaStatus.ANALYZING
        assert created.brief.status == BriefStatus.DRAFT
        assert created.brief.content == {"summary": SUMMARY}
        assert created.job.status == JobStatus.PENDING
        assert created.job.idea_id == created.idea.id

    def test_draft_content_is_merged_into_existing_draft(self, db):
        idea = make_idea(db)
        draft = make_draft_brief(db, idea, content={"summary": SUMMARY, "a": {"x": 1}})

        created = create_research_request(
            db, USER_ID, SUMMARY, idea_id=idea.id, draft_content={"a": {"y": 2}}
        )

        assert created.brief.id == draft.id
        assert created.brief.content == {"summary": SUMMARY, "a": {"x": 1, "y": 2}}

    def test_unowned_idea_is_rejected(self, db):
        idea = make_idea(db, user_id=OTHER_USER_ID)

        with pytest.raises(IdeaNotFoundError):
            create_research_request(db, USER_ID, SUMMARY, idea_id=idea.id)
        assert db.query(ResearchJob).count() == 0

    @pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.IN_PROGRESS])
    def test_idea_with_active_job_is_not_researched_twice(self, db, status):
        idea = make_idea(db)
        draft = make_draft_brief(db, idea)
        running = make_job(db, idea, status=status)

        with pytest.raises(ResearchAlreadyRunningError) as excinfo:
            create_research_request(db, USER_ID, SUMMARY, idea_id=idea.id)

        assert excinfo.value.job.id == running.id
        assert db.query(ResearchJob).count() == 1
        assert _reload(db, Brief, draft.id).status == BriefStatus.DRAFT

    def test_idea_can_be_researched_again_after_job_finishes(self, db):
        idea = make_idea(db)
        make_job(db, idea, status=JobStatus.COMPLETED)

        created = create_research_request(db, USER_ID, SUMMARY, idea_id=idea.id)

        assert created.job.status == JobStatus.PENDING
        assert created.brief.status == BriefStatus.DRAFT
        assert db.query(ResearchJob).filter(ResearchJob.idea_id == idea.id).count() == 2


class TestSubmitJob:

    def test_records_external_id_and_starts_job(self, db, research_provider):
        job = make_job(db, status=JobStatus.PENDING, external_job_id=None)
        research_provider.create_result = "resp_abc"

        assert submit_job(db, research_provider, job.id) == "resp_abc"

        stored = _reload(db, ResearchJob, job.id)
        assert stored.external_job_id == "resp_abc"
        assert stored.status == JobStatus.IN_PROGRESS
        assert research_provider.create_calls == [SUMMARY]
        steps = [
            e.step
            for e in db.query(ResearchTraceEvent)
            .filter(ResearchTraceEvent.job_id == job.id)
            .order_by(ResearchTraceEvent.id)
        ]
        assert steps == ["provider:create_job:start", "provider:create_job:done"]

    def test_already_submitted_job_is_not_resubmitted(self, db, research_provider):
        job = make_job(db, status=JobStatus.IN_PROGRESS, external_job_id="resp_old")

        assert submit_job(db, research_provider, job.id) == "resp_old"
        assert research_provider.create_calls == []

    def test_rejected_request_fails_job_and_warns_idea(self, db, research_provider):
        idea = make_idea(db)
        brief = make_draft_brief(db, idea)
        job = make_job(db, idea, status=JobStatus.PENDING, external_job_id=None)
        research_provider.create_result = HTTPStatusError(400, "prompt rejected")

        assert submit_job(db, research_provider, job.id) is None

        stored = _reload(db, ResearchJob, job.id)
        assert stored.status == JobStatus.FAILED
        assert "prompt rejected" in stored.error_message
        assert stored.completed_at is not None
        assert _reload(db, Idea, idea.id).status == IdeaStatus.COMPLETED_WITH_WARNINGS
        assert _reload(db, Brief, brief.id).status == BriefStatus.COMPLETED_WITH_WARNINGS

    @pytest.mark.parametrize("error", [
        HTTPStatusError(429, "slow down"),
        HTTPStatusError(502, "bad gateway"),
        ConnectionError("reset by peer"),
    ])
    def test_transient_errors_propagate_and_leave_job_pending(self, db, research_provider, error):
        job = make_job(db, status=JobStatus.PENDING, external_job_id=None)
        research_provider.create_result = error

        with pytest.raises(type(error)):
            submit_job(db, research_provider, job.id)

        stored = _reload(db, ResearchJob, job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.external_job_id is None


class TestMarkSubmissionFailed:

    def test_only_pending_jobs_are_failed(self, db):
        running = make_job(db, status=JobStatus.IN_PROGRESS)

        assert mark_submission_failed(db, running.id, "gave up") is False
        assert _reload(db, ResearchJob, running.id).status == JobStatus.IN_PROGRESS

    def test_error_message_is_truncated(self, db):
        job = make_job(db, status=JobStatus.PENDING, external_job_id=None)

        assert mark_submission_failed(db, job.id, "e" * 1000) is True
        assert len(_reload(db, ResearchJob, job.id).error_message) == 500


class TestSubmitTask:

    def test_retries_exhausted_marks_job_failed(self, db, research_provider, monkeypatch):
        job = make_job(db, status=JobStatus.PENDING, external_job_id=None)
        research_provider.create_result = ConnectionError("reset by peer")
        monkeypatch.setattr(submission, "get_research_provider", lambda: research_provider)
        task = submission.submit_research_job

        # Eager execution runs each retry inline
        outcome = task.apply(args=[str(job.id)])

        assert outcome.failed()
        assert len(research_provider.create_calls) == task.max_retries + 1

        stored = _reload(db, ResearchJob, job.id)
        assert stored.status == JobStatus.FAILED
        assert "reset by peer" in stored.error_message


class TestRetention:

    def test_only_old_terminal_jobs_are_deleted(self, db):
        now = datetime(2026, 10, 17)
        old = now - timedelta(days=120)
        old_done = make_job(db, status=JobStatus.COMPLETED, created_at=old)
        old_running = make_job(db, status=JobStatus.IN_PROGRESS, created_at=old)
        recent_done = make_job(db, status=JobStatus.COMPLETED, created_at=now - timedelta(days=5))
        db.add(ResearchTraceEvent(job_id=old_done.id, phase="COMPLETION", label="done"))
        db.commit()

        deleted = delete_expired_jobs(db, now=now)

        assert deleted == 1
        remaining = {row.id for row in db.query(ResearchJob.id)}
        assert remaining == {old_running.id, recent_done.id}
        assert db.query(ResearchTraceEvent).count() == 0

    def test_nothing_to_delete(self, db):
        make_job(db, status=JobStatus.COMPLETED)
        assert delete_expired_jobs(db) == 0
