"""create ideas, briefs, research jobs, trace events and keyword cache

Revision ID: 3f9a2c71d0e4
Revises: 
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a2c71d0e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the research pipeline tables."""
    op.create_table(
        "ideas",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ideas_user_id", "ideas", ["user_id"])

    op.create_table(
        "briefs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("idea_id", sa.Uuid(), sa.ForeignKey("ideas.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "COMPLETED", "COMPLETED_WITH_WARNINGS", name="briefstatus"),
            nullable=False,
        ),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("generation_time_ms", sa.Integer(), nullable=True),
        sa.Column("share_token", sa.String(), nullable=True, unique=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_briefs_idea_id", "briefs", ["idea_id"])
    op.create_index("ix_briefs_user_id", "briefs", ["user_id"])

    op.create_table(
        "research_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("idea_id", sa.Uuid(), sa.ForeignKey("ideas.id"), nullable=True),
        sa.Column("external_job_id", sa.String(), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", name="jobstatus"),
            nullable=False,
        ),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("proof_signals", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("token_usage", sa.JSON(), nullable=True),
        sa.Column("total_cost_usd", sa.Numeric(14, 6), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_research_jobs_user_id", "research_jobs", ["user_id"])
    op.create_index("ix_research_jobs_idea_id", "research_jobs", ["idea_id"])
    op.create_index("ix_research_jobs_external_job_id", "research_jobs", ["external_job_id"])

    op.create_table(
        "research_trace_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("research_jobs.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("phase", sa.String(), nullable=False),
        sa.Column("step", sa.String(), nullable=True),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("detail", sa.String(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_research_trace_events_job_id", "research_trace_events", ["job_id"])

    op.create_table(
        "keyword_cache",
        sa.Column("summary_hash", sa.String(length=64), primary_key=True),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("result", sa.JSON(), nullable=False),
        sa.Column("seeds", sa.JSON(), nullable=False),
        sa.Column("cost_estimate", sa.Float(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_keyword_cache_expires_at", "keyword_cache", ["expires_at"])


def downgrade() -> None:
    """Drop the research pipeline tables."""
    op.drop_index("ix_keyword_cache_expires_at", table_name="keyword_cache")
    op.drop_table("keyword_cache")
    op.drop_index("ix_research_trace_events_job_id", table_name="research_trace_events")
    op.drop_table("research_trace_events")
    op.drop_index("ix_research_jobs_external_job_id", table_name="research_jobs")
    op.drop_index("ix_research_jobs_idea_id", table_name="research_jobs")
    op.drop_index("ix_research_jobs_user_id", table_name="research_jobs")
    op.drop_table("research_jobs")
    op.drop_index("ix_briefs_user_id", table_name="briefs")
    op.drop_index("ix_briefs_idea_id", table_name="briefs")
    op.drop_table("briefs")
    op.drop_index("ix_ideas_user_id", table_name="ideas")
    op.drop_table("ideas")
    sa.Enum(name="jobstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="briefstatus").drop(op.get_bind(), checkfirst=True)
