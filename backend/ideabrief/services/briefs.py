"""
Brief aggregation: merge research output into the persisted brief and move
the owning idea along.

Content is always deep-merged so fields written by earlier analysis steps
survive later ones; a brief is never overwritten wholesale.
"""
from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.brief import Brief, BriefStatus
from ..models.idea import Idea

logger = logging.getLogger(__name__)


def deep_merge(base: Mapping[str, Any] | None, patch: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a new dict with `patch` merged into `base`.

    Nested mappings merge recursively; any other value in `patch` (lists
    included) replaces the value in `base`. Neither input is mutated.
    """
    merged: Dict[str, Any] = copy.deepcopy(dict(base or {}))
    for key, value in patch.items():
        existing = merged.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def proof_signal_patch(
    proof_signals: Any,
    *,
    summary: str | None = None,
    market_stage: str | None = None,
    disclaimer: str | None = None,
) -> Dict[str, Any]:
    """Brief content fields contributed by a completed research job."""
    patch: Dict[str, Any] = {"proofSignals": proof_signals or []}
    if summary is not None:
        patch["proofSignalSummary"] = summary
    if market_stage is not None:
        patch["proofSignalStage"] = market_stage
    if disclaimer is not None:
        patch["proofSignalDisclaimer"] = disclaimer
    return patch


def find_draft_brief(db: Session, idea_id: UUID, user_id: str) -> Optional[Brief]:
    return (
        db.query(Brief)
        .filter(
            Brief.idea_id == idea_id,
            Brief.user_id == user_id,
            Brief.status == BriefStatus.DRAFT,
        )
        .order_by(Brief.created_at.desc())
        .first()
    )


def merge_into_draft_brief(
    db: Session,
    idea_id: UUID,
    user_id: str,
    patch: Mapping[str, Any],
) -> Optional[Brief]:
    """
    Deep-merge `patch` into the idea's draft brief and mark it completed.

    Returns None when no draft exists. Flushes but does not commit.
    """
    brief = find_draft_brief(db, idea_id, user_id)
    if brief is None:
        logger.info(
            "No draft brief to merge research into",
            extra={"idea_id": str(idea_id), "user_id": user_id, "step": "brief_merge"},
        )
        return None

    now = datetime.utcnow()
    brief.content = deep_merge(brief.content, patch)
    brief.status = BriefStatus.COMPLETED
    brief.completed_at = now
    if brief.created_at is not None:
        brief.generation_time_ms = int((now - brief.created_at).total_seconds() * 1000)
    db.add(brief)
    db.flush()
    return brief


def set_idea_status(db: Session, idea_id: UUID, user_id: str, status: str) -> int:
    """Owner-scoped idea status update; returns the number of rows touched."""
    updated = (
        db.query(Idea)
        .filter(Idea.id == idea_id, Idea.user_id == user_id)
        .update(
            {Idea.status: status, Idea.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    db.flush()
    return updated


def close_draft_brief(db: Session, idea_id: UUID, user_id: str) -> Optional[Brief]:
    """
    Finalise the draft brief as `completed_with_warnings` without touching its
    content, so partial results stay visible after a research failure.
    """
    brief = find_draft_brief(db, idea_id, user_id)
    if brief is None:
        return None
    brief.status = BriefStatus.COMPLETED_WITH_WARNINGS
    brief.completed_at = datetime.utcnow()
    db.add(brief)
    db.flush()
    return brief
