"""
Suggestions Routes
==================

API endpoints for reviewing AI-proposed rule changes.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.review import ReviewOutcome, ReviewService
from shared.auth import AdminUser
from shared.database.models import SuggestionStatus
from shared.database.postgres import get_postgres_session
from shared.models.regulatory import (
    ReviewRequest,
    ReviewResponse,
    Rule,
    RuleChangeSuggestion,
)

router = APIRouter()

review_service = ReviewService()


def review_response(outcome: ReviewOutcome) -> ReviewResponse:
    return ReviewResponse(
        suggestion=RuleChangeSuggestion.model_validate(outcome.suggestion),
        rule=Rule.model_validate(outcome.rule) if outcome.rule is not None else None,
        audit_entry_id=outcome.audit_entry.id if outcome.audit_entry is not None else None,
    )


@router.get("", response_model=list[RuleChangeSuggestion])
async def list_suggestions(
    admin: AdminUser,
    state_id: uuid.UUID | None = Query(default=None),
    status: SuggestionStatus | None = Query(default=SuggestionStatus.PENDING),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_postgres_session),
) -> list[RuleChangeSuggestion]:
    """Suggestions newest first; pending only unless another status is asked for."""
    suggestions = await review_service.store.list_suggestions(
        db, state_id=state_id, status=status, limit=limit, offset=offset
    )
    return [RuleChangeSuggestion.model_validate(s) for s in suggestions]


@router.get("/{suggestion_id}", response_model=RuleChangeSuggestion)
async def get_suggestion(
    suggestion_id: uuid.UUID,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> RuleChangeSuggestion:
    return RuleChangeSuggestion.model_validate(await review_service.store.get(db, suggestion_id))


@router.post("/{suggestion_id}/approve", response_model=ReviewResponse)
async def approve_suggestion(
    suggestion_id: uuid.UUID,
    admin: AdminUser,
    payload: ReviewRequest | None = None,
    db: AsyncSession = Depends(get_postgres_session),
) -> ReviewResponse:
    """
    Apply a suggestion to the rule set.

    A suggestion that was already reviewed, or whose target rule changed
    meanwhile, answers 409.
    """
    outcome = await review_service.approve(
        db, suggestion_id, reviewer_id=admin.id, notes=payload.notes if payload else None
    )
    return review_response(outcome)


@router.post("/{suggestion_id}/reject", response_model=ReviewResponse)
async def reject_suggestion(
    suggestion_id: uuid.UUID,
    admin: AdminUser,
    payload: ReviewRequest | None = None,
    db: AsyncSession = Depends(get_postgres_session),
) -> ReviewResponse:
    outcome = await review_service.reject(
        db, suggestion_id, reviewer_id=admin.id, notes=payload.notes if payload else None
    )
    return review_response(outcome)
