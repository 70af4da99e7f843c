"""
Suggestion Store
================

Persists candidate rule changes as pending suggestions.

A candidate is skipped when its state already has a pending suggestion with
the same name, so repeated checks against noisy pages do not re-queue it.

Version: 0.1.0
"""

import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.analyzer import CandidateChange, RuleContext
from services.regulatory_monitor.exceptions import NotFoundError
from shared.database.models import (
    ChangeType,
    ComplianceRuleModel,
    RuleChangeSuggestionModel,
    SuggestionStatus,
)
from shared.logging import get_logger


logger = get_logger(__name__)


def default_validation_prompt(description: str) -> str:
    return f"Verify compliance with: {description}"


async def load_rule_context(db: AsyncSession, state_id: uuid.UUID) -> list[RuleContext]:
    """Active rules of a state, in the shape shown to the analyzer."""
    result = await db.execute(
        select(ComplianceRuleModel)
        .where(
            ComplianceRuleModel.state_id == state_id,
            ComplianceRuleModel.is_active.is_(True),
        )
        .order_by(ComplianceRuleModel.category, ComplianceRuleModel.name)
    )
    return [RuleContext.from_model(rule) for rule in result.scalars().all()]


def resolve_existing_rule(
    candidate: CandidateChange,
    rules: Sequence[RuleContext],
) -> uuid.UUID | None:
    """
    Find the live rule a candidate targets.

    An explicit id wins when it belongs to the state; otherwise the rule is
    matched by name, case-insensitively. New rules never target one.
    """
    if candidate.change_type == ChangeType.NEW:
        return None

    ids = {rule.id for rule in rules}
    if candidate.existing_rule_id in ids:
        return candidate.existing_rule_id

    by_name = {rule.name.strip().lower(): rule.id for rule in rules}
    for name in (candidate.existing_rule_name, candidate.suggested_name):
        if name and name.strip().lower() in by_name:
            return by_name[name.strip().lower()]
    return None


class SuggestionStore:
    """Creates and lists rule change suggestions."""

    async def pending_names(self, db: AsyncSession, state_id: uuid.UUID) -> set[str]:
        result = await db.execute(
            select(RuleChangeSuggestionModel.suggested_name).where(
                RuleChangeSuggestionModel.state_id == state_id,
                RuleChangeSuggestionModel.status == SuggestionStatus.PENDING,
            )
        )
        return set(result.scalars().all())

    async def store_candidates(
        self,
        db: AsyncSession,
        state_id: uuid.UUID,
        candidates: Sequence[CandidateChange],
        source_id: uuid.UUID | None = None,
        existing_rules: Sequence[RuleContext] | None = None,
    ) -> int:
        """
        Insert candidates as pending suggestions.

        Args:
            db: Database session
            state_id: State the candidates belong to
            candidates: Parsed candidate changes
            source_id: Regulatory source that produced them, if any
            existing_rules: Active rules used to resolve targets (loaded when omitted)

        Returns:
            Number of suggestions created
        """
        if not candidates:
            return 0

        if existing_rules is None:
            existing_rules = await load_rule_context(db, state_id)

        pending = await self.pending_names(db, state_id)
        rows: list[RuleChangeSuggestionModel] = []

        for candidate in candidates:
            if candidate.suggested_name in pending:
                logger.info(
                    "suggestion_skipped_duplicate",
                    state_id=str(state_id),
                    suggested_name=candidate.suggested_name,
                )
                continue

            existing_rule_id = resolve_existing_rule(candidate, existing_rules)
            if candidate.change_type != ChangeType.NEW and existing_rule_id is None:
                # Kept for review; approval will refuse it until a target exists
                logger.warning(
                    "suggestion_target_unresolved",
                    state_id=str(state_id),
                    suggested_name=candidate.suggested_name,
                    change_type=candidate.change_type.value,
                )

            rows.append(
                RuleChangeSuggestionModel(
                    state_id=state_id,
                    source_id=source_id,
                    existing_rule_id=existing_rule_id,
                    change_type=candidate.change_type,
                    suggested_name=candidate.suggested_name,
                    suggested_description=candidate.suggested_description,
                    suggested_category=candidate.suggested_category,
                    suggested_severity=candidate.suggested_severity,
                    suggested_citation=candidate.suggested_citation,
                    suggested_source_url=candidate.suggested_source_url,
                    suggested_validation_prompt=candidate.suggested_validation_prompt
                    or default_validation_prompt(candidate.suggested_description),
                    ai_reasoning=candidate.ai_reasoning,
                    source_excerpt=candidate.source_excerpt,
                    status=SuggestionStatus.PENDING,
                )
            )
            pending.add(candidate.suggested_name)

        # Rows join the session together so a failure above adds nothing
        db.add_all(rows)
        await db.flush()
        created = len(rows)

        logger.info(
            "suggestions_stored",
            state_id=str(state_id),
            source_id=str(source_id) if source_id else None,
            candidates=len(candidates),
            created=created,
        )
        return created

    async def list_suggestions(
        self,
        db: AsyncSession,
        state_id: uuid.UUID | None = None,
        status: SuggestionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RuleChangeSuggestionModel]:
        """Suggestions newest first, optionally filtered by state and status."""
        query = select(RuleChangeSuggestionModel)
        if state_id is not None:
            query = query.where(RuleChangeSuggestionModel.state_id == state_id)
        if status is not None:
            query = query.where(RuleChangeSuggestionModel.status == status)
        query = (
            query.order_by(RuleChangeSuggestionModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get(
        self,
        db: AsyncSession,
        suggestion_id: uuid.UUID,
    ) -> RuleChangeSuggestionModel:
        suggestion = await db.get(RuleChangeSuggestionModel, suggestion_id)
        if suggestion is None:
            raise NotFoundError(f"Suggestion {suggestion_id} not found")
        return suggestion
