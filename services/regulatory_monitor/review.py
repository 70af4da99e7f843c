"""
Suggestion Review Workflow
==========================

Admin review of AI rule change suggestions.

State machine: pending -> approved | rejected. Both outcomes are terminal.

Approval effects by change type:
- new: insert a version-1 active rule (`created` audit entry)
- update: overlay non-null suggested fields on the target rule (`updated`)
- deprecate: deactivate the target rule (`deactivated`, reason defaults to
  the AI reasoning)

Rejection touches only the suggestion itself.

Version: 0.1.0
"""

import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.analyzer import DEFAULT_CATEGORY
from services.regulatory_monitor.exceptions import (
    InvalidSuggestionError,
    NotFoundError,
    SuggestionAlreadyReviewedError,
)
from services.regulatory_monitor.rules import RuleEditor
from services.regulatory_monitor.suggestions import SuggestionStore, default_validation_prompt
from shared.database.models import (
    ChangeType,
    ComplianceRuleModel,
    RuleAuditLogModel,
    RuleChangeSuggestionModel,
    RuleSourceType,
    SuggestionStatus,
)
from shared.database.postgres import utcnow
from shared.logging import get_logger


logger = get_logger(__name__)


@dataclass
class ReviewOutcome:
    """Result of reviewing one suggestion."""

    suggestion: RuleChangeSuggestionModel
    rule: ComplianceRuleModel | None = None
    audit_entry: RuleAuditLogModel | None = None


class ReviewService:
    """Approves and rejects suggestions."""

    def __init__(
        self,
        editor: RuleEditor | None = None,
        store: SuggestionStore | None = None,
    ) -> None:
        self.editor = editor or RuleEditor()
        self.store = store or SuggestionStore()

    async def _pending(
        self,
        db: AsyncSession,
        suggestion_id: uuid.UUID,
    ) -> RuleChangeSuggestionModel:
        suggestion = await self.store.get(db, suggestion_id)
        if SuggestionStatus(suggestion.status) != SuggestionStatus.PENDING:
            raise SuggestionAlreadyReviewedError(
                f"Suggestion {suggestion_id} is already {SuggestionStatus(suggestion.status).value}"
            )
        return suggestion

    @staticmethod
    def _mark(
        suggestion: RuleChangeSuggestionModel,
        status: SuggestionStatus,
        reviewer_id: uuid.UUID,
        notes: str | None,
    ) -> None:
        suggestion.status = status
        suggestion.reviewed_by = reviewer_id
        suggestion.reviewed_at = utcnow()
        suggestion.review_notes = notes

    @staticmethod
    def _suggested_fields(suggestion: RuleChangeSuggestionModel) -> dict:
        return {
            "name": suggestion.suggested_name,
            "description": suggestion.suggested_description,
            "category": suggestion.suggested_category,
            "severity": suggestion.suggested_severity,
            "citation": suggestion.suggested_citation,
            "source_url": suggestion.suggested_source_url,
            "validation_prompt": suggestion.suggested_validation_prompt,
        }

    async def approve(
        self,
        db: AsyncSession,
        suggestion_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        notes: str | None = None,
    ) -> ReviewOutcome:
        """
        Approve a pending suggestion and apply it to the rule set.

        Raises:
            NotFoundError: unknown suggestion or vanished target rule
            SuggestionAlreadyReviewedError: suggestion not pending
            InvalidSuggestionError: update/deprecate without a target rule
            RuleVersionConflictError: target rule changed concurrently
        """
        suggestion = await self._pending(db, suggestion_id)
        change_type = ChangeType(suggestion.change_type)
        reason = notes or suggestion.ai_reasoning

        if change_type != ChangeType.NEW and suggestion.existing_rule_id is None:
            raise InvalidSuggestionError(
                f"{change_type.value} suggestion {suggestion_id} has no existing rule to apply to"
            )

        try:
            if change_type == ChangeType.NEW:
                fields = self._suggested_fields(suggestion)
                fields["severity"] = fields["severity"] or "warning"
                fields["category"] = fields["category"] or DEFAULT_CATEGORY
                fields["validation_prompt"] = fields["validation_prompt"] or default_validation_prompt(
                    suggestion.suggested_description
                )
                fields["source_type"] = RuleSourceType.REGULATORY
                rule, entry = await self.editor.create_rule(
                    db,
                    state_id=suggestion.state_id,
                    values=fields,
                    changed_by=reviewer_id,
                    change_reason=reason,
                    suggestion_id=suggestion.id,
                )
            elif change_type == ChangeType.UPDATE:
                rule, entry = await self.editor.update_rule(
                    db,
                    rule_id=suggestion.existing_rule_id,
                    changes=self._suggested_fields(suggestion),
                    changed_by=reviewer_id,
                    change_reason=reason,
                    suggestion_id=suggestion.id,
                )
            else:
                rule, entry = await self.editor.set_active(
                    db,
                    rule_id=suggestion.existing_rule_id,
                    is_active=False,
                    changed_by=reviewer_id,
                    change_reason=reason,
                    suggestion_id=suggestion.id,
                )
        except NotFoundError as e:
            raise InvalidSuggestionError(e.message) from e

        self._mark(suggestion, SuggestionStatus.APPROVED, reviewer_id, notes)
        await db.flush()

        logger.info(
            "suggestion_approved",
            suggestion_id=str(suggestion.id),
            change_type=change_type.value,
            rule_id=str(rule.id),
            rule_version=rule.version,
        )
        return ReviewOutcome(suggestion=suggestion, rule=rule, audit_entry=entry)

    async def reject(
        self,
        db: AsyncSession,
        suggestion_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        notes: str | None = None,
    ) -> ReviewOutcome:
        """Reject a pending suggestion. Rules and the audit log are untouched."""
        suggestion = await self._pending(db, suggestion_id)
        self._mark(suggestion, SuggestionStatus.REJECTED, reviewer_id, notes)
        await db.flush()

        logger.info("suggestion_rejected", suggestion_id=str(suggestion.id))
        return ReviewOutcome(suggestion=suggestion)
