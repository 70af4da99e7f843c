"""
Rule Editor
===========

Versioned mutations of the live rule set.

Every mutation increments `version` through a conditional UPDATE on the
version the caller read, so two concurrent writers cannot both succeed, and
appends exactly one audit log entry carrying before/after snapshots. The
review workflow and the manual editor share these operations.

Version: 0.1.0
"""

import uuid
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.exceptions import (
    NotFoundError,
    RegulatoryMonitorError,
    RuleVersionConflictError,
)
from shared.database.models import (
    ALL_PRODUCT_TYPES,
    AuditAction,
    ComplianceRuleModel,
    RuleAuditLogModel,
    RuleSourceType,
    Severity,
    StateModel,
)
from shared.database.postgres import utcnow
from shared.logging import get_logger


logger = get_logger(__name__)


EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "category",
        "severity",
        "citation",
        "source_url",
        "source_type",
        "product_types",
        "validation_prompt",
    }
)


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    """Keep editable columns and normalise enum-valued ones."""
    unknown = set(values) - EDITABLE_FIELDS
    if unknown:
        raise RegulatoryMonitorError(f"Unknown rule fields: {', '.join(sorted(unknown))}")

    coerced = dict(values)
    try:
        if coerced.get("severity") is not None:
            coerced["severity"] = Severity(coerced["severity"])
        if coerced.get("source_type") is not None:
            coerced["source_type"] = RuleSourceType(coerced["source_type"])
    except ValueError as e:
        raise RegulatoryMonitorError(str(e)) from e

    if coerced.get("product_types") is not None:
        product_types = [str(p) for p in coerced["product_types"]]
        invalid = set(product_types) - set(ALL_PRODUCT_TYPES)
        if invalid:
            raise RegulatoryMonitorError(f"Unknown product types: {', '.join(sorted(invalid))}")
        coerced["product_types"] = product_types
    return coerced


def append_audit(
    db: AsyncSession,
    action: AuditAction,
    rule_id: uuid.UUID | None,
    state_id: uuid.UUID | None,
    changed_by: uuid.UUID | None,
    change_reason: str | None = None,
    previous_version: dict[str, Any] | None = None,
    new_version: dict[str, Any] | None = None,
    suggestion_id: uuid.UUID | None = None,
) -> RuleAuditLogModel:
    """Stage one audit log row; the caller's flush persists it."""
    entry = RuleAuditLogModel(
        rule_id=rule_id,
        state_id=state_id,
        action=action,
        changed_by=changed_by,
        change_reason=change_reason,
        previous_version=previous_version,
        new_version=new_version,
        suggestion_id=suggestion_id,
    )
    db.add(entry)
    return entry


class RuleEditor:
    """CRUD over `compliance_rules` with audit logging."""

    async def get_rule(self, db: AsyncSession, rule_id: uuid.UUID) -> ComplianceRuleModel:
        rule = await db.get(ComplianceRuleModel, rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")
        return rule

    async def list_rules(
        self,
        db: AsyncSession,
        state_id: uuid.UUID | None = None,
        category: str | None = None,
        include_inactive: bool = False,
    ) -> list[ComplianceRuleModel]:
        query = select(ComplianceRuleModel)
        if state_id is not None:
            query = query.where(ComplianceRuleModel.state_id == state_id)
        if category:
            query = query.where(ComplianceRuleModel.category == category)
        if not include_inactive:
            query = query.where(ComplianceRuleModel.is_active.is_(True))
        result = await db.execute(
            query.order_by(ComplianceRuleModel.category, ComplianceRuleModel.name)
        )
        return list(result.scalars().all())

    async def create_rule(
        self,
        db: AsyncSession,
        state_id: uuid.UUID,
        values: dict[str, Any],
        changed_by: uuid.UUID | None,
        change_reason: str | None = None,
        suggestion_id: uuid.UUID | None = None,
    ) -> tuple[ComplianceRuleModel, RuleAuditLogModel]:
        """
        Insert a version-1 active rule.

        Returns:
            The rule and its `created` audit entry
        """
        if await db.get(StateModel, state_id) is None:
            raise NotFoundError(f"State {state_id} not found")

        fields = _coerce({k: v for k, v in values.items() if v is not None})
        for required in ("name", "description", "category"):
            if not fields.get(required):
                raise RegulatoryMonitorError(f"Rule {required} is required")
        fields.setdefault("validation_prompt", f"Verify compliance with: {fields['description']}")

        rule = ComplianceRuleModel(state_id=state_id, is_active=True, version=1, **fields)
        db.add(rule)
        await db.flush()
        await db.refresh(rule)

        entry = append_audit(
            db,
            AuditAction.CREATED,
            rule_id=rule.id,
            state_id=state_id,
            changed_by=changed_by,
            change_reason=change_reason,
            new_version=rule.to_dict(),
            suggestion_id=suggestion_id,
        )
        await db.flush()

        logger.info("rule_created", rule_id=str(rule.id), state_id=str(state_id), name=rule.name)
        return rule, entry

    async def _versioned_update(
        self,
        db: AsyncSession,
        rule: ComplianceRuleModel,
        values: dict[str, Any],
        expected_version: int | None,
    ) -> None:
        expected = rule.version if expected_version is None else expected_version
        if rule.version != expected:
            raise RuleVersionConflictError(
                f"Rule {rule.id} is at version {rule.version}, expected {expected}"
            )

        result = await db.execute(
            update(ComplianceRuleModel)
            .where(
                ComplianceRuleModel.id == rule.id,
                ComplianceRuleModel.version == expected,
            )
            .values(**values, version=expected + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RuleVersionConflictError(f"Rule {rule.id} was modified concurrently")
        await db.refresh(rule)

    async def update_rule(
        self,
        db: AsyncSession,
        rule_id: uuid.UUID,
        changes: dict[str, Any],
        changed_by: uuid.UUID | None,
        expected_version: int | None = None,
        change_reason: str | None = None,
        suggestion_id: uuid.UUID | None = None,
    ) -> tuple[ComplianceRuleModel, RuleAuditLogModel]:
        """
        Overlay non-null `changes` on a rule and bump its version.

        Raises:
            NotFoundError: unknown rule
            RuleVersionConflictError: rule no longer at `expected_version`
        """
        rule = await self.get_rule(db, rule_id)
        fields = _coerce({k: v for k, v in changes.items() if v is not None})
        if not fields:
            raise RegulatoryMonitorError("No rule changes supplied")

        previous = rule.to_dict()
        await self._versioned_update(db, rule, fields, expected_version)

        entry = append_audit(
            db,
            AuditAction.UPDATED,
            rule_id=rule.id,
            state_id=rule.state_id,
            changed_by=changed_by,
            change_reason=change_reason,
            previous_version=previous,
            new_version=rule.to_dict(),
            suggestion_id=suggestion_id,
        )
        await db.flush()

        logger.info(
            "rule_updated",
            rule_id=str(rule.id),
            version=rule.version,
            fields=sorted(fields),
        )
        return rule, entry

    async def set_active(
        self,
        db: AsyncSession,
        rule_id: uuid.UUID,
        is_active: bool,
        changed_by: uuid.UUID | None,
        expected_version: int | None = None,
        change_reason: str | None = None,
        suggestion_id: uuid.UUID | None = None,
    ) -> tuple[ComplianceRuleModel, RuleAuditLogModel]:
        """Soft-delete or restore a rule. Content is left unchanged."""
        rule = await self.get_rule(db, rule_id)
        previous = rule.to_dict()
        await self._versioned_update(db, rule, {"is_active": is_active}, expected_version)

        entry = append_audit(
            db,
            AuditAction.REACTIVATED if is_active else AuditAction.DEACTIVATED,
            rule_id=rule.id,
            state_id=rule.state_id,
            changed_by=changed_by,
            change_reason=change_reason,
            previous_version=previous,
            new_version=rule.to_dict(),
            suggestion_id=suggestion_id,
        )
        await db.flush()

        logger.info("rule_active_set", rule_id=str(rule.id), is_active=is_active, version=rule.version)
        return rule, entry

    async def delete_rule(
        self,
        db: AsyncSession,
        rule_id: uuid.UUID,
        changed_by: uuid.UUID | None,
        change_reason: str | None = None,
    ) -> RuleAuditLogModel:
        """Hard-delete a rule; its last snapshot survives in the audit log."""
        rule = await self.get_rule(db, rule_id)
        previous = rule.to_dict()

        entry = append_audit(
            db,
            AuditAction.DELETED,
            rule_id=rule.id,
            state_id=rule.state_id,
            changed_by=changed_by,
            change_reason=change_reason,
            previous_version=previous,
        )
        await db.flush()
        await db.delete(rule)
        await db.flush()

        logger.info("rule_deleted", rule_id=str(rule_id))
        return entry

    async def list_audit(
        self,
        db: AsyncSession,
        state_id: uuid.UUID | None = None,
        rule_id: uuid.UUID | None = None,
        action: AuditAction | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RuleAuditLogModel]:
        """Audit entries newest first."""
        query = select(RuleAuditLogModel)
        if state_id is not None:
            query = query.where(RuleAuditLogModel.state_id == state_id)
        if rule_id is not None:
            query = query.where(RuleAuditLogModel.rule_id == rule_id)
        if action is not None:
            query = query.where(RuleAuditLogModel.action == action)
        result = await db.execute(
            query.order_by(RuleAuditLogModel.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())
