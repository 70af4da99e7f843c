"""
Audit Routes
============

Read-only access to the rule audit log.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.rules import RuleEditor
from shared.auth import AdminUser
from shared.database.models import AuditAction
from shared.database.postgres import get_postgres_session
from shared.models.regulatory import AuditEntry

router = APIRouter()

rule_editor = RuleEditor()


@router.get("", response_model=list[AuditEntry])
async def list_audit_entries(
    admin: AdminUser,
    state_id: uuid.UUID | None = Query(default=None),
    rule_id: uuid.UUID | None = Query(default=None),
    action: AuditAction | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_postgres_session),
) -> list[AuditEntry]:
    entries = await rule_editor.list_audit(
        db, state_id=state_id, rule_id=rule_id, action=action, limit=limit, offset=offset
    )
    return [AuditEntry.model_validate(e) for e in entries]
