"""
Rules Routes
============

API endpoints for the live rule set. Reads are open to signed-in users;
every mutation is admin-only and audit-logged.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.citations import CitationResult, resolve_citation
from services.regulatory_monitor.rules import RuleEditor
from services.regulatory_monitor.sources import StateRegistry
from shared.auth import AdminUser, CurrentUser
from shared.database.models import ComplianceRuleModel
from shared.database.postgres import get_postgres_session
from shared.models.regulatory import (
    CitationInfo,
    Rule,
    RuleActiveUpdate,
    RuleCreate,
    RuleUpdate,
)

router = APIRouter()

rule_editor = RuleEditor()
state_registry = StateRegistry()


def citation_info(result: CitationResult) -> CitationInfo:
    return CitationInfo(
        url=result.url,
        display_text=result.display_text,
        is_direct_link=result.is_direct_link,
        verification_status=result.verification_status.value,
    )


def with_citation(rule: ComplianceRuleModel, abbreviation: str | None) -> Rule:
    resolved = resolve_citation(rule.citation, abbreviation or "", rule.source_url)
    return Rule.model_validate(rule).model_copy(update={"citation_link": citation_info(resolved)})


async def _abbreviation(db: AsyncSession, state_id: uuid.UUID) -> str:
    return (await state_registry.get_state(db, state_id)).abbreviation


@router.get("", response_model=list[Rule])
async def list_rules(
    user: CurrentUser,
    state_id: uuid.UUID | None = Query(default=None),
    category: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    db: AsyncSession = Depends(get_postgres_session),
) -> list[Rule]:
    """Rules with their citation links resolved."""
    rules = await rule_editor.list_rules(
        db, state_id=state_id, category=category, include_inactive=include_inactive
    )
    abbreviations = {s.id: s.abbreviation for s in await state_registry.list_states(db)}
    return [with_citation(r, abbreviations.get(r.state_id)) for r in rules]


@router.post("", response_model=Rule, status_code=status.HTTP_201_CREATED)
async def create_rule(
    payload: RuleCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> Rule:
    abbreviation = await _abbreviation(db, payload.state_id)
    values = payload.model_dump(exclude={"state_id", "change_reason"}, mode="json")
    rule, _ = await rule_editor.create_rule(
        db,
        state_id=payload.state_id,
        values=values,
        changed_by=admin.id,
        change_reason=payload.change_reason,
    )
    return with_citation(rule, abbreviation)


@router.get("/{rule_id}", response_model=Rule)
async def get_rule(
    rule_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> Rule:
    rule = await rule_editor.get_rule(db, rule_id)
    return with_citation(rule, await _abbreviation(db, rule.state_id))


@router.get("/{rule_id}/citation", response_model=CitationInfo)
async def get_rule_citation(
    rule_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> CitationInfo:
    """Resolve a rule's citation to a direct or search link."""
    rule = await rule_editor.get_rule(db, rule_id)
    abbreviation = await _abbreviation(db, rule.state_id)
    return citation_info(resolve_citation(rule.citation, abbreviation, rule.source_url))


@router.patch("/{rule_id}", response_model=Rule)
async def update_rule(
    rule_id: uuid.UUID,
    payload: RuleUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> Rule:
    """
    Edit a rule.

    Send `expected_version` to fail with 409 when someone else changed the
    rule since it was read.
    """
    rule, _ = await rule_editor.update_rule(
        db,
        rule_id=rule_id,
        changes=payload.changes(),
        changed_by=admin.id,
        expected_version=payload.expected_version,
        change_reason=payload.change_reason,
    )
    return with_citation(rule, await _abbreviation(db, rule.state_id))


@router.patch("/{rule_id}/active", response_model=Rule)
async def set_rule_active(
    rule_id: uuid.UUID,
    payload: RuleActiveUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> Rule:
    rule, _ = await rule_editor.set_active(
        db,
        rule_id=rule_id,
        is_active=payload.is_active,
        changed_by=admin.id,
        expected_version=payload.expected_version,
        change_reason=payload.change_reason,
    )
    return with_citation(rule, await _abbreviation(db, rule.state_id))


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: uuid.UUID,
    admin: AdminUser,
    change_reason: str | None = Query(default=None),
    db: AsyncSession = Depends(get_postgres_session),
) -> Response:
    await rule_editor.delete_rule(db, rule_id, changed_by=admin.id, change_reason=change_reason)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
