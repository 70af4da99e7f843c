"""
Custom Rules Routes
===================

API endpoints for a user's internal (SOP) rules.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.label_compliance.workflow import CustomRuleService
from shared.auth import CurrentUser
from shared.database.postgres import get_postgres_session
from shared.models.compliance import CustomRule, CustomRuleCreate, CustomRuleUpdate

router = APIRouter()

custom_rule_service = CustomRuleService()


@router.get("", response_model=list[CustomRule])
async def list_custom_rules(
    user: CurrentUser,
    active_only: bool = Query(default=False),
    db: AsyncSession = Depends(get_postgres_session),
) -> list[CustomRule]:
    rules = await custom_rule_service.list_rules(db, user.id, active_only=active_only)
    return [CustomRule.model_validate(r) for r in rules]


@router.post("", response_model=CustomRule, status_code=status.HTTP_201_CREATED)
async def create_custom_rule(
    payload: CustomRuleCreate,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> CustomRule:
    rule = await custom_rule_service.create_rule(db, user.id, payload.name, payload.description)
    return CustomRule.model_validate(rule)


@router.patch("/{rule_id}", response_model=CustomRule)
async def update_custom_rule(
    rule_id: uuid.UUID,
    payload: CustomRuleUpdate,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> CustomRule:
    rule = await custom_rule_service.update_rule(
        db,
        user.id,
        rule_id,
        payload.model_dump(exclude_none=True),
    )
    return CustomRule.model_validate(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_custom_rule(
    rule_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> Response:
    await custom_rule_service.delete_rule(db, user.id, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
