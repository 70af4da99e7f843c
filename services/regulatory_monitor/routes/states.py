"""
States Routes
=============

API endpoints for the jurisdictions labels can be checked against.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.sources import StateRegistry
from shared.auth import AdminUser, CurrentUser
from shared.database.postgres import get_postgres_session
from shared.models.regulatory import State, StateCreate, StateUpdate

router = APIRouter()

state_registry = StateRegistry()


@router.get("", response_model=list[State])
async def list_states(
    user: CurrentUser,
    enabled_only: bool = Query(default=False, description="Only states open for checks"),
    db: AsyncSession = Depends(get_postgres_session),
) -> list[State]:
    states = await state_registry.list_states(db, enabled_only=enabled_only)
    return [State.model_validate(s) for s in states]


@router.post("", response_model=State, status_code=status.HTTP_201_CREATED)
async def create_state(
    payload: StateCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> State:
    state = await state_registry.create_state(
        db,
        name=payload.name,
        abbreviation=payload.abbreviation,
        is_enabled=payload.is_enabled,
    )
    return State.model_validate(state)


@router.patch("/{state_id}", response_model=State)
async def update_state(
    state_id: uuid.UUID,
    payload: StateUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> State:
    """Rename a state or toggle whether it is enabled."""
    state = await state_registry.update_state(db, state_id, payload.model_dump(exclude_none=True))
    return State.model_validate(state)
