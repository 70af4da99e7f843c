"""
Sources Routes
==============

API endpoints for the government pages tracked per state.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.sources import SourceRegistry
from shared.auth import AdminUser
from shared.database.postgres import get_postgres_session
from shared.models.regulatory import RegulatorySource, SourceCreate, SourceUpdate

router = APIRouter()

source_registry = SourceRegistry()


@router.get("", response_model=list[RegulatorySource])
async def list_sources(
    admin: AdminUser,
    state_id: uuid.UUID | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    db: AsyncSession = Depends(get_postgres_session),
) -> list[RegulatorySource]:
    sources = await source_registry.list_sources(
        db, state_id=state_id, include_inactive=include_inactive
    )
    return [RegulatorySource.model_validate(s) for s in sources]


@router.post("", response_model=RegulatorySource, status_code=status.HTTP_201_CREATED)
async def create_source(
    payload: SourceCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> RegulatorySource:
    source = await source_registry.create_source(
        db,
        state_id=payload.state_id,
        source_name=payload.source_name,
        source_url=str(payload.source_url),
        check_frequency_days=payload.check_frequency_days,
    )
    return RegulatorySource.model_validate(source)


@router.patch("/{source_id}", response_model=RegulatorySource)
async def update_source(
    source_id: uuid.UUID,
    payload: SourceUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> RegulatorySource:
    changes = payload.model_dump(exclude_none=True)
    if "source_url" in changes:
        changes["source_url"] = str(changes["source_url"])
    source = await source_registry.update_source(db, source_id, changes)
    return RegulatorySource.model_validate(source)


@router.delete("/{source_id}", response_model=RegulatorySource)
async def deactivate_source(
    source_id: uuid.UUID,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
) -> RegulatorySource:
    """Stop tracking a source. The row and its check history are kept."""
    source = await source_registry.deactivate_source(db, source_id)
    return RegulatorySource.model_validate(source)
