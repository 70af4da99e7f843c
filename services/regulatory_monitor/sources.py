"""
States and Regulatory Sources
=============================

Admin management of jurisdictions and the government pages tracked for them.
Sources are deactivated, never deleted; their digest and check timestamps
belong to the check pipeline and cannot be edited here.

Version: 0.1.0
"""

import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.citations import is_valid_url
from services.regulatory_monitor.exceptions import NotFoundError, RegulatoryMonitorError
from shared.database.models import RegulatorySourceModel, StateModel
from shared.logging import get_logger


logger = get_logger(__name__)

STATE_FIELDS = frozenset({"name", "abbreviation", "is_enabled"})
SOURCE_FIELDS = frozenset({"source_name", "source_url", "check_frequency_days", "is_active"})


def _only(changes: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    unknown = set(changes) - allowed
    if unknown:
        raise RegulatoryMonitorError(f"Fields not editable: {', '.join(sorted(unknown))}")
    return {k: v for k, v in changes.items() if v is not None}


class StateRegistry:
    """CRUD for `states`."""

    async def list_states(self, db: AsyncSession, enabled_only: bool = False) -> list[StateModel]:
        query = select(StateModel)
        if enabled_only:
            query = query.where(StateModel.is_enabled.is_(True))
        result = await db.execute(query.order_by(StateModel.name))
        return list(result.scalars().all())

    async def get_state(self, db: AsyncSession, state_id: uuid.UUID) -> StateModel:
        state = await db.get(StateModel, state_id)
        if state is None:
            raise NotFoundError(f"State {state_id} not found")
        return state

    async def _ensure_unique(
        self,
        db: AsyncSession,
        name: str | None,
        abbreviation: str | None,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        conditions = []
        if name:
            conditions.append(func.lower(StateModel.name) == name.lower())
        if abbreviation:
            conditions.append(StateModel.abbreviation == abbreviation)
        for condition in conditions:
            query = select(StateModel.id).where(condition)
            if exclude_id is not None:
                query = query.where(StateModel.id != exclude_id)
            if (await db.execute(query)).first() is not None:
                raise RegulatoryMonitorError("A state with this name or abbreviation already exists")

    async def create_state(
        self,
        db: AsyncSession,
        name: str,
        abbreviation: str,
        is_enabled: bool = False,
    ) -> StateModel:
        abbreviation = abbreviation.strip().upper()
        await self._ensure_unique(db, name, abbreviation)

        state = StateModel(name=name.strip(), abbreviation=abbreviation, is_enabled=is_enabled)
        db.add(state)
        await db.flush()
        logger.info("state_created", state_id=str(state.id), abbreviation=abbreviation)
        return state

    async def update_state(
        self,
        db: AsyncSession,
        state_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> StateModel:
        state = await self.get_state(db, state_id)
        fields = _only(changes, STATE_FIELDS)
        if "abbreviation" in fields:
            fields["abbreviation"] = fields["abbreviation"].strip().upper()
        await self._ensure_unique(db, fields.get("name"), fields.get("abbreviation"), state.id)

        for key, value in fields.items():
            setattr(state, key, value)
        await db.flush()
        logger.info("state_updated", state_id=str(state.id), fields=sorted(fields))
        return state


class SourceRegistry:
    """CRUD for `regulatory_sources`."""

    async def list_sources(
        self,
        db: AsyncSession,
        state_id: uuid.UUID | None = None,
        include_inactive: bool = False,
    ) -> list[RegulatorySourceModel]:
        query = select(RegulatorySourceModel)
        if state_id is not None:
            query = query.where(RegulatorySourceModel.state_id == state_id)
        if not include_inactive:
            query = query.where(RegulatorySourceModel.is_active.is_(True))
        result = await db.execute(query.order_by(RegulatorySourceModel.source_name))
        return list(result.scalars().all())

    async def get_source(self, db: AsyncSession, source_id: uuid.UUID) -> RegulatorySourceModel:
        source = await db.get(RegulatorySourceModel, source_id)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found")
        return source

    async def create_source(
        self,
        db: AsyncSession,
        state_id: uuid.UUID,
        source_name: str,
        source_url: str,
        check_frequency_days: int = 7,
    ) -> RegulatorySourceModel:
        if await db.get(StateModel, state_id) is None:
            raise NotFoundError(f"State {state_id} not found")
        if not is_valid_url(source_url):
            raise RegulatoryMonitorError(f"Invalid source URL: {source_url}")
        if check_frequency_days < 1:
            raise RegulatoryMonitorError("check_frequency_days must be at least 1")

        source = RegulatorySourceModel(
            state_id=state_id,
            source_name=source_name,
            source_url=source_url,
            check_frequency_days=check_frequency_days,
            is_active=True,
        )
        db.add(source)
        await db.flush()
        await db.refresh(source)
        logger.info("source_created", source_id=str(source.id), state_id=str(state_id))
        return source

    async def update_source(
        self,
        db: AsyncSession,
        source_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> RegulatorySourceModel:
        source = await self.get_source(db, source_id)
        fields = _only(changes, SOURCE_FIELDS)
        if "source_url" in fields and not is_valid_url(fields["source_url"]):
            raise RegulatoryMonitorError(f"Invalid source URL: {fields['source_url']}")
        if fields.get("check_frequency_days", 1) < 1:
            raise RegulatoryMonitorError("check_frequency_days must be at least 1")

        for key, value in fields.items():
            setattr(source, key, value)
        await db.flush()
        logger.info("source_updated", source_id=str(source.id), fields=sorted(fields))
        return source

    async def deactivate_source(
        self,
        db: AsyncSession,
        source_id: uuid.UUID,
    ) -> RegulatorySourceModel:
        return await self.update_source(db, source_id, {"is_active": False})
