"""
Regulatory Check Routes
=======================

Admin-triggered regulatory checks: the scrape-and-diff batch over tracked
sources, and the three web-search deep checks for one state.

Version: 0.1.0
"""

from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.change_detection import RegulatoryCheckRunner
from services.regulatory_monitor.search import RegulatorySearchService
from shared.auth import AdminUser
from shared.database.postgres import get_postgres_session
from shared.llm import LLMError
from shared.logging import get_logger
from shared.models.regulatory import (
    RegulationCheckRequest,
    RegulationCheckResponse,
    SearchCheckRequest,
)

logger = get_logger(__name__)

router = APIRouter()

_search_service: RegulatorySearchService | None = None


async def get_runner() -> AsyncGenerator[RegulatoryCheckRunner, None]:
    """A fresh runner per batch; its fetcher client is closed afterwards."""
    runner = RegulatoryCheckRunner()
    try:
        yield runner
    finally:
        await runner.close()


def get_search_service() -> RegulatorySearchService:
    global _search_service
    if _search_service is None:
        _search_service = RegulatorySearchService()
    return _search_service


@router.post("/regulations", response_model=RegulationCheckResponse)
async def check_regulations(
    admin: AdminUser,
    payload: RegulationCheckRequest | None = None,
    db: AsyncSession = Depends(get_postgres_session),
    runner: RegulatoryCheckRunner = Depends(get_runner),
) -> dict[str, Any]:
    """
    Scrape every active source (optionally for one state) and queue
    suggestions for sources whose content changed.

    Per-source failures are reported in `results`; only a missing scrape or
    AI key fails the whole request.
    """
    payload = payload or RegulationCheckRequest()
    sources = await runner.load_sources(db, state_id=payload.state_id)
    batch = await runner.check_sources(db, sources, force=payload.force)
    return batch.to_dict()


@router.post("/groq")
async def check_with_groq(
    payload: SearchCheckRequest,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: RegulatorySearchService = Depends(get_search_service),
) -> Any:
    """
    Groq compound deep check.

    Failures answer 500 with `fallbackRecommended` so the caller can switch
    to another search variant.
    """
    try:
        return await service.run_groq(db, payload.state_id, source_url=payload.source_url)
    except LLMError as e:
        logger.error("groq_check_failed", state_id=str(payload.state_id), error=e.message)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": e.message, "fallbackRecommended": True},
        )


@router.post("/openai")
async def check_with_openai(
    payload: SearchCheckRequest,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: RegulatorySearchService = Depends(get_search_service),
) -> dict[str, Any]:
    """OpenAI web search deep check."""
    return await service.run_openai(db, payload.state_id)


@router.post("/perplexity")
async def check_with_perplexity(
    payload: SearchCheckRequest,
    admin: AdminUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: RegulatorySearchService = Depends(get_search_service),
) -> dict[str, Any]:
    """Perplexity search followed by a structuring call."""
    return await service.run_perplexity(db, payload.state_id)
