"""
Checks Routes
=============

API endpoints for label compliance checks: sessions, panel uploads,
scoring, history, dashboard stats and reports.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.label_compliance.workflow import ComplianceCheckService
from shared.auth import CurrentUser
from shared.database.postgres import get_postgres_session
from shared.models.compliance import (
    CheckCreate,
    CheckStats,
    CheckSummary,
    ComplianceCheck,
    ComplianceCheckDetail,
    PanelCreate,
    PanelUpload,
    Report,
    ScoreResponse,
)


router = APIRouter()

_service: ComplianceCheckService | None = None


def get_check_service() -> ComplianceCheckService:
    """Process-wide check workflow; overridden in tests."""
    global _service
    if _service is None:
        _service = ComplianceCheckService()
    return _service


@router.get("", response_model=list[ComplianceCheck])
async def list_checks(
    user: CurrentUser,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> list[ComplianceCheck]:
    """Check history for the current user, newest first."""
    checks = await service.list_checks(db, user.id, limit=limit, offset=offset)
    return [ComplianceCheck.model_validate(c) for c in checks]


@router.post("", response_model=ComplianceCheck, status_code=status.HTTP_201_CREATED)
async def create_check(
    payload: CheckCreate,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> ComplianceCheck:
    """Open a new check session for a state and product type."""
    check = await service.create_check(
        db,
        user.id,
        state_id=payload.state_id,
        product_type=payload.product_type,
        product_name=payload.product_name,
        custom_rule_ids=payload.custom_rule_ids,
    )
    return ComplianceCheck.model_validate(check)


@router.get("/stats", response_model=CheckStats)
async def check_stats(
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> CheckStats:
    return CheckStats(**await service.stats(db, user.id))


@router.get("/{check_id}", response_model=ComplianceCheckDetail)
async def get_check(
    check_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> ComplianceCheckDetail:
    """Check with its panels and per-rule results."""
    check = await service.get_check(db, user.id, check_id)
    return ComplianceCheckDetail.model_validate(check)


@router.delete("/{check_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_check(
    check_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> Response:
    await service.delete_check(db, user.id, check_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{check_id}/panels",
    response_model=PanelUpload,
    status_code=status.HTTP_201_CREATED,
)
async def upload_panel(
    check_id: uuid.UUID,
    payload: PanelCreate,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> PanelUpload:
    """
    Upload one label panel and extract its fields.

    The stored extraction carries `flaggedForReview` and `reviewReasons`
    when any confidence score is low; flagged panels still count.
    """
    panel = await service.add_panel(
        db,
        user.id,
        check_id,
        panel_type=payload.panel_type,
        image_data_url=payload.image_base64,
    )
    return PanelUpload.model_validate(panel)


@router.post("/{check_id}/score", response_model=ScoreResponse)
async def score_check(
    check_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> ScoreResponse:
    """Score every applicable rule against the uploaded panels."""
    check, summary = await service.score_check(db, user.id, check_id)
    return ScoreResponse(
        check=ComplianceCheckDetail.model_validate(check),
        summary=CheckSummary(**summary.to_dict()),
    )


@router.get("/{check_id}/reports", response_model=list[Report])
async def list_reports(
    check_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> list[Report]:
    check = await service.get_check(db, user.id, check_id)
    reports = []
    for report in sorted(check.reports, key=lambda r: r.created_at, reverse=True):
        links = await service.report_links(user.id, report)
        reports.append(Report.model_validate(report).model_copy(update=links))
    return reports


@router.post(
    "/{check_id}/reports",
    response_model=Report,
    status_code=status.HTTP_201_CREATED,
)
async def generate_report(
    check_id: uuid.UUID,
    user: CurrentUser,
    db: AsyncSession = Depends(get_postgres_session),
    service: ComplianceCheckService = Depends(get_check_service),
) -> Report:
    """Render CSV and PDF reports for a scored check."""
    report = await service.generate_report(db, user.id, check_id)
    links = await service.report_links(user.id, report)
    return Report.model_validate(report).model_copy(update=links)
