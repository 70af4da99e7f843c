"""
Compliance Check Workflow
=========================

Orchestrates a label check: create the session, upload and extract panels
one at a time, score the applicable rules, then render reports.

Everything is scoped to the owning user; another user's check, panel, report
or custom rule is reported as not found.

Version: 0.1.0
"""

import base64
import binascii
import re
import uuid
from collections.abc import Callable
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.label_compliance.exceptions import (
    CheckNotReadyError,
    InvalidImageError,
    LabelComplianceError,
    NotFoundError,
)
from services.label_compliance.extraction import Extraction, LabelExtractor
from services.label_compliance.reports import render_csv, render_pdf, report_file_name
from services.label_compliance.scoring import (
    CheckSummary,
    ComplianceScorer,
    PanelExtraction,
    summarize,
)
from shared.database.models import (
    CheckResultModel,
    CheckStatus,
    ComplianceCheckModel,
    ComplianceRuleModel,
    CustomRuleModel,
    PanelType,
    PanelUploadModel,
    ProductType,
    ReportModel,
    StateModel,
)
from shared.database.postgres import utcnow
from shared.logging import get_logger
from shared.storage import ObjectStore, get_object_store, object_key, owns_key


logger = get_logger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
}


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """
    Split a base64 image data URL into bytes and content type.

    Raises:
        InvalidImageError: not an image data URL or not valid base64
    """
    match = DATA_URL_PATTERN.match(data_url.strip())
    if match is None:
        raise InvalidImageError("Panel image must be a base64 image data URL")
    content_type, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError("Panel image is not valid base64") from e
    if not data:
        raise InvalidImageError("Panel image is empty")
    return data, content_type.lower()


def panel_file_name(panel_type: PanelType, content_type: str, timestamp_ms: int) -> str:
    extension = EXTENSIONS.get(content_type, content_type.split("/")[-1])
    return f"{panel_type.value}_{timestamp_ms}.{extension}"


# ============================================================================
# Custom rules
# ============================================================================


class CustomRuleService:
    """Owner-scoped CRUD for internal rules."""

    async def list_rules(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        active_only: bool = False,
    ) -> list[CustomRuleModel]:
        query = select(CustomRuleModel).where(CustomRuleModel.user_id == user_id)
        if active_only:
            query = query.where(CustomRuleModel.is_active.is_(True))
        result = await db.execute(query.order_by(CustomRuleModel.created_at.desc()))
        return list(result.scalars().all())

    async def get_rule(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        rule_id: uuid.UUID,
    ) -> CustomRuleModel:
        rule = await db.get(CustomRuleModel, rule_id)
        if rule is None or rule.user_id != user_id:
            raise NotFoundError(f"Custom rule {rule_id} not found")
        return rule

    async def create_rule(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        name: str,
        description: str,
    ) -> CustomRuleModel:
        rule = CustomRuleModel(user_id=user_id, name=name, description=description)
        db.add(rule)
        await db.flush()
        logger.info("custom_rule_created", rule_id=str(rule.id), user_id=str(user_id))
        return rule

    async def update_rule(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        rule_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> CustomRuleModel:
        rule = await self.get_rule(db, user_id, rule_id)
        for field_name in ("name", "description", "is_active"):
            if changes.get(field_name) is not None:
                setattr(rule, field_name, changes[field_name])
        await db.flush()
        logger.info("custom_rule_updated", rule_id=str(rule_id), fields=sorted(changes))
        return rule

    async def delete_rule(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        rule_id: uuid.UUID,
    ) -> None:
        rule = await self.get_rule(db, user_id, rule_id)
        await db.delete(rule)
        await db.flush()
        logger.info("custom_rule_deleted", rule_id=str(rule_id))


# ============================================================================
# Checks
# ============================================================================


class ComplianceCheckService:
    """Label check sessions from creation to reports."""

    def __init__(
        self,
        extractor: LabelExtractor | None = None,
        scorer: ComplianceScorer | None = None,
        store_factory: Callable[[], ObjectStore] = get_object_store,
    ) -> None:
        self.extractor = extractor or LabelExtractor()
        self.scorer = scorer or ComplianceScorer()
        self._store_factory = store_factory
        self._store: ObjectStore | None = None

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = self._store_factory()
        return self._store

    async def create_check(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        state_id: uuid.UUID,
        product_type: ProductType,
        product_name: str | None = None,
        custom_rule_ids: list[uuid.UUID] | None = None,
    ) -> ComplianceCheckModel:
        """
        Open a check session.

        Raises:
            NotFoundError: state or a selected custom rule does not exist
            LabelComplianceError: state is not enabled
        """
        state = await db.get(StateModel, state_id)
        if state is None:
            raise NotFoundError(f"State {state_id} not found")
        if not state.is_enabled:
            raise LabelComplianceError(f"{state.name} is not enabled for compliance checks")

        selected = list(dict.fromkeys(custom_rule_ids or []))
        if selected:
            result = await db.execute(
                select(CustomRuleModel.id).where(
                    CustomRuleModel.id.in_(selected),
                    CustomRuleModel.user_id == user_id,
                )
            )
            missing = set(selected) - set(result.scalars().all())
            if missing:
                raise NotFoundError(f"Custom rule {sorted(missing, key=str)[0]} not found")

        check = ComplianceCheckModel(
            user_id=user_id,
            state_id=state_id,
            product_type=ProductType(product_type),
            product_name=product_name,
            custom_rule_ids=[str(rule_id) for rule_id in selected],
        )
        db.add(check)
        await db.flush()
        await db.refresh(check)

        logger.info(
            "compliance_check_created",
            check_id=str(check.id),
            state=state.abbreviation,
            product_type=check.product_type.value,
            custom_rules=len(selected),
        )
        return check

    async def get_check(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        check_id: uuid.UUID,
    ) -> ComplianceCheckModel:
        check = await db.get(ComplianceCheckModel, check_id)
        if check is None or check.user_id != user_id:
            raise NotFoundError(f"Compliance check {check_id} not found")
        return check

    async def list_checks(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ComplianceCheckModel]:
        """Check history, newest first."""
        result = await db.execute(
            select(ComplianceCheckModel)
            .where(ComplianceCheckModel.user_id == user_id)
            .order_by(ComplianceCheckModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def stats(self, db: AsyncSession, user_id: uuid.UUID) -> dict[str, int]:
        """Dashboard totals per overall status."""
        status = ComplianceCheckModel.overall_status

        def count_of(value: CheckStatus) -> Any:
            return func.coalesce(func.sum(case((status == value, 1), else_=0)), 0)

        result = await db.execute(
            select(
                func.count(ComplianceCheckModel.id),
                func.count(ComplianceCheckModel.completed_at),
                count_of(CheckStatus.PASS),
                count_of(CheckStatus.WARNING),
                count_of(CheckStatus.FAIL),
            ).where(ComplianceCheckModel.user_id == user_id)
        )
        total, completed, passed, warnings, failed = result.one()
        return {
            "total": int(total),
            "completed": int(completed),
            "passed": int(passed),
            "warnings": int(warnings),
            "failed": int(failed),
        }

    async def add_panel(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        check_id: uuid.UUID,
        panel_type: PanelType,
        image_data_url: str,
    ) -> PanelUploadModel:
        """
        Extract one panel and store its image.

        Extraction runs before anything is persisted, so a failed model call
        leaves no orphan image or panel row behind.

        Raises:
            NotFoundError: check missing or not owned
            InvalidImageError: payload is not an image data URL
            LLMError: vision call failed
            StorageError: image upload failed
        """
        check = await self.get_check(db, user_id, check_id)
        panel_type = PanelType(panel_type)
        data, content_type = decode_data_url(image_data_url)

        extraction: Extraction = await self.extractor.extract(
            image_data_url,
            panel_type,
            check.product_type,
            check.state.name,
        )

        file_name = panel_file_name(panel_type, content_type, int(utcnow().timestamp() * 1000))
        key = object_key(user_id, check.id, file_name)
        await self.store.put(self.store.uploads_bucket, key, data, content_type)

        panel = PanelUploadModel(
            panel_type=panel_type,
            file_path=key,
            file_name=file_name,
            extracted_data=extraction.data,
        )
        check.panels.append(panel)
        await db.flush()

        logger.info(
            "panel_uploaded",
            check_id=str(check.id),
            panel_id=str(panel.id),
            panel_type=panel_type.value,
            flagged=extraction.flagged_for_review,
        )
        return panel

    async def applicable_rules(
        self,
        db: AsyncSession,
        check: ComplianceCheckModel,
    ) -> tuple[list[ComplianceRuleModel], list[CustomRuleModel]]:
        """Active state rules for the product type plus the selected active custom rules."""
        result = await db.execute(
            select(ComplianceRuleModel)
            .where(
                ComplianceRuleModel.state_id == check.state_id,
                ComplianceRuleModel.is_active.is_(True),
            )
            .order_by(ComplianceRuleModel.category, ComplianceRuleModel.name)
        )
        product_type = ProductType(check.product_type).value
        rules = [rule for rule in result.scalars().all() if rule.applies_to(product_type)]

        custom_rules: list[CustomRuleModel] = []
        selected = [uuid.UUID(rule_id) for rule_id in check.custom_rule_ids or []]
        if selected:
            result = await db.execute(
                select(CustomRuleModel).where(
                    CustomRuleModel.id.in_(selected),
                    CustomRuleModel.user_id == check.user_id,
                    CustomRuleModel.is_active.is_(True),
                )
            )
            custom_rules = list(result.scalars().all())
        return rules, custom_rules

    async def score_check(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        check_id: uuid.UUID,
    ) -> tuple[ComplianceCheckModel, CheckSummary]:
        """
        Score all applicable rules and finalise the check.

        Re-scoring replaces earlier results.

        Raises:
            NotFoundError: check missing or not owned
            CheckNotReadyError: no extracted panels yet
            LLMError: reasoning call failed
            ScoringParseError: model reply had no JSON array
        """
        check = await self.get_check(db, user_id, check_id)
        panels = [
            PanelExtraction(p.id, PanelType(p.panel_type), p.extracted_data)
            for p in check.panels
            if p.extracted_data
        ]
        if not panels:
            raise CheckNotReadyError("Upload at least one label panel before scoring")

        rules, custom_rules = await self.applicable_rules(db, check)
        scoring = await self.scorer.score(panels, rules, custom_rules)

        rules_by_id = {rule.id: rule for rule in rules}
        custom_by_id = {rule.id: rule for rule in custom_rules}
        panels_by_type = {p.panel_type.value: p.panel_id for p in panels}

        check.results.clear()
        await db.flush()

        for score in scoring.scores:
            rule = rules_by_id.get(score.rule_id) if score.rule_id else None
            custom_rule = custom_by_id.get(score.custom_rule_id) if score.custom_rule_id else None
            check.results.append(
                CheckResultModel(
                    rule=rule,
                    custom_rule=custom_rule,
                    panel_upload_id=panels_by_type.get((score.panel_found or "").strip().lower()),
                    status=score.status,
                    found_value=score.found_value,
                    expected_value=score.expected_value,
                    explanation=score.explanation,
                    citation=rule.citation if rule is not None else None,
                )
            )

        summary = summarize(result.status for result in check.results)
        check.pass_count = summary.pass_count
        check.warning_count = summary.warning_count
        check.fail_count = summary.fail_count
        check.overall_status = summary.overall_status
        check.completed_at = utcnow()
        await db.flush()

        logger.info("compliance_check_completed", check_id=str(check.id), **summary.to_dict())
        return check, summary

    async def delete_check(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        check_id: uuid.UUID,
    ) -> None:
        """Delete a check, its stored panel images and reports."""
        check = await self.get_check(db, user_id, check_id)
        for panel in check.panels:
            await self.store.remove(self.store.uploads_bucket, panel.file_path)
        for report in check.reports:
            for key in (report.pdf_path, report.csv_path):
                if key:
                    await self.store.remove(self.store.reports_bucket, key)
        await db.delete(check)
        await db.flush()
        logger.info("compliance_check_deleted", check_id=str(check_id))

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def generate_report(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        check_id: uuid.UUID,
    ) -> ReportModel:
        """
        Render CSV and PDF reports into the reports bucket.

        Raises:
            CheckNotReadyError: check has not been scored
            StorageError: upload failed
        """
        check = await self.get_check(db, user_id, check_id)
        if not check.is_completed:
            raise CheckNotReadyError("Score the check before generating a report")

        csv_key = object_key(user_id, check.id, report_file_name(check.id, "csv"))
        pdf_key = object_key(user_id, check.id, report_file_name(check.id, "pdf"))
        await self.store.put(
            self.store.reports_bucket,
            csv_key,
            render_csv(check.results).encode("utf-8"),
            "text/csv",
        )
        await self.store.put(
            self.store.reports_bucket,
            pdf_key,
            render_pdf(check, check.results),
            "application/pdf",
        )

        report = ReportModel(pdf_path=pdf_key, csv_path=csv_key)
        check.reports.append(report)
        await db.flush()

        logger.info("compliance_report_generated", check_id=str(check.id), report_id=str(report.id))
        return report

    async def report_links(self, user_id: uuid.UUID, report: ReportModel) -> dict[str, str | None]:
        """Signed download URLs for a report's files."""
        links: dict[str, str | None] = {"pdf_url": None, "csv_url": None}
        for field_name, key in (("pdf_url", report.pdf_path), ("csv_url", report.csv_path)):
            if key and owns_key(user_id, key):
                links[field_name] = await self.store.signed_url(self.store.reports_bucket, key)
        return links
