"""
Tests for the Compliance Check Workflow
=======================================

Tests for:
- Image data URL decoding
- Custom rule ownership
- Check creation, panel upload, scoring and re-scoring
- Report generation and signed links
- Check deletion
"""

import json
import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.label_compliance.exceptions import (
    CheckNotReadyError,
    InvalidImageError,
    LabelComplianceError,
    NotFoundError,
)
from services.label_compliance.extraction import LabelExtractor
from services.label_compliance.scoring import CUSTOM_PREFIX, ComplianceScorer
from services.label_compliance.workflow import (
    ComplianceCheckService,
    CustomRuleService,
    decode_data_url,
    panel_file_name,
)
from shared.database.models import (
    CheckStatus,
    ComplianceRuleModel,
    PanelType,
    PanelUploadModel,
    ProductType,
    StateModel,
)
from shared.llm import LLMQuotaExceededError
from shared.storage import ObjectStore


IMAGE = "data:image/png;base64,iVBORw0KGgo="

EXTRACTION = json.dumps(
    {
        "productName": "Huckleberry Gummies",
        "warnings": {"keepOutOfReach": {"present": True}},
        "extractionConfidence": {"overall": 0.95},
    }
)


def _service(
    store: ObjectStore,
    extraction_replies: list[object] | None = None,
    scoring_replies: list[object] | None = None,
    fake_llm: type | None = None,
) -> ComplianceCheckService:
    return ComplianceCheckService(
        extractor=LabelExtractor(provider=fake_llm(*(extraction_replies or []))),
        scorer=ComplianceScorer(provider=fake_llm(*(scoring_replies or []))),
        store_factory=lambda: store,
    )


# ============================================================================
# Helpers
# ============================================================================


class TestDecodeDataUrl:
    """Tests for panel image payloads."""

    def test_decodes_png(self) -> None:
        data, content_type = decode_data_url(IMAGE)

        assert content_type == "image/png"
        assert data.startswith(b"\x89PNG")

    @pytest.mark.parametrize(
        "payload",
        [
            "iVBORw0KGgo=",
            "data:text/plain;base64,aGVsbG8=",
            "data:image/png;base64,not base64!",
            "data:image/png;base64,",
        ],
    )
    def test_rejects_invalid_payloads(self, payload: str) -> None:
        with pytest.raises(InvalidImageError):
            decode_data_url(payload)

    def test_panel_file_name(self) -> None:
        assert panel_file_name(PanelType.FRONT, "image/jpeg", 1700000000000) == (
            "front_1700000000000.jpg"
        )
        assert panel_file_name(PanelType.EXIT_BAG, "image/avif", 5) == "exit_bag_5.avif"


# ============================================================================
# Custom rules
# ============================================================================


class TestCustomRuleService:
    """Tests for owner-scoped custom rules."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, db_session: AsyncSession, user_id: uuid.UUID) -> None:
        service = CustomRuleService()
        active = await service.create_rule(db_session, user_id, "Brand Color", "Approved green")
        inactive = await service.create_rule(db_session, user_id, "Old Tagline", "Retired")
        await service.update_rule(db_session, user_id, inactive.id, {"is_active": False})
        await service.create_rule(db_session, uuid.uuid4(), "Someone Else", "Not mine")

        everything = await service.list_rules(db_session, user_id)
        active_only = await service.list_rules(db_session, user_id, active_only=True)

        assert {r.name for r in everything} == {"Brand Color", "Old Tagline"}
        assert [r.id for r in active_only] == [active.id]

    @pytest.mark.asyncio
    async def test_other_users_rule_not_found(
        self, db_session: AsyncSession, user_id: uuid.UUID
    ) -> None:
        service = CustomRuleService()
        rule = await service.create_rule(db_session, uuid.uuid4(), "Private", "Hidden")

        with pytest.raises(NotFoundError):
            await service.get_rule(db_session, user_id, rule.id)
        with pytest.raises(NotFoundError):
            await service.delete_rule(db_session, user_id, rule.id)

    @pytest.mark.asyncio
    async def test_update_ignores_missing_fields(
        self, db_session: AsyncSession, user_id: uuid.UUID
    ) -> None:
        service = CustomRuleService()
        rule = await service.create_rule(db_session, user_id, "Brand Color", "Approved green")

        updated = await service.update_rule(
            db_session, user_id, rule.id, {"name": None, "description": "Pantone 356"}
        )

        assert updated.name == "Brand Color"
        assert updated.description == "Pantone 356"

    @pytest.mark.asyncio
    async def test_delete(self, db_session: AsyncSession, user_id: uuid.UUID) -> None:
        service = CustomRuleService()
        rule = await service.create_rule(db_session, user_id, "Brand Color", "Approved green")

        await service.delete_rule(db_session, user_id, rule.id)

        assert await service.list_rules(db_session, user_id) == []


# ============================================================================
# Checks
# ============================================================================


class TestCreateCheck:
    """Tests for opening a check session."""

    @pytest.mark.asyncio
    async def test_create(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        custom = await CustomRuleService().create_rule(db_session, user_id, "Brand", "Green")
        service = _service(object_store, fake_llm=fake_llm)

        check = await service.create_check(
            db_session,
            user_id,
            montana.id,
            ProductType.EDIBLES,
            product_name="Huckleberry Gummies",
            custom_rule_ids=[custom.id, custom.id],
        )

        assert check.product_type is ProductType.EDIBLES
        assert check.custom_rule_ids == [str(custom.id)]
        assert check.overall_status is None
        assert check.is_completed is False
        assert check.panels == []

    @pytest.mark.asyncio
    async def test_unknown_state(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        service = _service(object_store, fake_llm=fake_llm)

        with pytest.raises(NotFoundError):
            await service.create_check(db_session, user_id, uuid.uuid4(), ProductType.FLOWER)

    @pytest.mark.asyncio
    async def test_disabled_state(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        colorado = StateModel(name="Colorado", abbreviation="CO", is_enabled=False)
        db_session.add(colorado)
        await db_session.flush()

        with pytest.raises(LabelComplianceError) as exc_info:
            await _service(object_store, fake_llm=fake_llm).create_check(
                db_session, user_id, colorado.id, ProductType.FLOWER
            )

        assert "Colorado is not enabled" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_foreign_custom_rule(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        foreign = await CustomRuleService().create_rule(db_session, uuid.uuid4(), "X", "Y")

        with pytest.raises(NotFoundError):
            await _service(object_store, fake_llm=fake_llm).create_check(
                db_session, user_id, montana.id, ProductType.FLOWER, custom_rule_ids=[foreign.id]
            )

    @pytest.mark.asyncio
    async def test_list_and_get_are_owner_scoped(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        service = _service(object_store, fake_llm=fake_llm)
        mine = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)
        theirs = await service.create_check(db_session, uuid.uuid4(), montana.id, ProductType.FLOWER)

        checks = await service.list_checks(db_session, user_id)

        assert [c.id for c in checks] == [mine.id]
        with pytest.raises(NotFoundError):
            await service.get_check(db_session, user_id, theirs.id)


class TestPanels:
    """Tests for panel upload and extraction."""

    @pytest.mark.asyncio
    async def test_add_panel(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        minio_client: MagicMock,
        fake_llm: type,
    ) -> None:
        service = _service(object_store, extraction_replies=[EXTRACTION], fake_llm=fake_llm)
        check = await service.create_check(db_session, user_id, montana.id, ProductType.EDIBLES)

        panel = await service.add_panel(db_session, user_id, check.id, PanelType.BACK, IMAGE)

        assert panel.panel_type is PanelType.BACK
        assert panel.file_path == f"{user_id}/{check.id}/{panel.file_name}"
        assert panel.file_name.startswith("back_")
        assert panel.file_name.endswith(".png")
        assert panel.extracted_data["productName"] == "Huckleberry Gummies"
        assert panel.extracted_data["flaggedForReview"] is False
        assert check.panels == [panel]

        minio_client.put_object.assert_called_once()
        bucket, key = minio_client.put_object.call_args.args[:2]
        assert bucket == object_store.uploads_bucket
        assert key == panel.file_path
        assert minio_client.put_object.call_args.kwargs["content_type"] == "image/png"

    @pytest.mark.asyncio
    async def test_failed_extraction_stores_nothing(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        minio_client: MagicMock,
        fake_llm: type,
    ) -> None:
        service = _service(
            object_store,
            extraction_replies=[LLMQuotaExceededError("AI credits exhausted")],
            fake_llm=fake_llm,
        )
        check = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)

        with pytest.raises(LLMQuotaExceededError):
            await service.add_panel(db_session, user_id, check.id, PanelType.FRONT, IMAGE)

        minio_client.put_object.assert_not_called()
        panels = (await db_session.execute(select(PanelUploadModel))).scalars().all()
        assert panels == []

    @pytest.mark.asyncio
    async def test_invalid_image_rejected_before_extraction(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        service = _service(object_store, fake_llm=fake_llm)
        check = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)

        with pytest.raises(InvalidImageError):
            await service.add_panel(db_session, user_id, check.id, PanelType.FRONT, "not-an-image")

        assert service.extractor.provider.calls == []


class TestScoring:
    """Tests for scoring and re-scoring a check."""

    @pytest.mark.asyncio
    async def test_no_panels_not_ready(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        service = _service(object_store, fake_llm=fake_llm)
        check = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)

        with pytest.raises(CheckNotReadyError):
            await service.score_check(db_session, user_id, check.id)

    @pytest.mark.asyncio
    async def test_applicable_rules(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        db_session.add_all(
            [
                ComplianceRuleModel(
                    state_id=montana.id,
                    name="Flower Only",
                    description="Only for flower",
                    validation_prompt="Check flower labeling",
                    category="Content",
                    product_types=["flower"],
                ),
                ComplianceRuleModel(
                    state_id=montana.id,
                    name="Retired",
                    description="No longer enforced",
                    validation_prompt="Check retired labeling",
                    category="Content",
                    is_active=False,
                ),
            ]
        )
        await db_session.flush()
        service = _service(object_store, fake_llm=fake_llm)
        check = await service.create_check(db_session, user_id, montana.id, ProductType.EDIBLES)

        rules, custom_rules = await service.applicable_rules(db_session, check)

        assert [r.id for r in rules] == [warning_rule.id]
        assert custom_rules == []

    @pytest.mark.asyncio
    async def test_score_and_rescore(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        custom = await CustomRuleService().create_rule(db_session, user_id, "Brand", "Green")
        first = json.dumps(
            [
                {
                    "ruleId": str(warning_rule.id),
                    "status": "pass",
                    "foundValue": "Keep out of reach of children",
                    "panelFound": "Back",
                },
                {"ruleId": f"{CUSTOM_PREFIX}{custom.id}", "status": "fail"},
            ]
        )
        second = json.dumps([{"ruleId": str(warning_rule.id), "status": "warning"}])
        service = _service(
            object_store,
            extraction_replies=[EXTRACTION],
            scoring_replies=[first, second],
            fake_llm=fake_llm,
        )
        check = await service.create_check(
            db_session, user_id, montana.id, ProductType.EDIBLES, custom_rule_ids=[custom.id]
        )
        panel = await service.add_panel(db_session, user_id, check.id, PanelType.BACK, IMAGE)

        check, summary = await service.score_check(db_session, user_id, check.id)

        assert summary.overall_status is CheckStatus.FAIL
        assert (check.pass_count, check.warning_count, check.fail_count) == (1, 0, 1)
        assert check.overall_status is CheckStatus.FAIL
        assert check.is_completed is True
        by_rule = {r.rule_name: r for r in check.results}
        assert by_rule["Keep Out of Reach Warning"].citation == "ARM 42.39.310"
        assert by_rule["Keep Out of Reach Warning"].panel_upload_id == panel.id
        assert by_rule["Brand"].custom_rule_id == custom.id
        assert by_rule["Brand"].citation is None

        check, summary = await service.score_check(db_session, user_id, check.id)

        assert len(check.results) == 1
        assert summary.overall_status is CheckStatus.WARNING
        assert (check.pass_count, check.warning_count, check.fail_count) == (0, 1, 0)

    @pytest.mark.asyncio
    async def test_stats(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        service = _service(
            object_store,
            extraction_replies=[EXTRACTION],
            scoring_replies=[json.dumps([{"ruleId": str(warning_rule.id), "status": "pass"}])],
            fake_llm=fake_llm,
        )
        scored = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)
        await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)
        await service.add_panel(db_session, user_id, scored.id, PanelType.FRONT, IMAGE)
        await service.score_check(db_session, user_id, scored.id)

        stats = await service.stats(db_session, user_id)

        assert stats == {"total": 2, "completed": 1, "passed": 1, "warnings": 0, "failed": 0}
        assert (await service.stats(db_session, uuid.uuid4()))["total"] == 0


# ============================================================================
# Reports and deletion
# ============================================================================


class TestReportsAndDeletion:
    """Tests for report generation, links and check deletion."""

    async def _scored_check(self, db_session, montana, warning_rule, user_id, service):
        check = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)
        await service.add_panel(db_session, user_id, check.id, PanelType.FRONT, IMAGE)
        check, _ = await service.score_check(db_session, user_id, check.id)
        return check

    @pytest.mark.asyncio
    async def test_report_requires_scored_check(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        service = _service(object_store, fake_llm=fake_llm)
        check = await service.create_check(db_session, user_id, montana.id, ProductType.FLOWER)

        with pytest.raises(CheckNotReadyError):
            await service.generate_report(db_session, user_id, check.id)

    @pytest.mark.asyncio
    async def test_generate_report_and_links(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        minio_client: MagicMock,
        fake_llm: type,
    ) -> None:
        service = _service(
            object_store,
            extraction_replies=[EXTRACTION],
            scoring_replies=[json.dumps([{"ruleId": str(warning_rule.id), "status": "fail"}])],
            fake_llm=fake_llm,
        )
        check = await self._scored_check(db_session, montana, warning_rule, user_id, service)
        minio_client.put_object.reset_mock()

        report = await service.generate_report(db_session, user_id, check.id)

        assert report.csv_path == f"{user_id}/{check.id}/compliance-report-{check.id}.csv"
        assert report.pdf_path == f"{user_id}/{check.id}/compliance-report-{check.id}.pdf"
        assert check.reports == [report]
        uploads = {c.args[1]: c for c in minio_client.put_object.call_args_list}
        assert set(uploads) == {report.csv_path, report.pdf_path}
        assert all(c.args[0] == object_store.reports_bucket for c in uploads.values())
        assert uploads[report.csv_path].kwargs["content_type"] == "text/csv"
        assert uploads[report.pdf_path].kwargs["content_type"] == "application/pdf"

        links = await service.report_links(user_id, report)

        assert links["pdf_url"].startswith(
            f"https://minio.test/{object_store.reports_bucket}/{report.pdf_path}"
        )
        assert links["csv_url"] is not None
        assert await service.report_links(uuid.uuid4(), report) == {
            "pdf_url": None,
            "csv_url": None,
        }

    @pytest.mark.asyncio
    async def test_delete_check_removes_objects(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        user_id: uuid.UUID,
        object_store: ObjectStore,
        minio_client: MagicMock,
        fake_llm: type,
    ) -> None:
        service = _service(
            object_store,
            extraction_replies=[EXTRACTION],
            scoring_replies=[json.dumps([{"ruleId": str(warning_rule.id), "status": "pass"}])],
            fake_llm=fake_llm,
        )
        check = await self._scored_check(db_session, montana, warning_rule, user_id, service)
        report = await service.generate_report(db_session, user_id, check.id)
        panel_key = check.panels[0].file_path

        await service.delete_check(db_session, user_id, check.id)

        removed = {c.args for c in minio_client.remove_object.call_args_list}
        assert removed == {
            (object_store.uploads_bucket, panel_key),
            (object_store.reports_bucket, report.pdf_path),
            (object_store.reports_bucket, report.csv_path),
        }
        with pytest.raises(NotFoundError):
            await service.get_check(db_session, user_id, check.id)
