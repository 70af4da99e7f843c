"""
Tests for Label Compliance Routes
=================================

Tests for:
- Authentication on every endpoint
- Check lifecycle through the API: create, upload, score, report, delete
- Custom rules CRUD
- Stateless label analysis and AI error status mapping
"""

import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from services.label_compliance.extraction import LabelExtractor
from services.label_compliance.routes.analysis import get_extractor
from services.label_compliance.routes.checks import get_check_service
from services.label_compliance.scoring import ComplianceScorer
from services.label_compliance.workflow import ComplianceCheckService
from shared.database.models import ComplianceRuleModel, StateModel
from shared.llm import LLMQuotaExceededError, LLMRateLimitError
from shared.storage import ObjectStore


IMAGE = "data:image/png;base64,iVBORw0KGgo="

EXTRACTION = json.dumps(
    {
        "productName": "Huckleberry Gummies",
        "extractionConfidence": {"overall": 0.7, "thcContent": 0.6},
    }
)


def _install_service(
    fake_llm: type,
    store: ObjectStore,
    extraction_replies: list[object],
    scoring_replies: list[object],
) -> ComplianceCheckService:
    from services.label_compliance.main import app

    service = ComplianceCheckService(
        extractor=LabelExtractor(provider=fake_llm(*extraction_replies)),
        scorer=ComplianceScorer(provider=fake_llm(*scoring_replies)),
        store_factory=lambda: store,
    )
    app.dependency_overrides[get_check_service] = lambda: service
    return service


def _install_extractor(fake_llm: type, *replies: object) -> None:
    from services.label_compliance.main import app

    app.dependency_overrides[get_extractor] = lambda: LabelExtractor(provider=fake_llm(*replies))


# ============================================================================
# Service endpoints
# ============================================================================


class TestServiceEndpoints:
    """Tests for root and health."""

    @pytest.mark.asyncio
    async def test_root(self, label_compliance_client: AsyncClient) -> None:
        response = await label_compliance_client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "Labelwise Label Compliance Service"

    @pytest.mark.asyncio
    async def test_health(self, label_compliance_client: AsyncClient) -> None:
        with patch(
            "services.label_compliance.main.PostgresClient.health_check",
            new=AsyncMock(return_value={"status": "healthy"}),
        ):
            response = await label_compliance_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "label-compliance"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("POST", "/api/v1/checks"),
            ("DELETE", "/api/v1/custom-rules/abc"),
            ("POST", "/api/v1/analyze-label"),
        ],
    )
    async def test_cors_preflight(
        self, label_compliance_client: AsyncClient, method: str, path: str
    ) -> None:
        origin = "https://app.labelwise.test"
        response = await label_compliance_client.options(
            path,
            headers={
                "Origin": origin,
                "Access-Control-Request-Method": method,
                "Access-Control-Request-Headers": "authorization,content-type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", origin)
        assert method in response.headers["access-control-allow-methods"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("get", "/api/v1/checks"),
            ("post", "/api/v1/checks"),
            ("get", "/api/v1/checks/stats"),
            ("get", "/api/v1/custom-rules"),
            ("post", "/api/v1/analyze-label"),
        ],
    )
    async def test_requires_authentication(
        self, label_compliance_client: AsyncClient, method: str, path: str
    ) -> None:
        response = await getattr(label_compliance_client, method)(path)

        assert response.status_code == 401
        assert response.json()["success"] is False


# ============================================================================
# Checks
# ============================================================================


class TestCheckRoutes:
    """Tests for the check lifecycle."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        scoring = json.dumps(
            [
                {
                    "ruleId": str(warning_rule.id),
                    "status": "fail",
                    "foundValue": "Not found",
                    "expectedValue": "Keep out of reach of children",
                    "explanation": "Warning missing from back panel",
                    "panelFound": "back",
                }
            ]
        )
        _install_service(fake_llm, object_store, [EXTRACTION], [scoring])

        created = await label_compliance_client.post(
            "/api/v1/checks",
            json={
                "state_id": str(montana.id),
                "product_type": "edibles",
                "product_name": "Huckleberry Gummies",
            },
            headers=auth_headers,
        )
        assert created.status_code == 201
        check_id = created.json()["id"]
        assert created.json()["overall_status"] is None

        panel = await label_compliance_client.post(
            f"/api/v1/checks/{check_id}/panels",
            json={"panel_type": "back", "image_base64": IMAGE},
            headers=auth_headers,
        )
        assert panel.status_code == 201
        extracted = panel.json()["extracted_data"]
        assert extracted["flaggedForReview"] is True
        assert "Low confidence in thcContent: 60%" in extracted["reviewReasons"]

        scored = await label_compliance_client.post(
            f"/api/v1/checks/{check_id}/score", headers=auth_headers
        )
        assert scored.status_code == 200
        body = scored.json()
        assert body["success"] is True
        assert body["summary"] == {
            "pass_count": 0,
            "warning_count": 0,
            "fail_count": 1,
            "overall_status": "fail",
        }
        assert body["check"]["results"][0]["rule_name"] == "Keep Out of Reach Warning"
        assert body["check"]["results"][0]["citation"] == "ARM 42.39.310"

        report = await label_compliance_client.post(
            f"/api/v1/checks/{check_id}/reports", headers=auth_headers
        )
        assert report.status_code == 201
        assert report.json()["pdf_url"].startswith("https://minio.test/")
        assert report.json()["csv_path"].endswith(f"compliance-report-{check_id}.csv")

        reports = await label_compliance_client.get(
            f"/api/v1/checks/{check_id}/reports", headers=auth_headers
        )
        assert [r["id"] for r in reports.json()] == [report.json()["id"]]

        stats = await label_compliance_client.get("/api/v1/checks/stats", headers=auth_headers)
        assert stats.json() == {"total": 1, "completed": 1, "passed": 0, "warnings": 0, "failed": 1}

        deleted = await label_compliance_client.delete(
            f"/api/v1/checks/{check_id}", headers=auth_headers
        )
        assert deleted.status_code == 204

        missing = await label_compliance_client.get(
            f"/api/v1/checks/{check_id}", headers=auth_headers
        )
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_score_without_panels(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        montana: StateModel,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        _install_service(fake_llm, object_store, [], [])
        created = await label_compliance_client.post(
            "/api/v1/checks",
            json={"state_id": str(montana.id), "product_type": "flower"},
            headers=auth_headers,
        )

        response = await label_compliance_client.post(
            f"/api/v1/checks/{created.json()['id']}/score", headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Upload at least one label panel before scoring"

    @pytest.mark.asyncio
    async def test_report_before_scoring(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        montana: StateModel,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        _install_service(fake_llm, object_store, [], [])
        created = await label_compliance_client.post(
            "/api/v1/checks",
            json={"state_id": str(montana.id), "product_type": "flower"},
            headers=auth_headers,
        )

        response = await label_compliance_client.post(
            f"/api/v1/checks/{created.json()['id']}/reports", headers=auth_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unparseable_scoring_returns_raw_response(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        montana: StateModel,
        warning_rule: ComplianceRuleModel,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        _install_service(fake_llm, object_store, [EXTRACTION], ["All rules look satisfied."])
        created = await label_compliance_client.post(
            "/api/v1/checks",
            json={"state_id": str(montana.id), "product_type": "flower"},
            headers=auth_headers,
        )
        check_id = created.json()["id"]
        await label_compliance_client.post(
            f"/api/v1/checks/{check_id}/panels",
            json={"panel_type": "front", "image_base64": IMAGE},
            headers=auth_headers,
        )

        response = await label_compliance_client.post(
            f"/api/v1/checks/{check_id}/score", headers=auth_headers
        )

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to parse compliance results"
        assert response.json()["rawResponse"] == "All rules look satisfied."

    @pytest.mark.asyncio
    async def test_panel_quota_error(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        montana: StateModel,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        _install_service(
            fake_llm, object_store, [LLMQuotaExceededError("AI credits exhausted")], []
        )
        created = await label_compliance_client.post(
            "/api/v1/checks",
            json={"state_id": str(montana.id), "product_type": "flower"},
            headers=auth_headers,
        )

        response = await label_compliance_client.post(
            f"/api/v1/checks/{created.json()['id']}/panels",
            json={"panel_type": "front", "image_base64": IMAGE},
            headers=auth_headers,
        )

        assert response.status_code == 402
        assert response.json()["error"] == "AI credits exhausted"

    @pytest.mark.asyncio
    async def test_other_users_check_is_hidden(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        admin_headers: dict[str, str],
        montana: StateModel,
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        _install_service(fake_llm, object_store, [], [])
        created = await label_compliance_client.post(
            "/api/v1/checks",
            json={"state_id": str(montana.id), "product_type": "flower"},
            headers=auth_headers,
        )

        response = await label_compliance_client.get(
            f"/api/v1/checks/{created.json()['id']}", headers=admin_headers
        )
        listed = await label_compliance_client.get("/api/v1/checks", headers=admin_headers)

        assert response.status_code == 404
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_unknown_state(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        object_store: ObjectStore,
        fake_llm: type,
    ) -> None:
        _install_service(fake_llm, object_store, [], [])

        response = await label_compliance_client.post(
            "/api/v1/checks",
            json={"state_id": str(uuid.uuid4()), "product_type": "flower"},
            headers=auth_headers,
        )

        assert response.status_code == 404


# ============================================================================
# Custom rules
# ============================================================================


class TestCustomRuleRoutes:
    """Tests for custom rule CRUD."""

    @pytest.mark.asyncio
    async def test_crud(
        self, label_compliance_client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        created = await label_compliance_client.post(
            "/api/v1/custom-rules",
            json={"name": "Brand Color", "description": "Logo uses approved green"},
            headers=auth_headers,
        )
        assert created.status_code == 201
        rule_id = created.json()["id"]
        assert created.json()["is_active"] is True

        updated = await label_compliance_client.patch(
            f"/api/v1/custom-rules/{rule_id}",
            json={"is_active": False},
            headers=auth_headers,
        )
        assert updated.json()["is_active"] is False
        assert updated.json()["name"] == "Brand Color"

        active = await label_compliance_client.get(
            "/api/v1/custom-rules", params={"active_only": True}, headers=auth_headers
        )
        assert active.json() == []

        deleted = await label_compliance_client.delete(
            f"/api/v1/custom-rules/{rule_id}", headers=auth_headers
        )
        assert deleted.status_code == 204

        listed = await label_compliance_client.get("/api/v1/custom-rules", headers=auth_headers)
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_validation(
        self, label_compliance_client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await label_compliance_client.post(
            "/api/v1/custom-rules",
            json={"name": "", "description": "x"},
            headers=auth_headers,
        )

        assert response.status_code == 422


# ============================================================================
# Stateless analysis
# ============================================================================


class TestAnalyzeLabel:
    """Tests for single-panel analysis."""

    @pytest.mark.asyncio
    async def test_analyze(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        fake_llm: type,
    ) -> None:
        _install_extractor(fake_llm, EXTRACTION)

        response = await label_compliance_client.post(
            "/api/v1/analyze-label",
            json={
                "image_base64": IMAGE,
                "panel_type": "front",
                "product_type": "edibles",
                "state_name": "Montana",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["panel_type"] == "front"
        assert body["confidence"]["overall"] == 0.7
        assert body["confidence"]["details"]["thcContent"] == 0.6
        assert body["extracted_data"]["flaggedForReview"] is True

    @pytest.mark.asyncio
    async def test_rate_limit_maps_to_429(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        fake_llm: type,
    ) -> None:
        _install_extractor(fake_llm, LLMRateLimitError("Rate limit exceeded"))

        response = await label_compliance_client.post(
            "/api/v1/analyze-label",
            json={
                "image_base64": IMAGE,
                "panel_type": "front",
                "product_type": "flower",
                "state_name": "Montana",
            },
            headers=auth_headers,
        )

        assert response.status_code == 429
        assert response.json()["error"] == "Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_invalid_image(
        self,
        label_compliance_client: AsyncClient,
        auth_headers: dict[str, str],
        fake_llm: type,
    ) -> None:
        _install_extractor(fake_llm)

        response = await label_compliance_client.post(
            "/api/v1/analyze-label",
            json={
                "image_base64": "https://example.com/label.png",
                "panel_type": "front",
                "product_type": "flower",
                "state_name": "Montana",
            },
            headers=auth_headers,
        )

        assert response.status_code == 400
