"""
Compliance Models
=================

API schemas for label compliance checks, panels, per-rule results, reports,
custom rules and stateless label analysis.

Version: 0.1.0
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shared.database.models.enums import CheckStatus, PanelType, ProductType


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Custom rules
# ============================================================================


class CustomRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)


class CustomRuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class CustomRule(ORMModel):
    id: uuid.UUID
    name: str
    description: str
    is_active: bool
    created_at: datetime


# ============================================================================
# Checks
# ============================================================================


class CheckCreate(BaseModel):
    state_id: uuid.UUID
    product_type: ProductType
    product_name: str | None = Field(default=None, max_length=255)
    custom_rule_ids: list[uuid.UUID] = Field(default_factory=list)


class PanelCreate(BaseModel):
    """One panel image as a base64 data URL."""

    panel_type: PanelType
    image_base64: str = Field(..., min_length=1, description="data:image/...;base64,... URL")


class PanelUpload(ORMModel):
    id: uuid.UUID
    panel_type: PanelType
    file_name: str
    file_path: str
    extracted_data: dict[str, Any] | None = None
    created_at: datetime


class CheckResult(ORMModel):
    id: uuid.UUID
    rule_id: uuid.UUID | None = None
    custom_rule_id: uuid.UUID | None = None
    rule_name: str | None = None
    status: CheckStatus
    found_value: str | None = None
    expected_value: str | None = None
    explanation: str | None = None
    citation: str | None = None


class ComplianceCheck(ORMModel):
    id: uuid.UUID
    state_id: uuid.UUID
    product_type: ProductType
    product_name: str | None = None
    custom_rule_ids: list[str] = Field(default_factory=list)
    overall_status: CheckStatus | None = None
    pass_count: int = 0
    warning_count: int = 0
    fail_count: int = 0
    created_at: datetime
    completed_at: datetime | None = None


class ComplianceCheckDetail(ComplianceCheck):
    panels: list[PanelUpload] = Field(default_factory=list)
    results: list[CheckResult] = Field(default_factory=list)


class CheckSummary(BaseModel):
    pass_count: int
    warning_count: int
    fail_count: int
    overall_status: CheckStatus


class ScoreResponse(BaseModel):
    success: bool = True
    check: ComplianceCheckDetail
    summary: CheckSummary


class CheckStats(BaseModel):
    """Dashboard totals over a user's checks."""

    total: int
    completed: int
    passed: int
    warnings: int
    failed: int


class Report(ORMModel):
    id: uuid.UUID
    compliance_check_id: uuid.UUID
    pdf_path: str | None = None
    csv_path: str | None = None
    created_at: datetime
    pdf_url: str | None = None
    csv_url: str | None = None


# ============================================================================
# Stateless label analysis
# ============================================================================


class AnalyzeLabelRequest(BaseModel):
    """One panel image as a data URL."""

    image_base64: str = Field(..., min_length=1, description="data:image/...;base64,... URL")
    panel_type: PanelType
    product_type: ProductType
    state_name: str = Field(..., min_length=1)


class ExtractionConfidence(BaseModel):
    overall: float
    details: dict[str, Any] = Field(default_factory=dict)


class AnalyzeLabelResponse(BaseModel):
    success: bool = True
    extracted_data: dict[str, Any]
    panel_type: PanelType
    confidence: ExtractionConfidence
