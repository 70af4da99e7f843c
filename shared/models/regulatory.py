"""
Regulatory Models
=================

API schemas for states, regulatory sources, rules, rule change suggestions,
the audit log and the regulatory check endpoints.

Version: 0.1.0
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from shared.database.models.enums import (
    AuditAction,
    ChangeType,
    ProductType,
    RuleSourceType,
    Severity,
    SuggestionStatus,
)


class ORMModel(BaseModel):
    """Schema readable straight from an ORM row."""

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# States
# ============================================================================


class StateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    abbreviation: str = Field(..., min_length=2, max_length=8)
    is_enabled: bool = False


class StateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    abbreviation: str | None = Field(default=None, min_length=2, max_length=8)
    is_enabled: bool | None = None


class State(ORMModel):
    id: uuid.UUID
    name: str
    abbreviation: str
    is_enabled: bool


# ============================================================================
# Regulatory sources
# ============================================================================


class SourceCreate(BaseModel):
    state_id: uuid.UUID
    source_name: str = Field(..., min_length=1, max_length=255)
    source_url: HttpUrl
    check_frequency_days: int = Field(default=7, ge=1)


class SourceUpdate(BaseModel):
    source_name: str | None = Field(default=None, min_length=1, max_length=255)
    source_url: HttpUrl | None = None
    check_frequency_days: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class RegulatorySource(ORMModel):
    id: uuid.UUID
    state_id: uuid.UUID
    source_name: str
    source_url: str
    content_hash: str | None = None
    last_checked: datetime | None = None
    last_content_change: datetime | None = None
    check_frequency_days: int
    is_active: bool


# ============================================================================
# Rules
# ============================================================================


class RuleCreate(BaseModel):
    """Manual rule creation by an admin."""

    state_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    severity: Severity = Severity.ERROR
    citation: str | None = None
    source_url: str | None = None
    source_type: RuleSourceType = RuleSourceType.REGULATORY
    product_types: list[ProductType] = Field(default_factory=lambda: list(ProductType))
    validation_prompt: str | None = None
    change_reason: str | None = None


class RuleUpdate(BaseModel):
    """Partial rule edit. `expected_version` guards against lost updates."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    severity: Severity | None = None
    citation: str | None = None
    source_url: str | None = None
    source_type: RuleSourceType | None = None
    product_types: list[ProductType] | None = None
    validation_prompt: str | None = None
    expected_version: int | None = Field(default=None, ge=1)
    change_reason: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(
            exclude={"expected_version", "change_reason"},
            exclude_none=True,
            mode="json",
        )


class RuleActiveUpdate(BaseModel):
    is_active: bool
    expected_version: int | None = Field(default=None, ge=1)
    change_reason: str | None = None


class CitationInfo(BaseModel):
    url: str | None
    display_text: str
    is_direct_link: bool
    verification_status: str


class Rule(ORMModel):
    id: uuid.UUID
    state_id: uuid.UUID
    name: str
    description: str
    category: str
    severity: Severity
    citation: str | None = None
    source_url: str | None = None
    source_type: RuleSourceType
    product_types: list[str]
    validation_prompt: str
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime
    citation_link: CitationInfo | None = None


# ============================================================================
# Suggestions and audit
# ============================================================================


class RuleChangeSuggestion(ORMModel):
    id: uuid.UUID
    state_id: uuid.UUID
    source_id: uuid.UUID | None = None
    existing_rule_id: uuid.UUID | None = None
    existing_rule_name: str | None = None
    change_type: ChangeType
    suggested_name: str
    suggested_description: str
    suggested_category: str | None = None
    suggested_severity: str | None = None
    suggested_validation_prompt: str | None = None
    suggested_citation: str | None = None
    suggested_source_url: str | None = None
    ai_reasoning: str | None = None
    source_excerpt: str | None = None
    status: SuggestionStatus
    reviewed_by: uuid.UUID | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    created_at: datetime


class ReviewRequest(BaseModel):
    notes: str | None = None


class ReviewResponse(BaseModel):
    success: bool = True
    suggestion: RuleChangeSuggestion
    rule: Rule | None = None
    audit_entry_id: uuid.UUID | None = None


class AuditEntry(ORMModel):
    id: uuid.UUID
    rule_id: uuid.UUID | None = None
    state_id: uuid.UUID | None = None
    action: AuditAction
    changed_by: uuid.UUID | None = None
    change_reason: str | None = None
    previous_version: dict[str, Any] | None = None
    new_version: dict[str, Any] | None = None
    suggestion_id: uuid.UUID | None = None
    created_at: datetime


# ============================================================================
# Regulatory checks
# ============================================================================


class RegulationCheckRequest(BaseModel):
    """Batch scrape check; all active sources when `state_id` is omitted."""

    state_id: uuid.UUID | None = None
    force: bool = False


class SourceCheckResult(BaseModel):
    source_id: uuid.UUID
    source_name: str
    state: str | None = None
    content_changed: bool
    suggestions_created: int
    status: str
    error: str | None = None


class RegulationCheckResponse(BaseModel):
    success: bool = True
    sources_checked: int
    sources_with_changes: int
    total_suggestions_created: int
    results: list[SourceCheckResult]


class SearchCheckRequest(BaseModel):
    """Web-search deep check for one state."""

    state_id: uuid.UUID
    source_url: str | None = None
