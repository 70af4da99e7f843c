"""
Regulatory Database Models
==========================

SQLAlchemy ORM models for states, the live rule set, tracked regulatory
sources, AI change suggestions and the rule audit log.

Version: 0.1.0
"""

import uuid
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from shared.database.models.enums import (
    ALL_PRODUCT_TYPES,
    AuditAction,
    ChangeType,
    RuleSourceType,
    Severity,
    SuggestionStatus,
    enum_column_type,
)
from shared.database.postgres import Base, utcnow


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


class StateModel(Base):
    """A jurisdiction whose labels can be checked."""

    __tablename__ = "states"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    abbreviation = Column(String(8), nullable=False, unique=True)
    is_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<State {self.abbreviation}>"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "name": self.name,
            "abbreviation": self.abbreviation,
            "is_enabled": self.is_enabled,
        }


class ComplianceRuleModel(Base):
    """
    A live compliance rule.

    `version` increments on every mutation and `is_active` acts as a soft
    delete. Each mutation is mirrored by one `RuleAuditLogModel` row whose
    snapshots come from `to_dict()`.
    """

    __tablename__ = "compliance_rules"
    __table_args__ = (
        Index("ix_compliance_rules_state_active", "state_id", "is_active"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    state_id = Column(Uuid, ForeignKey("states.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    severity = Column(enum_column_type(Severity), nullable=False, default=Severity.ERROR)
    citation = Column(Text)
    source_url = Column(Text)
    source_type = Column(
        enum_column_type(RuleSourceType),
        nullable=False,
        default=RuleSourceType.REGULATORY,
    )
    product_types = Column(JSON, nullable=False, default=lambda: list(ALL_PRODUCT_TYPES))
    validation_prompt = Column(Text, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ComplianceRule {self.name!r} v{self.version}>"

    def applies_to(self, product_type: str) -> bool:
        """Whether the rule covers a product type."""
        return product_type in (self.product_types or ALL_PRODUCT_TYPES)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary (also used as audit snapshot)."""
        return {
            "id": _str(self.id),
            "state_id": _str(self.state_id),
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "severity": Severity(self.severity).value if self.severity else None,
            "citation": self.citation,
            "source_url": self.source_url,
            "source_type": RuleSourceType(self.source_type).value if self.source_type else None,
            "product_types": list(self.product_types or []),
            "validation_prompt": self.validation_prompt,
            "is_active": self.is_active,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class RegulatorySourceModel(Base):
    """
    A government page tracked for content changes.

    `content_hash`, `last_checked` and `last_content_change` are written only
    by the check pipeline. Sources are deactivated, never deleted.
    """

    __tablename__ = "regulatory_sources"
    __table_args__ = (Index("ix_regulatory_sources_state", "state_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    state_id = Column(Uuid, ForeignKey("states.id", ondelete="CASCADE"), nullable=False)

    source_name = Column(String(255), nullable=False)
    source_url = Column(Text, nullable=False)
    content_hash = Column(String(64))
    last_checked = Column(DateTime(timezone=True))
    last_content_change = Column(DateTime(timezone=True))
    check_frequency_days = Column(Integer, nullable=False, default=7)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    state = relationship("StateModel", lazy="selectin")

    def __repr__(self) -> str:
        return f"<RegulatorySource {self.source_name!r}>"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "state_id": str(self.state_id),
            "source_name": self.source_name,
            "source_url": self.source_url,
            "content_hash": self.content_hash,
            "last_checked": _iso(self.last_checked),
            "last_content_change": _iso(self.last_content_change),
            "check_frequency_days": self.check_frequency_days,
            "is_active": self.is_active,
        }


class RuleChangeSuggestionModel(Base):
    """An AI-proposed rule change awaiting admin review."""

    __tablename__ = "rule_change_suggestions"
    __table_args__ = (
        Index("ix_rule_change_suggestions_state_status", "state_id", "status"),
        Index("ix_rule_change_suggestions_dedup", "state_id", "suggested_name", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    state_id = Column(Uuid, ForeignKey("states.id", ondelete="CASCADE"), nullable=False)
    source_id = Column(Uuid, ForeignKey("regulatory_sources.id", ondelete="SET NULL"))
    existing_rule_id = Column(Uuid, ForeignKey("compliance_rules.id", ondelete="SET NULL"))

    change_type = Column(enum_column_type(ChangeType), nullable=False)
    suggested_name = Column(String(255), nullable=False)
    suggested_description = Column(Text, nullable=False)
    suggested_category = Column(String(100))
    suggested_severity = Column(String(16))
    suggested_validation_prompt = Column(Text)
    suggested_citation = Column(Text)
    suggested_source_url = Column(Text)
    ai_reasoning = Column(Text)
    source_excerpt = Column(Text)

    status = Column(
        enum_column_type(SuggestionStatus),
        nullable=False,
        default=SuggestionStatus.PENDING,
    )
    reviewed_by = Column(Uuid)
    reviewed_at = Column(DateTime(timezone=True))
    review_notes = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    existing_rule = relationship("ComplianceRuleModel", lazy="selectin")
    source = relationship("RegulatorySourceModel", lazy="selectin")

    def __repr__(self) -> str:
        return f"<RuleChangeSuggestion {self.change_type} {self.suggested_name!r} ({self.status})>"

    @property
    def existing_rule_name(self) -> str | None:
        return self.existing_rule.name if self.existing_rule is not None else None


class RuleAuditLogModel(Base):
    """
    Append-only history of rule mutations.

    Rows are never updated or deleted. Rule references may go null after a
    rule is deleted; the JSON snapshots keep the history intact.
    """

    __tablename__ = "rule_audit_log"
    __table_args__ = (
        Index("ix_rule_audit_log_rule", "rule_id"),
        Index("ix_rule_audit_log_state", "state_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rule_id = Column(Uuid, ForeignKey("compliance_rules.id", ondelete="SET NULL"))
    state_id = Column(Uuid, ForeignKey("states.id", ondelete="SET NULL"))
    action = Column(enum_column_type(AuditAction), nullable=False)
    changed_by = Column(Uuid)
    change_reason = Column(Text)
    previous_version = Column(JSON)
    new_version = Column(JSON)
    suggestion_id = Column(Uuid, ForeignKey("rule_change_suggestions.id", ondelete="SET NULL"))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<RuleAuditLog {self.action} rule={self.rule_id}>"
