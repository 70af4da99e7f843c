"""
Compliance Check Database Models
================================

SQLAlchemy ORM models for label compliance checks: the check itself, its
uploaded panels, per-rule results, generated reports, and user-owned
custom (internal SOP) rules.

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

from shared.database.models.enums import CheckStatus, PanelType, ProductType, enum_column_type
from shared.database.postgres import Base, utcnow


class CustomRuleModel(Base):
    """An internal rule owned by one user, optionally applied to their checks."""

    __tablename__ = "custom_rules"
    __table_args__ = (Index("ix_custom_rules_user", "user_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<CustomRule {self.name!r}>"


class ComplianceCheckModel(Base):
    """
    One label compliance check session.

    Counts and `overall_status` are written once, when scoring finishes, and
    always satisfy `pass_count + warning_count + fail_count == len(results)`.
    """

    __tablename__ = "compliance_checks"
    __table_args__ = (
        Index("ix_compliance_checks_user", "user_id"),
        Index("ix_compliance_checks_created", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    state_id = Column(Uuid, ForeignKey("states.id"), nullable=False)
    product_type = Column(enum_column_type(ProductType), nullable=False)
    product_name = Column(String(255))

    # Custom rule ids the user selected for this check
    custom_rule_ids = Column(JSON, nullable=False, default=list)

    overall_status = Column(enum_column_type(CheckStatus))
    pass_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    fail_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True))

    state = relationship("StateModel", lazy="selectin")
    panels = relationship(
        "PanelUploadModel",
        back_populates="check",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PanelUploadModel.created_at",
    )
    results = relationship(
        "CheckResultModel",
        back_populates="check",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    reports = relationship(
        "ReportModel",
        back_populates="check",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ComplianceCheck {self.id} ({self.overall_status})>"

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class PanelUploadModel(Base):
    """One photographed face of the label and what the vision model read from it."""

    __tablename__ = "panel_uploads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    compliance_check_id = Column(
        Uuid,
        ForeignKey("compliance_checks.id", ondelete="CASCADE"),
        nullable=False,
    )
    panel_type = Column(enum_column_type(PanelType), nullable=False)
    file_path = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    extracted_data = Column(JSON)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    check = relationship("ComplianceCheckModel", back_populates="panels")


class CheckResultModel(Base):
    """Outcome of one rule (regulatory or custom) against the combined extraction."""

    __tablename__ = "check_results"
    __table_args__ = (Index("ix_check_results_check", "compliance_check_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    compliance_check_id = Column(
        Uuid,
        ForeignKey("compliance_checks.id", ondelete="CASCADE"),
        nullable=False,
    )
    rule_id = Column(Uuid, ForeignKey("compliance_rules.id", ondelete="SET NULL"))
    custom_rule_id = Column(Uuid, ForeignKey("custom_rules.id", ondelete="SET NULL"))
    panel_upload_id = Column(Uuid, ForeignKey("panel_uploads.id", ondelete="SET NULL"))

    status = Column(enum_column_type(CheckStatus), nullable=False)
    found_value = Column(Text)
    expected_value = Column(Text)
    explanation = Column(Text)
    citation = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    check = relationship("ComplianceCheckModel", back_populates="results")
    rule = relationship("ComplianceRuleModel", lazy="selectin")
    custom_rule = relationship("CustomRuleModel", lazy="selectin")

    @property
    def rule_name(self) -> str | None:
        if self.rule is not None:
            return self.rule.name
        if self.custom_rule is not None:
            return self.custom_rule.name
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "rule_id": str(self.rule_id) if self.rule_id else None,
            "custom_rule_id": str(self.custom_rule_id) if self.custom_rule_id else None,
            "rule_name": self.rule_name,
            "status": CheckStatus(self.status).value,
            "found_value": self.found_value,
            "expected_value": self.expected_value,
            "explanation": self.explanation,
            "citation": self.citation,
        }


class ReportModel(Base):
    """Object-store locations of the generated PDF and CSV reports."""

    __tablename__ = "reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    compliance_check_id = Column(
        Uuid,
        ForeignKey("compliance_checks.id", ondelete="CASCADE"),
        nullable=False,
    )
    pdf_path = Column(Text)
    csv_path = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    check = relationship("ComplianceCheckModel", back_populates="reports")
