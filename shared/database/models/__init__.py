"""
Database Models
===============

SQLAlchemy ORM models shared by the regulatory monitor and label
compliance services.

Tables:
- states: Jurisdictions with an enable flag
- compliance_rules: Live rule set, versioned and soft-deletable
- regulatory_sources: Government pages tracked for changes
- rule_change_suggestions: AI-proposed changes awaiting review
- rule_audit_log: Append-only rule history
- custom_rules: User-owned internal rules
- compliance_checks / panel_uploads / check_results / reports: Label checks

Version: 0.1.0
"""

from shared.database.models.enums import (
    ALL_PRODUCT_TYPES,
    AuditAction,
    ChangeType,
    CheckStatus,
    PanelType,
    ProductType,
    RuleSourceType,
    Severity,
    SuggestionStatus,
)
from shared.database.models.regulatory import (
    ComplianceRuleModel,
    RegulatorySourceModel,
    RuleAuditLogModel,
    RuleChangeSuggestionModel,
    StateModel,
)
from shared.database.models.checks import (
    CheckResultModel,
    ComplianceCheckModel,
    CustomRuleModel,
    PanelUploadModel,
    ReportModel,
)

__all__ = [
    # Enums
    "ALL_PRODUCT_TYPES",
    "AuditAction",
    "ChangeType",
    "CheckStatus",
    "PanelType",
    "ProductType",
    "RuleSourceType",
    "Severity",
    "SuggestionStatus",
    # Regulatory
    "StateModel",
    "ComplianceRuleModel",
    "RegulatorySourceModel",
    "RuleChangeSuggestionModel",
    "RuleAuditLogModel",
    # Checks
    "CustomRuleModel",
    "ComplianceCheckModel",
    "PanelUploadModel",
    "CheckResultModel",
    "ReportModel",
]
