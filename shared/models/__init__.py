"""
Shared Models
=============

Pydantic API schemas shared across Labelwise services.

Models:
- Regulatory models (State, RegulatorySource, Rule, RuleChangeSuggestion, AuditEntry)
- Compliance models (ComplianceCheck, PanelUpload, CheckResult, Report, CustomRule)
- Common models (BaseResponse, ErrorResponse, HealthResponse)
"""

from shared.models.regulatory import (
    AuditEntry,
    CitationInfo,
    RegulationCheckRequest,
    RegulationCheckResponse,
    RegulatorySource,
    ReviewRequest,
    ReviewResponse,
    Rule,
    RuleActiveUpdate,
    RuleChangeSuggestion,
    RuleCreate,
    RuleUpdate,
    SearchCheckRequest,
    SourceCreate,
    SourceUpdate,
    State,
    StateCreate,
    StateUpdate,
)
from shared.models.compliance import (
    AnalyzeLabelRequest,
    AnalyzeLabelResponse,
    CheckCreate,
    CheckResult,
    CheckStats,
    ComplianceCheck,
    ComplianceCheckDetail,
    CustomRule,
    CustomRuleCreate,
    CustomRuleUpdate,
    PanelCreate,
    PanelUpload,
    Report,
    ScoreResponse,
)
from shared.models.common import (
    BaseResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    # Regulatory
    "AuditEntry",
    "CitationInfo",
    "RegulationCheckRequest",
    "RegulationCheckResponse",
    "RegulatorySource",
    "ReviewRequest",
    "ReviewResponse",
    "Rule",
    "RuleActiveUpdate",
    "RuleChangeSuggestion",
    "RuleCreate",
    "RuleUpdate",
    "SearchCheckRequest",
    "SourceCreate",
    "SourceUpdate",
    "State",
    "StateCreate",
    "StateUpdate",
    # Compliance
    "AnalyzeLabelRequest",
    "AnalyzeLabelResponse",
    "CheckCreate",
    "CheckResult",
    "CheckStats",
    "ComplianceCheck",
    "ComplianceCheckDetail",
    "CustomRule",
    "CustomRuleCreate",
    "CustomRuleUpdate",
    "PanelCreate",
    "PanelUpload",
    "Report",
    "ScoreResponse",
    # Common
    "BaseResponse",
    "ErrorResponse",
    "HealthResponse",
]
