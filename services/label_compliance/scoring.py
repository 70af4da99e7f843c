"""
Compliance Scoring
==================

Scores every applicable rule against the combined panel extractions with a
single reasoning-model call, and derives the check summary.

Unlike the regulatory pipeline, an unparseable reply is fatal: the caller
gets a `ScoringParseError` carrying the raw reply.

Version: 0.1.0
"""

import json
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from shared.database.models import (
    CheckStatus,
    ComplianceRuleModel,
    CustomRuleModel,
    PanelType,
    Severity,
)
from shared.llm import LLMProvider, ModelRole, extract_json_array, get_llm_provider
from shared.logging import get_logger


logger = get_logger(__name__)

CUSTOM_PREFIX = "custom_"


class ScoringParseError(Exception):
    """Model reply held no JSON array of results."""

    def __init__(self, raw_response: str) -> None:
        super().__init__("Failed to parse compliance results")
        self.message = "Failed to parse compliance results"
        self.raw_response = raw_response


@dataclass(frozen=True)
class PanelExtraction:
    panel_id: uuid.UUID | None
    panel_type: PanelType
    extracted_data: dict[str, Any]


@dataclass(frozen=True)
class ScoringRule:
    """A regulatory or custom rule as presented to the model."""

    key: str
    name: str
    description: str
    is_custom: bool = False
    category: str | None = None
    severity: str | None = None
    citation: str | None = None
    validation_prompt: str | None = None

    @classmethod
    def from_rule(cls, rule: ComplianceRuleModel) -> "ScoringRule":
        return cls(
            key=str(rule.id),
            name=rule.name,
            description=rule.description,
            category=rule.category,
            severity=Severity(rule.severity).value if rule.severity else None,
            citation=rule.citation,
            validation_prompt=rule.validation_prompt,
        )

    @classmethod
    def from_custom(cls, rule: CustomRuleModel) -> "ScoringRule":
        return cls(
            key=f"{CUSTOM_PREFIX}{rule.id}",
            name=rule.name,
            description=rule.description,
            is_custom=True,
        )


@dataclass
class RuleScore:
    """One evaluated rule."""

    rule: ScoringRule
    status: CheckStatus
    found_value: str | None = None
    expected_value: str | None = None
    explanation: str | None = None
    panel_found: str | None = None

    @property
    def rule_id(self) -> uuid.UUID | None:
        return None if self.rule.is_custom else uuid.UUID(self.rule.key)

    @property
    def custom_rule_id(self) -> uuid.UUID | None:
        return uuid.UUID(self.rule.key.removeprefix(CUSTOM_PREFIX)) if self.rule.is_custom else None


@dataclass
class CheckSummary:
    pass_count: int = 0
    warning_count: int = 0
    fail_count: int = 0
    overall_status: CheckStatus = CheckStatus.PASS

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass_count": self.pass_count,
            "warning_count": self.warning_count,
            "fail_count": self.fail_count,
            "overall_status": self.overall_status.value,
        }


def summarize(statuses: Iterable[CheckStatus | str]) -> CheckSummary:
    """Counts per status; fail dominates warning, which dominates pass."""
    summary = CheckSummary()
    for status in statuses:
        status = CheckStatus(status)
        if status == CheckStatus.PASS:
            summary.pass_count += 1
        elif status == CheckStatus.WARNING:
            summary.warning_count += 1
        else:
            summary.fail_count += 1

    if summary.fail_count:
        summary.overall_status = CheckStatus.FAIL
    elif summary.warning_count:
        summary.overall_status = CheckStatus.WARNING
    return summary


def coerce_status(value: Any) -> CheckStatus:
    """Anything outside pass/warning/fail counts as a warning."""
    try:
        return CheckStatus(str(value).strip().lower())
    except ValueError:
        return CheckStatus.WARNING


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else json.dumps(value)


SYSTEM_PROMPT = """You are a cannabis label compliance expert. Analyze the extracted label data against compliance rules and determine pass/warning/fail status for each rule.

For each rule, evaluate the extracted data and determine:
- "pass": The requirement is fully met
- "warning": The requirement is partially met or unclear
- "fail": The requirement is not met

Return a JSON array with this structure for each rule:
[
  {
    "ruleId": "uuid of the rule",
    "status": "pass" | "warning" | "fail",
    "foundValue": "what was found in the label data",
    "expectedValue": "what the rule requires",
    "explanation": "brief explanation of why this status was assigned",
    "panelFound": "which panel type contains the relevant info (or 'not found')"
  }
]

Be thorough but fair. If something is present but might not fully meet requirements, use "warning". Only use "fail" for clear violations or missing required elements."""


@dataclass
class ScoringResult:
    scores: list[RuleScore] = field(default_factory=list)
    raw_response: str = ""

    @property
    def summary(self) -> CheckSummary:
        return summarize(s.status for s in self.scores)


class ComplianceScorer:
    """Rule evaluation over combined extractions."""

    def __init__(self, provider: LLMProvider | None = None) -> None:
        self._provider = provider

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider(ModelRole.REASONING)
        return self._provider

    def build_prompt(
        self,
        panels: Sequence[PanelExtraction],
        rules: Sequence[ScoringRule],
    ) -> str:
        combined = [{"panel": p.panel_type.value, "data": p.extracted_data} for p in panels]
        regulatory = [r for r in rules if not r.is_custom]
        custom = [r for r in rules if r.is_custom]

        parts = [
            "## Extracted Label Data (from all panels):",
            json.dumps(combined, indent=2),
            "",
            "## Compliance Rules to Check:",
        ]
        for rule in regulatory:
            parts.append(
                f"\nRule ID: {rule.key}\n"
                f"Name: {rule.name}\n"
                f"Category: {rule.category}\n"
                f"Description: {rule.description}\n"
                f"Validation Criteria: {rule.validation_prompt}\n"
                f"Citation: {rule.citation or 'N/A'}\n"
                f"Severity: {rule.severity}\n---"
            )
        if custom:
            parts.append("\n## Custom/Internal Rules to Check:")
            for rule in custom:
                parts.append(
                    f"\nCustom Rule ID: {rule.key}\nName: {rule.name}\n"
                    f"Description: {rule.description}\n---"
                )
        parts.append(
            "\nPlease analyze each rule against the extracted data and return the "
            "compliance results as a JSON array."
        )
        return "\n".join(parts)

    def parse(self, reply: str, rules: Sequence[ScoringRule]) -> list[RuleScore]:
        """
        Map reply records onto known rules.

        Raises:
            ScoringParseError: no JSON array in the reply
        """
        items = extract_json_array(reply)
        if items is None:
            raise ScoringParseError(reply)

        by_key = {rule.key: rule for rule in rules}
        scores: list[RuleScore] = []
        seen: set[str] = set()
        for item in items:
            if not isinstance(item, dict):
                continue
            key = str(item.get("ruleId") or "").strip()
            rule = by_key.get(key)
            if rule is None or key in seen:
                logger.warning("scoring_result_dropped", rule_id=key or None)
                continue
            seen.add(key)
            scores.append(
                RuleScore(
                    rule=rule,
                    status=coerce_status(item.get("status")),
                    found_value=_text(item.get("foundValue")),
                    expected_value=_text(item.get("expectedValue")),
                    explanation=_text(item.get("explanation")),
                    panel_found=_text(item.get("panelFound")),
                )
            )
        return scores

    async def score(
        self,
        panels: Sequence[PanelExtraction],
        rules: Sequence[ComplianceRuleModel],
        custom_rules: Sequence[CustomRuleModel] = (),
    ) -> ScoringResult:
        """
        Evaluate rules against the extracted panels.

        Raises:
            LLMError: reasoning call failed
            ScoringParseError: reply could not be parsed
        """
        scoring_rules = [ScoringRule.from_rule(r) for r in rules]
        scoring_rules += [ScoringRule.from_custom(r) for r in custom_rules]

        logger.info(
            "compliance_scoring_started",
            panels=len(panels),
            rules=len(rules),
            custom_rules=len(custom_rules),
        )
        reply = await self.provider.generate_text(
            self.build_prompt(panels, scoring_rules),
            system_prompt=SYSTEM_PROMPT,
        )

        try:
            scores = self.parse(reply, scoring_rules)
        except ScoringParseError:
            logger.error("compliance_scoring_unparseable", reply=reply)
            raise

        result = ScoringResult(scores=scores, raw_response=reply)
        logger.info("compliance_scoring_completed", results=len(scores), **result.summary.to_dict())
        return result
