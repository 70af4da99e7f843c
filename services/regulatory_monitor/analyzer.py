"""
Regulatory Diff Analyzer
========================

Asks a reasoning model to compare scraped regulatory text against a state's
active rule set and parses its reply into candidate rule changes.

Parsing contract: the first top-level JSON array in the reply is used. A reply
without a parseable array yields no candidates and `parse_error=True`; the
analyzer never retries.

Version: 0.1.0
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from shared.config import settings
from shared.database.models import ChangeType, ComplianceRuleModel, Severity
from shared.llm import LLMProvider, ModelRole, extract_json_array, get_llm_provider
from shared.logging import get_logger


logger = get_logger(__name__)


RULE_CATEGORIES = (
    "Required Warnings",
    "Symbols & Icons",
    "Ingredient Panels",
    "Net Weight Format",
    "Placement Rules",
    "THC Content",
    "Manufacturer Info",
    "Batch & Testing",
    "General",
)
DEFAULT_CATEGORY = "General"

CHANGE_TYPE_ALIASES: dict[str, ChangeType] = {
    "new": ChangeType.NEW,
    "add": ChangeType.NEW,
    "update": ChangeType.UPDATE,
    "deprecate": ChangeType.DEPRECATE,
    "remove": ChangeType.DEPRECATE,
    "removal": ChangeType.DEPRECATE,
}


def normalize_change_type(value: Any) -> ChangeType | None:
    """Map the model's change label onto new/update/deprecate."""
    if not isinstance(value, str):
        return None
    return CHANGE_TYPE_ALIASES.get(value.strip().lower())


def normalize_category(value: Any) -> str:
    if isinstance(value, str):
        for category in RULE_CATEGORIES:
            if category.lower() == value.strip().lower():
                return category
    return DEFAULT_CATEGORY


def normalize_severity(value: Any) -> str | None:
    if isinstance(value, str) and value.strip().lower() in {s.value for s in Severity}:
        return value.strip().lower()
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text and text.lower() != "null" else None


def _uuid(value: Any) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value)) if value else None
    except ValueError:
        return None


@dataclass(frozen=True)
class RuleContext:
    """The slice of a live rule shown to the model."""

    id: uuid.UUID
    name: str
    description: str
    category: str
    severity: str | None
    citation: str | None

    @classmethod
    def from_model(cls, rule: ComplianceRuleModel) -> "RuleContext":
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            category=rule.category,
            severity=Severity(rule.severity).value if rule.severity else None,
            citation=rule.citation,
        )

    def prompt_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "citation": self.citation,
        }


@dataclass
class CandidateChange:
    """A rule change proposed by a model, before it becomes a suggestion."""

    change_type: ChangeType
    suggested_name: str
    suggested_description: str
    suggested_category: str = DEFAULT_CATEGORY
    suggested_severity: str | None = None
    suggested_citation: str | None = None
    suggested_source_url: str | None = None
    suggested_validation_prompt: str | None = None
    ai_reasoning: str | None = None
    source_excerpt: str | None = None
    existing_rule_id: uuid.UUID | None = None
    existing_rule_name: str | None = None

    @classmethod
    def from_payload(
        cls,
        item: Any,
        excerpt_chars: int | None = None,
    ) -> "CandidateChange | None":
        """
        Build a candidate from one element of a model reply.

        Accepts snake_case and camelCase keys. Returns None for elements
        without a name or with an unknown change type.
        """
        if not isinstance(item, dict):
            return None

        def pick(*keys: str) -> Any:
            for key in keys:
                if item.get(key) not in (None, ""):
                    return item[key]
            return None

        change_type = normalize_change_type(pick("change_type", "changeType"))
        name = _text(pick("suggested_name", "suggestedName"))
        if change_type is None or name is None:
            return None

        limit = excerpt_chars or settings.compliance.excerpt_chars
        excerpt = _text(pick("source_excerpt", "sourceExcerpt"))
        if excerpt and len(excerpt) > limit:
            excerpt = excerpt[:limit]

        existing_ref = pick("existing_rule_id", "existingRuleId")
        existing_id = _uuid(existing_ref)

        return cls(
            change_type=change_type,
            suggested_name=name,
            suggested_description=_text(pick("suggested_description", "suggestedDescription")) or name,
            suggested_category=normalize_category(pick("suggested_category", "suggestedCategory")),
            suggested_severity=normalize_severity(pick("suggested_severity", "suggestedSeverity")),
            suggested_citation=_text(pick("suggested_citation", "suggestedCitation")),
            suggested_source_url=_text(pick("suggested_source_url", "suggestedSourceUrl")),
            suggested_validation_prompt=_text(
                pick("suggested_validation_prompt", "suggestedValidationPrompt")
            ),
            ai_reasoning=_text(pick("ai_reasoning", "reasoning")),
            source_excerpt=excerpt,
            existing_rule_id=existing_id,
            # A non-UUID "id" from the model is usually the rule's name
            existing_rule_name=_text(pick("existing_rule_name", "existingRuleName"))
            or (None if existing_id else _text(existing_ref)),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["change_type"] = self.change_type.value
        data["existing_rule_id"] = str(self.existing_rule_id) if self.existing_rule_id else None
        return data


def parse_candidates(
    items: list[Any],
    excerpt_chars: int | None = None,
) -> list[CandidateChange]:
    """Convert raw reply elements, dropping and logging unusable ones."""
    candidates: list[CandidateChange] = []
    for item in items:
        candidate = CandidateChange.from_payload(item, excerpt_chars)
        if candidate is None:
            logger.warning("candidate_change_dropped", item=str(item)[:200])
            continue
        candidates.append(candidate)
    return candidates


@dataclass
class AnalysisResult:
    """Parsed analyzer reply."""

    candidates: list[CandidateChange] = field(default_factory=list)
    parse_error: bool = False
    raw_response: str = ""


SYSTEM_PROMPT = (
    "You are a cannabis regulatory compliance expert. Analyze the provided regulatory "
    "content and respond only with valid JSON arrays. Focus on labeling requirements."
)

ANALYSIS_PROMPT = """You are a cannabis compliance regulatory expert. Analyze the following ACTUAL regulatory content scraped from {source_name} for {state_name}.

=== SCRAPED REGULATORY CONTENT ===
{content}
=== END OF SCRAPED CONTENT ===

Source URL: {source_url}

Here are the EXISTING compliance rules we have for this state:
{rules}

Based on the ACTUAL REGULATORY CONTENT above, please identify:

1. Any rules that may be OUTDATED or need updating based on the current regulations
2. Any NEW requirements in the regulations that are missing from our current ruleset
3. Any rules that should be DEPRECATED because they're no longer in the regulations

Focus specifically on CANNABIS LABELING requirements including:
- Required warning statements
- Required symbols and icons (THC symbol, etc.)
- Ingredient panel requirements
- Net weight and quantity formats
- THC/CBD content display requirements
- Manufacturer/cultivator information
- Batch and testing information
- Placement and size requirements

For each suggestion, provide:
- change_type: "new", "update", or "deprecate"
- existing_rule_name: (for updates/deprecations) the name of the existing rule being modified
- suggested_name: clear, descriptive rule name
- suggested_description: detailed description of the requirement
- suggested_category: one of {categories}
- suggested_severity: "error" (must have), "warning" (should have), or "info" (nice to have)
- suggested_citation: the specific regulation section/citation from the scraped content
- ai_reasoning: why you're suggesting this change based on the scraped content
- source_excerpt: the exact relevant text from the scraped regulations (keep brief, under {excerpt_chars} chars)

Respond with a JSON array of suggestions. If the scraped content doesn't contain labeling requirements or no changes are needed, respond with an empty array [].
Only suggest changes you can verify from the ACTUAL SCRAPED CONTENT above."""


class RegulatoryDiffAnalyzer:
    """
    Diffs scraped regulatory text against the live rule set via a reasoning model.

    Upstream failures (`LLMError`) propagate to the caller; malformed replies
    do not.
    """

    def __init__(
        self,
        provider: LLMProvider | None = None,
        max_source_chars: int | None = None,
        excerpt_chars: int | None = None,
    ) -> None:
        self._provider = provider
        self.max_source_chars = max_source_chars or settings.compliance.max_source_chars
        self.excerpt_chars = excerpt_chars or settings.compliance.excerpt_chars

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider(ModelRole.REASONING)
        return self._provider

    def build_prompt(
        self,
        content: str,
        rules: list[RuleContext],
        source_name: str,
        source_url: str,
        state_name: str | None,
    ) -> str:
        return ANALYSIS_PROMPT.format(
            source_name=source_name,
            state_name=state_name or "this state",
            content=content[: self.max_source_chars],
            source_url=source_url,
            rules=json.dumps([r.prompt_dict() for r in rules], indent=2),
            categories=", ".join(f'"{c}"' for c in RULE_CATEGORIES),
            excerpt_chars=self.excerpt_chars,
        )

    async def analyze(
        self,
        content: str,
        rules: list[RuleContext],
        source_name: str,
        source_url: str,
        state_name: str | None = None,
    ) -> AnalysisResult:
        """
        Run the diff.

        Raises:
            LLMError: when the model call itself fails
        """
        prompt = self.build_prompt(content, rules, source_name, source_url, state_name)

        logger.info(
            "regulatory_analysis_started",
            source_name=source_name,
            content_chars=min(len(content), self.max_source_chars),
            truncated=len(content) > self.max_source_chars,
            rules=len(rules),
        )

        reply = await self.provider.generate_text(prompt, system_prompt=SYSTEM_PROMPT)

        items = extract_json_array(reply)
        if items is None:
            logger.warning("regulatory_analysis_unparseable", source_name=source_name, reply=reply)
            return AnalysisResult(parse_error=True, raw_response=reply)

        candidates = parse_candidates(items, self.excerpt_chars)
        logger.info(
            "regulatory_analysis_completed",
            source_name=source_name,
            returned=len(items),
            candidates=len(candidates),
        )
        return AnalysisResult(candidates=candidates, raw_response=reply)
