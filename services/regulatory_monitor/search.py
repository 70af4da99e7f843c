"""
Web-Search Regulatory Checks
============================

Admin-triggered "deep checks" that let a search-enabled model research a
state's current labeling rules instead of scraping a fixed page.

Pipelines:
- Groq compound: the model searches and answers with a JSON object
- OpenAI: Responses API web search, then a JSON structuring call
- Perplexity: domain-filtered sonar search, then a structuring call on the
  reasoning provider

Every pipeline ends with the same guard: a candidate survives only if its
source URL is one the search step actually returned, or lives on the same
host (or a subdomain of it). Survivors go through the suggestion store, so
pending duplicates are skipped as in the scrape pipeline.

Version: 0.1.0
"""

import json
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.analyzer import (
    RULE_CATEGORIES,
    CandidateChange,
    RuleContext,
    parse_candidates,
)
from services.regulatory_monitor.citations import is_valid_url
from services.regulatory_monitor.jurisdictions import (
    JURISDICTIONS,
    Jurisdiction,
    JurisdictionConfig,
    jurisdiction_config,
    state_domains,
)
from services.regulatory_monitor.sources import SourceRegistry, StateRegistry
from services.regulatory_monitor.suggestions import SuggestionStore, load_rule_context
from shared.database.models import RegulatorySourceModel, StateModel
from shared.llm import (
    LLMMessage,
    LLMProvider,
    LLMUpstreamError,
    ModelRole,
    extract_json_array,
    extract_json_object,
    get_llm_provider,
)
from shared.llm.groq import GroqCompoundClient
from shared.llm.openai import OpenAIProvider
from shared.llm.perplexity import PerplexityClient
from shared.logging import get_logger


logger = get_logger(__name__)


# ============================================================================
# URL verification
# ============================================================================


def host_of(url: str | None) -> str | None:
    if not url:
        return None
    host = urlparse(url.strip()).hostname
    return host.lower() if host else None


@dataclass
class VerificationResult:
    """Candidates split by whether their source URL could be verified."""

    kept: list[CandidateChange] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return len(self.reasons)


def filter_verified(
    candidates: Iterable[CandidateChange],
    verified_urls: Iterable[str],
) -> VerificationResult:
    """
    Keep candidates whose source URL matches a verified URL or its host.

    Candidates without a URL are rejected.
    """
    urls = {u.strip() for u in verified_urls if u}
    hosts = {h for h in (host_of(u) for u in urls) if h}
    result = VerificationResult()

    for candidate in candidates:
        url = candidate.suggested_source_url
        if not url:
            result.reasons.append(f'Rejected "{candidate.suggested_name}": No source URL')
            continue
        host = host_of(url)
        if url.strip() in urls or (
            host is not None and any(host == h or host.endswith(f".{h}") for h in hosts)
        ):
            result.kept.append(candidate)
            continue
        result.reasons.append(f'Rejected "{candidate.suggested_name}": Unverified URL {url}')

    for reason in result.reasons:
        logger.info("search_candidate_rejected", reason=reason)
    return result


def apply_url_fallbacks(
    candidates: Iterable[CandidateChange],
    sources: Sequence[str],
    base_url: str | None,
) -> VerificationResult:
    """
    Fill in missing or malformed source URLs.

    A missing URL falls back to the first `.gov` source, then the first
    source, then the jurisdiction's primary page. A malformed URL falls back
    to the primary page. Without a fallback the candidate is rejected.
    """
    result = VerificationResult()
    gov_source = next((s for s in sources if ".gov" in s), None)

    for candidate in candidates:
        url = candidate.suggested_source_url
        if not url:
            url = gov_source or (sources[0] if sources else None) or base_url
            if not url:
                result.reasons.append(f'Rejected "{candidate.suggested_name}": No valid source URL')
                continue
            logger.debug("search_url_fallback", name=candidate.suggested_name, url=url)

        if not is_valid_url(url):
            if not base_url:
                result.reasons.append(f'Rejected "{candidate.suggested_name}": Invalid URL format')
                continue
            url = base_url

        result.kept.append(replace(candidate, suggested_source_url=url))
    return result


# ============================================================================
# Context
# ============================================================================


@dataclass
class SearchContext:
    """Everything a pipeline needs to know about the state being checked."""

    state: StateModel
    jurisdiction: Jurisdiction
    config: JurisdictionConfig
    rules: list[RuleContext]
    sources: list[RegulatorySourceModel]

    @property
    def base_url(self) -> str | None:
        return self.config.primary.url if self.config.primary else None

    def rules_summary(self, limit: int | None = None) -> str:
        rules = self.rules[:limit] if limit else self.rules
        if not rules:
            return "No existing rules"
        return "\n".join(f"- {r.name}: {r.description}" for r in rules)

    def rules_with_citations(self) -> str:
        return "\n".join(
            f"- {r.name}: {r.description} (Citation: {r.citation or 'N/A'})" for r in self.rules
        )


def openai_domains(context: SearchContext) -> list[str]:
    """Source hostnames, generic state domains and the jurisdiction's official domains."""
    domains: list[str] = []
    candidates = [host_of(s.source_url) for s in context.sources]
    candidates += state_domains(context.state.abbreviation)
    candidates += list(context.config.official_domains)
    for domain in candidates:
        if domain and domain not in domains:
            domains.append(domain)
    return domains


# ============================================================================
# Prompts
# ============================================================================

GROQ_SYSTEM_PROMPT = """You are an expert cannabis regulatory analyst. Your job is to search for the LATEST cannabis labeling and packaging requirements for the specified state and compare them against existing compliance rules.

CRITICAL REQUIREMENTS:
1. You MUST search for official state government sources (.gov websites)
2. You MUST provide a VALID, WORKING URL for EVERY citation
3. DO NOT suggest any rule change without a verifiable source URL
4. Prefer official regulatory websites over third-party sources

{primary_source}
VALID URL EXAMPLES:
- Montana: https://rules.mt.gov/gateway/RuleNo.asp?RN=37.107.402
- Colorado: https://med.colorado.gov/rules
- California: https://cannabis.ca.gov/cannabis-laws/dcc-regulations/

DO NOT use URLs like:
- Generic search pages without specific results
- Broken or hypothetical URLs
- Third-party legal databases (westlaw, lexis) unless absolutely necessary

Return your findings as a JSON object with this structure:
{{
  "searchSummary": "Brief summary of what was found",
  "sourcesUsed": ["array of actual URLs that were searched and returned results"],
  "currentRequirements": [
    {{
      "requirement": "Description of the requirement",
      "citation": "Specific regulatory citation (e.g., ARM 37.107.402)",
      "sourceUrl": "REQUIRED: Direct URL to the .gov page where this was found",
      "category": "One of: {categories}",
      "effectiveDate": "Date if known, otherwise null"
    }}
  ],
  "suggestedChanges": [
    {{
      "changeType": "new" | "update" | "removal",
      "existingRuleId": "ID of existing rule to update/remove, or null for new",
      "suggestedName": "Rule name",
      "suggestedDescription": "Detailed description",
      "suggestedCategory": "One of: {categories}",
      "suggestedCitation": "Specific citation (e.g., 'ARM 37.107.402')",
      "suggestedSourceUrl": "REQUIRED: Direct .gov URL where this regulation can be verified. Must be a real, working URL you actually visited.",
      "suggestedSeverity": "error" | "warning" | "info",
      "suggestedValidationPrompt": "Prompt for AI validation",
      "reasoning": "Why this change is suggested with reference to the source",
      "sourceExcerpt": "Exact text quoted from the source document"
    }}
  ],
  "confidence": {{
    "overall": 0.0-1.0,
    "dataFreshness": "Recent/Moderate/Outdated/Unknown",
    "sourceReliability": "Official/Semi-official/Third-party"
  }}
}}

IMPORTANT: If you cannot find a valid source URL for a potential rule change, DO NOT include it in suggestedChanges. Only suggest changes you can verify with a real URL."""

GROQ_PRIMARY_SOURCE = """PRIMARY SOURCE FOR {state}:
- {name}: {url}
You SHOULD visit this URL and extract regulations from it.
"""

GROQ_QUERY = """Search for the latest cannabis labeling and packaging requirements for {state_name}.

{start}

Look for official {state_name} government regulations about cannabis/marijuana labeling, packaging, and compliance requirements.

Current existing rules to compare against:
{rules}

Identify any new requirements, changes to existing requirements, or outdated rules. Remember: ONLY suggest changes if you have a valid source URL."""

SEARCH_FOCUS = """Focus on finding:
1. Required warning statements and their exact wording
2. THC/CBD content labeling requirements
3. Required symbols or icons (universal symbol, etc.)
4. Font size and placement requirements
5. Ingredient and allergen disclosure rules
6. Net weight and serving size requirements
7. Child-resistant packaging requirements
8. Any recent regulatory updates or proposed changes"""

OPENAI_SEARCH_PROMPT = """Search for the latest {state_name} cannabis labeling and packaging regulations.

{focus}

Prefer official government sources such as: {domains}

Current rules we have on file:
{rules}

Compare what you find online against these existing rules and identify:
- NEW rules we don't have
- CHANGES to existing rules (updated requirements)
- Rules that may be DEPRECATED or no longer apply

For each finding, provide the exact regulatory citation (e.g., "ARM 37.107.406") and the source URL where you found it."""

STRUCTURING_SYSTEM_PROMPT = (
    "You are a regulatory compliance expert. Extract structured data from research "
    "findings. Return only valid JSON."
)

STRUCTURING_PROMPT = """Based on this regulatory research about {state_name} cannabis labeling requirements, extract structured rule suggestions.

Research findings:
{findings}

Verified source URLs found (use ONLY these URLs):
{urls}

Existing rules for comparison:
{rules}

Return a JSON object {{"suggestions": [...]}}. Each suggestion should have:
- change_type: "new" | "update" | "deprecate"
- existing_rule_name: for updates and deprecations, the name of the existing rule
- suggested_name: short descriptive name
- suggested_description: full requirement description
- suggested_category: one of {categories}
- suggested_severity: "error" | "warning" | "info"
- suggested_citation: the regulatory citation (e.g., "ARM 37.107.406")
- suggested_source_url: the verified URL from the list above (MUST be from the verified URLs list)
- suggested_validation_prompt: a prompt to validate compliance with this rule
- ai_reasoning: why this rule should be added/updated/deprecated
- source_excerpt: relevant text from the source

Only include suggestions where you have a verified source URL. Do not make up URLs."""

PERPLEXITY_SYSTEM_PROMPT = (
    "You are a regulatory compliance expert specializing in cannabis labeling requirements. "
    "Always cite specific regulations with their official citation format and provide "
    "verified source URLs. Focus on official .gov sources."
)

PERPLEXITY_SEARCH_PROMPT = """Research the current cannabis product labeling requirements for {state_name} ({abbreviation}).

Focus on finding:
1. Required warning statements and their exact wording
2. THC/CBD content display requirements (format, font size, placement)
3. Required symbols or icons (universal symbol, etc.)
4. Net weight and serving size requirements
5. Ingredient listing requirements
6. Manufacturer/producer information requirements
7. Child-resistant packaging requirements
8. Any recent regulatory changes or updates (within last 6 months)

For each requirement found, provide:
- The specific requirement text
- The regulatory citation (e.g., ARM 37.107.XXX for Montana)
- The source URL where this was found

Be thorough and cite your sources with specific URLs."""


def _categories() -> str:
    return ", ".join(f'"{c}"' for c in RULE_CATEGORIES)


def _raw_items(parsed: Any) -> list[Any]:
    value = parsed.get("suggestedChanges") if isinstance(parsed, dict) else None
    return value if isinstance(value, list) else []


def structured_items(reply: str) -> list[Any] | None:
    """Suggestions from a structuring reply: a bare array or `{"suggestions": [...]}`."""
    try:
        parsed = json.loads(reply)
    except json.JSONDecodeError:
        parsed = extract_json_object(reply)
        if parsed is None or not isinstance(parsed.get("suggestions"), list):
            return extract_json_array(reply)
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("suggestions"), list):
        return parsed["suggestions"]
    return None


# ============================================================================
# Service
# ============================================================================


class RegulatorySearchService:
    """Runs the web-search pipelines for one state and stores what survives."""

    def __init__(
        self,
        store: SuggestionStore | None = None,
        configs: Mapping[Jurisdiction, JurisdictionConfig] = JURISDICTIONS,
        groq_factory: Callable[[], GroqCompoundClient] = GroqCompoundClient,
        openai_factory: Callable[[], OpenAIProvider] = OpenAIProvider,
        perplexity_factory: Callable[[], PerplexityClient] = PerplexityClient,
        structuring_provider: LLMProvider | None = None,
    ) -> None:
        self.store = store or SuggestionStore()
        self.configs = configs
        self.groq_factory = groq_factory
        self.openai_factory = openai_factory
        self.perplexity_factory = perplexity_factory
        self._structuring_provider = structuring_provider
        self.states = StateRegistry()
        self.sources = SourceRegistry()

    @property
    def structuring_provider(self) -> LLMProvider:
        if self._structuring_provider is None:
            self._structuring_provider = get_llm_provider(ModelRole.REASONING)
        return self._structuring_provider

    async def load_context(self, db: AsyncSession, state_id: uuid.UUID) -> SearchContext:
        state = await self.states.get_state(db, state_id)
        jurisdiction = Jurisdiction.parse(state.abbreviation)
        return SearchContext(
            state=state,
            jurisdiction=jurisdiction,
            config=jurisdiction_config(jurisdiction, self.configs),
            rules=await load_rule_context(db, state_id),
            sources=await self.sources.list_sources(db, state_id=state_id),
        )

    async def _store(
        self,
        db: AsyncSession,
        context: SearchContext,
        candidates: list[CandidateChange],
    ) -> int:
        return await self.store.store_candidates(
            db,
            state_id=context.state.id,
            candidates=candidates,
            existing_rules=context.rules,
        )

    async def run_groq(
        self,
        db: AsyncSession,
        state_id: uuid.UUID,
        source_url: str | None = None,
    ) -> dict[str, Any]:
        """
        Groq compound deep check.

        Raises:
            LLMError: Groq failed after retries (configuration errors included)
        """
        client = self.groq_factory()
        context = await self.load_context(db, state_id)
        state_name = context.state.name

        primary = context.config.primary
        system_prompt = GROQ_SYSTEM_PROMPT.format(
            primary_source=GROQ_PRIMARY_SOURCE.format(
                state=state_name.upper(), name=primary.name, url=primary.url
            )
            if primary
            else "",
            categories=_categories(),
        )
        if source_url:
            start = (
                f"IMPORTANT: Visit and analyze this specific regulatory source: {source_url}\n\n"
                f"Also search for other official {state_name} government sources about cannabis "
                "labeling requirements."
            )
        else:
            start = f"Start by visiting: {primary.url}" if primary else ""
        query = GROQ_QUERY.format(
            state_name=state_name,
            start=start,
            rules=context.rules_with_citations(),
        )

        logger.info(
            "groq_check_started",
            state=context.state.abbreviation,
            rules=len(context.rules),
            source_url=source_url,
        )
        search = await client.search(system_prompt, query)

        parsed = extract_json_object(search.content)
        if parsed is None:
            logger.warning("groq_reply_unparseable", state=context.state.abbreviation)
            parsed = {
                "searchSummary": search.content,
                "sourcesUsed": search.citations,
                "currentRequirements": [],
                "suggestedChanges": [],
                "confidence": {"overall": 0.5, "dataFreshness": "Unknown", "sourceReliability": "Unknown"},
                "parseError": True,
                "rawResponse": search.content,
            }

        used = [u for u in parsed.get("sourcesUsed") or [] if isinstance(u, str)]
        parsed["sourcesUsed"] = list(dict.fromkeys(used + search.citations))

        raw_items = _raw_items(parsed)
        created = 0
        if raw_items:
            candidates = parse_candidates(raw_items)
            with_urls = apply_url_fallbacks(candidates, parsed["sourcesUsed"], context.base_url)
            verified_urls = list(parsed["sourcesUsed"])
            if context.base_url:
                verified_urls.append(context.base_url)
            verified = filter_verified(with_urls.kept, verified_urls)

            dropped = len(raw_items) - len(candidates)
            reasons = with_urls.reasons + verified.reasons
            reasons += [f"Rejected {dropped} unusable change entries"] if dropped else []
            parsed["suggestedChanges"] = [c.to_dict() for c in verified.kept]
            parsed["validationInfo"] = {
                "originalCount": len(raw_items),
                "validCount": len(verified.kept),
                "rejectedCount": len(raw_items) - len(verified.kept),
                "rejectionReasons": reasons,
            }
            created = await self._store(db, context, verified.kept)

        logger.info(
            "groq_check_completed",
            state=context.state.abbreviation,
            sources=len(parsed["sourcesUsed"]),
            suggestions_created=created,
        )
        return {
            "success": True,
            "stateId": str(context.state.id),
            "stateName": state_name,
            "timestamp": datetime.now(UTC).isoformat(),
            **parsed,
            "suggestionsCreated": created,
        }

    async def _structure(
        self,
        provider: LLMProvider,
        context: SearchContext,
        findings: str,
        urls: Sequence[str],
        rules_limit: int | None = None,
        temperature: float | None = None,
    ) -> list[CandidateChange]:
        prompt = STRUCTURING_PROMPT.format(
            state_name=context.state.name,
            findings=findings,
            urls="\n".join(f"- {u}" for u in urls) or "- none",
            rules=context.rules_summary(rules_limit),
            categories=_categories(),
        )
        response = await provider.complete(
            [
                LLMMessage(role="system", content=STRUCTURING_SYSTEM_PROMPT),
                LLMMessage(role="user", content=prompt),
            ],
            temperature=temperature,
            response_format="json_object",
        )
        items = structured_items(response.content)
        if items is None:
            logger.warning("structuring_reply_unparseable", provider=provider.name, reply=response.content)
            return []
        return parse_candidates(items)

    async def run_openai(self, db: AsyncSession, state_id: uuid.UUID) -> dict[str, Any]:
        """
        OpenAI web search deep check.

        Raises:
            LLMError: search or structuring call failed
        """
        provider = self.openai_factory()
        context = await self.load_context(db, state_id)
        domains = openai_domains(context)

        logger.info("openai_check_started", state=context.state.abbreviation, domains=domains)
        prompt = OPENAI_SEARCH_PROMPT.format(
            state_name=context.state.name,
            focus=SEARCH_FOCUS,
            domains=", ".join(domains),
            rules=context.rules_summary(limit=10),
        )
        search = await provider.web_search(prompt, region=context.state.abbreviation)

        candidates = await self._structure(
            provider, context, search.content, search.citations, rules_limit=10, temperature=0.2
        )
        verified = filter_verified(candidates, search.citations)
        created = await self._store(db, context, verified.kept)

        logger.info(
            "openai_check_completed",
            state=context.state.abbreviation,
            citations=len(search.citations),
            candidates=len(candidates),
            suggestions_created=created,
        )
        return {
            "success": True,
            "suggestionsCount": created,
            "citationsCount": len(search.citations),
            "citations": search.citations[:10],
            "rawResponse": search.content[:500] + "...",
        }

    async def run_perplexity(self, db: AsyncSession, state_id: uuid.UUID) -> dict[str, Any]:
        """
        Perplexity search plus structuring deep check.

        Raises:
            LLMError: search or structuring call failed, or the search was empty
        """
        client = self.perplexity_factory()
        structurer = self.structuring_provider
        context = await self.load_context(db, state_id)
        domains = list(context.config.search_domains)

        logger.info("perplexity_check_started", state=context.state.abbreviation, domains=domains)
        search = await client.search(
            PERPLEXITY_SYSTEM_PROMPT,
            PERPLEXITY_SEARCH_PROMPT.format(
                state_name=context.state.name,
                abbreviation=context.state.abbreviation,
            ),
            domains=domains,
        )
        if not search.content:
            raise LLMUpstreamError("No content returned from Perplexity", provider=client.name)

        candidates = await self._structure(structurer, context, search.content, search.citations)
        verified = filter_verified(candidates, search.citations)
        created = await self._store(db, context, verified.kept)

        logger.info(
            "perplexity_check_completed",
            state=context.state.abbreviation,
            citations=len(search.citations),
            candidates=len(candidates),
            suggestions_created=created,
        )
        return {
            "success": True,
            "stateId": str(context.state.id),
            "stateName": context.state.name,
            "suggestionsCount": created,
            "citationsCount": len(search.citations),
            "searchSummary": search.content[:500] + "...",
            "verifiedUrls": search.citations,
        }
