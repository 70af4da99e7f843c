"""
Citation Resolver
=================

Maps a regulatory citation string to the best available URL for its
jurisdiction. Pure pattern matching: no state, no I/O.

Resolution order:
1. A valid absolute URL supplied with the rule wins (verified).
2. Empty or "N/A" citations resolve to nothing (unverified).
3. The jurisdiction's resolver (MT, CO, CA); each ends in a fallback page.
4. Generic patterns for DEFAULT: CFR sections, citations that are URLs.

Version: 0.1.0
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote, urlparse

from services.regulatory_monitor.jurisdictions import Jurisdiction
from shared.logging import get_logger


logger = get_logger(__name__)


class VerificationStatus(str, Enum):
    """How much a resolved URL can be trusted to point at the citation."""

    VERIFIED = "verified"
    SEARCH = "search"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class CitationResult:
    """A resolved citation link."""

    url: str | None
    display_text: str
    is_direct_link: bool
    verification_status: VerificationStatus


def _direct(url: str, citation: str) -> CitationResult:
    return CitationResult(url, citation, True, VerificationStatus.VERIFIED)


def _search(url: str, citation: str) -> CitationResult:
    return CitationResult(url, citation, False, VerificationStatus.SEARCH)


def is_valid_url(value: str | None) -> bool:
    """Absolute http(s) URL with a host."""
    if not value or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# ============================================================================
# Montana
# ============================================================================

MT_ARM = re.compile(r"ARM\s*(\d+)\.(\d+)\.(\d+)", re.IGNORECASE)
MT_ADMIN_RULE = re.compile(r"Mont\.?\s*Admin\.?\s*r\.?\s*(\d+)\.(\d+)\.(\d+)", re.IGNORECASE)
MT_MCA = re.compile(r"MCA\s*(\d+)-(\d+)-(\d+)", re.IGNORECASE)

MT_RULE_URL = "https://rules.mt.gov/gateway/RuleNo.asp?RN={title}%2E{chapter}%2E{rule}"
MT_SEARCH_URL = "https://rules.mt.gov/gateway/Search.asp?txtSearchString={query}"


def _montana(citation: str) -> CitationResult:
    for pattern in (MT_ARM, MT_ADMIN_RULE):
        match = pattern.search(citation)
        if match:
            title, chapter, rule = match.groups()
            return _direct(MT_RULE_URL.format(title=title, chapter=chapter, rule=rule), citation)

    match = MT_MCA.search(citation)
    if match:
        title, chapter, section = match.groups()
        url = (
            "https://leg.mt.gov/bills/mca/"
            f"title_{title.zfill(4)}/chapter_{chapter.zfill(3)}/part_0/section_{section.zfill(3)}/"
            f"0{title.zfill(2)}{chapter.zfill(2)}0{section.zfill(2)}.html"
        )
        return _direct(url, citation)

    return _search(MT_SEARCH_URL.format(query=quote(citation, safe="")), citation)


# ============================================================================
# Colorado
# ============================================================================

CO_CCR = re.compile(r"(\d+)?\s*CCR\s*(\d+)-(\d+)", re.IGNORECASE)
CO_CRS = re.compile(r"(?:C\.?R\.?S\.?|CRS)\s*§?\s*(\d+)-(\d+)-(\d+)", re.IGNORECASE)

CO_MED_RULES_URL = "https://med.colorado.gov/rules"
CO_CRS_URL = "https://leg.colorado.gov/colorado-revised-statutes"


def _colorado(citation: str) -> CitationResult:
    # Secretary of State CCR deep links are unreliable; the MED listing is not
    if CO_CCR.search(citation):
        return _search(CO_MED_RULES_URL, citation)
    if CO_CRS.search(citation):
        return _search(CO_CRS_URL, citation)
    return _search(CO_MED_RULES_URL, citation)


# ============================================================================
# California
# ============================================================================

CA_CODE_REGS = re.compile(
    r"(?:Cal\.?\s*Code\s*Regs\.?,?\s*)?(?:tit\.?|title)\s*(\d+),?\s*§?\s*(\d+)",
    re.IGNORECASE,
)
CA_SECTION = re.compile(r"(?:§|Section)\s*(\d+)", re.IGNORECASE)
CA_BPC = re.compile(r"(?:B\.?&?P\.?|Bus\.?\s*&?\s*Prof\.?)\s*Code\s*§?\s*(\d+)", re.IGNORECASE)

CA_DCC_URL = "https://cannabis.ca.gov/cannabis-laws/dcc-regulations/"
CA_CODES_URL = "https://leginfo.legislature.ca.gov/faces/codes.xhtml"
CA_BPC_URL = (
    "https://leginfo.legislature.ca.gov/faces/codes_displaySection.xhtml"
    "?lawCode=BPC&sectionNum={section}"
)

# Title 4 sections holding the cannabis regulations
CA_CANNABIS_SECTIONS = range(15000, 18000)


def _california(citation: str) -> CitationResult:
    match = CA_CODE_REGS.search(citation)
    if match:
        title, section = match.groups()
        if title == "4" and int(section) in CA_CANNABIS_SECTIONS:
            return _search(CA_DCC_URL, citation)
        return _search(CA_CODES_URL, citation)

    match = CA_SECTION.search(citation)
    if match and int(match.group(1)) in CA_CANNABIS_SECTIONS:
        return _search(CA_DCC_URL, citation)

    match = CA_BPC.search(citation)
    if match:
        return _direct(CA_BPC_URL.format(section=match.group(1)), citation)

    return _search(CA_DCC_URL, citation)


# ============================================================================
# Generic
# ============================================================================

CFR = re.compile(r"(\d+)\s*C\.?F\.?R\.?\s*§?\s*(\d+)\.(\d+)", re.IGNORECASE)
URL_LIKE = re.compile(r"^https?://", re.IGNORECASE)


def _generic(citation: str) -> CitationResult:
    match = CFR.search(citation)
    if match:
        title, part, section = match.groups()
        return _direct(f"https://www.law.cornell.edu/cfr/text/{title}/{part}.{section}", citation)

    if URL_LIKE.match(citation):
        return CitationResult(citation, "View Source", True, VerificationStatus.VERIFIED)

    return CitationResult(None, citation, False, VerificationStatus.UNVERIFIED)


Resolver = Callable[[str], CitationResult]

RESOLVERS: Mapping[Jurisdiction, Resolver] = {
    Jurisdiction.MT: _montana,
    Jurisdiction.CO: _colorado,
    Jurisdiction.CA: _california,
    Jurisdiction.DEFAULT: _generic,
}

_unresolved = [j for j in Jurisdiction if j not in RESOLVERS]
if _unresolved:
    raise RuntimeError(f"Jurisdictions without a citation resolver: {_unresolved}")


def resolve_citation(
    citation: str | None,
    jurisdiction: Jurisdiction | str,
    provided_url: str | None = None,
    resolvers: Mapping[Jurisdiction, Resolver] = RESOLVERS,
) -> CitationResult:
    """
    Resolve a citation to a URL.

    Args:
        citation: Citation text, e.g. "ARM 37.107.402"
        jurisdiction: Jurisdiction or state abbreviation
        provided_url: URL stored with the rule, preferred when valid
        resolvers: Resolver table (injectable for tests)

    Returns:
        CitationResult
    """
    if provided_url and provided_url.strip():
        if is_valid_url(provided_url):
            return CitationResult(
                provided_url.strip(),
                citation or "View Source",
                True,
                VerificationStatus.VERIFIED,
            )
        logger.warning("citation_invalid_provided_url", provided_url=provided_url)

    if not citation or not citation.strip() or citation.strip() == "N/A":
        return CitationResult(None, citation or "N/A", False, VerificationStatus.UNVERIFIED)

    if not isinstance(jurisdiction, Jurisdiction):
        jurisdiction = Jurisdiction.parse(jurisdiction)

    resolver = resolvers.get(jurisdiction) or resolvers[Jurisdiction.DEFAULT]
    return resolver(citation)
