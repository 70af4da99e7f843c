"""
Jurisdiction Configuration
==========================

Closed set of supported jurisdictions plus a DEFAULT fallback, and the
immutable per-jurisdiction configuration (primary regulatory page, known
source pages, search domains). Built once at import; consumers receive the
mapping by injection.

Version: 0.1.0
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class Jurisdiction(str, Enum):
    """Supported jurisdictions. DEFAULT covers every other state."""

    MT = "MT"
    CO = "CO"
    CA = "CA"
    DEFAULT = "DEFAULT"

    @classmethod
    def parse(cls, code: str | None) -> "Jurisdiction":
        """Map a state abbreviation to a jurisdiction, falling back to DEFAULT."""
        if not code:
            return cls.DEFAULT
        try:
            return cls(code.strip().upper())
        except ValueError:
            return cls.DEFAULT

    @property
    def is_default(self) -> bool:
        return self is Jurisdiction.DEFAULT


@dataclass(frozen=True)
class RegulatoryPage:
    """A well-known regulatory page for a jurisdiction."""

    name: str
    url: str


@dataclass(frozen=True)
class JurisdictionConfig:
    """Static facts about one jurisdiction."""

    name: str
    primary: RegulatoryPage | None = None
    pages: tuple[RegulatoryPage, ...] = ()
    # Domains passed to search providers as a filter
    search_domains: tuple[str, ...] = ()
    # Domains considered official when validating search results
    official_domains: tuple[str, ...] = field(default=())


JURISDICTIONS: Mapping[Jurisdiction, JurisdictionConfig] = MappingProxyType(
    {
        Jurisdiction.MT: JurisdictionConfig(
            name="Montana",
            primary=RegulatoryPage("Montana Administrative Rules", "https://rules.mt.gov/"),
            pages=(
                RegulatoryPage("Montana Administrative Rules", "https://rules.mt.gov/"),
                RegulatoryPage("Montana DPHHS Cannabis", "https://dphhs.mt.gov/marijuana/"),
                RegulatoryPage("Montana DOR Cannabis", "https://mtrevenue.gov/cannabis/"),
            ),
            search_domains=("rules.mt.gov", "revenue.mt.gov", "dphhs.mt.gov", "leg.mt.gov"),
            official_domains=("rules.mt.gov", "revenue.mt.gov", "dphhs.mt.gov", "mtrules.org"),
        ),
        Jurisdiction.CO: JurisdictionConfig(
            name="Colorado",
            primary=RegulatoryPage("Colorado MED Rules", "https://med.colorado.gov/rules"),
            pages=(
                RegulatoryPage("Colorado MED Rules", "https://med.colorado.gov/rules"),
                RegulatoryPage(
                    "Colorado CCR",
                    "https://www.sos.state.co.us/CCR/NumericalCCRToc.do?deptID=16&agencyID=150",
                ),
            ),
            search_domains=("med.colorado.gov", "colorado.gov", "sos.state.co.us"),
            official_domains=("med.colorado.gov", "colorado.gov", "sos.state.co.us"),
        ),
        Jurisdiction.CA: JurisdictionConfig(
            name="California",
            primary=RegulatoryPage(
                "California DCC Regulations",
                "https://cannabis.ca.gov/cannabis-laws/dcc-regulations/",
            ),
            pages=(
                RegulatoryPage(
                    "California DCC Regulations",
                    "https://cannabis.ca.gov/cannabis-laws/dcc-regulations/",
                ),
                RegulatoryPage(
                    "California Legislative Info",
                    "https://leginfo.legislature.ca.gov/faces/codes.xhtml",
                ),
            ),
            search_domains=("cannabis.ca.gov", "cdph.ca.gov", "bcc.ca.gov", "ca.gov"),
            official_domains=("cannabis.ca.gov", "cdph.ca.gov", "bcc.ca.gov"),
        ),
        Jurisdiction.DEFAULT: JurisdictionConfig(
            name="Other",
            search_domains=(".gov",),
        ),
    }
)


def jurisdiction_config(
    jurisdiction: Jurisdiction,
    configs: Mapping[Jurisdiction, JurisdictionConfig] = JURISDICTIONS,
) -> JurisdictionConfig:
    """Config for a jurisdiction, or the DEFAULT entry when absent."""
    return configs.get(jurisdiction) or configs[Jurisdiction.DEFAULT]


def state_domains(abbreviation: str) -> list[str]:
    """Generic government domains for any state code (e.g. `mt.gov`, `state.mt.us`)."""
    code = abbreviation.strip().lower()
    return [f"{code}.gov", f"state.{code}.us"]


# Every concrete jurisdiction must carry a config entry
_missing = [j for j in Jurisdiction if j not in JURISDICTIONS]
if _missing:
    raise RuntimeError(f"Jurisdictions without configuration: {_missing}")
