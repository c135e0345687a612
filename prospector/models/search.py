"""Search-process types shared by the orchestrator and provider adapters."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class SearchTag(str, Enum):
    """Provider tags recorded in a contact's completed searches, in waterfall order."""

    APOLLO = "apollo_search"
    ENRICHMENT = "contact_enrichment"
    HUNTER = "hunter_search"
    COMPREHENSIVE = "comprehensive_search"

    @property
    def rank(self) -> int:
        return list(SearchTag).index(self)


WATERFALL: tuple[SearchTag, ...] = (SearchTag.APOLLO, SearchTag.ENRICHMENT, SearchTag.HUNTER)


def order_tags(tags: Iterable[SearchTag | str]) -> list[SearchTag]:
    """Return unique tags sorted by waterfall position."""
    return sorted({SearchTag(tag) for tag in tags}, key=lambda tag: tag.rank)


class SubsearchId(str, Enum):
    """Registry of known subsearch identifiers."""

    ENHANCED_NAME_VALIDATION = "enhanced-name-validation"
    LEADERSHIP_ROLE_VALIDATION = "leadership-role-validation"
    PATTERN_PREDICTION = "enhanced-pattern-prediction-search"
    DOMAIN_ANALYSIS = "domain-analysis-search"
    WEBSITE_CRAWLER = "website-crawler"


class _SearchApproachBase(BaseModel):
    allowed_subsearches: ClassVar[frozenset[SubsearchId]] = frozenset()
    default_subsearches: ClassVar[Mapping[SubsearchId, bool]] = {}

    subsearches: dict[SubsearchId, bool] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _reject_foreign_subsearches(self) -> "_SearchApproachBase":
        foreign = sorted(sid.value for sid in self.subsearches if sid not in self.allowed_subsearches)
        if foreign:
            raise ValueError(f"Subsearches not supported by this approach: {', '.join(foreign)}")
        return self

    def enabled(self, subsearch: SubsearchId) -> bool:
        if subsearch in self.subsearches:
            return self.subsearches[subsearch]
        return self.default_subsearches.get(subsearch, False)


class ContactDiscoveryConfig(_SearchApproachBase):
    """Controls the bulk name-extraction pass."""

    allowed_subsearches: ClassVar[frozenset[SubsearchId]] = frozenset(
        {
            SubsearchId.ENHANCED_NAME_VALIDATION,
            SubsearchId.LEADERSHIP_ROLE_VALIDATION,
            SubsearchId.PATTERN_PREDICTION,
        }
    )
    default_subsearches: ClassVar[Mapping[SubsearchId, bool]] = {
        SubsearchId.ENHANCED_NAME_VALIDATION: False,
        SubsearchId.LEADERSHIP_ROLE_VALIDATION: True,
        SubsearchId.PATTERN_PREDICTION: True,
    }

    approach: Literal["contact_discovery"] = "contact_discovery"
    search_prompt: str | None = None


class EmailDiscoveryConfig(_SearchApproachBase):
    """Controls candidate-email suggestion for a single contact."""

    allowed_subsearches: ClassVar[frozenset[SubsearchId]] = frozenset(
        {
            SubsearchId.PATTERN_PREDICTION,
            SubsearchId.DOMAIN_ANALYSIS,
            SubsearchId.WEBSITE_CRAWLER,
        }
    )
    default_subsearches: ClassVar[Mapping[SubsearchId, bool]] = {
        SubsearchId.PATTERN_PREDICTION: True,
        SubsearchId.DOMAIN_ANALYSIS: True,
        SubsearchId.WEBSITE_CRAWLER: True,
    }

    approach: Literal["email_discovery"] = "email_discovery"


SearchApproachConfig = Annotated[
    Union[ContactDiscoveryConfig, EmailDiscoveryConfig],
    Field(discriminator="approach"),
]

_SEARCH_APPROACH_ADAPTER: TypeAdapter[SearchApproachConfig] = TypeAdapter(SearchApproachConfig)


def parse_search_config(payload: Mapping[str, Any]) -> ContactDiscoveryConfig | EmailDiscoveryConfig:
    """Validate a raw config mapping into its tagged approach type."""
    return _SEARCH_APPROACH_ADAPTER.validate_python(dict(payload))


@dataclass(frozen=True)
class ContactTarget:
    name: str
    role: str | None = None


@dataclass(frozen=True)
class SearchContext:
    """Normalized, read-only input handed to every provider adapter."""

    company_name: str
    website: str | None = None
    domain: str | None = None
    contacts: tuple[ContactTarget, ...] = ()
    timeout: float = 15.0
    max_depth: int = 2
    max_pages: int = 20

    @property
    def primary_contact(self) -> ContactTarget | None:
        return self.contacts[0] if self.contacts else None


@dataclass(frozen=True)
class ProviderResult:
    """Normalized adapter output; provider-specific raw fields stay in metadata."""

    source: str
    emails: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def email(self) -> str | None:
        return self.emails[0] if self.emails else None

    @property
    def confidence(self) -> int:
        value = self.metadata.get("confidence")
        if not isinstance(value, (int, float)) or self.email is None:
            return 0
        return max(0, min(100, int(round(value))))

    @property
    def error(self) -> str | None:
        return self.metadata.get("error")

    @classmethod
    def empty(cls, source: str, *, error: str | None = None, **metadata: Any) -> "ProviderResult":
        if error:
            metadata["error"] = error
        return cls(source=source, emails=(), metadata=metadata)
