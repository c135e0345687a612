"""Company domain models."""

from __future__ import annotations

from urllib.parse import urlparse
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, conint

MAX_SERVICES = 5
MAX_DIFFERENTIATORS = 3


def extract_domain(website: str | None) -> str | None:
    """Return the bare host of a website URL (no scheme, no www.)."""
    if not website:
        return None
    candidate = website.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    host = (urlparse(candidate).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


class CompanyAttributes(BaseModel):
    """Partial company attributes mined from analysis fragments."""

    size: conint(ge=0) | None = None  # type: ignore[valid-type]
    services: list[str] = Field(default_factory=list, max_length=MAX_SERVICES)
    differentiation: list[str] = Field(default_factory=list, max_length=MAX_DIFFERENTIATORS)
    validation_points: list[str] = Field(default_factory=list)
    total_score: conint(ge=0, le=100) = 50  # type: ignore[valid-type]


class Company(BaseModel):
    """Organization whose employees are searched for."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    website: str | None = None
    size: conint(ge=0) | None = None  # type: ignore[valid-type]
    services: list[str] = Field(default_factory=list, max_length=MAX_SERVICES)
    differentiation: list[str] = Field(default_factory=list, max_length=MAX_DIFFERENTIATORS)
    validation_points: list[str] = Field(default_factory=list)
    total_score: conint(ge=0, le=100) = Field(  # type: ignore[valid-type]
        default=50,
        description="Derived from size/differentiation/services; never set directly.",
    )
    description: str | None = None

    model_config = {"from_attributes": True}

    @property
    def domain(self) -> str | None:
        return extract_domain(self.website)

    def with_attributes(self, attributes: CompanyAttributes) -> "Company":
        """Return a copy carrying freshly extracted attributes."""
        return self.model_copy(update=attributes.model_dump())
