"""Contact domain models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, conint, field_serializer

from prospector.models.search import WATERFALL, SearchTag, order_tags


class Contact(BaseModel):
    """A person associated with one company."""

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    name: str = Field(..., min_length=1)
    role: str | None = None
    email: str | None = None
    alternative_emails: list[str] = Field(default_factory=list)
    probability: conint(ge=0, le=100) = 50  # type: ignore[valid-type]
    name_confidence_score: conint(ge=0, le=100) | None = None  # type: ignore[valid-type]
    linkedin_url: str | None = None
    phone_number: str | None = None
    department: str | None = None
    location: str | None = None
    verification_source: str | None = Field(
        default=None, description="Provider that supplied the current email."
    )
    completed_searches: set[SearchTag] = Field(default_factory=set)
    last_validated: datetime | None = None
    last_enriched: datetime | None = None

    model_config = {"from_attributes": True}

    @field_serializer("completed_searches")
    def _serialize_completed(self, value: set[SearchTag]) -> list[str]:
        return [tag.value for tag in order_tags(value)]

    def remaining_providers(self) -> list[SearchTag]:
        """Waterfall providers not yet attempted for this contact."""
        return [tag for tag in WATERFALL if tag not in self.completed_searches]


class ContactDraft(BaseModel):
    """Contact candidate produced by the bulk extraction pass, before persistence."""

    name: str
    role: str | None = None
    email: str | None = None
    alternative_emails: list[str] = Field(default_factory=list)
    probability: conint(ge=0, le=100)  # type: ignore[valid-type]
    name_confidence_score: conint(ge=0, le=100)  # type: ignore[valid-type]

    def to_contact(self, company_id: UUID) -> Contact:
        return Contact(company_id=company_id, **self.model_dump())
