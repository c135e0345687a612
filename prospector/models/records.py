"""SQLModel mappings for persisted companies and contacts."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from prospector.models.company import Company
from prospector.models.contact import Contact
from prospector.models.search import order_tags


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class CompanyRecord(SQLModel, table=True):
    """ORM model for companies."""

    __tablename__ = "companies"

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    website: str | None = Field(default=None, sa_column=Column(String(length=512), nullable=True))
    size: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    services: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    differentiation: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    validation_points: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    total_score: int = Field(default=50, sa_column=Column(Integer, nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @classmethod
    def from_company(cls, company: Company) -> CompanyRecord:
        return cls(**company.model_dump(), updated_at=_utcnow())

    def to_company(self) -> Company:
        return Company(
            id=self.id,
            name=self.name,
            website=self.website,
            size=self.size,
            services=list(self.services or []),
            differentiation=list(self.differentiation or []),
            validation_points=list(self.validation_points or []),
            total_score=self.total_score,
            description=self.description,
        )


class ContactRecord(SQLModel, table=True):
    """ORM model for contacts; completed searches are stored in waterfall order."""

    __tablename__ = "contacts"
    __table_args__ = (sa.Index("ix_contacts_company_id", "company_id"),)

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    company_id: UUID = Field(sa_column=Column(Uuid(as_uuid=True), nullable=False))
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    role: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    email: str | None = Field(default=None, sa_column=Column(String(length=320), nullable=True))
    alternative_emails: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    probability: int = Field(default=50, sa_column=Column(Integer, nullable=False))
    name_confidence_score: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    linkedin_url: str | None = Field(default=None, sa_column=Column(String(length=512), nullable=True))
    phone_number: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    department: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    location: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    verification_source: str | None = Field(
        default=None, sa_column=Column(String(length=64), nullable=True)
    )
    completed_searches: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    last_validated: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    last_enriched: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @staticmethod
    def _columns(contact: Contact) -> dict[str, Any]:
        payload = contact.model_dump()
        payload["completed_searches"] = [tag.value for tag in order_tags(contact.completed_searches)]
        return payload

    @classmethod
    def from_contact(cls, contact: Contact) -> ContactRecord:
        return cls(**cls._columns(contact), updated_at=_utcnow())

    def apply(self, contact: Contact) -> None:
        """Copy every column from an updated domain model onto this row."""
        for key, value in self._columns(contact).items():
            if key != "id":
                setattr(self, key, value)
        self.updated_at = _utcnow()

    def to_contact(self) -> Contact:
        return Contact(
            id=self.id,
            company_id=self.company_id,
            name=self.name,
            role=self.role,
            email=self.email,
            alternative_emails=list(self.alternative_emails or []),
            probability=self.probability,
            name_confidence_score=self.name_confidence_score,
            linkedin_url=self.linkedin_url,
            phone_number=self.phone_number,
            department=self.department,
            location=self.location,
            verification_source=self.verification_source,
            completed_searches=set(self.completed_searches or []),
            last_validated=self.last_validated,
            last_enriched=self.last_enriched,
        )
