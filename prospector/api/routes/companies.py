"""API endpoints for company text parsing and the bulk contact extraction pass."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from prospector.models.company import Company, CompanyAttributes
from prospector.models.contact import Contact
from prospector.models.search import ContactDiscoveryConfig
from prospector.services.discovery.orchestrator import get_contact_repository
from prospector.services.errors import CompanyNotFoundError, DiscoveryError
from prospector.services.extraction.company_parser import parse_company_data
from prospector.services.extraction.contact_extractor import ContactExtractor, get_contact_extractor
from prospector.services.repositories import ContactRepository

router = APIRouter()
logger = logging.getLogger(__name__)


class ParseCompanyRequest(BaseModel):
    fragments: list[str] = Field(default_factory=list, description="Raw provider analysis text.")


class ExtractContactsRequest(ParseCompanyRequest):
    config: ContactDiscoveryConfig | None = None


class ExtractContactsResponse(BaseModel):
    company: Company
    contacts: list[Contact]


@router.post("/companies/parse", response_model=CompanyAttributes)
async def parse_company(payload: ParseCompanyRequest) -> CompanyAttributes:
    """Extract size, services and differentiators from unstructured text."""
    return parse_company_data(payload.fragments)


@router.post(
    "/companies/{company_id}/contacts/extract",
    response_model=ExtractContactsResponse,
    status_code=status.HTTP_201_CREATED,
)
def extract_contacts(
    company_id: UUID,
    payload: ExtractContactsRequest,
    repository: ContactRepository = Depends(get_contact_repository),
    extractor: ContactExtractor = Depends(get_contact_extractor),
) -> ExtractContactsResponse:
    """Mine contacts from company research text and persist them."""
    try:
        company = repository.get_company(str(company_id))
        if company is None:
            raise CompanyNotFoundError(str(company_id))
        company = repository.save_company(company.with_attributes(parse_company_data(payload.fragments)))
        drafts = extractor.extract_contacts(
            payload.fragments,
            company.name,
            domain=company.domain,
            config=payload.config,
        )
        contacts = [repository.add_contact(draft.to_contact(company.id)) for draft in drafts]
    except DiscoveryError as exc:
        logger.error(
            "extraction.api_error",
            extra={"company_id": str(company_id), "code": exc.code},
        )
        status_code = (
            status.HTTP_404_NOT_FOUND
            if exc.code == "404_COMPANY_NOT_FOUND"
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    logger.info(
        "extraction.contacts_created",
        extra={"company_id": str(company_id), "contacts": len(contacts)},
    )
    return ExtractContactsResponse(company=company, contacts=contacts)
