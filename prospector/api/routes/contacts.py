"""API endpoints for single-contact email discovery."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from prospector.models.contact import Contact
from prospector.models.search import EmailDiscoveryConfig
from prospector.services.discovery.orchestrator import (
    CandidateEmailService,
    EmailDiscoveryService,
    get_candidate_service,
    get_discovery_service,
)
from prospector.services.errors import DiscoveryError

router = APIRouter()
logger = logging.getLogger(__name__)


class DiscoverEmailResponse(BaseModel):
    contact: Contact
    found: bool
    source: str | None = None
    message: str
    attempted: list[str] = Field(default_factory=list)


class CandidateEmailResponse(BaseModel):
    contact: Contact
    candidates: list[str]
    corroborated: list[str]
    crawled_emails: list[str]
    domain: str | None = None


class SearchProgressResponse(BaseModel):
    contact_id: str
    searching: bool
    events: list[dict[str, Any]]


@router.post("/contacts/{contact_id}/discover-email", response_model=DiscoverEmailResponse)
def discover_email(
    contact_id: UUID,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    service: EmailDiscoveryService = Depends(get_discovery_service),
) -> DiscoverEmailResponse:
    """Run the provider waterfall for one contact."""
    try:
        outcome = service.discover_email(str(contact_id), idempotency_key=idempotency_key)
    except DiscoveryError as exc:
        logger.error(
            "discovery.api_error",
            extra={"contact_id": str(contact_id), "code": exc.code},
        )
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc
    return DiscoverEmailResponse(
        contact=outcome.contact,
        found=outcome.found,
        source=outcome.source,
        message=outcome.message,
        attempted=[tag.value for tag in outcome.attempted],
    )


@router.post("/contacts/{contact_id}/candidate-emails", response_model=CandidateEmailResponse)
def suggest_candidate_emails(
    contact_id: UUID,
    config: EmailDiscoveryConfig | None = Body(default=None),
    service: CandidateEmailService = Depends(get_candidate_service),
) -> CandidateEmailResponse:
    """Rank likely addresses for a contact without marking any as verified."""
    try:
        suggestion = service.suggest(str(contact_id), config=config)
    except DiscoveryError as exc:
        logger.error(
            "discovery.candidates.api_error",
            extra={"contact_id": str(contact_id), "code": exc.code},
        )
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc
    return CandidateEmailResponse(
        contact=suggestion.contact,
        candidates=suggestion.candidates,
        corroborated=suggestion.corroborated,
        crawled_emails=suggestion.crawled_emails,
        domain=suggestion.domain,
    )


@router.get("/contacts/{contact_id}/search-progress", response_model=SearchProgressResponse)
async def search_progress(
    contact_id: UUID,
    service: EmailDiscoveryService = Depends(get_discovery_service),
) -> SearchProgressResponse:
    """Poll the progress events recorded for a contact."""
    key = str(contact_id)
    return SearchProgressResponse(
        contact_id=key,
        searching=service.is_searching(key),
        events=[event.to_dict() for event in service.search_progress(key)],
    )


def _map_error_code(code: str) -> int:
    if code in {"404_CONTACT_NOT_FOUND", "404_COMPANY_NOT_FOUND"}:
        return status.HTTP_404_NOT_FOUND
    if code == "409_SEARCH_IN_PROGRESS":
        return status.HTTP_409_CONFLICT
    if code == "402_INSUFFICIENT_CREDITS":
        return status.HTTP_402_PAYMENT_REQUIRED
    if code.startswith("422_"):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_500_INTERNAL_SERVER_ERROR
