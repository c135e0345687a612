"""Waterfall email discovery for one contact, plus candidate-email suggestion."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from prospector.config import settings
from prospector.models.company import Company
from prospector.models.contact import Contact
from prospector.models.search import (
    WATERFALL,
    ContactTarget,
    EmailDiscoveryConfig,
    ProviderResult,
    SearchContext,
    SearchTag,
    SubsearchId,
)
from prospector.observability.metrics import metrics
from prospector.services.billing import BillingGate, get_billing_gate
from prospector.services.discovery import progress as events
from prospector.services.discovery.adapters import ProviderAdapter, build_waterfall_adapters
from prospector.services.discovery.candidates import (
    corroborate_candidates,
    generate_candidate_emails,
    infer_company_domain,
    match_emails_to_name,
    rank_candidates,
    restrict_to_domain,
)
from prospector.services.discovery.crawler import WebsiteCrawlerAdapter
from prospector.services.discovery.pending import PendingSearchStore
from prospector.services.discovery.progress import ProgressChannel
from prospector.services.errors import (
    CompanyNotFoundError,
    ContactNotFoundError,
    ContactPersistenceError,
    DiscoveryError,
    InsufficientCreditsError,
    SearchInProgressError,
)
from prospector.services.repositories import ContactRepository, build_contact_repository

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = "No email found. All search methods exhausted."
NOT_FOUND_MESSAGE = "No email found with the configured providers."
ALREADY_KNOWN_MESSAGE = "Contact already has an email."


@dataclass(frozen=True)
class DiscoveryOutcome:
    contact: Contact
    found: bool
    source: str | None = None
    message: str = ""
    attempted: tuple[SearchTag, ...] = ()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _text_field(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _search_context(contact: Contact, company: Company) -> SearchContext:
    return SearchContext(
        company_name=company.name,
        website=company.website,
        domain=company.domain,
        contacts=(ContactTarget(name=contact.name, role=contact.role),),
        timeout=settings.provider_timeout_seconds,
        max_depth=settings.crawler_max_depth,
        max_pages=settings.crawler_max_pages,
    )


def _load(repository: ContactRepository, contact_id: str) -> tuple[Contact, Company]:
    contact = repository.get_contact(contact_id)
    if contact is None:
        raise ContactNotFoundError(contact_id)
    company = repository.get_company(str(contact.company_id))
    if company is None:
        raise CompanyNotFoundError(str(contact.company_id))
    return contact, company


class EmailDiscoveryService:
    """Walks the provider waterfall until one returns an email, then bills once."""

    def __init__(
        self,
        *,
        repository: ContactRepository | None = None,
        adapters: Mapping[SearchTag, ProviderAdapter] | None = None,
        billing: BillingGate | None = None,
        progress: ProgressChannel | None = None,
        pending: PendingSearchStore[DiscoveryOutcome] | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._repository = repository or build_contact_repository()
        self._adapters = dict(build_waterfall_adapters() if adapters is None else adapters)
        self._billing = billing or get_billing_gate()
        self.progress = progress or ProgressChannel()
        self._pending = pending or PendingSearchStore()
        self._clock = clock

    @property
    def repository(self) -> ContactRepository:
        return self._repository

    def discover_email(self, contact_id: str, *, idempotency_key: str | None = None) -> DiscoveryOutcome:
        """Find and persist a verified email for one contact."""
        contact_id = str(contact_id)
        cache_key = f"{contact_id}:{idempotency_key}" if idempotency_key else None
        cached = self._pending.cached(cache_key)
        if cached is not None:
            metrics.increment("discovery.idempotent_replay")
            logger.info(
                "discovery.idempotent_replay",
                extra={"contact_id": contact_id, "idempotency_key": idempotency_key},
            )
            return cached

        if not self._pending.try_begin(contact_id):
            self.progress.publish(contact_id, events.SEARCH_REJECTED, reason="in_progress")
            metrics.increment("discovery.rejected", tags={"reason": "in_progress"})
            raise SearchInProgressError(contact_id)

        started = time.perf_counter()
        try:
            outcome = self._discover(contact_id)
        except DiscoveryError as exc:
            metrics.increment("discovery.errors", tags={"code": exc.code})
            raise
        finally:
            self._pending.finish(contact_id)
            metrics.timing("discovery.latency_ms", (time.perf_counter() - started) * 1000)

        self._pending.remember(cache_key, outcome)
        return outcome

    def search_progress(self, contact_id: str) -> list[events.ProgressEvent]:
        return self.progress.history(str(contact_id))

    def is_searching(self, contact_id: str) -> bool:
        return self._pending.is_pending(str(contact_id))

    def _discover(self, contact_id: str) -> DiscoveryOutcome:
        contact, company = _load(self._repository, contact_id)
        if contact.email:
            metrics.increment("discovery.short_circuit")
            return DiscoveryOutcome(
                contact=contact,
                found=True,
                source=contact.verification_source,
                message=ALREADY_KNOWN_MESSAGE,
            )

        try:
            self._billing.ensure_can_search()
        except InsufficientCreditsError as exc:
            self.progress.publish(
                contact_id,
                events.SEARCH_REJECTED,
                reason="insufficient_credits",
                required=exc.required,
                balance=exc.balance,
            )
            raise

        context = _search_context(contact, company)
        remaining = contact.remaining_providers()
        self.progress.publish(
            contact_id,
            events.SEARCH_STARTED,
            providers=[tag.value for tag in remaining if tag in self._adapters],
        )

        completed = set(contact.completed_searches)
        attempted: list[SearchTag] = []
        hit: ProviderResult | None = None
        for tag in remaining:
            adapter = self._adapters.get(tag)
            if adapter is None:
                continue
            self.progress.publish(contact_id, events.PROVIDER_STARTED, provider=adapter.source)
            result = adapter.execute(context)
            completed.add(tag)
            attempted.append(tag)
            self.progress.publish(
                contact_id,
                events.PROVIDER_FINISHED,
                provider=adapter.source,
                found=result.email is not None,
                error=result.error,
            )
            if result.email:
                hit = result
                break

        if hit is None:
            return self._finish_exhausted(contact, completed, attempted)
        return self._finish_found(contact, hit, completed, attempted)

    def _finish_found(
        self,
        contact: Contact,
        result: ProviderResult,
        completed: set[SearchTag],
        attempted: list[SearchTag],
    ) -> DiscoveryOutcome:
        contact_id = str(contact.id)
        email = result.email
        alternatives = [
            candidate
            for candidate in dict.fromkeys([*contact.alternative_emails, *result.emails[1:]])
            if candidate != email
        ]
        fields: dict[str, Any] = {
            "email": email,
            "alternative_emails": alternatives,
            "probability": max(contact.probability, result.confidence),
            "verification_source": result.source,
            "last_validated": self._clock(),
            "completed_searches": completed,
        }
        role = _text_field(result.metadata.get("role"))
        if role:
            fields["role"] = role
        for key in ("linkedin_url", "phone_number", "location"):
            value = _text_field(result.metadata.get(key))
            if value and not getattr(contact, key):
                fields[key] = value
        if attempted and attempted[-1] is SearchTag.ENRICHMENT:
            fields["last_enriched"] = self._clock()

        updated = self._persist(contact_id, fields)
        self.progress.publish(
            contact_id,
            events.EMAIL_FOUND,
            provider=result.source,
            confidence=result.confidence,
        )
        self._billing.deduct_credits_for_email_search(contact_id, True, source=result.source)
        metrics.increment("discovery.email_found", tags={"provider": result.source})
        logger.info(
            "discovery.email_found",
            extra={
                "contact_id": contact_id,
                "provider": result.source,
                "confidence": result.confidence,
                "attempted": [tag.value for tag in attempted],
            },
        )
        return DiscoveryOutcome(
            contact=updated,
            found=True,
            source=result.source,
            message=f"Email found via {result.source}.",
            attempted=tuple(attempted),
        )

    def _finish_exhausted(
        self,
        contact: Contact,
        completed: set[SearchTag],
        attempted: list[SearchTag],
    ) -> DiscoveryOutcome:
        contact_id = str(contact.id)
        if not set(WATERFALL) <= completed:
            updated = (
                self._persist(contact_id, {"completed_searches": completed}) if attempted else contact
            )
            metrics.increment("discovery.not_found")
            logger.info(
                "discovery.not_found",
                extra={
                    "contact_id": contact_id,
                    "attempted": [tag.value for tag in attempted],
                    "unconfigured": [tag.value for tag in WATERFALL if tag not in completed],
                },
            )
            return DiscoveryOutcome(
                contact=updated,
                found=False,
                message=NOT_FOUND_MESSAGE,
                attempted=tuple(attempted),
            )

        completed.add(SearchTag.COMPREHENSIVE)
        updated = self._persist(contact_id, {"completed_searches": completed})
        self.progress.publish(
            contact_id,
            events.SEARCH_EXHAUSTED,
            attempted=[tag.value for tag in attempted],
        )
        metrics.increment("discovery.exhausted")
        logger.info(
            "discovery.exhausted",
            extra={"contact_id": contact_id, "attempted": [tag.value for tag in attempted]},
        )
        return DiscoveryOutcome(
            contact=updated,
            found=False,
            message=EXHAUSTED_MESSAGE,
            attempted=tuple(attempted),
        )

    def _persist(self, contact_id: str, fields: dict[str, Any]) -> Contact:
        try:
            return self._repository.update_contact(contact_id, fields)
        except ContactPersistenceError as exc:
            logger.error(
                "discovery.persistence_failed",
                extra={"contact_id": contact_id, "code": exc.code},
            )
            raise


@dataclass(frozen=True)
class CandidateSuggestion:
    contact: Contact
    candidates: list[str]
    corroborated: list[str] = field(default_factory=list)
    crawled_emails: list[str] = field(default_factory=list)
    domain: str | None = None


class CandidateEmailService:
    """Builds ranked email guesses for a contact; never marks one as verified."""

    def __init__(
        self,
        *,
        repository: ContactRepository | None = None,
        crawler: WebsiteCrawlerAdapter | None = None,
    ) -> None:
        self._repository = repository or build_contact_repository()
        self._crawler = crawler or WebsiteCrawlerAdapter()

    def suggest(
        self, contact_id: str, *, config: EmailDiscoveryConfig | None = None
    ) -> CandidateSuggestion:
        config = config or EmailDiscoveryConfig()
        contact_id = str(contact_id)
        contact, company = _load(self._repository, contact_id)
        domain = company.domain

        crawled: list[str] = []
        page_text = ""
        if config.enabled(SubsearchId.WEBSITE_CRAWLER) and company.website:
            report = self._crawler.execute(_search_context(contact, company))
            crawled = list(report.emails)
            page_text = report.metadata.get("page_text", "")

        if config.enabled(SubsearchId.DOMAIN_ANALYSIS):
            domain = domain or infer_company_domain(crawled)
            crawled = restrict_to_domain(crawled, domain)

        matched = match_emails_to_name(crawled, contact.name)
        generated: list[str] = []
        if config.enabled(SubsearchId.PATTERN_PREDICTION):
            generated = generate_candidate_emails(contact.name, domain)

        candidates = [email for email in dict.fromkeys([*matched, *generated]) if email != contact.email]
        seen_on_site = corroborate_candidates(candidates, page_text, contact.name)
        corroborated = list(dict.fromkeys([*matched, *seen_on_site]))
        ranked = rank_candidates(candidates, corroborated)
        merged = list(dict.fromkeys([*ranked, *contact.alternative_emails]))

        updated = contact
        if merged != contact.alternative_emails:
            updated = self._repository.update_contact(contact_id, {"alternative_emails": merged})
        metrics.increment("discovery.candidates.suggested", value=len(ranked))
        logger.info(
            "discovery.candidates.suggested",
            extra={
                "contact_id": contact_id,
                "candidates": len(ranked),
                "corroborated": len(corroborated),
                "crawled_emails": len(crawled),
            },
        )
        return CandidateSuggestion(
            contact=updated,
            candidates=ranked,
            corroborated=[email for email in ranked if email in set(corroborated)],
            crawled_emails=crawled,
            domain=domain,
        )


_REPOSITORY_INSTANCE: ContactRepository | None = None
_DISCOVERY_INSTANCE: EmailDiscoveryService | None = None
_CANDIDATE_INSTANCE: CandidateEmailService | None = None


def get_contact_repository() -> ContactRepository:
    """Singleton repository shared by API routes and services."""
    global _REPOSITORY_INSTANCE  # noqa: PLW0603
    if _REPOSITORY_INSTANCE is None:
        _REPOSITORY_INSTANCE = build_contact_repository()
    return _REPOSITORY_INSTANCE


def get_discovery_service() -> EmailDiscoveryService:
    """Singleton accessor used by API routes."""
    global _DISCOVERY_INSTANCE  # noqa: PLW0603
    if _DISCOVERY_INSTANCE is None:
        _DISCOVERY_INSTANCE = EmailDiscoveryService(repository=get_contact_repository())
    return _DISCOVERY_INSTANCE


def get_candidate_service() -> CandidateEmailService:
    global _CANDIDATE_INSTANCE  # noqa: PLW0603
    if _CANDIDATE_INSTANCE is None:
        _CANDIDATE_INSTANCE = CandidateEmailService(repository=get_contact_repository())
    return _CANDIDATE_INSTANCE
