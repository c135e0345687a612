from __future__ import annotations

from contextlib import contextmanager
from uuid import uuid4

from prospector.main import app
from prospector.models.company import Company
from prospector.models.contact import Contact
from prospector.models.search import ProviderResult, SearchContext, SearchTag
from prospector.services.billing import BillingGate, InMemoryCreditLedger
from prospector.services.discovery.orchestrator import (
    CandidateEmailService,
    EmailDiscoveryService,
    get_candidate_service,
    get_discovery_service,
)
from prospector.services.discovery.pending import PendingSearchStore
from prospector.services.repositories import InMemoryContactRepository


class StubAdapter:
    def __init__(self, tag: SearchTag, source: str, emails: tuple[str, ...] = (), confidence: int = 80):
        self.tag = tag
        self.source = source
        self._emails = emails
        self._confidence = confidence
        self.calls = 0

    def execute(self, context: SearchContext) -> ProviderResult:
        self.calls += 1
        return ProviderResult(
            source=self.source, emails=self._emails, metadata={"confidence": self._confidence}
        )


class StubCrawler:
    def execute(self, context: SearchContext) -> ProviderResult:
        return ProviderResult(
            source="website_crawler",
            emails=("jane.doe@acme.com", "info@acme.com"),
            metadata={"page_text": "Jane Doe, founder. jane.doe@acme.com"},
        )


def _seed(repository: InMemoryContactRepository) -> Contact:
    company = repository.save_company(Company(name="Acme Corp", website="https://acme.com"))
    return repository.add_contact(Contact(company_id=company.id, name="Jane Doe"))


def _build_service(repository, *, hunter_emails=("jane.doe@acme.com",), balance=100, pending=None):
    adapters = {
        SearchTag.APOLLO: StubAdapter(SearchTag.APOLLO, "apollo"),
        SearchTag.ENRICHMENT: StubAdapter(SearchTag.ENRICHMENT, "perplexity"),
        SearchTag.HUNTER: StubAdapter(SearchTag.HUNTER, "hunter", hunter_emails, confidence=72),
    }
    return EmailDiscoveryService(
        repository=repository,
        adapters=adapters,
        billing=BillingGate(InMemoryCreditLedger(balance, cost=20), cost=20),
        pending=pending or PendingSearchStore(ttl_seconds=300),
    )


@contextmanager
def _override(dependency, instance):
    app.dependency_overrides[dependency] = lambda: instance
    try:
        yield
    finally:
        app.dependency_overrides.pop(dependency, None)


def test_discover_email_returns_found_contact(client):
    repository = InMemoryContactRepository()
    contact = _seed(repository)
    service = _build_service(repository)

    with _override(get_discovery_service, service):
        response = client.post(f"/api/contacts/{contact.id}/discover-email")
        progress = client.get(f"/api/contacts/{contact.id}/search-progress")

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is True
    assert body["source"] == "hunter"
    assert body["attempted"] == ["apollo_search", "contact_enrichment", "hunter_search"]
    assert body["contact"]["email"] == "jane.doe@acme.com"
    assert body["contact"]["probability"] == 72
    assert body["contact"]["completed_searches"] == [
        "apollo_search",
        "contact_enrichment",
        "hunter_search",
    ]

    assert progress.status_code == 200
    events = progress.json()
    assert events["searching"] is False
    assert events["events"][0]["event"] == "search_started"
    assert events["events"][-1]["event"] == "email_found"


def test_discover_email_exhausted_returns_not_found_message(client):
    repository = InMemoryContactRepository()
    contact = _seed(repository)
    service = _build_service(repository, hunter_emails=())

    with _override(get_discovery_service, service):
        response = client.post(f"/api/contacts/{contact.id}/discover-email")

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is False
    assert body["message"] == "No email found. All search methods exhausted."
    assert "comprehensive_search" in body["contact"]["completed_searches"]


def test_idempotency_header_replays_outcome(client):
    repository = InMemoryContactRepository()
    contact = _seed(repository)
    service = _build_service(repository)

    with _override(get_discovery_service, service):
        first = client.post(
            f"/api/contacts/{contact.id}/discover-email", headers={"Idempotency-Key": "abc"}
        )
        second = client.post(
            f"/api/contacts/{contact.id}/discover-email", headers={"Idempotency-Key": "abc"}
        )

    assert first.json() == second.json()
    assert len(repository.update_calls) == 1


def test_discover_email_error_mapping(client):
    repository = InMemoryContactRepository()
    contact = _seed(repository)
    pending: PendingSearchStore = PendingSearchStore(ttl_seconds=300)

    with _override(get_discovery_service, _build_service(repository, pending=pending)):
        missing = client.post(f"/api/contacts/{uuid4()}/discover-email")
        pending.try_begin(str(contact.id))
        conflict = client.post(f"/api/contacts/{contact.id}/discover-email")
        pending.finish(str(contact.id))
        malformed = client.post("/api/contacts/not-a-uuid/discover-email")

    with _override(get_discovery_service, _build_service(repository, balance=5)):
        broke = client.post(f"/api/contacts/{contact.id}/discover-email")

    assert missing.status_code == 404
    assert conflict.status_code == 409
    assert malformed.status_code == 422
    assert broke.status_code == 402


def test_candidate_emails_endpoint(client):
    repository = InMemoryContactRepository()
    contact = _seed(repository)
    service = CandidateEmailService(repository=repository, crawler=StubCrawler())

    with _override(get_candidate_service, service):
        response = client.post(f"/api/contacts/{contact.id}/candidate-emails")
        rejected = client.post(
            f"/api/contacts/{contact.id}/candidate-emails",
            json={"subsearches": {"enhanced-name-validation": True}},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["candidates"][0] == "jane.doe@acme.com"
    assert body["crawled_emails"] == ["jane.doe@acme.com", "info@acme.com"]
    assert body["domain"] == "acme.com"
    assert body["contact"]["email"] is None
    assert rejected.status_code == 422


def test_health_reports_repository_backend(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
