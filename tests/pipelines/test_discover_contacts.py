from __future__ import annotations

import json
from pathlib import Path

from pipelines import discover_contacts
from prospector.services.discovery.orchestrator import DiscoveryOutcome
from prospector.services.errors import InsufficientCreditsError
from prospector.services.extraction.contact_extractor import ContactExtractor
from prospector.services.repositories import InMemoryContactRepository

GLOBEX = (
    "Maria Gonzalez is the Chief Executive Officer of Globex. "
    "Reach her at maria.gonzalez@globex.com for partnership requests."
)
INITECH = "Ravi Patel is the Director of Sales at Initech."
SCORES = {"Maria Gonzalez": 90, "Ravi Patel": 85}


class StubNameScorer:
    def validate_names(self, names, company_name=None, search_prompt=None):
        return {name: score for name, score in SCORES.items() if name in names}


class StubDiscovery:
    def __init__(self, repository: InMemoryContactRepository, *, budget: int = 10) -> None:
        self._repository = repository
        self._budget = budget
        self.calls: list[str] = []

    def discover_email(self, contact_id: str, *, idempotency_key=None) -> DiscoveryOutcome:
        if len(self.calls) >= self._budget:
            raise InsufficientCreditsError(required=20, balance=0)
        self.calls.append(contact_id)
        contact = self._repository.get_contact(contact_id)
        return DiscoveryOutcome(contact=contact, found=True, source="hunter", message="Email found via hunter.")


def _write_companies(path: Path) -> Path:
    path.write_text(
        json.dumps(
            [
                {"name": "Globex", "website": "https://globex.com", "fragments": [GLOBEX]},
                {"name": "Initech", "website": "https://initech.com", "fragments": [INITECH]},
                {"website": "https://nameless.example"},
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_run_pipeline_extracts_and_discovers(tmp_path: Path):
    input_path = _write_companies(tmp_path / "companies.json")
    output_path = tmp_path / "out" / "contacts.json"
    repository = InMemoryContactRepository()
    discovery = StubDiscovery(repository)

    results = discover_contacts.run_pipeline(
        input_path=input_path,
        output_path=output_path,
        max_contacts=3,
        repository=repository,
        extractor=ContactExtractor(StubNameScorer()),
        discovery=discovery,
    )

    assert [item["company"]["name"] for item in results] == ["Globex", "Initech"]
    assert [contact["name"] for contact in results[0]["contacts"]] == ["Maria Gonzalez"]
    assert results[0]["discovery"][0]["source"] == "hunter"
    assert len(discovery.calls) == 2
    assert json.loads(output_path.read_text(encoding="utf-8")) == results


def test_run_pipeline_stops_discovery_when_credits_run_out(tmp_path: Path):
    input_path = _write_companies(tmp_path / "companies.json")
    repository = InMemoryContactRepository()
    discovery = StubDiscovery(repository, budget=1)

    results = discover_contacts.run_pipeline(
        input_path=input_path,
        output_path=tmp_path / "contacts.json",
        max_contacts=3,
        repository=repository,
        extractor=ContactExtractor(StubNameScorer()),
        discovery=discovery,
    )

    assert len(results[0]["discovery"]) == 1
    assert results[1]["discovery"] == []
    assert [contact["name"] for contact in results[1]["contacts"]] == ["Ravi Patel"]


def test_skip_discovery_only_extracts(tmp_path: Path):
    input_path = _write_companies(tmp_path / "companies.json")

    results = discover_contacts.run_pipeline(
        input_path=input_path,
        output_path=tmp_path / "contacts.json",
        max_contacts=3,
        skip_discovery=True,
        repository=InMemoryContactRepository(),
        extractor=ContactExtractor(StubNameScorer()),
    )

    assert all(item["discovery"] == [] for item in results)


def test_main_returns_error_for_invalid_input(tmp_path: Path):
    input_path = tmp_path / "companies.json"
    input_path.write_text(json.dumps({"name": "not a list"}), encoding="utf-8")

    exit_code = discover_contacts.main(
        ["--input", str(input_path), "--output", str(tmp_path / "out.json"), "--skip_discovery"]
    )

    assert exit_code == 1
