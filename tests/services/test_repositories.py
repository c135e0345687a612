from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest

from prospector.models.company import Company
from prospector.models.contact import Contact
from prospector.models.search import SearchTag
from prospector.services import repositories as repositories_module
from prospector.services.errors import ContactNotFoundError, ContactPersistenceError
from prospector.services.repositories import (
    InMemoryContactRepository,
    SqlContactRepository,
    build_contact_repository,
)


def _sqlite_repository(tmp_path: Path) -> SqlContactRepository:
    return SqlContactRepository(f"sqlite:///{tmp_path / 'contacts.db'}", auto_create_schema=True)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path: Path):
    if request.param == "memory":
        yield InMemoryContactRepository()
        return
    sql_repository = _sqlite_repository(tmp_path)
    try:
        yield sql_repository
    finally:
        sql_repository.dispose()


def _seed(repository) -> tuple[Company, Contact]:
    company = repository.save_company(
        Company(name="Globex", website="https://globex.com", services=["Logistics"])
    )
    contact = repository.add_contact(
        Contact(company_id=company.id, name="Maria Gonzalez", role="CEO", probability=80)
    )
    return company, contact


def test_round_trip_company_and_contact(repository):
    company, contact = _seed(repository)

    stored_company = repository.get_company(str(company.id))
    stored_contact = repository.get_contact(str(contact.id))

    assert stored_company.name == "Globex"
    assert stored_company.services == ["Logistics"]
    assert stored_company.domain == "globex.com"
    assert stored_contact.name == "Maria Gonzalez"
    assert stored_contact.company_id == company.id
    assert stored_contact.completed_searches == set()


def test_update_contact_merges_fields(repository):
    _, contact = _seed(repository)

    updated = repository.update_contact(
        str(contact.id),
        {
            "email": "maria@globex.com",
            "completed_searches": {SearchTag.HUNTER, SearchTag.APOLLO},
            "verification_source": "hunter",
        },
    )

    assert updated.email == "maria@globex.com"
    assert updated.role == "CEO"
    reloaded = repository.get_contact(str(contact.id))
    assert reloaded.email == "maria@globex.com"
    assert reloaded.completed_searches == {SearchTag.APOLLO, SearchTag.HUNTER}
    assert reloaded.verification_source == "hunter"


def test_update_rejects_unknown_fields(repository):
    _, contact = _seed(repository)

    with pytest.raises(ContactPersistenceError) as excinfo:
        repository.update_contact(str(contact.id), {"favourite_colour": "blue"})

    assert excinfo.value.code == "422_INVALID_CONTACT_UPDATE"


def test_update_rejects_invalid_values(repository):
    _, contact = _seed(repository)

    with pytest.raises(ContactPersistenceError):
        repository.update_contact(str(contact.id), {"probability": 140})

    assert repository.get_contact(str(contact.id)).probability == 80


def test_update_missing_contact_raises(repository):
    with pytest.raises(ContactNotFoundError):
        repository.update_contact(str(uuid4()), {"email": "x@globex.com"})


def test_list_contacts_orders_by_probability(repository):
    company, _ = _seed(repository)
    repository.add_contact(Contact(company_id=company.id, name="Ravi Patel", probability=92))
    repository.add_contact(Contact(company_id=uuid4(), name="Someone Else", probability=99))

    names = [contact.name for contact in repository.list_contacts(str(company.id))]

    assert names == ["Ravi Patel", "Maria Gonzalez"]


def test_save_company_overwrites_existing(repository):
    company, _ = _seed(repository)

    repository.save_company(company.model_copy(update={"size": 120, "total_score": 74}))

    stored = repository.get_company(str(company.id))
    assert stored.size == 120
    assert stored.total_score == 74


def test_sql_repository_rejects_malformed_identifiers(tmp_path: Path):
    repository = _sqlite_repository(tmp_path)
    try:
        with pytest.raises(ContactPersistenceError) as excinfo:
            repository.get_contact("not-a-uuid")
    finally:
        repository.dispose()

    assert excinfo.value.code == "422_INVALID_IDENTIFIER"


def test_sql_repository_requires_url():
    with pytest.raises(ValueError):
        SqlContactRepository("")


def test_build_contact_repository_selects_backend(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(repositories_module.settings, "database_url", None)
    assert isinstance(build_contact_repository(), InMemoryContactRepository)

    sql_repository = build_contact_repository(f"sqlite+aiosqlite:///{tmp_path / 'async.db'}")
    try:
        assert isinstance(sql_repository, SqlContactRepository)
        _seed(sql_repository)
    finally:
        sql_repository.dispose()
