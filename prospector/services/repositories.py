"""Persistence backends for companies and contacts."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from threading import Lock
from typing import Any, Protocol
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from prospector.config import settings
from prospector.models.company import Company
from prospector.models.contact import Contact
from prospector.models.records import CompanyRecord, ContactRecord
from prospector.observability.metrics import metrics
from prospector.services.errors import ContactNotFoundError, ContactPersistenceError

logger = logging.getLogger(__name__)


class ContactRepository(Protocol):
    """Persistence contract used by the discovery engine."""

    def get_contact(self, contact_id: str) -> Contact | None:
        ...

    def update_contact(self, contact_id: str, fields: Mapping[str, Any]) -> Contact:
        ...

    def add_contact(self, contact: Contact) -> Contact:
        ...

    def list_contacts(self, company_id: str) -> list[Contact]:
        ...

    def get_company(self, company_id: str) -> Company | None:
        ...

    def save_company(self, company: Company) -> Company:
        ...


def _merge_contact(current: Contact, fields: Mapping[str, Any]) -> Contact:
    unknown = set(fields) - set(Contact.model_fields)
    if unknown or "id" in fields:
        raise ContactPersistenceError(
            f"Cannot update contact fields: {', '.join(sorted(unknown or {'id'}))}",
            code="422_INVALID_CONTACT_UPDATE",
        )
    try:
        return Contact.model_validate({**current.model_dump(), **fields})
    except ValidationError as exc:
        raise ContactPersistenceError(
            "Contact update failed validation.", code="422_INVALID_CONTACT_UPDATE"
        ) from exc


class InMemoryContactRepository(ContactRepository):
    """Thread-safe repository used for API/local development."""

    def __init__(self) -> None:
        self._contacts: dict[str, Contact] = {}
        self._companies: dict[str, Company] = {}
        self._lock = Lock()
        self.update_calls: list[tuple[str, dict[str, Any]]] = []

    def get_contact(self, contact_id: str) -> Contact | None:
        with self._lock:
            return self._contacts.get(str(contact_id))

    def update_contact(self, contact_id: str, fields: Mapping[str, Any]) -> Contact:
        key = str(contact_id)
        with self._lock:
            current = self._contacts.get(key)
            if current is None:
                raise ContactNotFoundError(key)
            updated = _merge_contact(current, fields)
            self._contacts[key] = updated
            self.update_calls.append((key, dict(fields)))
        metrics.increment("contacts.persistence.updated", tags={"repository": "memory"})
        logger.info(
            "contacts.persistence.updated",
            extra={"contact_id": key, "fields": sorted(fields), "backend": "memory"},
        )
        return updated

    def add_contact(self, contact: Contact) -> Contact:
        with self._lock:
            self._contacts[str(contact.id)] = contact
        return contact

    def list_contacts(self, company_id: str) -> list[Contact]:
        with self._lock:
            matches = [c for c in self._contacts.values() if str(c.company_id) == str(company_id)]
        return sorted(matches, key=lambda contact: contact.probability, reverse=True)

    def get_company(self, company_id: str) -> Company | None:
        with self._lock:
            return self._companies.get(str(company_id))

    def save_company(self, company: Company) -> Company:
        with self._lock:
            self._companies[str(company.id)] = company
        return company


class SqlContactRepository(ContactRepository):
    """SQLModel-backed repository for Postgres or SQLite."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
        auto_create_schema: bool = False,
    ) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlContactRepository.")

        sync_url, connect_args, drivername = _coerce_sync_database_url(make_url(database_url))
        is_sqlite = drivername.startswith("sqlite")
        engine_kwargs: dict[str, Any] = {
            "echo": settings.debug and not is_sqlite,
            "connect_args": connect_args,
            "pool_pre_ping": not is_sqlite,
        }
        if not is_sqlite:
            pool_min = max(pool_min_size or settings.db_pool_min_size, 1)
            pool_max = max(pool_max_size or settings.db_pool_max_size, pool_min)
            engine_kwargs["pool_size"] = pool_min
            engine_kwargs["max_overflow"] = max(pool_max - pool_min, 0)

        self._engine: Engine = create_engine(sync_url, **engine_kwargs)
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine)
        self._backend = "sqlite" if is_sqlite else "postgres"

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    def get_contact(self, contact_id: str) -> Contact | None:
        with self._guard("load contact", contact_id=contact_id):
            with self._session() as session:
                record = session.get(ContactRecord, _parse_uuid(contact_id))
                return record.to_contact() if record else None

    def update_contact(self, contact_id: str, fields: Mapping[str, Any]) -> Contact:
        with self._guard("update contact", contact_id=contact_id):
            with self._session() as session:
                record = session.get(ContactRecord, _parse_uuid(contact_id))
                if record is None:
                    raise ContactNotFoundError(str(contact_id))
                updated = _merge_contact(record.to_contact(), fields)
                record.apply(updated)
                session.add(record)
                session.commit()
        metrics.increment("contacts.persistence.updated", tags={"repository": self._backend})
        logger.info(
            "contacts.persistence.updated",
            extra={"contact_id": str(contact_id), "fields": sorted(fields), "backend": self._backend},
        )
        return updated

    def add_contact(self, contact: Contact) -> Contact:
        with self._guard("add contact", contact_id=str(contact.id)):
            with self._session() as session:
                session.add(ContactRecord.from_contact(contact))
                session.commit()
        return contact

    def list_contacts(self, company_id: str) -> list[Contact]:
        with self._guard("list contacts", company_id=company_id):
            with self._session() as session:
                statement = (
                    select(ContactRecord)
                    .where(ContactRecord.company_id == _parse_uuid(company_id))
                    .order_by(ContactRecord.probability.desc())
                )
                return [record.to_contact() for record in session.exec(statement).all()]

    def get_company(self, company_id: str) -> Company | None:
        with self._guard("load company", company_id=company_id):
            with self._session() as session:
                record = session.get(CompanyRecord, _parse_uuid(company_id))
                return record.to_company() if record else None

    def save_company(self, company: Company) -> Company:
        with self._guard("save company", company_id=str(company.id)):
            with self._session() as session:
                session.merge(CompanyRecord.from_company(company))
                session.commit()
        return company

    @contextmanager
    def _guard(self, action: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception(
                "contacts.persistence.error", extra={**context, "backend": self._backend}
            )
            raise ContactPersistenceError(f"Failed to {action}.", code="500_PERSISTENCE") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine, expire_on_commit=False) as session:
            yield session


def _parse_uuid(value: str | UUID) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ContactPersistenceError(
            "Identifier must be a valid UUID.", code="422_INVALID_IDENTIFIER"
        ) from exc


def _coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+aiosqlite"):
        drivername = drivername.replace("+aiosqlite", "")
    sync_url = url.set(drivername=drivername)
    if drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def build_contact_repository(database_url: str | None = None) -> ContactRepository:
    """Instantiate a ContactRepository using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("contacts.repository.initialized", extra={"backend": "memory"})
        return InMemoryContactRepository()
    try:
        repository = SqlContactRepository(resolved_url, auto_create_schema=True)
    except Exception:
        logger.exception("contacts.repository.init_failed", extra={"backend": "database"})
        raise
    logger.info("contacts.repository.initialized", extra={"backend": "database"})
    return repository
