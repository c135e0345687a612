"""Shared error classes for the discovery engine and its repositories."""

from __future__ import annotations


class DiscoveryError(RuntimeError):
    """Base exception raised by the contact discovery engine."""

    def __init__(self, message: str, code: str = "DISCOVERY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ContactNotFoundError(DiscoveryError):
    def __init__(self, contact_id: str) -> None:
        super().__init__(f"Contact {contact_id} not found.", code="404_CONTACT_NOT_FOUND")


class CompanyNotFoundError(DiscoveryError):
    def __init__(self, company_id: str) -> None:
        super().__init__(f"Company {company_id} not found.", code="404_COMPANY_NOT_FOUND")


class SearchInProgressError(DiscoveryError):
    """Raised when a waterfall is already running for the same contact."""

    def __init__(self, contact_id: str) -> None:
        super().__init__(
            f"An email search is already running for contact {contact_id}.",
            code="409_SEARCH_IN_PROGRESS",
        )


class InsufficientCreditsError(DiscoveryError):
    """Raised when the credit ledger blocks a search."""

    def __init__(self, *, required: int, balance: int) -> None:
        super().__init__(
            f"Insufficient credits: {required} required, {balance} available.",
            code="402_INSUFFICIENT_CREDITS",
        )
        self.required = required
        self.balance = balance


class ContactPersistenceError(DiscoveryError):
    """Raised when the repository fails to save or retrieve records."""
