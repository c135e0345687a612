"""Credit checks before a search and charges after a successful find."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol

from prospector.clients.credits import CreditsClient, CreditsError
from prospector.config import settings
from prospector.observability.metrics import metrics
from prospector.services.errors import InsufficientCreditsError

logger = logging.getLogger(__name__)

# Ledger search-type names per waterfall provider source.
SEARCH_TYPES = {
    "apollo": "apollo",
    "perplexity": "perplexity",
    "hunter": "hunter",
}


@dataclass(frozen=True)
class CreditStatus:
    balance: int
    is_blocked: bool


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    charged: bool
    new_balance: int | None = None


class CreditLedger(Protocol):
    """Wire contract of the external billing service."""

    def get_credits(self) -> dict[str, Any]:
        ...

    def deduct_individual_email(
        self, contact_id: str, *, search_type: str, email_found: bool
    ) -> dict[str, Any]:
        ...


class InMemoryCreditLedger(CreditLedger):
    """Thread-safe ledger used for local development and tests."""

    def __init__(self, balance: int | None = None, *, cost: int | None = None, blocked: bool = False) -> None:
        self._balance = settings.local_credit_balance if balance is None else balance
        self._cost = cost or settings.email_search_credit_cost
        self._blocked = blocked
        self._lock = Lock()
        self.charges: list[dict[str, Any]] = []

    def get_credits(self) -> dict[str, Any]:
        with self._lock:
            return {"balance": self._balance, "isBlocked": self._blocked}

    def deduct_individual_email(
        self, contact_id: str, *, search_type: str, email_found: bool
    ) -> dict[str, Any]:
        with self._lock:
            self.charges.append(
                {"contact_id": contact_id, "search_type": search_type, "email_found": email_found}
            )
            if not email_found:
                return {"success": True, "charged": False, "newBalance": self._balance}
            self._balance -= self._cost
            self._blocked = self._balance <= 0
            return {
                "success": True,
                "charged": True,
                "newBalance": self._balance,
                "isBlocked": self._blocked,
            }


class BillingGate:
    """Fail-closed credit check; charge only for searches that found an email."""

    def __init__(self, ledger: CreditLedger, *, cost: int | None = None) -> None:
        self._ledger = ledger
        self.cost = cost or settings.email_search_credit_cost

    def check_credits(self) -> CreditStatus:
        try:
            payload = self._ledger.get_credits()
            balance = int(payload.get("balance", 0))
            is_blocked = bool(payload.get("isBlocked", False))
        except (CreditsError, TypeError, ValueError) as exc:
            logger.warning(
                "billing.check_failed",
                extra={"code": getattr(exc, "code", "CREDITS_SCHEMA_ERR")},
            )
            metrics.increment("billing.check_failed")
            return CreditStatus(balance=0, is_blocked=True)
        return CreditStatus(balance=balance, is_blocked=is_blocked)

    def ensure_can_search(self) -> CreditStatus:
        status = self.check_credits()
        if status.is_blocked or status.balance < self.cost:
            metrics.increment("billing.search_blocked")
            raise InsufficientCreditsError(required=self.cost, balance=status.balance)
        return status

    def deduct_credits_for_email_search(
        self,
        contact_id: str,
        email_found: bool,
        *,
        source: str | None = None,
    ) -> ChargeResult:
        """Charge for one individual email search; never calls the ledger when nothing was found."""
        if not email_found:
            return ChargeResult(success=True, charged=False)

        search_type = SEARCH_TYPES.get(source or "", "comprehensive")
        try:
            payload = self._ledger.deduct_individual_email(
                contact_id, search_type=search_type, email_found=True
            )
        except CreditsError as exc:
            logger.warning(
                "billing.charge_failed",
                extra={"contact_id": contact_id, "code": exc.code, "search_type": search_type},
            )
            metrics.increment("billing.charge_failed")
            return ChargeResult(success=False, charged=False)

        result = ChargeResult(
            success=bool(payload.get("success", True)),
            charged=bool(payload.get("charged", True)),
            new_balance=payload.get("newBalance"),
        )
        if not result.success:
            logger.warning(
                "billing.charge_failed",
                extra={"contact_id": contact_id, "code": "CREDITS_REJECTED", "search_type": search_type},
            )
            metrics.increment("billing.charge_failed")
        else:
            metrics.increment("billing.charged", value=self.cost)
            logger.info(
                "billing.charged",
                extra={"contact_id": contact_id, "search_type": search_type, "balance": result.new_balance},
            )
        return result


def get_billing_gate() -> BillingGate:
    if settings.billing_api_base_url:
        return BillingGate(CreditsClient.from_settings())
    logger.info("billing.ledger.initialized", extra={"backend": "memory"})
    return BillingGate(InMemoryCreditLedger())
