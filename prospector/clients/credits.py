"""Client for the credit-ledger billing service."""

from __future__ import annotations

from typing import Any

import httpx

from prospector.config import settings


class CreditsError(RuntimeError):
    """Base error for credit-ledger failures."""

    def __init__(self, message: str, code: str = "CREDITS_ERROR") -> None:
        super().__init__(message)
        self.code = code


class CreditsClient:
    """Reads balances and records individual email-search charges."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not base_url and http_client is None:
            raise ValueError("BILLING_API_BASE_URL is required to create a CreditsClient.")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout, headers=headers
        )

    @classmethod
    def from_settings(cls) -> "CreditsClient":
        return cls(settings.billing_api_base_url or "", api_key=settings.billing_api_key)

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def get_credits(self) -> dict[str, Any]:
        return self._request("GET", "/api/credits")

    def deduct_individual_email(
        self, contact_id: str, *, search_type: str, email_found: bool
    ) -> dict[str, Any]:
        payload = {"contactId": contact_id, "searchType": search_type, "emailFound": email_found}
        return self._request("POST", "/api/credits/deduct-individual-email", json=payload)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise CreditsError("Credit service request timed out", code="CREDITS_TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise CreditsError(f"HTTP error calling credit service: {exc}") from exc
        if response.status_code >= 400:
            raise CreditsError(
                f"Credit service request failed: {response.status_code}",
                code=f"CREDITS_{response.status_code}",
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise CreditsError("Failed to decode credit service JSON.", code="CREDITS_SCHEMA_ERR") from exc
        if not isinstance(data, dict):
            raise CreditsError("Credit service response must be an object.", code="CREDITS_SCHEMA_ERR")
        return data

    def __enter__(self) -> "CreditsClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
