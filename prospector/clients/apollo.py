"""Client for the Apollo.io people-match API."""

from __future__ import annotations

from typing import Any

import httpx

from prospector.config import settings


class ApolloError(RuntimeError):
    """Base error for Apollo client failures."""

    def __init__(self, message: str, code: str = "APOLLO_ERROR", status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ApolloRateLimitError(ApolloError):
    """Raised when Apollo responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Apollo") -> None:
        super().__init__(message, code="APOLLO_429", status_code=429)


class ApolloTimeoutError(ApolloError):
    """Raised when an Apollo request times out."""

    def __init__(self, message: str = "Apollo request timed out") -> None:
        super().__init__(message, code="APOLLO_TIMEOUT")


class ApolloSchemaError(ApolloError):
    """Raised when the Apollo response schema is not as expected."""

    def __init__(self, message: str = "Unexpected Apollo response schema") -> None:
        super().__init__(message, code="APOLLO_SCHEMA_ERR")


class ApolloClient:
    """Minimal Apollo API client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.apollo.io",
        timeout: float = 15.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("APOLLO_API_KEY is required to create an ApolloClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_settings(cls) -> "ApolloClient":
        return cls(
            settings.apollo_api_key or "",
            base_url=settings.apollo_base_url,
            timeout=settings.provider_timeout_seconds,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def match_person(
        self,
        *,
        first_name: str,
        last_name: str,
        organization_name: str | None = None,
        domain: str | None = None,
    ) -> dict[str, Any] | None:
        """Return Apollo's matched person record, or None when nobody matched."""
        candidate = {
            "first_name": first_name,
            "last_name": last_name,
            "organization_name": organization_name,
            "domain": domain,
        }
        payload = {key: value for key, value in candidate.items() if value}
        headers = {"X-Api-Key": self._api_key, "Cache-Control": "no-cache"}

        try:
            response = self._http.post("/api/v1/people/match", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ApolloTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise ApolloError(f"HTTP error calling Apollo: {exc}") from exc

        if response.status_code == 429:
            raise ApolloRateLimitError()
        if response.status_code in (408, 504):
            raise ApolloTimeoutError()
        if response.status_code >= 400:
            raise ApolloError(
                f"Apollo request failed: {response.status_code}",
                code=f"APOLLO_{response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ApolloSchemaError("Failed to decode Apollo response JSON.") from exc
        if not isinstance(data, dict):
            raise ApolloSchemaError("Apollo response must be a JSON object.")

        person = data.get("person")
        if person is None:
            return None
        if not isinstance(person, dict):
            raise ApolloSchemaError("`person` in Apollo response must be an object.")
        return person

    def __enter__(self) -> "ApolloClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
