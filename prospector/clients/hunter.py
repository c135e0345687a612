"""Client for the Hunter.io email-finder API."""

from __future__ import annotations

from typing import Any

import httpx

from prospector.config import settings


class HunterError(RuntimeError):
    """Base error for Hunter client failures."""

    def __init__(self, message: str, code: str = "HUNTER_ERROR", status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class HunterRateLimitError(HunterError):
    def __init__(self, message: str = "Rate limited by Hunter") -> None:
        super().__init__(message, code="HUNTER_429", status_code=429)


class HunterTimeoutError(HunterError):
    def __init__(self, message: str = "Hunter request timed out") -> None:
        super().__init__(message, code="HUNTER_TIMEOUT")


class HunterSchemaError(HunterError):
    def __init__(self, message: str = "Unexpected Hunter response schema") -> None:
        super().__init__(message, code="HUNTER_SCHEMA_ERR")


class HunterAPIError(HunterError):
    """Raised when Hunter answers 200 but reports errors in the payload."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="HUNTER_API_ERROR")


class HunterClient:
    """Minimal Hunter.io API client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.hunter.io",
        timeout: float = 15.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("HUNTER_API_KEY is required to create a HunterClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_settings(cls) -> "HunterClient":
        return cls(
            settings.hunter_api_key or "",
            base_url=settings.hunter_base_url,
            timeout=settings.provider_timeout_seconds,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def find_email(
        self,
        *,
        first_name: str,
        last_name: str,
        company: str | None = None,
        domain: str | None = None,
    ) -> dict[str, Any]:
        """Return Hunter's `data` object for the best address guess."""
        if not company and not domain:
            raise ValueError("company or domain is required for an email-finder lookup.")
        params = {"api_key": self._api_key, "first_name": first_name, "last_name": last_name}
        if domain:
            params["domain"] = domain
        if company:
            params["company"] = company

        try:
            response = self._http.get("/v2/email-finder", params=params)
        except httpx.TimeoutException as exc:
            raise HunterTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise HunterError(f"HTTP error calling Hunter: {exc}") from exc

        if response.status_code == 429:
            raise HunterRateLimitError()
        if response.status_code in (408, 504):
            raise HunterTimeoutError()
        if response.status_code >= 400:
            raise HunterError(
                f"Hunter request failed: {response.status_code}",
                code=f"HUNTER_{response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise HunterSchemaError("Failed to decode Hunter response JSON.") from exc
        if not isinstance(body, dict):
            raise HunterSchemaError("Hunter response must be a JSON object.")

        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            details = "; ".join(
                str(error.get("details") or error.get("id") or error)
                for error in errors
                if isinstance(error, dict)
            )
            raise HunterAPIError(f"Hunter reported errors: {details or errors}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise HunterSchemaError("`data` missing from Hunter response.")
        return data

    def __enter__(self) -> "HunterClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
