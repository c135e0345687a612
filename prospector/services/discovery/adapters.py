"""Provider adapters: one per external data source, all behind `execute(context)`.

Adapters never raise provider failures. Network errors, timeouts, HTTP errors,
API-level error payloads and malformed responses all become an empty
`ProviderResult` whose metadata carries `error` and `code`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, ClassVar, Protocol, TypeVar

from prospector.clients.apollo import ApolloClient, ApolloError, ApolloRateLimitError, ApolloTimeoutError
from prospector.clients.hunter import HunterClient, HunterError, HunterRateLimitError, HunterTimeoutError
from prospector.clients.llm import (
    ChatClient,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    OpenAICompatibleChatClient,
    parse_json_payload,
)
from prospector.config import settings
from prospector.models.search import ContactTarget, ProviderResult, SearchContext, SearchTag, WATERFALL
from prospector.observability.metrics import metrics
from prospector.services.discovery.backoff import exponential_backoff
from prospector.services.validation.patterns import (
    EMAIL_SHAPE,
    extract_emails,
    is_placeholder,
    split_full_name,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], None]
_T = TypeVar("_T")

DEFAULT_CONFIDENCE = 50
ENRICHMENT_CONFIDENCE = 75


class ProviderAdapter(Protocol):
    """Contract every waterfall provider implements."""

    tag: SearchTag
    source: str

    def execute(self, context: SearchContext) -> ProviderResult:
        ...


class ApolloPeopleClient(Protocol):
    def match_person(
        self,
        *,
        first_name: str,
        last_name: str,
        organization_name: str | None = None,
        domain: str | None = None,
    ) -> dict[str, Any] | None:
        ...


class HunterFinderClient(Protocol):
    def find_email(
        self,
        *,
        first_name: str,
        last_name: str,
        company: str | None = None,
        domain: str | None = None,
    ) -> dict[str, Any]:
        ...


def usable_email(value: Any) -> str | None:
    """Normalize a provider email, rejecting locked, malformed or placeholder values."""
    if not isinstance(value, str):
        return None
    email = value.strip().lower()
    if not EMAIL_SHAPE.match(email) or is_placeholder(email) or "not_unlocked" in email:
        return None
    return email


def _str_or_none(value: Any) -> str | None:
    """Provider text field, or None when it is missing, blank or not a string."""
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _to_confidence(value: Any, default: int = DEFAULT_CONFIDENCE) -> int:
    """Providers report 0..1 fractions or 0..100 percentages; normalize to 0..100."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    scaled = value * 100 if value <= 1 else value
    return max(0, min(100, int(round(scaled))))


class _RetryingAdapter:
    """Shared retry/logging/metrics envelope around one provider lookup."""

    tag: ClassVar[SearchTag]
    source: ClassVar[str]
    provider_errors: ClassVar[tuple[type[Exception], ...]] = ()
    transient_errors: ClassVar[tuple[type[Exception], ...]] = ()

    def __init__(
        self,
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._max_attempts = max_attempts or settings.provider_retry_attempts
        self._base_delay = settings.provider_retry_base_delay if base_delay is None else base_delay
        self._sleep = sleep or time.sleep

    def execute(self, context: SearchContext) -> ProviderResult:
        target = context.primary_contact
        if target is None or not target.name.strip():
            return ProviderResult.empty(self.source, error="No contact name provided")

        started = time.perf_counter()
        try:
            result = self._with_retries(lambda: self._search(context, target))
        except self.provider_errors as exc:
            code = getattr(exc, "code", "PROVIDER_ERROR")
            logger.warning(
                "discovery.provider.failed",
                extra={"provider": self.source, "code": code, "company": context.company_name},
            )
            metrics.increment("discovery.provider.failed", tags={"provider": self.source, "code": code})
            return ProviderResult.empty(self.source, error=str(exc), code=code)
        finally:
            metrics.timing(
                "discovery.provider.latency_ms",
                (time.perf_counter() - started) * 1000,
                tags={"provider": self.source},
            )

        outcome = "found" if result.email else "not_found"
        metrics.increment(f"discovery.provider.{outcome}", tags={"provider": self.source})
        return result

    def _with_retries(self, func: Callable[[], _T]) -> _T:
        for attempt, delay in exponential_backoff(
            max_attempts=self._max_attempts, base_delay=self._base_delay
        ):
            try:
                return func()
            except self.provider_errors as exc:
                if attempt >= self._max_attempts or not self._is_transient(exc):
                    raise
                logger.warning(
                    "provider.retry",
                    extra={
                        "provider": self.source,
                        "code": getattr(exc, "code", None),
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "delay_ms": round(delay * 1000, 2),
                    },
                )
                self._sleep(delay)
        raise RuntimeError("exponential_backoff yielded no attempts")  # pragma: no cover

    def _is_transient(self, exc: Exception) -> bool:
        if isinstance(exc, self.transient_errors):
            return True
        status_code = getattr(exc, "status_code", None)
        return status_code is not None and status_code >= 500

    def _search(self, context: SearchContext, target: ContactTarget) -> ProviderResult:
        raise NotImplementedError


class ApolloAdapter(_RetryingAdapter):
    """Company-record/people match lookup."""

    tag = SearchTag.APOLLO
    source = "apollo"
    provider_errors = (ApolloError,)
    transient_errors = (ApolloRateLimitError, ApolloTimeoutError)

    def __init__(self, client: ApolloPeopleClient, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client = client

    def _search(self, context: SearchContext, target: ContactTarget) -> ProviderResult:
        first_name, last_name = split_full_name(target.name)
        person = self._client.match_person(
            first_name=first_name,
            last_name=last_name,
            organization_name=context.company_name,
            domain=context.domain,
        )
        if not person:
            return ProviderResult.empty(self.source, reason="no_match")

        phone_numbers = person.get("phone_numbers") or []
        phone = None
        if isinstance(phone_numbers, list) and phone_numbers and isinstance(phone_numbers[0], dict):
            first_phone = phone_numbers[0]
            phone = (
                _str_or_none(first_phone.get("sanitized_number"))
                or _str_or_none(first_phone.get("raw_number"))
                or _str_or_none(first_phone.get("value"))
            )

        email = usable_email(person.get("email"))
        metadata = {
            "role": _str_or_none(person.get("title")),
            "linkedin_url": _str_or_none(person.get("linkedin_url")),
            "phone_number": phone,
            "confidence": _to_confidence(person.get("confidence_score")),
        }
        return ProviderResult(source=self.source, emails=(email,) if email else (), metadata=metadata)


ENRICHMENT_SYSTEM_PROMPT = """You are a B2B contact research assistant.
Look up the named professional at the named company and answer with ONLY a JSON object:
{"professional_email": string or null, "linkedin_url": string or null, "location": string or null}
Use null for anything you cannot find in a public source. Never invent or guess an address."""


class EnrichmentAdapter(_RetryingAdapter):
    """People-enrichment lookup through a chat-completion research model."""

    tag = SearchTag.ENRICHMENT
    source = "perplexity"
    provider_errors = (LLMError,)
    transient_errors = (LLMRateLimitError, LLMTimeoutError)

    def __init__(
        self,
        client: ChatClient,
        *,
        model: str | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._client = client
        self._model = model or settings.enrichment_model
        self._temperature = settings.enrichment_temperature if temperature is None else temperature

    def _search(self, context: SearchContext, target: ContactTarget) -> ProviderResult:
        subject = target.name
        if target.role:
            subject = f"{subject} ({target.role})"
        company = context.company_name
        if context.domain:
            company = f"{company} ({context.domain})"
        raw = self._client.generate(
            system_prompt=ENRICHMENT_SYSTEM_PROMPT,
            user_prompt=f"Find the professional email address of {subject} at {company}.",
            model=self._model,
            temperature=self._temperature,
        )

        metadata: dict[str, Any] = {"confidence": ENRICHMENT_CONFIDENCE}
        try:
            payload = parse_json_payload(raw)
        except ValueError:
            candidates = [usable_email(email) for email in extract_emails(raw)]
            email = next((candidate for candidate in candidates if candidate), None)
            metadata["parse_mode"] = "text"
        else:
            email = usable_email(payload.get("professional_email") or payload.get("email"))
            metadata["linkedin_url"] = _str_or_none(payload.get("linkedin_url"))
            metadata["location"] = _str_or_none(payload.get("location"))
            metadata["parse_mode"] = "json"
        return ProviderResult(source=self.source, emails=(email,) if email else (), metadata=metadata)


class HunterAdapter(_RetryingAdapter):
    """Dedicated email-finder lookup."""

    tag = SearchTag.HUNTER
    source = "hunter"
    provider_errors = (HunterError,)
    transient_errors = (HunterRateLimitError, HunterTimeoutError)

    def __init__(self, client: HunterFinderClient, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client = client

    def _search(self, context: SearchContext, target: ContactTarget) -> ProviderResult:
        if not context.company_name and not context.domain:
            return ProviderResult.empty(self.source, error="No company or domain provided")
        first_name, last_name = split_full_name(target.name)
        data = self._client.find_email(
            first_name=first_name,
            last_name=last_name,
            company=context.company_name or None,
            domain=context.domain,
        )
        email = usable_email(data.get("email"))
        metadata = {
            "confidence": _to_confidence(data.get("score")),
            "role": _str_or_none(data.get("position")),
            "linkedin_url": _str_or_none(data.get("linkedin_url")),
        }
        return ProviderResult(source=self.source, emails=(email,) if email else (), metadata=metadata)


def build_waterfall_adapters() -> dict[SearchTag, ProviderAdapter]:
    """Adapters for every provider with credentials configured."""
    adapters: dict[SearchTag, ProviderAdapter] = {}
    if settings.apollo_api_key:
        adapters[SearchTag.APOLLO] = ApolloAdapter(ApolloClient.from_settings())
    if settings.perplexity_api_key:
        adapters[SearchTag.ENRICHMENT] = EnrichmentAdapter(OpenAICompatibleChatClient.from_settings())
    if settings.hunter_api_key:
        adapters[SearchTag.HUNTER] = HunterAdapter(HunterClient.from_settings())
    missing = [tag.value for tag in WATERFALL if tag not in adapters]
    if missing:
        logger.info("discovery.adapters.unconfigured", extra={"providers": missing})
    return adapters
