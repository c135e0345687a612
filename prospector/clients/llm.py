"""Chat-completion client for OpenAI-compatible endpoints (Perplexity by default)."""

from __future__ import annotations

import json
from typing import Any, Protocol

import openai
from openai import OpenAI

from prospector.config import settings


class LLMError(RuntimeError):
    """Base error for chat-completion failures."""

    def __init__(self, message: str, code: str = "LLM_ERROR", status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class LLMRateLimitError(LLMError):
    def __init__(self, message: str = "Rate limited by language model provider") -> None:
        super().__init__(message, code="LLM_429", status_code=429)


class LLMTimeoutError(LLMError):
    def __init__(self, message: str = "Language model request timed out") -> None:
        super().__init__(message, code="LLM_TIMEOUT")


class ChatClient(Protocol):
    """Minimal contract for a single-turn chat completion."""

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
    ) -> str:
        ...


class OpenAICompatibleChatClient(ChatClient):
    """Thin wrapper around the official OpenAI SDK's chat completions API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 15.0,
        client: OpenAI | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ValueError("PERPLEXITY_API_KEY is required to create a chat client.")
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    @classmethod
    def from_settings(cls) -> "OpenAICompatibleChatClient":
        return cls(
            settings.perplexity_api_key or "",
            base_url=settings.perplexity_base_url,
            timeout=settings.provider_timeout_seconds,
        )

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
    ) -> str:
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.RateLimitError as exc:
            raise LLMRateLimitError() from exc
        except openai.APITimeoutError as exc:
            raise LLMTimeoutError() from exc
        except openai.APIStatusError as exc:
            raise LLMError(
                f"Language model request failed: {exc.status_code}",
                code=f"LLM_{exc.status_code}",
                status_code=exc.status_code,
            ) from exc
        except openai.OpenAIError as exc:
            raise LLMError(f"Language model request failed: {exc}") from exc
        return _extract_response_text(response)


def _extract_response_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if choices:
        content = getattr(choices[0].message, "content", "")
        if isinstance(content, list):
            return "".join(part.get("text", "") for part in content if isinstance(part, dict)).strip()
        if isinstance(content, str):
            return content.strip()
    raise LLMError("Language model response did not include text output.", code="LLM_SCHEMA_ERR")


def parse_json_payload(raw_text: str) -> dict[str, Any]:
    """Best-effort JSON decoding that tolerates code fences or prose."""
    candidate = (raw_text or "").strip()
    if candidate.startswith("```"):
        candidate = "\n".join(
            line for line in candidate.splitlines() if not line.strip().startswith("```")
        ).strip()
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("Response did not contain JSON object.")
    payload = json.loads(candidate[start : end + 1])
    if not isinstance(payload, dict):
        raise ValueError("Response JSON was not an object.")
    return payload
