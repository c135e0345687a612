"""Batched AI classification of candidate names and the score combination law."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass

from prospector.clients.llm import ChatClient, LLMError, OpenAICompatibleChatClient, parse_json_payload
from prospector.config import settings
from prospector.observability.metrics import metrics

logger = logging.getLogger(__name__)

AI_WEIGHT = 0.8
PATTERN_WEIGHT = 0.2
MINIMUM_SCORE_PENALTY = 30
ROLE_PENALTY = 35
COMPANY_PENALTY_THRESHOLD = 75
MAX_COMPANY_PENALTY = 40
MAX_AI_SCORE = 95

NAME_SCORING_SYSTEM_PROMPT = """You score candidate strings extracted from company research text.
For each candidate decide how likely it is to be the full name of a real, individual person.
Return ONLY a JSON object mapping every candidate string, exactly as given, to an integer from 0 to 95.

Scoring guidance:
- 80-95: clearly a real first and last name of an individual.
- 50-79: probably a person, but unusual or ambiguous.
- 20-49: doubtful; could be a product, place, or phrase.
- 0-19: a job title, department, team, company name, generic phrase or placeholder such as "John Doe".
Score lower when the candidate repeats words from the company name or the search query."""


@dataclass(frozen=True)
class CombinationOptions:
    minimum_score: int | None = None
    require_role: bool = False
    role_minimum_score: int | None = None
    company_name_penalty: int | None = None
    company_name_overlap: bool = False


def combine_validation_scores(
    ai_score: float,
    pattern_score: float,
    options: CombinationOptions | None = None,
) -> int:
    """Blend AI and pattern scores, then apply threshold penalties in fixed order."""
    options = options or CombinationOptions()
    combined = max(0, min(100, round(ai_score * AI_WEIGHT + pattern_score * PATTERN_WEIGHT)))
    if options.minimum_score is not None and combined < options.minimum_score:
        combined = max(combined - MINIMUM_SCORE_PENALTY, 0)
    if (
        options.require_role
        and options.role_minimum_score is not None
        and pattern_score < options.role_minimum_score
    ):
        combined = max(combined - ROLE_PENALTY, 0)
    if (
        options.company_name_overlap
        and options.company_name_penalty
        and combined < COMPANY_PENALTY_THRESHOLD
    ):
        combined = max(combined - min(options.company_name_penalty, MAX_COMPANY_PENALTY), 0)
    return max(0, min(100, combined))


class AINameScorer:
    """Scores a whole batch of names with a single classification request."""

    def __init__(
        self,
        client: ChatClient | None,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> None:
        self._client = client
        self._model = model or settings.name_scoring_model
        self._temperature = (
            settings.name_scoring_temperature if temperature is None else temperature
        )

    def validate_names(
        self,
        names: Iterable[str],
        company_name: str | None = None,
        search_prompt: str | None = None,
    ) -> dict[str, int]:
        """Return name -> score (0..95); any failure yields an empty mapping."""
        batch = list(dict.fromkeys(name.strip() for name in names if name and name.strip()))
        if not batch or self._client is None:
            return {}

        started = time.perf_counter()
        try:
            raw = self._client.generate(
                system_prompt=NAME_SCORING_SYSTEM_PROMPT,
                user_prompt=_build_user_prompt(batch, company_name, search_prompt),
                model=self._model,
                temperature=self._temperature,
            )
        except LLMError as exc:
            logger.warning(
                "name_scoring.provider_failed",
                extra={"batch_size": len(batch), "code": exc.code},
            )
            metrics.increment("name_scoring.failed", tags={"reason": "provider"})
            return {}
        finally:
            metrics.timing("name_scoring.latency_ms", (time.perf_counter() - started) * 1000)

        scores = _parse_scores(raw, batch)
        if scores is None:
            logger.warning("name_scoring.parse_failed", extra={"batch_size": len(batch)})
            metrics.increment("name_scoring.failed", tags={"reason": "parse"})
            return {}
        metrics.increment("name_scoring.scored", value=len(scores))
        return scores


def _build_user_prompt(batch: list[str], company_name: str | None, search_prompt: str | None) -> str:
    lines = [f"Candidates: {json.dumps(batch)}"]
    if company_name:
        lines.append(f"Company name: {company_name}")
    if search_prompt:
        lines.append(f"Search query: {search_prompt}")
    return "\n".join(lines)


def _parse_scores(raw: str, batch: list[str]) -> dict[str, int] | None:
    try:
        payload = parse_json_payload(raw)
    except ValueError:
        return None
    nested = payload.get("scores")
    if isinstance(nested, dict):
        payload = nested

    requested = set(batch)
    scores: dict[str, int] = {}
    for name, value in payload.items():
        if name not in requested:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not 0 <= value <= MAX_AI_SCORE:
            return None
        scores[name] = int(round(value))
    return scores


def get_name_scorer() -> AINameScorer:
    """Build a scorer from settings; without an API key every batch scores empty."""
    if not settings.perplexity_api_key:
        logger.info("name_scoring.disabled", extra={"reason": "missing_api_key"})
        return AINameScorer(None)
    return AINameScorer(OpenAICompatibleChatClient.from_settings())
