"""Mine structured company attributes out of heterogeneous analysis fragments."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence
from typing import Any

from prospector.clients.llm import parse_json_payload
from prospector.models.company import MAX_DIFFERENTIATORS, MAX_SERVICES, CompanyAttributes

logger = logging.getLogger(__name__)

SIZE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(\d+(?:,\d{3})*(?:\s*(?:-|–|to)\s*\d+(?:,\d{3})*)?)\+?\s*(?:employees|staff)",
        re.IGNORECASE,
    ),
    re.compile(r"team of\s+(\d+(?:,\d{3})*)", re.IGNORECASE),
    re.compile(r"staff size[:\s]+(\d+(?:,\d{3})*)", re.IGNORECASE),
)
SERVICE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:provides?|offers?|delivers?|specializes? in)\s+"
        r"([^.!?]+(?:services|solutions|consulting|development|support))",
        re.IGNORECASE,
    ),
    re.compile(r"(?:key|main|core)\s+services?:\s*([^.!?]+)", re.IGNORECASE),
    re.compile(r"services?(?:\s+include)?:\s*([^.!?]+)", re.IGNORECASE),
)
DIFFERENTIATOR_KEYWORDS: tuple[str, ...] = (
    "uniquely",
    "different",
    "unique",
    "specialized in",
    "industry leader",
    "leading provider",
    "innovative",
)
MAX_DIFFERENTIATOR_CHARS = 200
MAX_SERVICE_CHARS = 100
COMPANY_SUFFIX = re.compile(
    r"[,\s]+(?:inc|llc|ltd|corp|corporation|co|gmbh|plc|limited)\.?$", re.IGNORECASE
)


def _max_number(text: str) -> int | None:
    numbers = [int(chunk.replace(",", "")) for chunk in re.findall(r"\d+(?:,\d{3})*", text)]
    return max(numbers) if numbers else None


def analyze_company_size(text: str) -> int | None:
    """Employee count mentioned in prose; ranges resolve to their upper bound."""
    for pattern in SIZE_PATTERNS:
        match = pattern.search(text)
        if match:
            return _max_number(match.group(1))
    return None


def extract_services(text: str) -> list[str]:
    services: list[str] = []
    for pattern in SERVICE_PATTERNS:
        for match in pattern.finditer(text):
            for part in re.split(r",|\band\b", match.group(1)):
                cleaned = part.strip()
                if 0 < len(cleaned) < MAX_SERVICE_CHARS:
                    services.append(cleaned)
    return services


def extract_differentiators(text: str) -> list[str]:
    found: list[str] = []
    for sentence in re.split(r"[.!?]", text):
        cleaned = sentence.strip()
        if not cleaned or len(cleaned) >= MAX_DIFFERENTIATOR_CHARS:
            continue
        lowered = cleaned.lower()
        if any(keyword in lowered for keyword in DIFFERENTIATOR_KEYWORDS):
            found.append(cleaned)
            if len(found) == MAX_DIFFERENTIATORS:
                break
    return found


def calculate_company_score(
    size: int | None,
    differentiation: Sequence[str],
    services: Sequence[str],
) -> int:
    """Composite 0..100 score: size tier, differentiators and services."""
    score = 50
    if size is not None:
        if size > 1000:
            score += 20
        elif size > 500:
            score += 15
        elif size > 100:
            score += 10
        elif size > 50:
            score += 5
    score += min(len(differentiation) * 5, 15)
    score += min(len(services) * 3, 15)
    return max(0, min(100, score))


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def _json_size(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) and value >= 0 else None
    if isinstance(value, str):
        return analyze_company_size(value) or _max_number(value)
    return None


def _split_json(fragment: str) -> tuple[str, dict[str, Any] | None]:
    """Separate an embedded JSON object from the prose around it."""
    try:
        payload = parse_json_payload(fragment)
    except ValueError:
        return fragment, None
    start, end = fragment.find("{"), fragment.rfind("}")
    return f"{fragment[:start]} {fragment[end + 1:]}", payload


def _minable_text(prose: str, payload: dict[str, Any] | None) -> str:
    """Prose plus the top-level string values of the payload, one sentence each."""
    if payload is None:
        return prose
    values = [value.strip() for value in payload.values() if isinstance(value, str) and value.strip()]
    return ". ".join([prose.strip(), *values])


def parse_company_data(fragments: Iterable[str]) -> CompanyAttributes:
    """Merge attributes from every fragment, then cap lists and score once."""
    size: int | None = None
    services: dict[str, None] = {}
    differentiation: dict[str, None] = {}
    validation_points: dict[str, None] = {}

    for fragment in fragments:
        if not isinstance(fragment, str) or not fragment.strip():
            continue

        prose, payload = _split_json(fragment)
        text = _minable_text(prose, payload)
        if size is None:
            size = analyze_company_size(text)
        services.update(dict.fromkeys(extract_services(text)))
        differentiation.update(dict.fromkeys(extract_differentiators(text)))

        if payload is None:
            continue
        for key in ("size", "employeeCount"):
            json_size = _json_size(payload.get(key))
            if json_size is not None:
                size = json_size
                break
        services.update(dict.fromkeys(_string_list(payload.get("services"))))
        for key in ("differentiators", "uniquePoints"):
            differentiation.update(dict.fromkeys(_string_list(payload.get(key))))
        validation_points.update(dict.fromkeys(_string_list(payload.get("validationPoints"))))

    capped_services = list(services)[:MAX_SERVICES]
    capped_differentiation = list(differentiation)[:MAX_DIFFERENTIATORS]
    attributes = CompanyAttributes(
        size=size,
        services=capped_services,
        differentiation=capped_differentiation,
        validation_points=list(validation_points),
        total_score=calculate_company_score(size, capped_differentiation, capped_services),
    )
    logger.debug(
        "company_parser.parsed",
        extra={
            "size": size,
            "services": len(capped_services),
            "differentiation": len(capped_differentiation),
            "total_score": attributes.total_score,
        },
    )
    return attributes


def clean_company_name(name: str) -> str:
    """Drop trailing descriptors and legal suffixes: "Acme Corp - Cloud Tools" -> "Acme"."""
    cleaned = re.split(r"\s+[-|–:(]\s*|\s*\(", (name or "").strip(), maxsplit=1)[0]
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = COMPANY_SUFFIX.sub("", cleaned).strip()
    return cleaned or (name or "").strip()
