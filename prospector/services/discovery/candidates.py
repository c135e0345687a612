"""Generate and corroborate email address guesses from a name and a domain."""

from __future__ import annotations

import re
from collections.abc import Iterable

from prospector.services.validation.patterns import (
    is_business_email,
    score_email_pattern,
    split_full_name,
)

MINIMUM_CANDIDATE_SCORE = 50


def _name_tokens(name: str) -> tuple[str, str]:
    first, last = split_full_name(name)
    first = re.sub(r"[^a-z]", "", first.lower())
    last_tokens = last.split()
    last = re.sub(r"[^a-z]", "", last_tokens[-1].lower()) if last_tokens else ""
    return first, last


def generate_candidate_emails(name: str, domain: str | None) -> list[str]:
    """Standard local-part permutations at `domain`, best pattern score first.

    Results are guesses; callers must not treat them as verified addresses.
    """
    first, last = _name_tokens(name)
    domain = (domain or "").strip().lower()
    if not first or not domain:
        return []

    if last:
        first_initial, last_initial = first[0], last[0]
        local_parts = [
            f"{first}.{last}",
            f"{first_initial}.{last}",
            first,
            last,
            f"{first}{last}",
            f"{first}{last_initial}",
            f"{first_initial}{last}",
            f"{first}-{last}",
            f"{first}_{last}",
            f"{last}.{first}",
            f"{first}.{last_initial}",
            f"{first_initial}{last_initial}",
        ]
    else:
        local_parts = [first]

    scored = [
        (email, score_email_pattern(email))
        for email in dict.fromkeys(f"{local}@{domain}" for local in local_parts)
    ]
    kept = [(email, score) for email, score in scored if score >= MINIMUM_CANDIDATE_SCORE]
    kept.sort(key=lambda item: item[1], reverse=True)
    return [email for email, _ in kept]


def match_emails_to_name(emails: Iterable[str], name: str) -> list[str]:
    """Emails whose local part carries the person's first or last name."""
    first, last = _name_tokens(name)
    tokens = [token for token in (first, last) if len(token) >= 2]
    matched = []
    for email in emails:
        local = email.split("@", 1)[0].lower()
        if any(token in local for token in tokens):
            matched.append(email)
    return matched


def corroborate_candidates(candidates: Iterable[str], page_text: str, name: str) -> list[str]:
    """Candidates backed by fetched text: the literal address, or the full name
    appearing alongside a candidate built from the last name."""
    text = (page_text or "").lower()
    if not text:
        return []
    _, last = _name_tokens(name)
    name_present = bool(name) and " ".join(name.lower().split()) in " ".join(text.split())
    corroborated = []
    for candidate in candidates:
        local = candidate.split("@", 1)[0]
        if candidate.lower() in text or (name_present and last and last in local):
            corroborated.append(candidate)
    return corroborated


def rank_candidates(candidates: Iterable[str], corroborated: Iterable[str]) -> list[str]:
    """Corroborated candidates first, each group keeping its incoming order."""
    ordered = list(dict.fromkeys(candidates))
    backed = set(corroborated)
    return [email for email in ordered if email in backed] + [
        email for email in ordered if email not in backed
    ]


def infer_company_domain(emails: Iterable[str]) -> str | None:
    """Most frequent business domain among addresses found on a company's own pages."""
    counts: dict[str, int] = {}
    for email in emails:
        if not is_business_email(email):
            continue
        domain = email.rsplit("@", 1)[-1].lower()
        counts[domain] = counts.get(domain, 0) + 1
    if not counts:
        return None
    return max(counts, key=lambda domain: counts[domain])


def restrict_to_domain(emails: Iterable[str], domain: str | None) -> list[str]:
    """Addresses on `domain` or one of its subdomains."""
    if not domain:
        return list(emails)
    domain = domain.lower()
    kept = []
    for email in emails:
        host = email.rsplit("@", 1)[-1].lower()
        if host == domain or host.endswith(f".{domain}"):
            kept.append(email)
    return kept
