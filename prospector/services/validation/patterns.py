"""Heuristic pattern validators for candidate person names and email addresses.

Everything here is pure and deterministic: no I/O, no clock, no randomness.
Scores are on a 0..100 scale; placeholders always score 0.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

NEUTRAL_BASELINE: Final[int] = 50

EMAIL_SHAPE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
EMAIL_IN_TEXT = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[a-zA-Z]{2,}")

FULL_NAME_SHAPE = re.compile(
    r"^[A-Z][a-z]+(?:-[A-Z][a-z]+)?(?:\s+[A-Z]\.)?(?:\s+[A-Z][a-zA-Z'-]*[a-z]){1,2}$"
)
INVALID_NAME_CHARS = re.compile(r"[\d@#$%&*/\\|<>_=+]")

FREE_MAIL_PROVIDERS: Final[frozenset[str]] = frozenset(
    {
        "gmail",
        "googlemail",
        "yahoo",
        "hotmail",
        "outlook",
        "aol",
        "icloud",
        "protonmail",
        "live",
        "msn",
        "gmx",
        "yandex",
    }
)
FREE_MAIL_DOMAINS: Final[frozenset[str]] = frozenset({"mail.com", "me.com", "proton.me"})
COMMON_TLDS: Final[frozenset[str]] = frozenset({"com", "net", "org", "io", "co"})

ROLE_LOCAL_PARTS: Final[frozenset[str]] = frozenset(
    {
        "info",
        "contact",
        "support",
        "sales",
        "admin",
        "office",
        "help",
        "team",
        "general",
        "hello",
        "marketing",
        "media",
        "press",
        "careers",
        "jobs",
        "hr",
        "billing",
        "enquiries",
        "inquiries",
    }
)

PLACEHOLDER_EMAIL_PATTERNS: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(pattern)
    for pattern in (
        r"^(?:example|test|sample|demo|user|email|name)@",
        r"first[._-]?name",
        r"last[._-]?name",
        r"first[._-]?initial",
        r"@(?:example|domain|company|companydomain|yourcompany|email)\.com$",
        r"test[._]?user",
        r"demo[._]?user",
        r"no-?reply",
        r"do-?not-?reply",
        r"placeholder",
        r"tempmail",
        r"temp[._]?email",
    )
)
PLACEHOLDER_NAMES: Final[frozenset[str]] = frozenset(
    {
        "john doe",
        "jane doe",
        "john smith",
        "jane smith",
        "test user",
        "demo user",
        "example user",
        "admin user",
        "guest user",
        "unknown user",
        "first last",
        "firstname lastname",
    }
)
PLACEHOLDER_NAME_TOKENS: Final[frozenset[str]] = frozenset(
    {"test", "demo", "example", "admin", "guest", "user", "placeholder", "sample", "unknown"}
)

GENERIC_TERMS: Final[frozenset[str]] = frozenset(
    {
        "chief",
        "executive",
        "officer",
        "ceo",
        "cto",
        "cfo",
        "coo",
        "president",
        "director",
        "manager",
        "head",
        "lead",
        "senior",
        "junior",
        "principal",
        "sales",
        "marketing",
        "finance",
        "accounting",
        "hr",
        "operations",
        "it",
        "support",
        "customer",
        "service",
        "services",
        "product",
        "project",
        "team",
        "department",
        "admin",
        "professional",
        "consultant",
        "company",
        "business",
        "office",
        "group",
        "solutions",
    }
)
LEGAL_SUFFIXES: Final[frozenset[str]] = frozenset(
    {"inc", "llc", "ltd", "corp", "corporation", "co", "company", "group", "holdings", "gmbh", "plc"}
)

FOUNDER_CONTEXT = re.compile(
    r"\b(?:co-?founder|founder|founding|owner|proprietor|ceo|president|chief executive|"
    r"managing (?:director|partner))\b",
    re.IGNORECASE,
)
LEADERSHIP_CONTEXT = re.compile(
    r"\b(?:ceo|cto|cfo|coo|founder|president|director|vice president|vp|head of|chief|partner|"
    r"manager)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class NameScoringOptions:
    search_prompt: str | None = None
    search_term_penalty: int = 25
    company_name_penalty: int = 20
    generic_term_penalty: int = 25


@dataclass(frozen=True)
class NameScore:
    score: int
    is_generic: bool = False
    company_overlap: bool = False
    reasons: tuple[str, ...] = ()


def _clamp(value: float, lower: int = 0, upper: int = 100) -> int:
    return int(max(lower, min(upper, round(value))))


def is_placeholder(value: str) -> bool:
    """True for obviously synthetic names or emails."""
    normalized = " ".join((value or "").lower().split())
    if not normalized:
        return True
    if "@" in normalized:
        return any(pattern.search(normalized) for pattern in PLACEHOLDER_EMAIL_PATTERNS)
    if normalized in PLACEHOLDER_NAMES:
        return True
    tokens = re.findall(r"[a-z]+", normalized)
    return any(token in PLACEHOLDER_NAME_TOKENS for token in tokens)


def split_full_name(name: str) -> tuple[str, str]:
    """Split into (first, last); a single token yields an empty last name."""
    tokens = (name or "").split()
    if not tokens:
        return "", ""
    return tokens[0], " ".join(tokens[1:])


def _normalize_company(name: str) -> list[str]:
    words = re.findall(r"[a-z0-9]+", (name or "").lower())
    return [word for word in words if word not in LEGAL_SUFFIXES]


def is_name_similar_to_company(name: str, company_name: str | None) -> bool:
    """Detect person-name candidates that are really the company name."""
    if not name or not company_name:
        return False
    name_words = _normalize_company(name)
    company_words = _normalize_company(company_name)
    if not name_words or not company_words:
        return False
    normalized_name = " ".join(name_words)
    normalized_company = " ".join(company_words)
    if normalized_name == normalized_company:
        return True
    shared = {word for word in name_words if len(word) > 3} & {
        word for word in company_words if len(word) > 3
    }
    if len(shared) >= 2:
        return True
    if len(normalized_name) > 4 and (
        normalized_name in normalized_company or normalized_company in normalized_name
    ):
        return True
    return False


def _search_terms(search_prompt: str | None) -> set[str]:
    if not search_prompt:
        return set()
    return {term for term in re.findall(r"[a-z]+", search_prompt.lower()) if len(term) >= 4}


def score_name(
    name: str,
    context_window: str = "",
    company_name: str | None = None,
    options: NameScoringOptions | None = None,
) -> NameScore:
    """Score how plausible a string is as a real person's full name."""
    options = options or NameScoringOptions()
    cleaned = " ".join((name or "").split())
    if not cleaned or is_placeholder(cleaned):
        return NameScore(score=0, reasons=("placeholder",))

    score = NEUTRAL_BASELINE
    reasons: list[str] = []
    words = cleaned.split(" ")
    lowered_words = [word.lower().strip(".,'") for word in words]

    if FULL_NAME_SHAPE.match(cleaned):
        score += 25
        reasons.append("full_name_shape")
    elif len(words) == 1:
        score -= 30
        reasons.append("single_token")
    else:
        score -= 10
        reasons.append("irregular_shape")

    if cleaned.isupper() and len(cleaned) > 3:
        score -= 20
        reasons.append("all_caps")
    if INVALID_NAME_CHARS.search(cleaned):
        score -= 40
        reasons.append("invalid_characters")

    generic_hits = [word for word in lowered_words if word in GENERIC_TERMS]
    if generic_hits:
        score -= options.generic_term_penalty * len(generic_hits)
        reasons.append("generic_terms")

    lowered_name = cleaned.lower()
    term_hits = [term for term in _search_terms(options.search_prompt) if term in lowered_name]
    if term_hits:
        score -= options.search_term_penalty * len(term_hits)
        reasons.append("search_term_overlap")

    company_overlap = False
    if is_name_similar_to_company(cleaned, company_name) and not FOUNDER_CONTEXT.search(
        context_window or ""
    ):
        company_overlap = True
        score -= options.company_name_penalty
        reasons.append("company_overlap")

    if context_window and LEADERSHIP_CONTEXT.search(context_window):
        score += 10
        reasons.append("leadership_context")

    return NameScore(
        score=_clamp(score),
        is_generic=bool(generic_hits),
        company_overlap=company_overlap,
        reasons=tuple(reasons),
    )


def is_free_mail_domain(domain: str) -> bool:
    domain = domain.lower()
    return domain in FREE_MAIL_DOMAINS or domain.split(".")[0] in FREE_MAIL_PROVIDERS


def score_email_pattern(email: str) -> int:
    """Score how likely an address is a real, personal business mailbox."""
    candidate = (email or "").strip()
    if not EMAIL_SHAPE.match(candidate) or is_placeholder(candidate):
        return 0
    local, domain = candidate.lower().rsplit("@", 1)

    score = 40
    if is_free_mail_domain(domain):
        score -= 35
    else:
        score += 15
    if domain.rsplit(".", 1)[-1] in COMMON_TLDS:
        score += 10

    # Most specific local-part shape wins.
    if re.fullmatch(r"[a-z]\.[a-z]{2,}", local):
        score += 20
    elif re.fullmatch(r"[a-z]{2,}\.[a-z]{2,}", local):
        score += 25
    elif re.fullmatch(r"[a-z]+", local):
        if len(local) > 5:
            score += 15
        elif len(local) > 2:
            score += 10

    if local in ROLE_LOCAL_PARTS:
        score -= 40
    return _clamp(score)


def is_business_email(email: str) -> bool:
    """Valid shape, not a consumer mail domain, not a placeholder."""
    candidate = (email or "").strip()
    if not EMAIL_SHAPE.match(candidate) or is_placeholder(candidate):
        return False
    return not is_free_mail_domain(candidate.rsplit("@", 1)[1])


def extract_emails(text: str) -> list[str]:
    """Lower-cased, de-duplicated emails in order of first appearance."""
    found = (match.group(0).lower().rstrip(".") for match in EMAIL_IN_TEXT.finditer(text or ""))
    return list(dict.fromkeys(found))
