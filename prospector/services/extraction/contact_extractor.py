"""Mine contact drafts from analysis text with one batched AI scoring call."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from prospector.models.contact import ContactDraft
from prospector.models.search import ContactDiscoveryConfig, SubsearchId
from prospector.observability.metrics import metrics
from prospector.services.discovery.candidates import generate_candidate_emails, match_emails_to_name
from prospector.services.extraction.company_parser import clean_company_name
from prospector.services.validation.name_scorer import (
    AINameScorer,
    CombinationOptions,
    combine_validation_scores,
    get_name_scorer,
)
from prospector.services.validation.patterns import (
    NameScoringOptions,
    extract_emails,
    is_business_email,
    is_free_mail_domain,
    is_placeholder,
    score_name,
)

logger = logging.getLogger(__name__)

NAME_CANDIDATE = re.compile(r"\b([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+){1,2})\b")
ROLE_PATTERN = re.compile(
    r"(?:is|as|serves\s+as)\s+(?:the|a|an)\s+([^,.]+?(?:Manager|Director|Officer|Executive|Lead|"
    r"Head|Chief|Founder|Owner|President|CEO|CTO|CFO))"
)
DOMAIN_PATTERN = re.compile(
    r"(?:@|https?://(?:www\.)?|www\.)([a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,})"
)
CONTEXT_BEFORE = 100
CONTEXT_AFTER = 200

AI_MINIMUM_SCORE = 60
ENHANCED_MINIMUM_SCORE = 50
PATTERN_ONLY_MINIMUM_SCORE = 50
ROLE_MINIMUM_SCORE = 40
COMPANY_NAME_PENALTY = 40
SEARCH_TERM_PENALTY = 35


class ContactExtractor:
    """Bulk extraction pass run when contacts are first mined for a company."""

    def __init__(self, name_scorer: AINameScorer) -> None:
        self._name_scorer = name_scorer

    def extract_contacts(
        self,
        fragments: Iterable[str],
        company_name: str,
        *,
        search_prompt: str | None = None,
        domain: str | None = None,
        config: ContactDiscoveryConfig | None = None,
    ) -> list[ContactDraft]:
        config = config or ContactDiscoveryConfig()
        search_prompt = search_prompt or config.search_prompt
        company = clean_company_name(company_name)
        blocks = [fragment for fragment in fragments if isinstance(fragment, str) and fragment.strip()]

        occurrences: list[tuple[str, str, str]] = []
        for block in blocks:
            for match in NAME_CANDIDATE.finditer(block):
                name = match.group(1)
                if is_placeholder(name):
                    continue
                context = block[max(0, match.start() - CONTEXT_BEFORE) : match.end() + CONTEXT_AFTER]
                trailing = block[match.end() : match.end() + CONTEXT_AFTER]
                occurrences.append((name, context, trailing))
        if not occurrences:
            return []

        ai_scores = self._name_scorer.validate_names(
            [name for name, _, _ in occurrences], company, search_prompt
        )
        ai_minimum = (
            ENHANCED_MINIMUM_SCORE
            if config.enabled(SubsearchId.ENHANCED_NAME_VALIDATION)
            else AI_MINIMUM_SCORE
        )
        require_role = config.enabled(SubsearchId.LEADERSHIP_ROLE_VALIDATION)
        predict_emails = config.enabled(SubsearchId.PATTERN_PREDICTION)
        name_options = NameScoringOptions(
            search_prompt=search_prompt,
            company_name_penalty=COMPANY_NAME_PENALTY,
            search_term_penalty=SEARCH_TERM_PENALTY,
        )
        fallback_domain = domain or _find_domain(" ".join(blocks))

        drafts: dict[str, ContactDraft] = {}
        rejected = 0
        for name, context, trailing in occurrences:
            pattern = score_name(name, context, company, name_options)
            ai_score = ai_scores.get(name)
            if ai_score is None:
                minimum = PATTERN_ONLY_MINIMUM_SCORE
                final = pattern.score
            else:
                minimum = ai_minimum
                final = combine_validation_scores(
                    ai_score,
                    pattern.score,
                    CombinationOptions(
                        minimum_score=minimum,
                        require_role=require_role,
                        role_minimum_score=ROLE_MINIMUM_SCORE,
                        company_name_penalty=COMPANY_NAME_PENALTY,
                        company_name_overlap=pattern.company_overlap,
                    ),
                )
            if final < minimum:
                rejected += 1
                continue
            existing = drafts.get(name)
            if existing is not None and existing.probability >= final:
                continue
            drafts[name] = self._build_draft(
                name,
                context,
                trailing,
                final,
                domain=_find_domain(context) or fallback_domain,
                predict_emails=predict_emails,
            )

        metrics.increment("extraction.contacts.accepted", value=len(drafts))
        metrics.increment("extraction.contacts.rejected", value=rejected)
        logger.info(
            "extraction.contacts.completed",
            extra={
                "company": company,
                "candidates": len(occurrences),
                "accepted": len(drafts),
                "ai_scored": len(ai_scores),
            },
        )
        return sorted(drafts.values(), key=lambda draft: draft.probability, reverse=True)

    def _build_draft(
        self,
        name: str,
        context: str,
        trailing: str,
        score: int,
        *,
        domain: str | None,
        predict_emails: bool,
    ) -> ContactDraft:
        role_match = ROLE_PATTERN.search(trailing)
        literal = [email for email in extract_emails(context) if is_business_email(email)]
        matched = match_emails_to_name(literal, name)
        email = matched[0] if matched else None
        alternatives = matched[1:]
        if predict_emails and domain:
            alternatives.extend(generate_candidate_emails(name, domain))
        return ContactDraft(
            name=name,
            role=role_match.group(1).strip() if role_match else None,
            email=email,
            alternative_emails=[alt for alt in dict.fromkeys(alternatives) if alt != email],
            probability=score,
            name_confidence_score=score,
        )


def _find_domain(text: str) -> str | None:
    for match in DOMAIN_PATTERN.finditer(text or ""):
        domain = match.group(1).lower()
        if not is_free_mail_domain(domain):
            return domain
    return None


_EXTRACTOR_INSTANCE: ContactExtractor | None = None


def get_contact_extractor() -> ContactExtractor:
    """Singleton accessor used by API routes."""
    global _EXTRACTOR_INSTANCE  # noqa: PLW0603
    if _EXTRACTOR_INSTANCE is None:
        _EXTRACTOR_INSTANCE = ContactExtractor(get_name_scorer())
    return _EXTRACTOR_INSTANCE
