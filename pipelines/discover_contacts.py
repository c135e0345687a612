"""Batch contact extraction and email discovery over a JSON file of companies."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from prospector.models.company import Company
from prospector.models.search import ContactDiscoveryConfig
from prospector.services.discovery.orchestrator import EmailDiscoveryService
from prospector.services.errors import DiscoveryError, InsufficientCreditsError
from prospector.services.extraction.company_parser import parse_company_data
from prospector.services.extraction.contact_extractor import ContactExtractor, get_contact_extractor
from prospector.services.repositories import ContactRepository, build_contact_repository

logger = logging.getLogger("pipelines.discover_contacts")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Extract contacts and discover their emails.")
    parser.add_argument(
        "--input",
        type=Path,
        default=Path("leads/companies.json"),
        help="JSON list of {name, website, fragments, search_prompt?} objects.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("leads/contacts.json"),
        help="Output JSON path.",
    )
    parser.add_argument(
        "--max_contacts",
        type=int,
        default=3,
        help="Top contacts per company to run email discovery for.",
    )
    parser.add_argument(
        "--skip_discovery",
        action="store_true",
        help="Only run the extraction pass; no provider calls or charges.",
    )
    parser.add_argument("--database_url", default=None, help="Override DATABASE_URL.")
    return parser.parse_args(argv)


def load_companies(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON list of companies.")
    return [item for item in payload if isinstance(item, dict) and item.get("name")]


def run_pipeline(
    *,
    input_path: Path,
    output_path: Path,
    max_contacts: int,
    skip_discovery: bool = False,
    repository: ContactRepository | None = None,
    extractor: ContactExtractor | None = None,
    discovery: EmailDiscoveryService | None = None,
) -> list[dict[str, Any]]:
    """Run extraction, then discovery for the highest-probability contacts."""
    companies = load_companies(input_path)
    logger.info("Loaded %s companies from %s.", len(companies), input_path)

    repository = repository or build_contact_repository()
    extractor = extractor or get_contact_extractor()
    if discovery is None and not skip_discovery:
        discovery = EmailDiscoveryService(repository=repository)

    results: list[dict[str, Any]] = []
    credits_exhausted = False
    for item in companies:
        fragments = [fragment for fragment in item.get("fragments") or [] if isinstance(fragment, str)]
        company = Company(name=item["name"], website=item.get("website"), description=item.get("description"))
        company = repository.save_company(company.with_attributes(parse_company_data(fragments)))
        config = ContactDiscoveryConfig(search_prompt=item.get("search_prompt"))
        drafts = extractor.extract_contacts(fragments, company.name, domain=company.domain, config=config)
        contacts = [repository.add_contact(draft.to_contact(company.id)) for draft in drafts]
        logger.info("Extracted %s contacts for %s.", len(contacts), company.name)

        outcomes: list[dict[str, Any]] = []
        if discovery is not None and not credits_exhausted:
            for contact in contacts[:max_contacts]:
                try:
                    outcome = discovery.discover_email(str(contact.id))
                except InsufficientCreditsError as exc:
                    logger.warning("Stopping discovery: %s", exc)
                    credits_exhausted = True
                    break
                outcomes.append(
                    {
                        "contact_id": str(contact.id),
                        "found": outcome.found,
                        "source": outcome.source,
                        "message": outcome.message,
                    }
                )

        results.append(
            {
                "company": company.model_dump(mode="json"),
                "contacts": [
                    contact.model_dump(mode="json")
                    for contact in repository.list_contacts(str(company.id))
                ],
                "discovery": outcomes,
            }
        )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(results, indent=2), encoding="utf-8")
    logger.info("Persisted %s companies to %s.", len(results), output_path)
    return results


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv or sys.argv[1:])
    try:
        run_pipeline(
            input_path=args.input,
            output_path=args.output,
            max_contacts=args.max_contacts,
            skip_discovery=args.skip_discovery,
            repository=build_contact_repository(args.database_url) if args.database_url else None,
        )
    except DiscoveryError as exc:
        logger.error("Contact discovery failed: %s (code=%s)", exc, exc.code)
        return 1
    except (OSError, ValueError) as exc:
        logger.error("Could not read companies: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
