from __future__ import annotations

from typing import Iterable

from leadflow.core.schema import Contact, ExclusionRules


def _clean(values: Iterable[str]) -> list[str]:
    cleaned = []
    for value in values:
        item = (value or "").strip().lower().lstrip("@").lstrip(".")
        if item:
            cleaned.append(item)
    return cleaned


def email_domain(email: str) -> str:
    _, sep, domain = (email or "").strip().lower().rpartition("@")
    return domain if sep else ""


def domain_excluded(email: str, domains: Iterable[str]) -> bool:
    """True if the email's domain equals or is a subdomain of one of ``domains``."""

    domain = email_domain(email)
    if not domain:
        return False
    return any(domain == excluded or domain.endswith("." + excluded) for excluded in domains)


def industry_excluded(industry: str, terms: Iterable[str]) -> bool:
    value = (industry or "").strip().lower()
    if not value:
        return False
    return any(term in value or value in term for term in terms)


def apply_exclusions(contacts: Iterable[Contact], rules: ExclusionRules) -> tuple[list[Contact], int]:
    """Drop excluded contacts; return the kept list and how many were dropped."""

    domains = _clean(rules.domains)
    industries = _clean(rules.industries)
    kept: list[Contact] = []
    dropped = 0
    for contact in contacts:
        if domain_excluded(contact.email, domains) or industry_excluded(contact.industry, industries):
            dropped += 1
            continue
        kept.append(contact)
    return kept, dropped
