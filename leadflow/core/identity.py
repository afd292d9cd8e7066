from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from leadflow.core.schema import Contact


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def identity_key(contact: Contact) -> str:
    """Return the stable identity of a contact.

    Email wins over LinkedIn URL, which wins over the ``name|organization``
    pair. The same function is used for scrape results and for merging into a
    previously persisted list, so two runs always agree on what a duplicate is.
    """

    email = _norm(contact.email)
    if email:
        return email
    linkedin = _norm(contact.linkedin_url)
    if linkedin:
        return linkedin
    return f"{_norm(contact.name)}|{_norm(contact.organization_name)}"


@dataclass(slots=True)
class DedupeResult:
    unique: list[Contact] = field(default_factory=list)
    removed_count: int = 0


def dedupe(contacts: Iterable[Contact], existing: Iterable[str] | None = None) -> DedupeResult:
    """Keep the first occurrence of every identity key, preserving order.

    ``existing`` holds keys that are already known (a persisted list, or the
    chunks processed earlier in the same run); contacts matching them count as
    removed duplicates.
    """

    seen: set[str] = set(existing or ())
    result = DedupeResult()
    for contact in contacts:
        key = identity_key(contact)
        if key in seen:
            result.removed_count += 1
            continue
        seen.add(key)
        result.unique.append(contact)
    return result
