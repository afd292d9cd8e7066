"""Contracts for the external collaborators driven by the workflow runner.

Each pipeline stage talks to one of these protocols. Concrete adapters live in
sibling modules; tests install in-memory fakes through
:func:`configure_collaborators`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from leadflow.core.schema import Contact, EmailOptions, SearchCriteria
from leadflow.domain.errors import CollaboratorError


@dataclass(slots=True)
class ScrapeStatus:
    status: str
    is_complete: bool
    error: str | None = None


@dataclass(slots=True)
class ScrapeResult:
    """Final payload of a remote scrape: inline leads or a paging session."""

    count: int
    leads: list[dict[str, Any]] | None = None
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class LeadPage:
    leads: list[dict[str, Any]]
    has_more: bool


@dataclass(slots=True)
class PersistOutcome:
    success: bool
    id: str | None = None
    added: int = 0
    skipped: int = 0


@dataclass(slots=True)
class DispatchOutcome:
    success: bool
    sent: int = 0
    failed: int = 0


class QueryBuilder(Protocol):
    async def build(self, criteria: SearchCriteria) -> str: ...


class ScrapeClient(Protocol):
    async def start(self, url: str, limit: int) -> str: ...

    async def status(self, remote_job_id: str) -> ScrapeStatus: ...

    async def result(self, remote_job_id: str) -> ScrapeResult: ...

    async def fetch_page(self, session_id: str, offset: int, limit: int) -> LeadPage: ...


class Enricher(Protocol):
    async def enrich(self, leads: list[Contact]) -> list[Contact]: ...


class LeadRepository(Protocol):
    async def persist(self, leads: list[Contact]) -> PersistOutcome: ...


class Dispatcher(Protocol):
    async def dispatch(self, leads: list[Contact], options: EmailOptions) -> DispatchOutcome: ...


class UnconfiguredScrapeClient:
    """Stand-in used when no scrape provider token is configured."""

    reason = "Scrape provider API token not configured"

    async def start(self, url: str, limit: int) -> str:
        raise CollaboratorError(self.reason)

    async def status(self, remote_job_id: str) -> ScrapeStatus:
        raise CollaboratorError(self.reason)

    async def result(self, remote_job_id: str) -> ScrapeResult:
        raise CollaboratorError(self.reason)

    async def fetch_page(self, session_id: str, offset: int, limit: int) -> LeadPage:
        raise CollaboratorError(self.reason)


@dataclass(slots=True)
class Collaborators:
    query_builder: QueryBuilder
    scraper: ScrapeClient
    enricher: Enricher | None = None
    repository: LeadRepository | None = None
    dispatcher: Dispatcher | None = None


_collaborators: Collaborators | None = None


def configure_collaborators(collaborators: Collaborators | None) -> None:
    """Install the collaborators used by newly created workflow services."""

    global _collaborators
    _collaborators = collaborators


def get_collaborators() -> Collaborators | None:
    """Return the explicitly configured collaborators, if any."""

    return _collaborators
