from __future__ import annotations

import asyncio
import logging
from typing import Any

from leadflow.core.schema import WorkflowParams
from leadflow.core.settings import Settings, get_settings
from leadflow.core.validation import validate_workflow_params
from leadflow.domain.errors import CampaignLockedError, JobNotCompleteError, JobNotFoundError
from leadflow.domain.jobs import JobRecord, JobStatus
from leadflow.infrastructure import (
    CampaignLockManager,
    Collaborators,
    InMemoryJobStore,
    JobStore,
    LockRecord,
    get_collaborators,
)
from leadflow.infrastructure.apify import ApifyScrapeClient
from leadflow.infrastructure.collaborators import UnconfiguredScrapeClient
from leadflow.infrastructure.query import ApolloQueryBuilder
from leadflow.infrastructure.webhooks import WebhookDispatchClient, WebhookEnrichmentClient
from leadflow.infrastructure.workbook import WorkbookLeadRepository
from leadflow.workers.pipeline import WorkflowRunner

from .campaigns import get_campaign_service

logger = logging.getLogger(__name__)


class WorkflowService:
    """Start workflow jobs in the background and expose their records."""

    def __init__(
        self,
        store: JobStore,
        runner: WorkflowRunner,
        *,
        locks: CampaignLockManager | None = None,
    ) -> None:
        self._store = store
        self._runner = runner
        self._locks = locks
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def store(self) -> JobStore:
        return self._store

    async def start(self, params: WorkflowParams) -> JobRecord:
        """Create a job record and run it on the event loop; returns at once."""

        validate_workflow_params(params)
        lock: LockRecord | None = None
        if params.is_campaign and self._locks is not None:
            session_id = params.session_id or ""
            lock = self._locks.acquire(session_id, params.campaign_type)
            if lock is None:
                raise CampaignLockedError(session_id)

        record = self._store.create(params)
        task = asyncio.create_task(self._run(record, lock), name=f"workflow-{record.id}")
        self._tasks[record.id] = task
        task.add_done_callback(lambda _task, job_id=record.id: self._tasks.pop(job_id, None))
        logger.info("Workflow %s started (campaign=%s)", record.id, lock is not None)
        return record

    async def _run(self, record: JobRecord, lock: LockRecord | None) -> None:
        try:
            await self._runner.run(record)
        finally:
            if lock is not None and self._locks is not None:
                self._locks.release(lock.session_id, expected=lock)

    def status(self, job_id: str) -> JobRecord:
        record = self._store.get(job_id)
        if record is None:
            raise JobNotFoundError(f"Job {job_id} not found or expired")
        return record

    def result(self, job_id: str) -> dict[str, Any]:
        record = self.status(job_id)
        if record.status is not JobStatus.COMPLETED or record.result is None:
            detail = f": {record.error}" if record.error else ""
            raise JobNotCompleteError(f"Job {job_id} is not complete (status: {record.status.value}){detail}")
        return record.result

    def list_jobs(self) -> list[dict[str, Any]]:
        records = sorted(self._store.list(), key=lambda record: record.start_time, reverse=True)
        return [record.summary_view() for record in records]

    def running_jobs(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        await self._runner.aclose()

    def reset(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        self._store.reset()


def build_collaborators(settings: Settings) -> Collaborators:
    """Use explicitly configured collaborators, else build them from settings."""

    configured = get_collaborators()
    if configured is not None:
        return configured

    if settings.apify_api_token:
        scraper = ApifyScrapeClient(
            settings.apify_api_token,
            actor_id=settings.apify_actor_id,
            api_base=settings.apify_api_base,
            inline_limit=settings.inline_result_limit,
        )
    else:
        logger.warning("APIFY_API_TOKEN is not set; workflows will fail at the scrape stage")
        scraper = UnconfiguredScrapeClient()

    enricher = WebhookEnrichmentClient(settings.enrichment_webhook_url) if settings.enrichment_webhook_url else None
    dispatcher = WebhookDispatchClient(settings.dispatch_webhook_url) if settings.dispatch_webhook_url else None
    return Collaborators(
        query_builder=ApolloQueryBuilder(),
        scraper=scraper,
        enricher=enricher,
        repository=WorkbookLeadRepository(settings.data_dir / "leads.xlsx"),
        dispatcher=dispatcher,
    )


_service: WorkflowService | None = None


def get_workflow_service() -> WorkflowService:
    """Return the workflow service for the process, building it on first use."""

    global _service
    if _service is None:
        settings = get_settings()
        store = InMemoryJobStore(settings.job_retention_seconds)
        runner = WorkflowRunner(build_collaborators(settings), settings)
        _service = WorkflowService(store, runner, locks=get_campaign_service().locks)
    return _service


def reset_workflow_state() -> None:
    """Drop running jobs and the cached service (used in tests)."""

    global _service
    if _service is not None:
        _service.reset()
    _service = None
