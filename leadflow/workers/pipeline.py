from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import asdict
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable

from leadflow.core.identity import dedupe, identity_key
from leadflow.core.logs import redact
from leadflow.core.schema import Contact, WorkflowParams
from leadflow.core.settings import Settings
from leadflow.domain.errors import LeadflowError, RemoteJobFailedError
from leadflow.domain.jobs import JobProgress, JobRecord, JobStatus, utcnow_iso
from leadflow.infrastructure.collaborators import Collaborators, ScrapeResult, ScrapeStatus
from leadflow.infrastructure.retry import RetryExecutor
from leadflow.workers.chunks import ChunkProcessor
from leadflow.workers.poller import ScrapeJobPoller

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Run one workflow job from query building to its terminal state.

    ``started -> generating_url -> scraping -> processing -> saving_leads ->
    sending_emails -> completed``; the last two stages are optional and any
    unexpected exception ends the job as ``failed``. Persistence and dispatch
    failures are recorded in the result metadata and never fail the job.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        settings: Settings,
        *,
        retry: RetryExecutor | None = None,
        poller: ScrapeJobPoller | None = None,
        chunk_processor: ChunkProcessor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._collaborators = collaborators
        self._settings = settings
        self._retry = retry or RetryExecutor()
        self._poller = poller or ScrapeJobPoller(
            collaborators.scraper,
            self._retry,
            interval=settings.poll_interval_seconds,
            error_delay=settings.poll_error_delay_seconds,
            max_errors=settings.poll_max_errors,
        )
        self._chunks = chunk_processor or ChunkProcessor(collaborators.enricher, self._retry)
        self._sleep = sleep

    async def aclose(self) -> None:
        """Close collaborator HTTP clients that expose ``aclose``."""

        for collaborator in (
            self._collaborators.scraper,
            self._collaborators.enricher,
            self._collaborators.dispatcher,
        ):
            close = getattr(collaborator, "aclose", None)
            if close is not None:
                await close()

    async def run(self, job: JobRecord) -> None:
        try:
            result = await self._execute(job)
        except asyncio.CancelledError:
            if not job.is_complete:
                job.fail("Workflow cancelled")
            raise
        except LeadflowError as exc:
            message = redact(exc)
            logger.error("Workflow %s failed: %s", job.id, message)
            job.fail(message)
            return
        except Exception as exc:
            message = redact(exc) or exc.__class__.__name__
            logger.exception("Workflow %s failed unexpectedly", job.id)
            job.fail(message)
            return
        job.complete(result)
        logger.info("Workflow %s completed with %d lead(s)", job.id, result["count"])

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    async def _execute(self, job: JobRecord) -> dict[str, Any]:
        params = job.params
        scraper = self._collaborators.scraper

        job.advance(JobStatus.GENERATING_URL, JobProgress(step=1, message="Generating search URL..."))
        query_url = await self._collaborators.query_builder.build(params.criteria)
        record_limit = self._settings.resolve_record_limit(params.max_records)

        job.advance(
            JobStatus.SCRAPING,
            JobProgress(step=2, message=f"Starting lead scrape (up to {record_limit} records)..."),
        )
        remote_job_id = await self._retry.execute(
            lambda: scraper.start(query_url, record_limit),
            operation="Start scrape job",
        )
        logger.info("Workflow %s: scrape job %s started", job.id, remote_job_id)

        def on_poll(elapsed: int, status: ScrapeStatus | None) -> None:
            job.update_progress(
                JobProgress(
                    step=2,
                    message=f"Scraping leads... ({elapsed}s elapsed)",
                    elapsed=elapsed,
                    remote_job_id=remote_job_id,
                    remote_status=status.status if status is not None else None,
                )
            )

        scrape = await self._poller.poll(remote_job_id, on_poll)

        base = {
            "query_url": query_url,
            "criteria": params.criteria.model_dump(),
            "max_records": params.max_records,
            "record_limit": record_limit,
            "remote_job_id": remote_job_id,
            "scrape": dict(scrape.metadata),
        }
        if not scrape.count and not scrape.leads:
            logger.info("Workflow %s: scrape returned no leads", job.id)
            return {
                "count": 0,
                "leads": [],
                "metadata": {**base, "total_found": 0, "message": "No leads found", "completed_at": utcnow_iso()},
            }

        leads, stats = await self._process(job, params, scrape)
        persistence = await self._persist(job, params, leads)
        dispatch = await self._dispatch(job, params, leads)

        metadata = {
            **base,
            **stats,
            "persistence": persistence,
            "dispatch": dispatch,
            "completed_at": utcnow_iso(),
        }
        return {"count": len(leads), "leads": [lead.model_dump() for lead in leads], "metadata": metadata}

    async def _process(
        self, job: JobRecord, params: WorkflowParams, scrape: ScrapeResult
    ) -> tuple[list[Contact], dict[str, Any]]:
        total_found = scrape.count or len(scrape.leads or [])
        chunk_size = params.chunk_size or self._settings.chunk_size
        total_chunks = max(1, math.ceil(total_found / chunk_size))
        enrich = params.enrich and self._collaborators.enricher is not None

        job.advance(
            JobStatus.PROCESSING,
            JobProgress(
                step=3,
                message=f"Processing {total_found} leads in {total_chunks} chunk(s)...",
                total_chunks=total_chunks,
                processed=0,
                kept=0,
            ),
        )

        seen: set[str] = set()
        leads: list[Contact] = []
        raw_count = duplicates = filtered = 0
        failed_chunks: list[dict[str, Any]] = []
        index = 0

        async for raw_chunk in self._raw_chunks(scrape, chunk_size):
            index += 1
            if index > 1:
                await self._sleep(self._settings.chunk_delay_seconds)
            total_chunks = max(total_chunks, index)

            contacts = [Contact.from_raw(item) for item in raw_chunk]
            raw_count += len(contacts)
            unique = dedupe(contacts, seen)
            seen.update(identity_key(contact) for contact in unique.unique)
            duplicates += unique.removed_count

            chunk = await self._chunks.process(
                unique.unique, params.exclusions, enrich, index=index, total=total_chunks
            )
            leads.extend(chunk.leads)
            filtered += chunk.filtered_count
            if chunk.enrichment_error:
                failed_chunks.append({"chunk": index, "error": chunk.enrichment_error})

            job.update_progress(
                JobProgress(
                    step=3,
                    message=f"Processed chunk {index}/{total_chunks} ({len(leads)} leads kept)",
                    chunk=index,
                    total_chunks=total_chunks,
                    processed=raw_count,
                    kept=len(leads),
                )
            )

        dedup_rate = (duplicates / raw_count * 100) if raw_count else 0.0
        stats = {
            "total_found": total_found,
            "raw_count": raw_count,
            "duplicates_removed": duplicates,
            "dedup_rate": f"{dedup_rate:.1f}%",
            "filtered_out": filtered,
            "final_count": len(leads),
            "chunk_size": chunk_size,
            "total_chunks": index,
            "enrichment": {
                "requested": params.enrich,
                "available": self._collaborators.enricher is not None,
                "failed_chunks": failed_chunks,
            },
        }
        logger.info(
            "Workflow %s processed %d raw leads: %d duplicates, %d excluded, %d kept",
            job.id,
            raw_count,
            duplicates,
            filtered,
            len(leads),
        )
        return leads, stats

    async def _raw_chunks(self, scrape: ScrapeResult, chunk_size: int) -> AsyncIterator[list[dict[str, Any]]]:
        if scrape.leads is not None:
            for start in range(0, len(scrape.leads), chunk_size):
                yield scrape.leads[start : start + chunk_size]
            return
        if not scrape.session_id:
            raise RemoteJobFailedError("Scrape result carried neither leads nor a session id")

        offset = 0
        while True:
            page = await self._retry.execute(
                partial(self._collaborators.scraper.fetch_page, scrape.session_id, offset, chunk_size),
                operation=f"Fetch leads {offset}-{offset + chunk_size}",
            )
            if page.leads:
                yield page.leads
                offset += len(page.leads)
            if not page.has_more or not page.leads:
                break

    async def _persist(self, job: JobRecord, params: WorkflowParams, leads: list[Contact]) -> dict[str, Any]:
        if not params.save_to_store:
            return {"requested": False}
        repository = self._collaborators.repository
        if repository is None:
            logger.warning("Workflow %s: no lead repository configured, skipping save", job.id)
            return {"requested": True, "status": "unavailable"}
        if not leads:
            return {"requested": True, "status": "skipped", "reason": "no leads to save"}

        job.advance(
            JobStatus.SAVING_LEADS,
            JobProgress(step=4, message=f"Saving {len(leads)} leads...", kept=len(leads)),
        )
        try:
            outcome = await self._retry.execute(lambda: repository.persist(leads), operation="Save leads")
        except Exception as exc:
            logger.warning("Workflow %s: saving leads failed: %s", job.id, redact(exc))
            return {"requested": True, "status": "failed", "error": redact(exc)}
        return {"requested": True, "status": "saved" if outcome.success else "failed", **asdict(outcome)}

    async def _dispatch(self, job: JobRecord, params: WorkflowParams, leads: list[Contact]) -> dict[str, Any]:
        if not params.send_emails:
            return {"requested": False}
        options = params.email
        if not (options.use_ai_generation or (options.subject and options.template)):
            return {"requested": True, "status": "skipped", "reason": "subject and template or AI generation required"}
        if not leads:
            return {"requested": True, "status": "skipped", "reason": "no leads to contact"}
        dispatcher = self._collaborators.dispatcher
        if dispatcher is None:
            logger.warning("Workflow %s: no dispatcher configured, skipping send", job.id)
            return {"requested": True, "status": "unavailable"}

        job.advance(
            JobStatus.SENDING_EMAILS,
            JobProgress(step=4, message=f"Sending emails to {len(leads)} leads...", kept=len(leads)),
        )
        try:
            outcome = await self._retry.execute(
                lambda: dispatcher.dispatch(leads, options),
                operation="Send emails",
            )
        except Exception as exc:
            logger.warning("Workflow %s: sending emails failed: %s", job.id, redact(exc))
            return {"requested": True, "status": "failed", "error": redact(exc)}
        return {"requested": True, "status": "sent" if outcome.success else "failed", **asdict(outcome)}
