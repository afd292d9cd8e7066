from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from leadflow.core.logs import redact
from leadflow.domain.errors import PollingFailedError, RemoteJobExpiredError, RemoteJobFailedError
from leadflow.infrastructure.collaborators import ScrapeClient, ScrapeResult, ScrapeStatus
from leadflow.infrastructure.retry import RetryExecutor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, ScrapeStatus | None], None]


class ScrapeJobPoller:
    """Drive a remote scrape job to a terminal state by polling its status.

    Status checks are cheap and repeated; the (possibly large) result is
    fetched exactly once, after the remote job reports completion.
    """

    def __init__(
        self,
        scraper: ScrapeClient,
        retry: RetryExecutor,
        *,
        interval: float = 5.0,
        error_delay: float = 10.0,
        max_errors: int = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._scraper = scraper
        self._retry = retry
        self._interval = interval
        self._error_delay = error_delay
        self._max_errors = max_errors
        self._sleep = sleep
        self._clock = clock

    async def poll(self, remote_job_id: str, on_progress: ProgressCallback | None = None) -> ScrapeResult:
        started = self._clock()
        consecutive_errors = 0
        while True:
            try:
                status = await self._scraper.status(remote_job_id)
            except RemoteJobExpiredError:
                logger.error("Scrape job %s no longer exists", remote_job_id)
                raise
            except Exception as exc:
                consecutive_errors += 1
                logger.warning(
                    "Status check %d/%d for scrape job %s failed: %s",
                    consecutive_errors,
                    self._max_errors,
                    remote_job_id,
                    redact(exc),
                )
                if consecutive_errors >= self._max_errors:
                    raise PollingFailedError(
                        f"Polling failed after {consecutive_errors} consecutive errors: {redact(exc)}"
                    ) from exc
                if on_progress is not None:
                    on_progress(int(self._clock() - started), None)
                await self._sleep(self._error_delay)
                continue

            consecutive_errors = 0
            elapsed = int(self._clock() - started)
            if on_progress is not None:
                on_progress(elapsed, status)

            if status.is_complete:
                if status.status == "completed":
                    logger.info("Scrape job %s completed after %ss", remote_job_id, elapsed)
                    return await self._retry.execute(
                        lambda: self._scraper.result(remote_job_id),
                        operation="Fetch scrape result",
                    )
                message = status.error or f"Scrape job ended with status {status.status}"
                logger.error("Scrape job %s failed: %s", remote_job_id, message)
                raise RemoteJobFailedError(message)

            await self._sleep(self._interval)
