"""Infrastructure layer for workflow job records."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Protocol
from uuid import uuid4

from leadflow.core.schema import WorkflowParams
from leadflow.domain import JobRecord

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 2 * 60 * 60


class JobStore(Protocol):
    """Storage contract for job records."""

    def create(self, params: WorkflowParams) -> JobRecord: ...

    def get(self, job_id: str) -> JobRecord | None: ...

    def list(self) -> list[JobRecord]: ...

    def purge_expired(self) -> int: ...

    def reset(self) -> None: ...


class InMemoryJobStore:
    """Job id to record map with a fixed retention window.

    Records are dropped ``retention_seconds`` after creation whatever their
    status; callers have to fetch results before then.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._jobs: dict[str, JobRecord] = {}
        self._retention = retention_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _expired(self, record: JobRecord, now: float) -> bool:
        return now - record.created_monotonic >= self._retention

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def create(self, params: WorkflowParams) -> JobRecord:
        job_id = uuid4().hex
        record = JobRecord(
            id=job_id,
            params=params.model_copy(deep=True),
            created_monotonic=self._clock(),
        )
        self._jobs[job_id] = record
        return record

    def get(self, job_id: str) -> JobRecord | None:
        record = self._jobs.get(job_id)
        if record is None:
            return None
        if self._expired(record, self._clock()):
            del self._jobs[job_id]
            return None
        return record

    def list(self) -> list[JobRecord]:
        self.purge_expired()
        return list(self._jobs.values())

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [job_id for job_id, record in self._jobs.items() if self._expired(record, now)]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info("Purged %d expired job record(s)", len(expired))
        return len(expired)

    def reset(self) -> None:
        self._jobs.clear()


async def sweep_forever(store: JobStore, interval_seconds: float) -> None:
    """Periodically evict expired job records until cancelled."""

    while True:
        await asyncio.sleep(interval_seconds)
        store.purge_expired()
