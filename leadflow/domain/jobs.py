"""Domain entities for background workflow jobs."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from leadflow.core.schema import WorkflowParams
from leadflow.domain.errors import JobStateError


class JobStatus(str, Enum):
    STARTED = "started"
    GENERATING_URL = "generating_url"
    SCRAPING = "scraping"
    PROCESSING = "processing"
    SAVING_LEADS = "saving_leads"
    SENDING_EMAILS = "sending_emails"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ORDER = {status: index for index, status in enumerate(JobStatus)}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class JobProgress:
    step: int = 1
    message: str = "Starting workflow..."
    total: int = 4
    elapsed: int | None = None
    chunk: int | None = None
    total_chunks: int | None = None
    processed: int | None = None
    kept: int | None = None
    remote_job_id: str | None = None
    remote_status: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(slots=True)
class JobRecord:
    """Progress and outcome of one asynchronous workflow invocation.

    Only the workflow runner mutates a record; status moves forward through
    :class:`JobStatus` and never leaves a terminal state.
    """

    id: str
    params: WorkflowParams
    status: JobStatus = JobStatus.STARTED
    progress: JobProgress = field(default_factory=JobProgress)
    start_time: str = field(default_factory=utcnow_iso)
    completed_at: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    created_monotonic: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal

    def advance(self, status: JobStatus, progress: JobProgress | None = None) -> None:
        if self.status.is_terminal:
            raise JobStateError(f"job {self.id} is already {self.status.value}")
        if status is not JobStatus.FAILED and _ORDER[status] < _ORDER[self.status]:
            raise JobStateError(f"job {self.id} cannot move from {self.status.value} to {status.value}")
        self.status = status
        if progress is not None:
            self.progress = progress

    def update_progress(self, progress: JobProgress) -> None:
        if not self.status.is_terminal:
            self.progress = progress

    def complete(self, result: dict[str, Any]) -> None:
        self.advance(JobStatus.COMPLETED)
        self.result = result
        self.completed_at = utcnow_iso()

    def fail(self, message: str) -> None:
        self.advance(JobStatus.FAILED)
        self.error = message
        self.completed_at = utcnow_iso()

    def status_view(self) -> dict[str, Any]:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "progress": self.progress.as_dict(),
            "start_time": self.start_time,
            "completed_at": self.completed_at,
            "error": self.error,
            "is_complete": self.is_complete,
        }

    def summary_view(self) -> dict[str, Any]:
        criteria = self.params.criteria
        return {
            "job_id": self.id,
            "status": self.status.value,
            "start_time": self.start_time,
            "completed_at": self.completed_at,
            "progress": self.progress.as_dict(),
            "has_error": self.error is not None,
            "params": {
                "job_titles": list(criteria.job_titles),
                "company_sizes": list(criteria.company_sizes),
                "max_records": self.params.max_records,
            },
        }
