"""Domain layer definitions."""

from .errors import (
    CampaignLockedError,
    CollaboratorError,
    ErrorCategory,
    JobNotCompleteError,
    JobNotFoundError,
    JobStateError,
    LeadflowError,
    LockOwnershipError,
    PollingFailedError,
    RemoteClientError,
    RemoteJobExpiredError,
    RemoteJobFailedError,
    RemoteRateLimitedError,
    RemoteServerError,
    RemoteServiceError,
    RemoteTransientError,
)
from .jobs import JobProgress, JobRecord, JobStatus

__all__ = [
    "CampaignLockedError",
    "CollaboratorError",
    "ErrorCategory",
    "JobNotCompleteError",
    "JobNotFoundError",
    "JobProgress",
    "JobRecord",
    "JobStateError",
    "JobStatus",
    "LeadflowError",
    "LockOwnershipError",
    "PollingFailedError",
    "RemoteClientError",
    "RemoteJobExpiredError",
    "RemoteJobFailedError",
    "RemoteRateLimitedError",
    "RemoteServerError",
    "RemoteServiceError",
    "RemoteTransientError",
]
