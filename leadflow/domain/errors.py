"""Error taxonomy shared by the workflow engine and its adapters."""
from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self is not ErrorCategory.CLIENT_ERROR


class LeadflowError(Exception):
    """Base class for errors raised by leadflow."""


class RemoteServiceError(LeadflowError):
    """A remote call failed for good after its retries were used up."""

    category = ErrorCategory.UNKNOWN

    def __init__(self, message: str, *, status_code: int | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.category.retryable


class RemoteTransientError(RemoteServiceError):
    category = ErrorCategory.TRANSIENT_NETWORK


class RemoteRateLimitedError(RemoteServiceError):
    category = ErrorCategory.RATE_LIMITED


class RemoteServerError(RemoteServiceError):
    category = ErrorCategory.SERVER_ERROR


class RemoteClientError(RemoteServiceError):
    category = ErrorCategory.CLIENT_ERROR


ERRORS_BY_CATEGORY: dict[ErrorCategory, type[RemoteServiceError]] = {
    ErrorCategory.TRANSIENT_NETWORK: RemoteTransientError,
    ErrorCategory.RATE_LIMITED: RemoteRateLimitedError,
    ErrorCategory.SERVER_ERROR: RemoteServerError,
    ErrorCategory.CLIENT_ERROR: RemoteClientError,
    ErrorCategory.UNKNOWN: RemoteServiceError,
}


class RemoteJobExpiredError(LeadflowError):
    """The polled remote job id is unknown to the provider."""


class RemoteJobFailedError(LeadflowError):
    """The remote job finished in a failed state."""


class PollingFailedError(LeadflowError):
    """Status polling kept failing and was abandoned."""


class CollaboratorError(LeadflowError):
    """An enrichment, persistence or dispatch collaborator failed or is unavailable."""


class JobNotFoundError(LeadflowError):
    """Unknown or expired job id."""


class JobNotCompleteError(LeadflowError):
    """The job has not reached the ``completed`` state."""


class JobStateError(LeadflowError):
    """Illegal status transition on a job record."""


class CampaignLockedError(LeadflowError):
    """Another run already holds the campaign lock for this session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"A campaign is already running for session {session_id}")
        self.session_id = session_id


class LockOwnershipError(LeadflowError):
    """A stop request targeted a campaign lock held by another process."""
