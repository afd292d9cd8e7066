"""Infrastructure layer exports."""

from .campaign_lock import CampaignLockManager, LockRecord
from .collaborators import (
    Collaborators,
    DispatchOutcome,
    LeadPage,
    PersistOutcome,
    ScrapeResult,
    ScrapeStatus,
    configure_collaborators,
    get_collaborators,
)
from .jobs import InMemoryJobStore, JobStore
from .processes import pid_exists
from .retry import RetryExecutor, classify_error
from .singleton import ProcessSingleton

__all__ = [
    "CampaignLockManager",
    "Collaborators",
    "DispatchOutcome",
    "InMemoryJobStore",
    "JobStore",
    "LeadPage",
    "LockRecord",
    "PersistOutcome",
    "ProcessSingleton",
    "RetryExecutor",
    "ScrapeResult",
    "ScrapeStatus",
    "classify_error",
    "configure_collaborators",
    "get_collaborators",
    "pid_exists",
]
