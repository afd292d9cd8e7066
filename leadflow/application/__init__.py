"""Application services."""

from .campaigns import CampaignService, get_campaign_service, reset_campaign_state
from .workflows import (
    WorkflowService,
    build_collaborators,
    get_workflow_service,
    reset_workflow_state,
)

__all__ = [
    "CampaignService",
    "WorkflowService",
    "build_collaborators",
    "get_campaign_service",
    "get_workflow_service",
    "reset_campaign_state",
    "reset_workflow_state",
]
