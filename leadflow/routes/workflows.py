from __future__ import annotations

from fastapi import APIRouter, HTTPException

from leadflow.application import get_workflow_service
from leadflow.core.schema import WorkflowParams
from leadflow.core.validation import ValidationError
from leadflow.domain.errors import CampaignLockedError, JobNotCompleteError, JobNotFoundError

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.post("", status_code=202)
async def start_workflow(params: WorkflowParams) -> dict:
    """Start a background workflow and return its job id immediately."""
    service = get_workflow_service()
    try:
        record = await service.start(params)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CampaignLockedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {
        "job_id": record.id,
        "status": record.status.value,
        "message": "Workflow started",
        "status_url": f"/api/workflows/{record.id}/status",
        "result_url": f"/api/workflows/{record.id}/result",
    }


@router.get("")
async def list_workflows() -> dict:
    service = get_workflow_service()
    items = service.list_jobs()
    return {"count": len(items), "items": items}


@router.get("/{job_id}/status")
async def get_workflow_status(job_id: str) -> dict:
    service = get_workflow_service()
    try:
        record = service.status(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return record.status_view()


@router.get("/{job_id}/result")
async def get_workflow_result(job_id: str) -> dict:
    service = get_workflow_service()
    try:
        return service.result(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except JobNotCompleteError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
