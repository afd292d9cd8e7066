from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from leadflow.application import get_campaign_service
from leadflow.domain.errors import LockOwnershipError

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("/status/{session_id}")
async def campaign_status(session_id: str) -> dict:
    return get_campaign_service().status(session_id)


@router.get("/active")
async def active_campaigns() -> dict:
    return get_campaign_service().active()


@router.post("/stop/{session_id}")
async def stop_campaign(session_id: str, force: bool = Query(default=False)) -> dict:
    """Release the campaign lock; running work is not interrupted."""
    try:
        return get_campaign_service().stop(session_id, force=force)
    except LockOwnershipError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc


@router.post("/cleanup")
async def cleanup_campaigns(payload: dict) -> dict:
    if payload.get("confirm") is not True:
        raise HTTPException(status_code=400, detail='Cleanup requires {"confirm": true}')
    return get_campaign_service().cleanup_all()


@router.get("/health")
async def campaigns_health() -> dict:
    return get_campaign_service().health()
