from __future__ import annotations

import logging
from typing import Any

from leadflow.core.settings import get_settings
from leadflow.domain.errors import LockOwnershipError
from leadflow.domain.jobs import utcnow_iso
from leadflow.infrastructure import CampaignLockManager, ProcessSingleton

logger = logging.getLogger(__name__)


class CampaignService:
    """Campaign lock control used by the HTTP layer."""

    def __init__(self, locks: CampaignLockManager, singleton: ProcessSingleton | None = None) -> None:
        self._locks = locks
        self._singleton = singleton

    @property
    def locks(self) -> CampaignLockManager:
        return self._locks

    def status(self, session_id: str) -> dict[str, Any]:
        record = self._locks.get_lock(session_id)
        return {
            "session_id": session_id,
            "is_running": record is not None,
            "lock": self._locks.describe(record) if record is not None else None,
            "timestamp": utcnow_iso(),
        }

    def active(self) -> dict[str, Any]:
        campaigns = self._locks.list_active()
        return {"count": len(campaigns), "campaigns": campaigns, "timestamp": utcnow_iso()}

    def stop(self, session_id: str, *, force: bool = False) -> dict[str, Any]:
        """Release a campaign lock. In-flight work keeps running."""

        record = self._locks.get_lock(session_id)
        if record is None:
            return {"session_id": session_id, "stopped": False, "message": "No active campaign for this session"}
        if record.pid != self._locks.pid and not force:
            raise LockOwnershipError(
                f"Campaign for session {session_id} is owned by process {record.pid}; use force to override"
            )
        released = self._locks.release(session_id, force=force)
        logger.info("Stop requested for campaign %s (force=%s, released=%s)", session_id, force, released)
        return {
            "session_id": session_id,
            "stopped": released,
            "forced": force,
            "message": "Campaign lock released" if released else "Campaign lock could not be released",
        }

    def cleanup_all(self) -> dict[str, Any]:
        removed = self._locks.cleanup_all()
        return {"removed": removed, "timestamp": utcnow_iso()}

    def health(self) -> dict[str, Any]:
        active = self._locks.list_active()
        payload: dict[str, Any] = {
            "status": "ok",
            "active_campaigns": len(active),
            "lock_dir": str(self._locks.lock_dir),
            "pid": self._locks.pid,
            "timestamp": utcnow_iso(),
        }
        if self._singleton is not None:
            payload["server"] = self._singleton.get_running_instance_info()
        return payload


_service: CampaignService | None = None


def get_campaign_service() -> CampaignService:
    global _service
    if _service is None:
        settings = get_settings()
        locks = CampaignLockManager(
            settings.lock_dir,
            stale_after_minutes=settings.campaign_lock_stale_minutes,
        )
        _service = CampaignService(locks, ProcessSingleton(settings.server_name, settings.lock_dir))
    return _service


def reset_campaign_state() -> None:
    """Drop the cached service (used in tests)."""

    global _service
    _service = None
