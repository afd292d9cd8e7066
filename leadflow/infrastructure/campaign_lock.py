"""File-backed campaign lock: one running campaign per session."""
from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .exit_hooks import install_exit_handlers
from .processes import pid_exists, read_json, write_json_exclusive

logger = logging.getLogger(__name__)

DEFAULT_STALE_MINUTES = 30
LOCK_PREFIX = "campaign_"
LOCK_SUFFIX = ".lock"

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(slots=True)
class LockRecord:
    session_id: str
    campaign_type: str
    pid: int
    timestamp: float
    start_time: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LockRecord":
        return cls(
            session_id=str(data["session_id"]),
            campaign_type=str(data.get("campaign_type") or "manual"),
            pid=int(data["pid"]),
            timestamp=float(data["timestamp"]),
            start_time=str(data.get("start_time") or ""),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class CampaignLockManager:
    """Acquire, inspect and release per-session campaign lock files.

    A lock file's presence is the lock. A record is stale once it is older
    than the threshold or its owning pid is gone; stale records are treated as
    absent and deleted by whoever finds them.
    """

    def __init__(
        self,
        lock_dir: Path | str,
        *,
        stale_after_minutes: float = DEFAULT_STALE_MINUTES,
        pid: int | None = None,
        clock: Callable[[], float] = time.time,
        process_exists: Callable[[int], bool] = pid_exists,
    ) -> None:
        self._dir = Path(lock_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._stale_after = stale_after_minutes * 60
        self._pid = pid
        self._clock = clock
        self._process_exists = process_exists
        self._exit_handlers_installed = False

    @property
    def lock_dir(self) -> Path:
        return self._dir

    @property
    def pid(self) -> int:
        return self._pid if self._pid is not None else os.getpid()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _path(self, session_id: str) -> Path:
        return self._dir / f"{LOCK_PREFIX}{_UNSAFE.sub('_', session_id)}{LOCK_SUFFIX}"

    def _load(self, path: Path) -> LockRecord | None:
        """Read a lock file; None when missing, ValueError when unreadable."""

        try:
            data = read_json(path)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise ValueError(f"unreadable lock file {path.name}: {exc}") from exc
        try:
            return LockRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed lock file {path.name}: {exc}") from exc

    def _age_seconds(self, record: LockRecord) -> float:
        return max(0.0, self._clock() - record.timestamp)

    def _file_age_seconds(self, path: Path) -> float:
        try:
            return max(0.0, self._clock() - path.stat().st_mtime)
        except FileNotFoundError:
            return 0.0

    def is_stale(self, record: LockRecord) -> bool:
        if self._age_seconds(record) > self._stale_after:
            return True
        return not self._process_exists(record.pid)

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def _current(self, session_id: str) -> LockRecord | None:
        """Return the live record for ``session_id``, reclaiming a stale one."""

        path = self._path(session_id)
        try:
            record = self._load(path)
        except ValueError as exc:
            if self._file_age_seconds(path) > self._stale_after:
                logger.info("Removing old unreadable lock for %s: %s", session_id, exc)
                self._unlink(path)
                return None
            raise
        if record is None:
            return None
        if self.is_stale(record):
            logger.info(
                "Reclaiming stale campaign lock for %s (pid %s, %.1f min old)",
                session_id,
                record.pid,
                self._age_seconds(record) / 60,
            )
            self._unlink(path)
            return None
        return record

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def acquire(self, session_id: str, campaign_type: str = "manual") -> LockRecord | None:
        """Take the lock for ``session_id``.

        Returns the written record, or None if someone holds it. Hand the
        record back to :meth:`release` as ``expected`` so that a later
        holder's lock is never removed by mistake.
        """

        try:
            existing = self._current(session_id)
        except ValueError as exc:
            logger.warning("Refusing campaign lock for %s: %s", session_id, exc)
            return None
        if existing is not None:
            logger.warning(
                "Campaign already running for session %s (pid %s, type %s)",
                session_id,
                existing.pid,
                existing.campaign_type,
            )
            return None

        now = self._clock()
        record = LockRecord(
            session_id=session_id,
            campaign_type=campaign_type,
            pid=self.pid,
            timestamp=now,
            start_time=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        )
        if not write_json_exclusive(self._path(session_id), record.as_dict()):
            logger.warning("Lost the race for campaign lock %s", session_id)
            return None
        logger.info("Campaign lock acquired for %s (%s)", session_id, campaign_type)
        return record

    def release(
        self,
        session_id: str,
        *,
        force: bool = False,
        expected: LockRecord | None = None,
    ) -> bool:
        """Delete the lock if this process owns it (or ``force`` is set).

        With ``expected`` the file must still hold that exact acquisition;
        a lock re-taken after it went stale is left alone.
        """

        path = self._path(session_id)
        try:
            record = self._load(path)
        except ValueError as exc:
            if not force:
                logger.warning("Not releasing %s: %s", session_id, exc)
                return False
            record = None
        if record is None and not path.exists():
            return False
        if not force and record is not None and record.pid != self.pid:
            logger.warning(
                "Refusing to release campaign lock %s held by pid %s (we are %s)",
                session_id,
                record.pid,
                self.pid,
            )
            return False
        if not force and expected is not None and record != expected:
            logger.warning("Campaign lock %s was re-acquired since we took it; leaving it in place", session_id)
            return False
        removed = self._unlink(path)
        if removed:
            logger.info("Campaign lock released for %s%s", session_id, " (forced)" if force else "")
        return removed

    def is_locked(self, session_id: str) -> bool:
        try:
            return self._current(session_id) is not None
        except ValueError:
            return True

    def get_lock(self, session_id: str) -> LockRecord | None:
        try:
            return self._current(session_id)
        except ValueError:
            return None

    def describe(self, record: LockRecord) -> dict[str, Any]:
        data = record.as_dict()
        data["age_minutes"] = round(self._age_seconds(record) / 60, 1)
        data["owned"] = record.pid == self.pid
        return data

    def list_active(self) -> list[dict[str, Any]]:
        """Enumerate live locks, deleting stale ones along the way."""

        active: list[dict[str, Any]] = []
        for path in sorted(self._dir.glob(f"{LOCK_PREFIX}*{LOCK_SUFFIX}")):
            try:
                record = self._load(path)
            except ValueError as exc:
                logger.warning("Skipping %s", exc)
                continue
            if record is None:
                continue
            if self.is_stale(record):
                logger.info("Evicting stale campaign lock %s", path.name)
                self._unlink(path)
                continue
            entry = self.describe(record)
            entry["file"] = path.name
            active.append(entry)
        return active

    def cleanup_all(self) -> int:
        """Remove every lock file regardless of owner."""

        removed = 0
        for path in self._dir.glob(f"{LOCK_PREFIX}*{LOCK_SUFFIX}"):
            if self._unlink(path):
                removed += 1
        logger.warning("Emergency cleanup removed %d campaign lock(s)", removed)
        return removed

    def release_owned(self) -> int:
        """Release every lock created by this process."""

        released = 0
        for path in self._dir.glob(f"{LOCK_PREFIX}*{LOCK_SUFFIX}"):
            try:
                record = self._load(path)
            except ValueError:
                continue
            if record is not None and record.pid == self.pid and self._unlink(path):
                released += 1
        if released:
            logger.info("Released %d campaign lock(s) owned by pid %s", released, self.pid)
        return released

    def install_exit_handlers(self) -> None:
        if self._exit_handlers_installed:
            return
        install_exit_handlers(self.release_owned)
        self._exit_handlers_installed = True
