"""PID-file guard that keeps a single server instance per name."""
from __future__ import annotations

import logging
import os
import platform
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .exit_hooks import install_exit_handlers
from .processes import pid_exists, read_json, write_json_atomic

logger = logging.getLogger(__name__)


class ProcessSingleton:
    def __init__(
        self,
        name: str,
        lock_dir: Path | str,
        *,
        pid: int | None = None,
        clock: Callable[[], float] = time.time,
        process_exists: Callable[[int], bool] = pid_exists,
    ) -> None:
        self.name = name
        self._dir = Path(lock_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self.lock_file = self._dir / f"{name}.pid"
        self._pid = pid
        self._clock = clock
        self._process_exists = process_exists

    @property
    def pid(self) -> int:
        return self._pid if self._pid is not None else os.getpid()

    def _read(self) -> dict[str, Any] | None:
        try:
            return read_json(self.lock_file)
        except FileNotFoundError:
            return None

    def _remove_stale(self, recorded_pid: Any) -> None:
        logger.info("Removing stale PID file %s (pid %s not running)", self.lock_file.name, recorded_pid)
        self.lock_file.unlink(missing_ok=True)

    def is_another_instance_running(self) -> bool:
        """True when the PID file names a different, live process.

        Dead pids have their file deleted. Unreadable files fail open so a
        corrupt PID file never blocks startup.
        """

        try:
            data = self._read()
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s, assuming no other instance: %s", self.lock_file, exc)
            return False
        if data is None:
            return False
        try:
            recorded_pid = int(data["pid"])
        except (KeyError, TypeError, ValueError):
            logger.warning("PID file %s has no usable pid; ignoring it", self.lock_file)
            return False
        if recorded_pid == self.pid:
            return False
        if not self._process_exists(recorded_pid):
            self._remove_stale(recorded_pid)
            return False
        logger.warning(
            "Another %s instance is running (pid %s, port %s)",
            self.name,
            recorded_pid,
            data.get("port"),
        )
        return True

    def create_lock(self, port: int | None = None) -> dict[str, Any]:
        record = {
            "pid": self.pid,
            "port": port,
            "start_time": datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            "started_at": self._clock(),
            "python_version": platform.python_version(),
            "platform": sys.platform,
            "cwd": os.getcwd(),
        }
        write_json_atomic(self.lock_file, record)
        logger.info("Created PID file %s for pid %s", self.lock_file, self.pid)
        return record

    def remove_lock(self) -> bool:
        """Delete the PID file if it belongs to this process."""

        try:
            data = self._read()
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s during removal: %s", self.lock_file, exc)
            return False
        if data is None:
            return False
        if data.get("pid") != self.pid:
            logger.warning("PID file %s belongs to pid %s; leaving it", self.lock_file.name, data.get("pid"))
            return False
        self.lock_file.unlink(missing_ok=True)
        logger.info("Removed PID file %s", self.lock_file.name)
        return True

    def force_start(self) -> None:
        if self.lock_file.exists():
            logger.warning("Force start: removing existing PID file %s", self.lock_file)
            self.lock_file.unlink(missing_ok=True)

    def get_running_instance_info(self) -> dict[str, Any] | None:
        try:
            data = self._read()
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s", self.lock_file, exc)
            return None
        if data is None:
            return None
        try:
            recorded_pid = int(data["pid"])
        except (KeyError, TypeError, ValueError):
            return None
        info = dict(data)
        if recorded_pid == self.pid or self._process_exists(recorded_pid):
            started_at = data.get("started_at")
            if isinstance(started_at, (int, float)):
                info["uptime_seconds"] = round(max(0.0, self._clock() - started_at), 1)
            info["is_running"] = True
        else:
            info["is_running"] = False
            info["stale_lock"] = True
        return info

    def setup_exit_handlers(self) -> None:
        install_exit_handlers(self.remove_lock)
