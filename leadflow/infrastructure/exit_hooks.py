"""Process exit hooks that release file locks owned by this process."""
from __future__ import annotations

import atexit
import logging
import signal
import sys
import threading
from typing import Callable

logger = logging.getLogger(__name__)

_callbacks: list[Callable[[], object]] = []
_installed = False


def run_exit_callbacks() -> None:
    for callback in list(_callbacks):
        try:
            callback()
        except Exception:
            logger.exception("Exit cleanup callback %r failed", callback)


def _chain_signal(signum: int) -> None:
    previous = signal.getsignal(signum)

    def handler(received: int, frame) -> None:
        logger.info("Received %s, releasing locks", signal.Signals(received).name)
        run_exit_callbacks()
        if callable(previous):
            previous(received, frame)
        elif received == signal.SIGINT:
            raise KeyboardInterrupt
        else:
            sys.exit(0)

    signal.signal(signum, handler)


def install_exit_handlers(callback: Callable[[], object]) -> None:
    """Run ``callback`` on normal exit, SIGINT, SIGTERM and uncaught exceptions."""

    global _installed
    _callbacks.append(callback)
    if _installed:
        return
    _installed = True

    atexit.register(run_exit_callbacks)

    if threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGINT, signal.SIGTERM):
            _chain_signal(signum)
    else:
        logger.debug("Not in the main thread; signal handlers left untouched")

    previous_hook = sys.excepthook

    def excepthook(exc_type, exc, tb) -> None:
        logger.error("Uncaught exception: %s", exc)
        run_exit_callbacks()
        previous_hook(exc_type, exc, tb)

    sys.excepthook = excepthook


def reset_exit_handlers() -> None:
    """Forget registered callbacks (used in tests)."""

    _callbacks.clear()
