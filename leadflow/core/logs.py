from __future__ import annotations

import logging
import re

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"((?:token|api_key|apikey|key|secret)=)[^&\s\"']+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(\"(?:authorization|token|api_key)\"\s*:\s*\")[^\"]+", re.IGNORECASE), r"\1[REDACTED]"),
]


def redact(text: object) -> str:
    """Mask credential material before it reaches a log line or a job error."""

    value = str(text)
    for pattern, replacement in _REDACTIONS:
        value = pattern.sub(replacement, value)
    return value


def configure_logging(level: str | int = "INFO") -> None:
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if not any(getattr(handler, "_leadflow", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._leadflow = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)
