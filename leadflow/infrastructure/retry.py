"""Retry with exponential backoff for calls to unreliable remote services."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

from leadflow.core.logs import redact
from leadflow.domain.errors import ERRORS_BY_CATEGORY, ErrorCategory, LeadflowError, RemoteServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
BASE_DELAY_SECONDS = 5.0
CONNECTION_RESET_DELAY_SECONDS = 10.0
RATE_LIMIT_DELAY_SECONDS = 15.0

_RESET_MARKERS = ("econnreset", "connection reset", "socket hang up", "connection aborted")


@dataclass(frozen=True, slots=True)
class FailureClass:
    category: ErrorCategory
    base_delay: float = BASE_DELAY_SECONDS
    status_code: int | None = None
    retry_after: float | None = None

    def delay_for(self, attempt: int) -> float:
        if self.retry_after is not None:
            return self.retry_after
        return self.base_delay * 2 ** (attempt - 1)


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


def classify_error(exc: BaseException) -> FailureClass:
    """Sort a failed call into one of the :class:`ErrorCategory` buckets."""

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return FailureClass(
                ErrorCategory.RATE_LIMITED,
                RATE_LIMIT_DELAY_SECONDS,
                status,
                _retry_after(exc.response),
            )
        if status >= 500:
            return FailureClass(ErrorCategory.SERVER_ERROR, BASE_DELAY_SECONDS, status)
        if status == 408:
            return FailureClass(ErrorCategory.TRANSIENT_NETWORK, BASE_DELAY_SECONDS, status)
        return FailureClass(ErrorCategory.CLIENT_ERROR, 0.0, status)
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return FailureClass(ErrorCategory.TRANSIENT_NETWORK, BASE_DELAY_SECONDS)
    if isinstance(
        exc,
        (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError, httpx.CloseError, ConnectionResetError),
    ):
        return FailureClass(ErrorCategory.TRANSIENT_NETWORK, CONNECTION_RESET_DELAY_SECONDS)
    message = str(exc).lower()
    if any(marker in message for marker in _RESET_MARKERS):
        return FailureClass(ErrorCategory.TRANSIENT_NETWORK, CONNECTION_RESET_DELAY_SECONDS)
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return FailureClass(ErrorCategory.TRANSIENT_NETWORK, BASE_DELAY_SECONDS)
    return FailureClass(ErrorCategory.UNKNOWN, BASE_DELAY_SECONDS)


def describe_failure(failure: FailureClass, operation: str, attempts: int, exc: BaseException) -> str:
    status = f" ({failure.status_code})" if failure.status_code is not None else ""
    if failure.category is ErrorCategory.RATE_LIMITED:
        return f"{operation}: rate limit exceeded, wait a few minutes and retry"
    if failure.category is ErrorCategory.SERVER_ERROR:
        return f"{operation}: remote server error{status}, please try again in a few minutes"
    if failure.category is ErrorCategory.CLIENT_ERROR:
        return f"{operation}: request rejected{status}, check the input parameters"
    if failure.category is ErrorCategory.TRANSIENT_NETWORK:
        if failure.base_delay >= CONNECTION_RESET_DELAY_SECONDS:
            return (
                f"{operation}: network connection lost after {attempts} attempts, "
                "try again later or reduce the record count"
            )
        return f"{operation}: network timeout after {attempts} attempts, check connectivity and retry"
    return f"{operation} failed after {attempts} attempts: {redact(exc)}"


class RetryExecutor:
    """Run one outbound call, retrying retryable failures with backoff."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        *,
        classify: Callable[[BaseException], FailureClass] = classify_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_retries = max_retries
        self._classify = classify
        self._sleep = sleep

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        *,
        operation: str,
        max_retries: int | None = None,
        classify: Callable[[BaseException], FailureClass] | None = None,
    ) -> T:
        retries = self._max_retries if max_retries is None else max_retries
        classifier = classify or self._classify
        attempts = retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await call()
            except LeadflowError:
                raise
            except Exception as exc:
                failure = classifier(exc)
                logger.warning(
                    "%s attempt %d/%d failed [%s]: %s",
                    operation,
                    attempt,
                    attempts,
                    failure.category.value,
                    redact(exc),
                )
                if not failure.category.retryable or attempt == attempts:
                    error_cls: type[RemoteServiceError] = ERRORS_BY_CATEGORY[failure.category]
                    raise error_cls(
                        describe_failure(failure, operation, attempt, exc),
                        status_code=failure.status_code,
                        attempts=attempt,
                    ) from exc
                delay = failure.delay_for(attempt)
                logger.info("Waiting %.1fs before retrying %s", delay, operation)
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
