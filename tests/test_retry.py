from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from leadflow.domain.errors import (
    CollaboratorError,
    ErrorCategory,
    RemoteClientError,
    RemoteRateLimitedError,
    RemoteServerError,
    RemoteTransientError,
)
from leadflow.infrastructure.retry import RetryExecutor, classify_error


def _status_error(status: int, headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.test/resource")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class Flaky:
    def __init__(self, failures: list[BaseException], value: str = "ok"):
        self.failures = list(failures)
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.value


def _executor(delays: list[float]) -> RetryExecutor:
    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return RetryExecutor(sleep=sleep)


def test_classify_error_categories():
    assert classify_error(_status_error(429)).category is ErrorCategory.RATE_LIMITED
    assert classify_error(_status_error(503)).category is ErrorCategory.SERVER_ERROR
    assert classify_error(_status_error(400)).category is ErrorCategory.CLIENT_ERROR
    assert classify_error(httpx.ReadTimeout("slow")).category is ErrorCategory.TRANSIENT_NETWORK
    assert classify_error(ValueError("boom")).category is ErrorCategory.UNKNOWN


def test_connection_reset_uses_longer_base_than_timeout():
    reset = classify_error(ConnectionResetError("ECONNRESET"))
    timeout = classify_error(httpx.ConnectTimeout("timed out"))
    assert reset.category is timeout.category is ErrorCategory.TRANSIENT_NETWORK
    assert reset.base_delay > timeout.base_delay
    assert [reset.delay_for(n) for n in (1, 2)] == [10.0, 20.0]
    assert [timeout.delay_for(n) for n in (1, 2)] == [5.0, 10.0]


def test_retry_after_header_overrides_backoff():
    failure = classify_error(_status_error(429, {"Retry-After": "3"}))
    assert failure.delay_for(1) == 3.0
    assert failure.delay_for(2) == 3.0


def test_transient_failure_recovers_with_exponential_backoff():
    delays: list[float] = []
    call = Flaky([httpx.ConnectTimeout("t1"), httpx.ConnectTimeout("t2")])

    result = asyncio.run(_executor(delays).execute(call, operation="Fetch"))

    assert result == "ok"
    assert call.calls == 3
    assert delays == [5.0, 10.0]


def test_gives_up_after_two_retries_with_category_specific_message():
    delays: list[float] = []
    call = Flaky([_status_error(502)] * 5)

    with pytest.raises(RemoteServerError) as excinfo:
        asyncio.run(_executor(delays).execute(call, operation="Start scrape job"))

    assert call.calls == 3
    assert excinfo.value.attempts == 3
    assert excinfo.value.status_code == 502
    assert "remote server error" in str(excinfo.value)
    assert len(delays) == 2


def test_rate_limit_message_tells_caller_to_wait():
    call = Flaky([_status_error(429)] * 3)
    with pytest.raises(RemoteRateLimitedError) as excinfo:
        asyncio.run(_executor([]).execute(call, operation="Search"))
    assert "rate limit exceeded" in str(excinfo.value)
    assert "wait" in str(excinfo.value)


def test_client_error_is_not_retried():
    delays: list[float] = []
    call = Flaky([_status_error(422)])

    with pytest.raises(RemoteClientError) as excinfo:
        asyncio.run(_executor(delays).execute(call, operation="Start scrape job"))

    assert call.calls == 1
    assert delays == []
    assert "check the input parameters" in str(excinfo.value)
    assert not excinfo.value.retryable


def test_connection_reset_exhaustion_surfaces_transient_error():
    delays: list[float] = []
    call = Flaky([httpx.ReadError("Connection reset by peer")] * 3)

    with pytest.raises(RemoteTransientError) as excinfo:
        asyncio.run(_executor(delays).execute(call, operation="Fetch leads"))

    assert delays == [10.0, 20.0]
    assert "network connection lost" in str(excinfo.value)


def test_domain_errors_pass_through_untouched():
    call = Flaky([CollaboratorError("not configured")])
    with pytest.raises(CollaboratorError):
        asyncio.run(_executor([]).execute(call, operation="Start"))
    assert call.calls == 1


def test_attempt_logs_redact_credentials(caplog):
    call = Flaky([ValueError("request with Authorization: Bearer sk-secret-123 failed"), ValueError("token=abc123")])

    with caplog.at_level(logging.WARNING, logger="leadflow.infrastructure.retry"):
        asyncio.run(_executor([]).execute(call, operation="Fetch"))

    text = caplog.text
    assert "sk-secret-123" not in text
    assert "abc123" not in text
    assert "[REDACTED]" in text
    assert "attempt 1/3" in text
    assert "[unknown]" in text
