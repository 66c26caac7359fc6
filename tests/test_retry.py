"""Tests for retry.py — bounded exponential backoff."""

from __future__ import annotations

import pytest

from embedvault.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    RetryExhaustedError,
    StorageError,
)
from embedvault.retry import RetryExecutor, RetryPolicy, run_with_retry


def _executor(max_attempts: int = 3, base_delay: float = 1.0):
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    executor = RetryExecutor(
        RetryPolicy(max_attempts=max_attempts, base_delay=base_delay), sleep=fake_sleep
    )
    return executor, delays


class _Flaky:
    """Fails the first *failures* calls, then returns *value*."""

    def __init__(self, failures: int, value: object = "ok", exc: type[Exception] = OSError):
        self.failures = failures
        self.value = value
        self.exc = exc
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"boom {self.calls}")
        return self.value


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0

    def test_delay_schedule(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1.0)
        assert [policy.delay_before(n) for n in range(1, 6)] == [0.0, 1.0, 2.0, 4.0, 8.0]

    def test_delay_scales_with_base(self):
        policy = RetryPolicy(base_delay=0.25)
        assert policy.delay_before(2) == 0.25
        assert policy.delay_before(3) == 0.5


class TestRetryExecutor:
    async def test_success_first_try_never_sleeps(self):
        executor, delays = _executor()
        op = _Flaky(0, value=42)
        assert await executor.run(op, name="op") == 42
        assert op.calls == 1
        assert delays == []

    async def test_success_after_failures(self):
        executor, delays = _executor()
        op = _Flaky(2, value="done")
        assert await executor.run(op, name="op") == "done"
        assert op.calls == 3
        assert delays == [1.0, 2.0]

    async def test_exhaustion_attempts_exactly_max(self):
        executor, delays = _executor(max_attempts=4, base_delay=1.0)
        op = _Flaky(100)
        with pytest.raises(RetryExhaustedError):
            await executor.run(op, name="bulk_insert")
        assert op.calls == 4
        assert delays == [1.0, 2.0, 4.0]
        assert sum(delays) == 7.0

    async def test_exhaustion_error_carries_context(self):
        executor, _ = _executor(max_attempts=2)
        with pytest.raises(RetryExhaustedError) as exc_info:
            await executor.run(_Flaky(100), name="find_similar")
        err = exc_info.value
        assert err.operation == "find_similar"
        assert err.attempts == 2
        assert isinstance(err.last_error, OSError)
        assert err.__cause__ is err.last_error
        assert "find_similar failed after 2 attempts" in str(err)
        assert "boom 2" in str(err)

    async def test_exhausted_is_storage_error(self):
        executor, _ = _executor(max_attempts=1)
        with pytest.raises(StorageError):
            await executor.run(_Flaky(1), name="op")

    async def test_single_attempt_has_no_delay(self):
        executor, delays = _executor(max_attempts=1)
        op = _Flaky(100)
        with pytest.raises(RetryExhaustedError):
            await executor.run(op, name="op")
        assert op.calls == 1
        assert delays == []

    async def test_sync_operation(self):
        executor, _ = _executor()
        assert await executor.run(lambda: "plain", name="op") == "plain"

    @pytest.mark.parametrize("exc", [DimensionMismatchError, ConfigurationError])
    async def test_input_errors_not_retried(self, exc):
        executor, delays = _executor()
        op = _Flaky(100, exc=exc)
        with pytest.raises(exc):
            await executor.run(op, name="op")
        assert op.calls == 1
        assert delays == []

    async def test_per_call_override(self):
        executor, delays = _executor(max_attempts=3, base_delay=1.0)
        op = _Flaky(100)
        with pytest.raises(RetryExhaustedError):
            await executor.run(op, name="op", max_attempts=2, base_delay=0.5)
        assert op.calls == 2
        assert delays == [0.5]

    async def test_zero_attempts_rejected(self):
        executor, _ = _executor()
        with pytest.raises(ValueError, match="at least 1"):
            await executor.run(_Flaky(0), name="op", max_attempts=0)

    async def test_failures_are_logged(self, caplog):
        executor, _ = _executor(max_attempts=2)
        with caplog.at_level("WARNING", logger="embedvault.retry"), pytest.raises(
            RetryExhaustedError
        ):
            await executor.run(_Flaky(100), name="update_file_hash")
        warnings = [r for r in caplog.records if r.levelname == "WARNING"]
        errors = [r for r in caplog.records if r.levelname == "ERROR"]
        assert len(warnings) == 2
        assert "attempt 1/2" in warnings[0].getMessage()
        assert len(errors) == 1


class TestRunWithRetry:
    async def test_returns_result(self):
        op = _Flaky(1, value=7)
        assert await run_with_retry(op, name="op", base_delay=0.0) == 7
        assert op.calls == 2

    async def test_raises_after_budget(self):
        op = _Flaky(100)
        with pytest.raises(RetryExhaustedError):
            await run_with_retry(op, name="op", max_attempts=2, base_delay=0.0)
        assert op.calls == 2
