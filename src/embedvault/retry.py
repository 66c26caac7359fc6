"""Bounded exponential-backoff retry for storage operations."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from embedvault.exceptions import ConfigurationError, DimensionMismatchError, RetryExhaustedError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that say something about the input, not the storage engine.
_NON_RETRYABLE: tuple[type[BaseException], ...] = (DimensionMismatchError, ConfigurationError)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and backoff base for :class:`RetryExecutor`.

    Attributes:
        max_attempts: Total number of attempts, including the first.
        base_delay: Seconds to wait before the second attempt.  Each later
            attempt waits twice as long as the one before.
    """

    max_attempts: int = 3
    base_delay: float = 1.0

    def delay_before(self, attempt: int) -> float:
        """Return the sleep before *attempt* (1-based); zero for the first."""
        if attempt <= 1:
            return 0.0
        return self.base_delay * (2 ** (attempt - 2))


class RetryExecutor:
    """Runs an operation, retrying failures with exponential backoff.

    No jitter and no circuit breaker: an operation is attempted at most
    ``max_attempts`` times, and the last error is surfaced as
    :class:`RetryExhaustedError` once the budget is spent.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(
        self,
        operation: Callable[[], T | Awaitable[T]],
        *,
        name: str,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        """Run *operation* until it succeeds or the attempt budget is spent.

        *operation* takes no arguments and may return a plain value or an
        awaitable.  *max_attempts* and *base_delay* override the policy for
        this call only.
        """
        policy = RetryPolicy(
            max_attempts=max_attempts if max_attempts is not None else self._policy.max_attempts,
            base_delay=base_delay if base_delay is not None else self._policy.base_delay,
        )
        if policy.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {policy.max_attempts}"
            raise ValueError(msg)

        last_error: Exception | None = None
        for attempt in range(1, policy.max_attempts + 1):
            if attempt > 1:
                await self._sleep(policy.delay_before(attempt))
            try:
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                return result  # type: ignore[return-value]
            except _NON_RETRYABLE:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    "%s failed (attempt %d/%d): %s", name, attempt, policy.max_attempts, e
                )

        logger.error(
            "%s failed after %d attempts: %s", name, policy.max_attempts, last_error
        )
        raise RetryExhaustedError(name, policy.max_attempts, last_error) from last_error


async def run_with_retry(
    operation: Callable[[], T | Awaitable[T]],
    *,
    name: str,
    max_attempts: int = 3,
    base_delay: float = 1.0,
) -> T:
    """One-off convenience around :meth:`RetryExecutor.run`."""
    executor = RetryExecutor(RetryPolicy(max_attempts=max_attempts, base_delay=base_delay))
    return await executor.run(operation, name=name)
