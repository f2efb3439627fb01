"""
Transaction Retry Policy

Reruns a whole transactional operation when it fails for a transient reason:
a conflicting write on a serialized row, a deadlock victim, a dropped
connection. Between attempts it sleeps with capped exponential backoff plus
jitter::

    delay_ms = min(initial * 2 ** (attempt - 1), max) + randint(0, jitter)

What counts as transient:

- any type in `RetryConfig.retriable_exceptions` (`OperationalError` by
  default; services add `ConcurrencyConflictError`)
- a `DBAPIError` whose connection was invalidated

Everything else propagates on the first failure. When the attempts run out,
`on_exhausted` turns the last failure into the caller's transient error.

The operation must open and close its own transaction; never retry inside
an open one::

    async def operation():
        async with store.transaction() as uow:
            ...

    await retry_policy.execute(operation, operation_name="progression.award_xp")
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ExhaustedErrorFactory = Callable[[str, int, BaseException], BaseException]


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_backoff_ms: int = 50
    max_backoff_ms: int = 1000
    jitter_ms: int = 50
    retriable_exceptions: Tuple[Type[BaseException], ...] = (OperationalError,)

    @classmethod
    def from_config(cls) -> "RetryConfig":
        return cls(
            max_attempts=Config.DATABASE_RETRY_MAX_ATTEMPTS,
            initial_backoff_ms=Config.DATABASE_RETRY_INITIAL_BACKOFF_MS,
            max_backoff_ms=Config.DATABASE_RETRY_MAX_BACKOFF_MS,
            jitter_ms=Config.DATABASE_RETRY_JITTER_MS,
        )

    def with_retriable(self, *exc_types: Type[BaseException]) -> "RetryConfig":
        """Copy with extra exception types treated as transient."""
        return replace(self, retriable_exceptions=self.retriable_exceptions + exc_types)


class TransactionRetryPolicy:
    """
    >>> policy = TransactionRetryPolicy(
    ...     RetryConfig.from_config().with_retriable(ConcurrencyConflictError),
    ...     on_exhausted=lambda op, attempts, exc: TransientProgressionError(op, attempts),
    ... )
    >>> result = await policy.execute(do_award, operation_name="progression.award_xp")
    """

    def __init__(
        self,
        config: RetryConfig,
        *,
        on_exhausted: Optional[ExhaustedErrorFactory] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._on_exhausted = on_exhausted
        self._sleep = sleep

    @classmethod
    def from_config(cls, **kwargs: Any) -> "TransactionRetryPolicy":
        return cls(RetryConfig.from_config(), **kwargs)

    @property
    def config(self) -> RetryConfig:
        return self._config

    def is_retriable(self, exc: BaseException) -> bool:
        if isinstance(exc, self._config.retriable_exceptions):
            return True
        return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)

    def compute_backoff_ms(self, attempt: int) -> int:
        """Delay after the 1-indexed `attempt` failed."""
        base = self._config.initial_backoff_ms * 2 ** max(attempt - 1, 0)
        jitter = random.randint(0, self._config.jitter_ms) if self._config.jitter_ms > 0 else 0
        return min(base, self._config.max_backoff_ms) + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Run `operation` until it succeeds, fails permanently or runs out of
        attempts.

        Raises:
            The `on_exhausted` error (chained to the last failure) once the
            attempts are used up, or the last failure itself without a
            factory. Non-transient errors propagate unchanged.
        """
        log_extra = {**(context or {}), "operation": operation_name}
        max_attempts = self._config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not self.is_retriable(exc):
                    raise

                if attempt == max_attempts:
                    logger.error(
                        "Transaction retries exhausted",
                        extra={
                            **log_extra,
                            "attempt": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    if self._on_exhausted is None:
                        raise
                    raise self._on_exhausted(operation_name, attempt, exc) from exc

                backoff_ms = self.compute_backoff_ms(attempt)
                logger.warning(
                    "Transaction conflicted, retrying",
                    extra={
                        **log_extra,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                        "backoff_ms": backoff_ms,
                    },
                )
                await self._sleep(backoff_ms / 1000.0)

        raise AssertionError("unreachable: max_attempts must be >= 1")


__all__ = ["RetryConfig", "TransactionRetryPolicy"]
