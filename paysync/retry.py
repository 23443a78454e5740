"""Error classification and retry-with-backoff policy.

Every attempt is turned into an explicit :class:`Attempt` value (either a
result or a classified error) and :func:`should_retry` decides whether to
continue. Two policies run on top of this:

- connectivity failures, retried by the database executor with exponential
  backoff;
- foreign-key violations, retried with a fixed delay by price upserts that
  raced ahead of their parent product.
"""

import asyncio
import enum
import errno
import logging
import socket
import time
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ETIMEDOUT,
        errno.ECONNRESET,
        errno.EPIPE,
        errno.EHOSTUNREACH,
    }
)

RETRYABLE_SQLSTATES = frozenset(
    {
        "08000",  # connection_exception
        "08003",  # connection_does_not_exist
        "08006",  # connection_failure
        "57P03",  # cannot_connect_now
        "53300",  # too_many_connections
    }
)

FOREIGN_KEY_SQLSTATE = "23503"


class ErrorKind(enum.Enum):
    CONNECTIVITY = "connectivity"
    FOREIGN_KEY = "foreign_key"
    OTHER = "other"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay schedule.

    ``max_retries`` counts retries after the first attempt, so the default
    policy makes at most four attempts waiting 1s, 2s and 4s in between.
    """

    max_retries: int = 3
    delay: float = 1.0
    backoff_multiplier: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry."""
        delay = self.delay
        for _ in range(self.max_retries):
            yield delay
            delay *= self.backoff_multiplier


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """Outcome of one try: a value, or an error with its classification."""

    number: int
    value: T | None = None
    error: Exception | None = None
    kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    """Walk wrapped errors: our own ``cause``, SQLAlchemy ``orig`` and ``__cause__``."""
    seen: set[int] = set()
    pending: list[BaseException] = [exc]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        for attr in ("cause", "orig", "__cause__"):
            nested = getattr(current, attr, None)
            if isinstance(nested, BaseException):
                pending.append(nested)


def _sqlstate(exc: BaseException) -> str | None:
    for attr in ("sqlstate", "pgcode"):
        code = getattr(exc, attr, None)
        if isinstance(code, str):
            return code
    return None


def is_connectivity_error(exc: BaseException) -> bool:
    """True for low-level socket failures and backend-reported transient states."""
    for err in _error_chain(exc):
        if getattr(err, "connection_invalidated", False):
            return True
        if isinstance(err, (socket.gaierror, TimeoutError, asyncio.TimeoutError)):
            return True
        if isinstance(err, OSError) and err.errno in RETRYABLE_ERRNOS:
            return True
        if isinstance(err, (ConnectionRefusedError, ConnectionResetError, BrokenPipeError)):
            return True
        if _sqlstate(err) in RETRYABLE_SQLSTATES:
            return True
    return False


def is_foreign_key_violation(exc: BaseException) -> bool:
    for err in _error_chain(exc):
        if _sqlstate(err) == FOREIGN_KEY_SQLSTATE:
            return True
        if "foreign key constraint" in str(err).lower():
            return True
    return False


def classify_error(exc: BaseException) -> ErrorKind:
    if is_connectivity_error(exc):
        return ErrorKind.CONNECTIVITY
    if is_foreign_key_violation(exc):
        return ErrorKind.FOREIGN_KEY
    return ErrorKind.OTHER


async def attempt(operation: Callable[[], Awaitable[T]], number: int) -> Attempt[T]:
    """Run ``operation`` once and capture its outcome instead of raising."""
    try:
        value = await operation()
    except Exception as exc:
        return Attempt(number=number, error=exc, kind=classify_error(exc))
    return Attempt(number=number, value=value)


def should_retry(
    outcome: Attempt, policy: RetryPolicy, retry_on: frozenset[ErrorKind]
) -> bool:
    if outcome.ok:
        return False
    return outcome.kind in retry_on and outcome.number < policy.max_attempts


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: frozenset[ErrorKind] = frozenset({ErrorKind.CONNECTIVITY}),
    label: str = "operation",
) -> Attempt[T]:
    """Run ``operation`` until it succeeds or the policy says stop.

    Returns the final :class:`Attempt`; callers inspect ``ok`` / ``error``
    and decide how to surface a failure.
    """
    delays = policy.delays()
    number = 1
    while True:
        started = time.perf_counter()
        outcome = await attempt(operation, number)
        elapsed_ms = (time.perf_counter() - started) * 1000
        if not should_retry(outcome, policy, retry_on):
            return outcome

        delay = next(delays)
        logger.warning(
            "%s failed (attempt %d/%d, %s, %.1fms). Retrying in %.2fs: %s",
            label,
            number,
            policy.max_attempts,
            outcome.kind.value,
            elapsed_ms,
            delay,
            outcome.error,
        )
        await asyncio.sleep(delay)
        number += 1
