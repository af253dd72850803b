"""gitlab_source_shared.retry — Bounded retry with exponential backoff and jitter.

``call_with_retry`` re-runs a fallible callable under a ``RetryPolicy``.
Every call starts a fresh attempt counter; no state survives between calls.

The wait before attempt ``k + 1`` is::

    min(base_delay * 2 ** (k - 1) + jitter, MAX_DELAY_SECONDS)

where ``jitter`` is drawn uniformly from ``[0, JITTER_SECONDS)``.

Usage:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, is_retryable=_is_throttle)
    jobs = call_with_retry(lambda: client.poll_for_jobs(**params), policy)
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

MAX_DELAY_SECONDS = 30.0
JITTER_SECONDS = 0.3

T = TypeVar("T")

__all__ = [
    "InvalidResultError",
    "JITTER_SECONDS",
    "MAX_DELAY_SECONDS",
    "RetryExhaustedError",
    "RetryPolicy",
    "backoff_delay",
    "call_with_retry",
]


class InvalidResultError(Exception):
    """A policy's ``validate`` rejected an otherwise successful result."""


class RetryExhaustedError(Exception):
    """Attempts ran out without any error being captured."""


def _always_retryable(_error: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration attached to a single call site.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1).
        base_delay: Backoff base in seconds.
        is_retryable: Classifies a failure; non-retryable failures stop at once.
        validate: Optional check on a successful result. Returning falsy is
            treated as an ``InvalidResultError`` failure; raising makes the
            raised exception the attempt's failure.
        on_retry: Optional observer called as ``on_retry(error, attempt,
            max_attempts)`` before each backoff wait.
    """

    max_attempts: int
    base_delay: float = 1.0
    is_retryable: Callable[[BaseException], bool] = _always_retryable
    validate: Optional[Callable[[Any], bool]] = None
    on_retry: Optional[Callable[[BaseException, int, int], None]] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")


def backoff_delay(base_delay: float, attempt: int, jitter: Optional[float] = None) -> float:
    """Return the wait in seconds after failed attempt ``attempt`` (1-based)."""
    if jitter is None:
        jitter = random.random() * JITTER_SECONDS
    return min(base_delay * (2 ** (attempt - 1)) + jitter, MAX_DELAY_SECONDS)


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Optional[Callable[[float], None]] = None,
    label: Optional[str] = None,
) -> T:
    """Run ``operation`` until it succeeds or ``policy`` says stop.

    The triggering error is re-raised unchanged when it is non-retryable or
    the last attempt fails; no wait happens in either case.
    """
    sleep = sleep or time.sleep
    name = label or getattr(operation, "__name__", "operation")
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        logger.info("%s: attempt %d/%d", name, attempt, policy.max_attempts)
        try:
            result = operation()
            if policy.validate is not None and not policy.validate(result):
                raise InvalidResultError("Invalid result")
            return result
        except Exception as err:
            last_error = err
            retryable = policy.is_retryable(err)
            if not retryable or attempt >= policy.max_attempts:
                reason = "non-retryable error type" if not retryable else "max attempts reached"
                logger.warning("%s: not retrying (%s): %s", name, reason, err)
                raise

            if policy.on_retry is not None:
                try:
                    policy.on_retry(err, attempt, policy.max_attempts)
                except Exception as observer_err:
                    logger.warning("%s: on_retry observer failed: %s", name, observer_err)

            delay = backoff_delay(policy.base_delay, attempt)
            logger.info(
                "%s: waiting %.3fs before attempt %d/%d",
                name, delay, attempt + 1, policy.max_attempts,
            )
            sleep(delay)

    raise RetryExhaustedError(f"{name} failed after {policy.max_attempts} attempts") from last_error
