from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests.exceptions

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryableHTTPError(requests.exceptions.HTTPError):
    """The service answered with a status worth retrying (throttled or gateway error)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    name: str
    max_attempts: int
    base_delay: float
    max_delay: float
    backoff_factor: float
    jitter: float
    retryable_exceptions: tuple[type[Exception], ...]
    retryable_status_codes: frozenset[int] = field(default_factory=frozenset)

    def delay(self, failures: int, rng: random.Random | None = None) -> float:
        """Seconds to wait after *failures* consecutive failures (1-based).

        Exponential backoff capped at ``max_delay``, then +/- ``jitter`` as a
        fraction of the capped delay.
        """
        delay = min(self.base_delay * self.backoff_factor ** (failures - 1), self.max_delay)
        spread = delay * self.jitter
        delay += (rng or random).uniform(-spread, spread)
        return max(0.0, delay)

    def retries_status(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes


# Sending is not idempotent: only retry when the request never reached the service.
SEND_SUBMIT = RetryPolicy(
    name="send",
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff_factor=2.0,
    jitter=0.25,
    retryable_exceptions=(requests.exceptions.ConnectionError,),
)

RENDER_READ = RetryPolicy(
    name="render",
    max_attempts=4,
    base_delay=1.0,
    max_delay=15.0,
    backoff_factor=2.0,
    jitter=0.25,
    retryable_exceptions=(
        requests.exceptions.ConnectionError,
        requests.exceptions.Timeout,
        RetryableHTTPError,
    ),
    retryable_status_codes=frozenset({429, 502, 503, 504}),
)


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep_func: Callable[[float], object] | None = None,
) -> T:
    """Call *func* until it succeeds or *policy* runs out of attempts.

    Only exceptions listed in the policy are retried; the last one is re-raised.
    """
    failures = 0
    while True:
        try:
            return func()
        except policy.retryable_exceptions as exc:
            failures += 1
            if failures >= policy.max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s",
                    policy.name,
                    failures,
                    type(exc).__name__,
                )
                raise
            wait = policy.delay(failures)
            logger.warning(
                "%s attempt %d/%d failed with %s, retrying in %.1fs",
                policy.name,
                failures,
                policy.max_attempts,
                type(exc).__name__,
                wait,
            )
            (sleep_func or time.sleep)(wait)
