"""Bounded retry with Fibonacci backoff for lock and unlock."""
import logging
import time

from google.api_core import exceptions as gcp_exceptions
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_before_delay,
)
from tenacity.wait import wait_base

from .errors import KeyLookupError, TransientError

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0

_TRANSIENT_GCP_ERRORS = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.InternalServerError,
    gcp_exceptions.TooManyRequests,
    gcp_exceptions.GatewayTimeout,
    gcp_exceptions.BadGateway,
)


class wait_fibonacci(wait_base):
    """Wait ``base * fib(attempt)`` seconds: 1, 1, 2, 3, 5, 8, ... times base, capped."""

    def __init__(self, base: float = DEFAULT_BASE_DELAY, max_wait: float = DEFAULT_MAX_DELAY):
        self.base = base
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        previous, current = 0, 1
        for _ in range(retry_state.attempt_number - 1):
            previous, current = current, previous + current
            if current * self.base >= self.max_wait:
                return self.max_wait
        return min(current * self.base, self.max_wait)


class Deadline:
    """
    Time budget shared by every remote call of one lock or unlock.

    The clock starts when the object is created. Each call gets whatever is
    left, so the calls and the sleeps between them together stay inside the
    budget.
    """

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._started = time.monotonic()

    def remaining(self) -> float:
        return max(self.seconds - (time.monotonic() - self._started), 0.0)


def is_transient_error(exc: BaseException) -> bool:
    """
    Return True for failures worth retrying.

    Lookup failures are judged by the backend error they wrap. Conflicts,
    precondition failures, permission errors and not-found never retry.
    """
    if isinstance(exc, TransientError):
        return True
    if isinstance(exc, KeyLookupError) and exc.__cause__ is not None:
        return is_transient_error(exc.__cause__)
    return isinstance(exc, _TRANSIENT_GCP_ERRORS)


def lock_retrying(
    timeout: float,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> Retrying:
    """
    Build the retry controller used around lock creation and deletion.

    The loop stops before a sleep would cross ``timeout`` seconds since the
    first attempt, and raises ``tenacity.RetryError`` when it gives up on a
    transient error. Non-transient errors propagate from the first attempt.
    """
    return Retrying(
        wait=wait_fibonacci(base_delay, max_delay),
        stop=stop_before_delay(timeout),
        retry=retry_if_exception(is_transient_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
