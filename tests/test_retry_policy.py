"""Tests for the Fibonacci backoff and transient-error classification."""
from unittest import mock

import pytest
from google.api_core import exceptions as gcp_exceptions
from tenacity import RetryCallState, RetryError

from gcp_secret_storage.storage.domains.errors import (
    KeyLookupError,
    KeyNotFoundError,
    LockHeldError,
    PreconditionFailedError,
    TransientError,
)
from gcp_secret_storage.storage.domains.retry_policy import (
    Deadline,
    is_transient_error,
    lock_retrying,
    wait_fibonacci,
)


def _state(attempt_number: int) -> RetryCallState:
    state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
    state.attempt_number = attempt_number
    return state


class TestWaitFibonacci:

    def test_sequence(self):
        wait = wait_fibonacci(base=1.0, max_wait=100.0)

        assert [wait(_state(n)) for n in range(1, 9)] == [1, 1, 2, 3, 5, 8, 13, 21]

    def test_base_scales_sequence(self):
        wait = wait_fibonacci(base=0.5, max_wait=100.0)

        assert [wait(_state(n)) for n in range(1, 5)] == [0.5, 0.5, 1.0, 1.5]

    def test_capped_at_max_wait(self):
        wait = wait_fibonacci(base=1.0, max_wait=10.0)

        assert wait(_state(7)) == 10.0
        assert wait(_state(500)) == 10.0


class TestIsTransientError:

    @pytest.mark.parametrize("exc", [
        gcp_exceptions.ServiceUnavailable("x"),
        gcp_exceptions.DeadlineExceeded("x"),
        gcp_exceptions.InternalServerError("x"),
        gcp_exceptions.ResourceExhausted("x"),
        TransientError("x"),
    ])
    def test_transient(self, exc):
        assert is_transient_error(exc) is True

    @pytest.mark.parametrize("exc", [
        gcp_exceptions.AlreadyExists("x"),
        gcp_exceptions.PermissionDenied("x"),
        gcp_exceptions.FailedPrecondition("x"),
        gcp_exceptions.NotFound("x"),
        KeyNotFoundError("a"),
        LockHeldError("lock-a"),
        PreconditionFailedError("a", '"etag"'),
        ValueError("x"),
    ])
    def test_not_transient(self, exc):
        assert is_transient_error(exc) is False

    def test_lookup_error_judged_by_cause(self):
        transient = KeyLookupError("a", "down")
        transient.__cause__ = gcp_exceptions.ServiceUnavailable("down")
        permanent = KeyLookupError("a", "denied")
        permanent.__cause__ = gcp_exceptions.PermissionDenied("denied")

        assert is_transient_error(transient) is True
        assert is_transient_error(permanent) is False


class TestLockRetrying:

    def test_gives_up_with_retry_error(self):
        attempts = []

        with pytest.raises(RetryError):
            for attempt in lock_retrying(0.05, base_delay=0.01):
                with attempt:
                    attempts.append(1)
                    raise gcp_exceptions.ServiceUnavailable("down")

        assert len(attempts) >= 2

    def test_non_transient_propagates_immediately(self):
        attempts = []

        with pytest.raises(gcp_exceptions.AlreadyExists):
            for attempt in lock_retrying(5.0, base_delay=0.01):
                with attempt:
                    attempts.append(1)
                    raise gcp_exceptions.AlreadyExists("taken")

        assert len(attempts) == 1


class TestDeadline:

    def test_remaining_counts_down_to_zero(self):
        with mock.patch(
            "gcp_secret_storage.storage.domains.retry_policy.time.monotonic",
            side_effect=[100.0, 100.4, 101.5],
        ):
            deadline = Deadline(1.0)

            assert deadline.remaining() == pytest.approx(0.6)
            assert deadline.remaining() == 0.0

        assert deadline.seconds == 1.0
