"""Advisory locks modeled as specially named secrets."""
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from google.api_core import exceptions as gcp_exceptions
from tenacity import RetryError

from ..domains.errors import KeyNotFoundError, LockHeldError, LockTimeoutError
from ..domains.lock_table import LockTable
from ..domains.retry_policy import DEFAULT_BASE_DELAY, Deadline, lock_retrying

if TYPE_CHECKING:
    from .storage_operations import SecretManagerStorage

logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock-"
LOCK_PAYLOAD = b"true"
LOCK_TTL = timedelta(minutes=1)


def lock_key(name: str) -> str:
    return f"{LOCK_PREFIX}{name}"


class LockManager:
    """
    Create-if-absent locks on top of a SecretManagerStorage.

    Lock ``X`` is held while the secret ``lock-X`` exists. Secrets expire one
    minute after creation and are never renewed, so a crashed holder releases
    its locks passively.

    The check for an existing lock secret before creating one only saves an
    RPC. Two processes can both see the lock as free; the backend lets exactly
    one of them create the secret and the other gets LockHeldError.
    """

    def __init__(
        self,
        storage: "SecretManagerStorage",
        lock_timeout: float = 30.0,
        base_delay: float = DEFAULT_BASE_DELAY,
    ):
        self.storage = storage
        self.lock_timeout = lock_timeout
        self.base_delay = base_delay
        self.table = LockTable()

    def is_locked(self, name: str) -> bool:
        """Whether this process holds ``name``. Says nothing about other processes."""
        return self.table.is_held(lock_key(name))

    def lock(self, name: str, timeout: Optional[float] = None) -> None:
        """
        Acquire the lock ``name`` or fail immediately.

        Args:
            name: Logical lock name
            timeout: Deadline in seconds for the whole acquisition. Every remote
                call gets what is left of it, and retries stop before crossing it.
                Defaults to the manager's lock_timeout.

        Raises:
            LockHeldError: If this process or another one holds the lock
            LockTimeoutError: If transient errors outlast the deadline
        """
        key = lock_key(name)
        deadline = Deadline(self.lock_timeout if timeout is None else timeout)

        self.table.claim(key)
        try:
            self._ensure_absent(key, deadline)
            self._create(key, deadline)
        except BaseException:
            self.table.remove(key)
            raise

        self.table.mark_locked(key)
        logger.info(f"Acquired lock {key}")

    def unlock(self, name: str, timeout: Optional[float] = None) -> None:
        """
        Release the lock ``name``.

        The local entry is dropped only once the lock secret is deleted. If
        the delete fails the lock is still held here and unlock can be retried.

        Raises:
            NotLockedError: If this process does not hold the lock
            LockTimeoutError: If transient errors outlast the deadline
            PreconditionFailedError: If the lock secret changed since it was resolved
        """
        key = lock_key(name)
        deadline = Deadline(self.lock_timeout if timeout is None else timeout)

        self.table.begin_release(key)
        try:
            for attempt in lock_retrying(deadline.remaining(), base_delay=self.base_delay):
                with attempt:
                    secret = self.storage.resolver.find_key(key, timeout=deadline.remaining())
                    self.storage._delete(key, secret.name, timeout=deadline.remaining())
        except RetryError as e:
            self.table.mark_locked(key)
            raise LockTimeoutError(key, deadline.seconds) from e.last_attempt.exception()
        except BaseException:
            self.table.mark_locked(key)
            raise

        self.table.remove(key)
        logger.info(f"Released lock {key}")

    def _ensure_absent(self, key: str, deadline: Deadline) -> None:
        try:
            self.storage.resolver.find_key(key, timeout=deadline.remaining())
        except KeyNotFoundError:
            return
        raise LockHeldError(key)

    def _create(self, key: str, deadline: Deadline) -> None:
        # Create the secret once; retries only repeat adding its version.
        secret = None
        try:
            for attempt in lock_retrying(deadline.remaining(), base_delay=self.base_delay):
                with attempt:
                    if secret is None:
                        secret = self.storage._create_secret(
                            key, LOCK_TTL, timeout=deadline.remaining()
                        )
                    self.storage._add_version(
                        key, secret.name, LOCK_PAYLOAD, timeout=deadline.remaining()
                    )
        except gcp_exceptions.AlreadyExists as e:
            raise LockHeldError(key, reason="lock was created by another holder") from e
        except RetryError as e:
            raise LockTimeoutError(key, deadline.seconds) from e.last_attempt.exception()
