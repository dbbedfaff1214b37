"""Exception hierarchy for secret-backed storage and locking.

Exception hierarchy:
    StorageError (base)
    ├── KeyNotFoundError - no secret exists for the key
    ├── KeyLookupError - listing secrets failed for a reason other than absence
    ├── PreconditionFailedError - delete rejected because the etag is stale
    ├── TransientError - retryable backend failure raised by this package
    └── LockError
        ├── LockHeldError - lock is already held (locally or remotely)
        ├── NotLockedError - unlock called without a matching lock
        └── LockTimeoutError - retry deadline exhausted during lock/unlock

Payloads are never included in messages, only key names.
"""
from typing import Optional


class StorageError(Exception):
    """Base exception for all storage errors."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key
        self.message = message

    def __str__(self) -> str:
        if self.key:
            return f"{self.message} (key: {self.key})"
        return self.message


class KeyNotFoundError(StorageError):
    """Raised when no secret matches a key."""

    def __init__(self, key: str):
        super().__init__("unable to find key", key=key)


class KeyLookupError(StorageError):
    """Raised when resolving a key fails for a backend or transport reason."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"unable to lookup key: {reason}", key=key)


class PreconditionFailedError(StorageError):
    """Raised when a conditional delete finds a newer version than the cached etag."""

    def __init__(self, key: str, etag: Optional[str] = None):
        super().__init__(f"etag precondition failed (etag: {etag or '<none>'})", key=key)
        self.etag = etag


class TransientError(StorageError):
    """Retryable failure; retried only by lock and unlock."""
    pass


class LockError(StorageError):
    """Base exception for lock failures."""
    pass


class LockHeldError(LockError):
    """Raised when a lock already exists. There is no waiting."""

    def __init__(self, name: str, reason: str = "lock already exists"):
        super().__init__(reason, key=name)


class NotLockedError(LockError):
    """Raised when unlock is called before a successful lock in this process."""

    def __init__(self, name: str, reason: str = "called unlock before lock"):
        super().__init__(reason, key=name)


class LockTimeoutError(LockError):
    """Raised when the retry deadline runs out while creating or deleting a lock."""

    def __init__(self, name: str, timeout: float):
        super().__init__(f"gave up after {timeout:g}s of retries", key=name)
        self.timeout = timeout
