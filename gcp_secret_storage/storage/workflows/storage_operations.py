"""Key/value storage on top of GCP Secret Manager."""
import logging
from datetime import timedelta
from typing import List, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from ..domains.errors import PreconditionFailedError
from ..domains.gcp_client import GCPSecretClient
from ..domains.key_resolver import KeyResolver, leaf_name
from ..domains.models import KeyInfo
from ..domains.version_cache import VersionCache
from .lock_operations import LockManager

logger = logging.getLogger(__name__)

# Any non-zero ttl passed to store becomes this expiration. Callers have
# relied on the fixed value, so the requested duration is not honoured.
SECRET_EXPIRATION = timedelta(minutes=1)


class SecretManagerStorage:
    """
    Store certificate material as secrets, one secret per key.

    Keys are flat: ``projects/<project>/secrets/<key>``. Each store creates a
    new secret with a single version, so storing an existing key fails with
    the backend's AlreadyExists error. Only lock and unlock retry; every other
    operation surfaces backend errors directly.

    Example:
        >>> with SecretManagerStorage(GCPSecretClient("my-project")) as storage:
        ...     storage.store("example-com-crt", pem_bytes)
        ...     storage.load("example-com-crt")
    """

    def __init__(self, client: GCPSecretClient, lock_timeout: float = 30.0):
        self.client = client
        self.versions = VersionCache()
        self.resolver = KeyResolver(client, self.versions)
        self.locks = LockManager(self, lock_timeout=lock_timeout)

    @property
    def project_id(self) -> str:
        return self.client.project_id

    def _create_secret(
        self, key: str, ttl: Optional[timedelta], timeout: Optional[float] = None
    ) -> secretmanager.Secret:
        expiration = None
        if ttl:
            if ttl != SECRET_EXPIRATION:
                logger.debug(f"Requested ttl {ttl} for {key}, using {SECRET_EXPIRATION}")
            expiration = SECRET_EXPIRATION
        return self.client.create_secret(key, ttl=expiration, timeout=timeout)

    def _add_version(
        self, key: str, secret_name: str, value: bytes, timeout: Optional[float] = None
    ) -> None:
        version = self.client.add_secret_version(secret_name, value, timeout=timeout)
        self.versions.set(key, version.etag)
        logger.info(f"Stored {key} ({len(value)} bytes)")

    def store(
        self,
        key: str,
        value: bytes,
        ttl: Optional[timedelta] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Create a secret for ``key`` holding ``value``.

        Args:
            key: Secret id
            value: Payload, stored as-is
            ttl: Any non-zero value makes the secret expire SECRET_EXPIRATION
                after creation, whatever duration was asked for. None or zero
                means no expiration.
            timeout: Per-call deadline in seconds

        Raises:
            google.api_core.exceptions.AlreadyExists: If the key is already stored
        """
        secret = self._create_secret(key, ttl, timeout=timeout)
        self._add_version(key, secret.name, value, timeout=timeout)

    def load(self, key: str, timeout: Optional[float] = None) -> bytes:
        """
        Return the payload of the latest version of ``key``.

        Raises:
            KeyNotFoundError: If no secret exists for the key
        """
        secret = self.resolver.find_key(key, timeout=timeout)
        latest = self._read_latest(secret.name, timeout=timeout)
        return self.client.access_secret_version(latest.name, timeout=timeout)

    def delete(self, key: str, timeout: Optional[float] = None) -> None:
        """
        Delete ``key`` if it has not changed since it was last observed.

        Raises:
            KeyNotFoundError: If no secret exists for the key
            PreconditionFailedError: If the secret changed after its etag was cached
        """
        secret = self.resolver.find_key(key, timeout=timeout)
        self._delete(key, secret.name, timeout=timeout)

    def _delete(self, key: str, secret_name: str, timeout: Optional[float] = None) -> None:
        etag = self.versions.get(key)
        try:
            self.client.delete_secret(secret_name, etag=etag, timeout=timeout)
        except (gcp_exceptions.FailedPrecondition, gcp_exceptions.Aborted) as e:
            raise PreconditionFailedError(key, etag) from e

        self.versions.discard(key)
        logger.info(f"Deleted {key}")

    def exists(self, key: str, timeout: Optional[float] = None) -> bool:
        """Return True if a secret exists for ``key``. Lookup failures count as absent."""
        try:
            self.resolver.find_key(key, timeout=timeout)
        except Exception as e:
            logger.debug(f"Treating {key} as absent: {e}")
            return False
        return True

    def list(self, prefix: str = "", recursive: bool = False, timeout: Optional[float] = None) -> List[str]:
        """
        List keys whose secret name matches ``prefix``.

        Keys come back in the backend's enumeration order. ``recursive`` is
        accepted for interface compatibility; the keyspace is flat.
        """
        filter_expr = f"name:{prefix}" if prefix else None
        return [
            leaf_name(secret.name)
            for secret in self.client.list_secrets(filter_expr, timeout=timeout)
        ]

    def stat(self, key: str, timeout: Optional[float] = None) -> KeyInfo:
        """
        Describe ``key`` using its latest version.

        Raises:
            KeyNotFoundError: If no secret exists for the key
        """
        secret = self.resolver.find_key(key, timeout=timeout)
        latest = self._read_latest(secret.name, timeout=timeout)
        return KeyInfo(key=leaf_name(secret.name), modified=latest.create_time, is_terminal=True)

    def lock(self, name: str, timeout: Optional[float] = None) -> None:
        self.locks.lock(name, timeout=timeout)

    def unlock(self, name: str, timeout: Optional[float] = None) -> None:
        self.locks.unlock(name, timeout=timeout)

    def _read_latest(self, secret_name: str, timeout: Optional[float] = None):
        return self.client.get_secret_version(
            GCPSecretClient.version_path(secret_name), timeout=timeout
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SecretManagerStorage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
