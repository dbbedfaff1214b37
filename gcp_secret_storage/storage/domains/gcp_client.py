"""GCP Secret Manager client wrapper."""
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from google.cloud import secretmanager

logger = logging.getLogger(__name__)

LATEST_VERSION = "latest"


class GCPSecretClient:
    """
    Thin wrapper around the Secret Manager client, scoped to one project.

    Every method maps to exactly one Secret Manager RPC and lets the
    google-api-core exceptions through unchanged. ``timeout`` is forwarded to
    the RPC when given; otherwise the client library defaults apply.
    """

    def __init__(
        self,
        project_id: str,
        credentials_file: Optional[str] = None,
        client: Optional[secretmanager.SecretManagerServiceClient] = None,
    ):
        self.project_id = project_id
        self.credentials_file = credentials_file
        self._client = client

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            if self.credentials_file:
                logger.debug(f"Using service account credentials from {self.credentials_file}")
                self._client = secretmanager.SecretManagerServiceClient.from_service_account_json(
                    self.credentials_file
                )
            else:
                self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}"

    def secret_path(self, key: str) -> str:
        return f"{self.parent}/secrets/{key}"

    @staticmethod
    def version_path(secret_path: str, version: str = LATEST_VERSION) -> str:
        return f"{secret_path}/versions/{version}"

    @staticmethod
    def _call_kwargs(timeout: Optional[float]) -> Dict[str, Any]:
        return {} if timeout is None else {"timeout": timeout}

    def create_secret(
        self,
        secret_id: str,
        ttl: Optional[timedelta] = None,
        timeout: Optional[float] = None,
    ) -> secretmanager.Secret:
        """
        Create an empty secret with automatic replication.

        Args:
            secret_id: Secret id (the key)
            ttl: Expiration relative to creation, or None for no expiration
            timeout: Per-call timeout in seconds

        Returns:
            The created Secret

        Raises:
            google.api_core.exceptions.AlreadyExists: If the secret already exists
        """
        secret: Dict[str, Any] = {"replication": {"automatic": {}}}
        if ttl is not None:
            secret["ttl"] = ttl

        return self.client.create_secret(
            request={"parent": self.parent, "secret_id": secret_id, "secret": secret},
            **self._call_kwargs(timeout),
        )

    def add_secret_version(
        self, secret_path: str, payload: bytes, timeout: Optional[float] = None
    ) -> secretmanager.SecretVersion:
        return self.client.add_secret_version(
            request={"parent": secret_path, "payload": {"data": payload}},
            **self._call_kwargs(timeout),
        )

    def list_secrets(
        self, filter_expr: Optional[str] = None, timeout: Optional[float] = None
    ) -> Iterable[secretmanager.Secret]:
        """
        List secrets under the project.

        Returns a pager that fetches pages on demand while it is iterated, so
        transport errors can surface mid-iteration.
        """
        request: Dict[str, Any] = {"parent": self.parent}
        if filter_expr:
            request["filter"] = filter_expr
        return self.client.list_secrets(request=request, **self._call_kwargs(timeout))

    def get_secret_version(
        self, version_path: str, timeout: Optional[float] = None
    ) -> secretmanager.SecretVersion:
        return self.client.get_secret_version(
            request={"name": version_path}, **self._call_kwargs(timeout)
        )

    def access_secret_version(self, version_path: str, timeout: Optional[float] = None) -> bytes:
        response = self.client.access_secret_version(
            request={"name": version_path}, **self._call_kwargs(timeout)
        )
        return response.payload.data

    def delete_secret(
        self, secret_path: str, etag: Optional[str] = None, timeout: Optional[float] = None
    ) -> None:
        """
        Delete a secret and all of its versions.

        Args:
            secret_path: Full resource path of the secret
            etag: If set, the delete only succeeds while the secret's etag matches
            timeout: Per-call timeout in seconds

        Raises:
            google.api_core.exceptions.FailedPrecondition: If the etag no longer matches
        """
        request = {"name": secret_path}
        if etag:
            request["etag"] = etag
        self.client.delete_secret(request=request, **self._call_kwargs(timeout))

    def close(self) -> None:
        """Close the underlying transport if a client was ever created."""
        if self._client is not None:
            self._client.transport.close()
