"""Resolve a key name to its Secret Manager secret."""
import logging
from typing import Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from .errors import KeyLookupError, KeyNotFoundError
from .gcp_client import GCPSecretClient
from .version_cache import VersionCache

logger = logging.getLogger(__name__)


def leaf_name(secret_name: str) -> str:
    """Strip ``projects/<p>/secrets/`` from a resource path."""
    return secret_name.rsplit("/", 1)[-1]


class KeyResolver:
    """Find the secret backing a key and record its etag."""

    def __init__(self, client: GCPSecretClient, versions: VersionCache):
        self.client = client
        self.versions = versions

    def find_key(self, name: str, timeout: Optional[float] = None) -> secretmanager.Secret:
        """
        Find the secret whose id is exactly ``name``.

        The server-side ``name:`` filter is a substring match, so results are
        checked against the leaf of the resource path. Listing is eventually
        consistent; a secret created moments ago may not be returned yet.

        Args:
            name: Key name
            timeout: Per-call timeout in seconds

        Returns:
            The matching Secret

        Raises:
            KeyNotFoundError: If no secret matches
            KeyLookupError: If listing fails for any other reason
        """
        try:
            for secret in self.client.list_secrets(f"name:{name}", timeout=timeout):
                if leaf_name(secret.name) == name:
                    self.versions.set(name, secret.etag)
                    return secret
        except gcp_exceptions.GoogleAPIError as e:
            raise KeyLookupError(name, str(e)) from e

        logger.debug(f"No secret matches key {name}")
        raise KeyNotFoundError(name)
