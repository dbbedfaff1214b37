"""Build a ready-to-use storage from configuration."""
import logging
from pathlib import Path
from typing import Optional, Union

from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

from ..domains.config_loader import load_config, validate_credentials_file
from ..domains.errors import StorageError
from ..domains.gcp_client import GCPSecretClient
from ..domains.models import StorageConfig
from .storage_operations import SecretManagerStorage

logger = logging.getLogger(__name__)

MODULE_ID = "caddy.storage.gcp-secret-manager"


def open_storage(
    config: StorageConfig,
    client: Optional[secretmanager.SecretManagerServiceClient] = None,
) -> SecretManagerStorage:
    """
    Validate credentials and construct a SecretManagerStorage.

    Args:
        config: Validated configuration
        client: Pre-built Secret Manager client; built from config if omitted

    Returns:
        SecretManagerStorage ready for use. Close it (or use it as a context
        manager) to release the client transport.

    Raises:
        ConfigError: If the credentials file is unreadable or not JSON
        StorageError: If the Secret Manager client can't be created
    """
    validate_credentials_file(config.credentials_file)
    return _build_storage(config, client)


def _build_storage(
    config: StorageConfig,
    client: Optional[secretmanager.SecretManagerServiceClient] = None,
) -> SecretManagerStorage:
    gcp_client = GCPSecretClient(
        config.project_id, credentials_file=config.credentials_file, client=client
    )
    if client is None:
        try:
            gcp_client.client  # build now so setup errors surface here
        except (auth_exceptions.GoogleAuthError, OSError, ValueError) as e:
            raise StorageError(f"unable to setup GCP client: {e}") from e

    logger.info(f"Opened {MODULE_ID} storage for project {config.project_id}")
    return SecretManagerStorage(gcp_client, lock_timeout=config.lock_timeout)


def open_storage_from_file(path: Optional[Union[str, Path]] = None) -> SecretManagerStorage:
    """
    Load configuration (see load_config for path fallbacks) and open the storage.

    load_config already checks the credentials file.
    """
    return _build_storage(load_config(path))
