"""Configuration loader for gcp-secret-storage."""
import json
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .models import StorageConfig

logger = logging.getLogger(__name__)

MODULE_NAME = "gcp-secret-manager"
CONFIG_ENV_VAR = "GCP_SECRET_STORAGE_CONFIG"
KNOWN_OPTIONS = {"module", "project_id", "credentials_file", "lock_timeout"}


def default_config_path() -> Path:
    return Path.home() / ".config" / "gcp-secret-storage" / "config.yml"


class ConfigError(Exception):
    """Configuration error exception."""
    pass


class CredentialsFileError(ConfigError):
    """Credentials file is missing or unreadable."""
    pass


class InvalidCredentialsJSONError(CredentialsFileError):
    """Credentials file exists but does not contain JSON."""
    pass


def _get_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve the config file path.

    Priority order:
    1. Explicit path argument
    2. GCP_SECRET_STORAGE_CONFIG environment variable
    3. Default location: ~/.config/gcp-secret-storage/config.yml

    Evaluated on every call, so changing the environment takes effect
    without a restart.

    Raises:
        ConfigError: If the resolved file doesn't exist
    """
    if path:
        config_path = Path(path).expanduser()
        source = "argument"
    elif os.getenv(CONFIG_ENV_VAR):
        config_path = Path(os.environ[CONFIG_ENV_VAR]).expanduser()
        source = CONFIG_ENV_VAR
    else:
        config_path = default_config_path()
        source = "default"

    if not config_path.is_file():
        raise ConfigError(
            f"Configuration file not found at: {config_path} (from {source})\n"
            f"Create it with at least:\n"
            f"storage:\n"
            f"  project_id: your-project-id"
        )

    logger.debug(f"Using config from {source}: {config_path}")
    return config_path


def _parse_shorthand(value: str) -> Dict[str, Any]:
    """Parse ``gcp-secret-manager <project-id>`` into an options dict."""
    parts = value.split()
    if not parts or parts[0] != MODULE_NAME:
        raise ConfigError(f"Unknown storage module '{parts[0] if parts else value}'")
    if len(parts) > 2:
        raise ConfigError(f"Too many arguments for storage '{value}'")
    return {"project_id": parts[1]} if len(parts) == 2 else {}


def validate_credentials_file(credentials_file: Optional[str]) -> None:
    """
    Check that a credentials file can be read and holds valid JSON.

    Raises:
        CredentialsFileError: If the file can't be read
        InvalidCredentialsJSONError: If the contents aren't JSON
    """
    if not credentials_file:
        return

    try:
        with open(credentials_file, 'r') as f:
            contents = f.read()
    except OSError as e:
        raise CredentialsFileError(
            f"Unable to read credentials file {credentials_file}: {e}"
        ) from e

    try:
        json.loads(contents)
    except ValueError as e:
        raise InvalidCredentialsJSONError(
            f"Credentials file {credentials_file} is not valid JSON: {e}"
        ) from e


def parse_config(raw: Any, origin: str = "<config>") -> StorageConfig:
    """
    Validate a parsed YAML document and build a StorageConfig.

    Accepts either the ``storage`` mapping form or the one-line shorthand
    ``storage: gcp-secret-manager <project-id>``. GCP_PROJECT in the
    environment overrides the configured project id.

    Raises:
        ConfigError: If required fields are missing or values are invalid
    """
    if not raw:
        raise ConfigError(f"Config file at {origin} is empty")

    if not isinstance(raw, dict) or 'storage' not in raw:
        raise ConfigError(
            f"Missing 'storage' section in config at {origin}\n"
            f"Required format:\n"
            f"storage:\n"
            f"  project_id: your-project-id\n"
            f"  credentials_file: /path/to/service-account.json  # optional"
        )

    section = raw['storage']
    if isinstance(section, str):
        options = _parse_shorthand(section)
    elif isinstance(section, dict):
        options = dict(section)
    else:
        raise ConfigError(f"'storage' in {origin} must be a mapping or a string")

    unknown = sorted(set(options) - KNOWN_OPTIONS)
    if unknown:
        raise ConfigError(f"Unknown option '{unknown[0]}' in 'storage' section")

    module = options.get('module', MODULE_NAME)
    if module != MODULE_NAME:
        raise ConfigError(
            f"Unsupported storage module: {module}\n"
            f"Only '{MODULE_NAME}' is supported."
        )

    source = "file"
    project_id = options.get('project_id')
    gcp_project_env = os.getenv("GCP_PROJECT")
    if gcp_project_env:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
        project_id = gcp_project_env
        source = "env"

    if not project_id:
        raise ConfigError("project_id must be set in 'storage' or via GCP_PROJECT")

    lock_timeout = options.get('lock_timeout', 30.0)
    try:
        lock_timeout = float(lock_timeout)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"lock_timeout must be a number, got {lock_timeout!r}") from e
    if lock_timeout <= 0:
        raise ConfigError(f"lock_timeout must be positive, got {lock_timeout:g}")

    return StorageConfig(
        project_id=str(project_id),
        credentials_file=options.get('credentials_file'),
        lock_timeout=lock_timeout,
        source=source,
    )


def load_config(path: Optional[Union[str, Path]] = None) -> StorageConfig:
    """
    Load and validate configuration from a YAML file.

    Args:
        path: Config file path; see _get_config_path for the fallbacks

    Returns:
        StorageConfig with project_id, credentials_file and lock_timeout

    Raises:
        ConfigError: If the file is missing, invalid, or names an unusable credentials file
    """
    config_path = _get_config_path(path)

    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}") from e

    config = parse_config(raw, origin=str(config_path))
    validate_credentials_file(config.credentials_file)

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using project ID: {config.project_id}")
    if config.credentials_file:
        logger.debug(f"Using credentials file: {config.credentials_file}")

    return config
