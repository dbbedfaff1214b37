"""Domain models for secret-backed storage."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class KeyInfo:
    """Metadata about a stored key, as returned by stat."""
    key: str
    modified: datetime
    size: int = 0
    is_terminal: bool = True  # flat keyspace, never a directory


@dataclass
class StorageConfig:
    """Validated storage configuration."""
    project_id: str
    credentials_file: Optional[str] = None
    lock_timeout: float = 30.0
    source: str = "file"  # "file" or "env" (project id overridden by GCP_PROJECT)
