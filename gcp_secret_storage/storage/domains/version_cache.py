"""Process-local cache of the last etag observed for each key."""
import logging
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class VersionCache:
    """
    Map of key -> last-observed etag.

    Entries are written by key resolution and by writes, and read only to
    build the etag precondition of a conditional delete. There is no eviction
    and no invalidation on changes made by other processes, so an entry may be
    stale; the backend rejects a delete made with a stale etag.
    """

    def __init__(self):
        self._etags: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._etags.get(key)

    def set(self, key: str, etag: str) -> None:
        with self._lock:
            self._etags[key] = etag
        logger.debug(f"Cached etag for {key}: {etag}")

    def discard(self, key: str) -> None:
        with self._lock:
            self._etags.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._etags

    def __len__(self) -> int:
        with self._lock:
            return len(self._etags)
