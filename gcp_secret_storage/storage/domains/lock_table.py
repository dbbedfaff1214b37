"""Process-local record of the locks this process is acquiring, holding or releasing."""
import enum
import threading
from typing import Dict, Optional

from .errors import LockHeldError, NotLockedError


class LockState(enum.Enum):
    ACQUIRING = "acquiring"
    LOCKED = "locked"
    RELEASING = "releasing"


class LockTable:
    """
    Lock name -> state. Absence means unlocked.

    Transitions are atomic within the process, which keeps two threads from
    acquiring or releasing the same lock at once. The table says nothing about
    other processes; the remote lock secret does.
    """

    def __init__(self):
        self._states: Dict[str, LockState] = {}
        self._lock = threading.Lock()

    def state(self, name: str) -> Optional[LockState]:
        with self._lock:
            return self._states.get(name)

    def is_held(self, name: str) -> bool:
        return self.state(name) is LockState.LOCKED

    def claim(self, name: str) -> None:
        """Unlocked -> Acquiring. Raises LockHeldError for any existing entry."""
        with self._lock:
            if name in self._states:
                raise LockHeldError(name)
            self._states[name] = LockState.ACQUIRING

    def mark_locked(self, name: str) -> None:
        with self._lock:
            self._states[name] = LockState.LOCKED

    def begin_release(self, name: str) -> None:
        """Locked -> Releasing. Raises NotLockedError unless the lock is held."""
        with self._lock:
            current = self._states.get(name)
            if current is None:
                raise NotLockedError(name)
            if current is not LockState.LOCKED:
                raise NotLockedError(name, reason=f"lock is {current.value}, not held")
            self._states[name] = LockState.RELEASING

    def remove(self, name: str) -> None:
        with self._lock:
            self._states.pop(name, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
