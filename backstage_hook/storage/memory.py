"""In-memory storage backends. Data does not survive a restart."""

import threading
from typing import Generic, Optional, TypeVar

from backstage_hook.storage.base import StoredPolicy, StoredSession, is_deletion

V = TypeVar("V", StoredPolicy, StoredSession)


class _MemoryStorage(Generic[V]):
    """Dict guarded by a single lock.

    >>> s = MemoryPolicyStorage()
    >>> s.get("missing")
    (StoredPolicy(policy_id='', timestamp=None), False)
    """

    _empty: V

    def __init__(self):
        self._lock = threading.Lock()
        self._data: dict[str, V] = {}

    def get(self, key: str) -> tuple[V, bool]:
        with self._lock:
            value = self._data.get(key)
        if value is None:
            return self._empty, False
        return value, True

    def store(self, key: str, value: Optional[V]) -> None:
        with self._lock:
            if is_deletion(value):
                self._data.pop(key, None)
                return
            self._data[key] = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class MemoryPolicyStorage(_MemoryStorage[StoredPolicy]):
    _empty = StoredPolicy()


class MemorySessionStorage(_MemoryStorage[StoredSession]):
    _empty = StoredSession()
