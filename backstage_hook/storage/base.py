"""Backend contract for persistent key/value data.

Two namespaces are stored: remembered decisions (keyed by action
fingerprint) and sessions (keyed by session id). A backend implements
``get``/``store`` for one record type. Storing the empty record, or
None, deletes the key. Only the record with every field at its
default is empty. Reading a missing key returns the empty record
and False.

To add a backend (file, another database), implement ``PolicyStorage``
and ``SessionStorage``. ``Store`` in ``storage.store`` is the interface
the rest of the package uses; backends should not re-implement it.
"""

from datetime import datetime
from typing import Optional, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict


class StoredPolicy(BaseModel):
    """Storage form of a decision: its id and when it was made.

    >>> StoredPolicy().is_empty
    True
    >>> StoredPolicy(policy_id="ALLOW_ALWAYS").is_empty
    False
    >>> StoredPolicy(timestamp=datetime(2024, 1, 1)).is_empty
    False
    """

    model_config = ConfigDict(frozen=True)

    policy_id: str = ""
    timestamp: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self == StoredPolicy()


class StoredSession(BaseModel):
    """Storage form of a session, keyed by session id."""

    model_config = ConfigDict(frozen=True)

    secret: str = ""
    created: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self == StoredSession()


V = TypeVar("V")


class KeyValueStorage(Protocol[V]):
    """Thread-safe key/value table with empty-as-delete semantics."""

    def get(self, key: str) -> tuple[V, bool]:
        """Return the value and True, or the empty record and False."""
        ...

    def store(self, key: str, value: Optional[V]) -> None:
        """Set the value. None or the empty record removes the key."""
        ...


PolicyStorage = KeyValueStorage[StoredPolicy]
SessionStorage = KeyValueStorage[StoredSession]


def is_deletion(value: Optional[StoredPolicy | StoredSession]) -> bool:
    return value is None or value.is_empty
