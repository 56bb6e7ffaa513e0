"""Persistent data for backstage-hook: remembered decisions and sessions.

Build a ``Store`` from one backend per namespace::

    Store(MemoryPolicyStorage(), MemorySessionStorage())

    db = Database("~/.backstage-hook/backstage.db")
    Store(SqlitePolicyStorage(db), SqliteSessionStorage(db))
"""

from backstage_hook.storage.base import (
    KeyValueStorage,
    PolicyStorage,
    SessionStorage,
    StoredPolicy,
    StoredSession,
)
from backstage_hook.storage.memory import MemoryPolicyStorage, MemorySessionStorage
from backstage_hook.storage.sqlite import Database, SqlitePolicyStorage, SqliteSessionStorage
from backstage_hook.storage.store import Store

__all__ = [
    "Database",
    "KeyValueStorage",
    "MemoryPolicyStorage",
    "MemorySessionStorage",
    "PolicyStorage",
    "SessionStorage",
    "SqlitePolicyStorage",
    "SqliteSessionStorage",
    "Store",
    "StoredPolicy",
    "StoredSession",
]
