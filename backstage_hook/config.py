"""
Configuration for backstage-hook.

Settings come from environment variables:

    BACKSTAGE_HOOK_STORAGE       memory (default) or sqlite
    BACKSTAGE_HOOK_DB_PATH       SQLite file (default ~/.backstage-hook/backstage.db)
    BACKSTAGE_HOOK_ARTIFACT_DIR  where command files are written (default: system temp dir)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from backstage_hook.storage import (
    Database,
    MemoryPolicyStorage,
    MemorySessionStorage,
    SqlitePolicyStorage,
    SqliteSessionStorage,
    Store,
)

logger = logging.getLogger(__name__)

STORAGE_KINDS = ("memory", "sqlite")
DEFAULT_DB_PATH = Path.home() / ".backstage-hook" / "backstage.db"


@dataclass
class HookConfig:
    """Runtime settings.

    >>> HookConfig().storage
    'memory'
    """

    storage: str = "memory"
    db_path: Path = DEFAULT_DB_PATH
    artifact_dir: Optional[Path] = None
    app_name: str = "backstage-hook"

    def __post_init__(self):
        if self.storage not in STORAGE_KINDS:
            raise ValueError(
                f"Unknown storage backend {self.storage!r} (expected one of: {', '.join(STORAGE_KINDS)})"
            )
        self.db_path = Path(self.db_path).expanduser()
        if self.artifact_dir is not None:
            self.artifact_dir = Path(self.artifact_dir).expanduser()

    @classmethod
    def from_env(cls) -> "HookConfig":
        """Load configuration from environment variables.

        Raises:
            ValueError: BACKSTAGE_HOOK_STORAGE names an unknown backend.
        """
        artifact_dir = os.getenv("BACKSTAGE_HOOK_ARTIFACT_DIR")
        return cls(
            storage=os.getenv("BACKSTAGE_HOOK_STORAGE", "memory").strip().lower(),
            db_path=Path(os.getenv("BACKSTAGE_HOOK_DB_PATH", str(DEFAULT_DB_PATH))),
            artifact_dir=Path(artifact_dir) if artifact_dir else None,
        )


def build_store(config: HookConfig) -> Store:
    """Create a Store wired to the configured backend for both namespaces."""
    if config.storage == "sqlite":
        db = Database(str(config.db_path))
        logger.debug("Using SQLite storage at %s", config.db_path)
        return Store(SqlitePolicyStorage(db), SqliteSessionStorage(db))
    return Store(MemoryPolicyStorage(), MemorySessionStorage())
