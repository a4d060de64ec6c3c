"""Infrastructure domain — configuration, database layer, store collaborator."""

from explsync.infrastructure.config import (
    ConfigError,
    SyncConfig,
    check_sources,
    load_config,
)
from explsync.infrastructure.db import (
    SCHEMA_VERSION,
    create_schema,
    get_meta,
    open_db,
    set_meta,
    table_counts,
)
from explsync.infrastructure.store import (
    ExplanationStore,
    QuestionRef,
    SqliteStore,
    StoreError,
)

__all__ = [
    "SCHEMA_VERSION",
    "ConfigError",
    "ExplanationStore",
    "QuestionRef",
    "SqliteStore",
    "StoreError",
    "SyncConfig",
    "check_sources",
    "create_schema",
    "get_meta",
    "load_config",
    "open_db",
    "set_meta",
    "table_counts",
]
