from __future__ import annotations

import logging
from typing import Optional

from linkgate.storage.base import Credential, CredentialPartition, CredentialStore
from linkgate.storage.config import StorageConfig, build_postgres_dsn, load_storage_config

logger = logging.getLogger(__name__)

__all__ = ["Credential", "CredentialPartition", "CredentialStore", "build_credential_store"]


def build_credential_store(cfg: Optional[StorageConfig] = None) -> CredentialStore:
    """Postgres when configured; otherwise an in-process store that does not survive restarts."""
    cfg = cfg or load_storage_config()
    if cfg.backend == "postgres":
        dsn = build_postgres_dsn(cfg)
        if not dsn:
            raise ValueError("CREDENTIAL_STORE=postgres requires POSTGRES_DSN or POSTGRES_* env vars")
        from linkgate.storage.postgres_store import PostgresCredentialStore

        return PostgresCredentialStore(dsn)

    from linkgate.storage.memory_store import MemoryCredentialStore

    logger.warning("Credential store: using in-memory backend; linked keys are lost on restart")
    return MemoryCredentialStore()
