"""PostgreSQL-backed credential store (one row per identity)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from linkgate.storage.base import UNKNOWN_BALANCE, Credential, CredentialStore
from linkgate.storage.migrate import SchemaMigrator, SqlMigration

logger = logging.getLogger(__name__)


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


class PostgresCredentialStore(CredentialStore):
    """
    Every operation runs in its own transaction holding a transaction-scoped
    advisory lock derived from the owner id, so operations on one identity are
    linearized across workers and processes while different identities never
    contend.
    """

    def __init__(self, dsn: str, *, migrations: Optional[Iterable[SqlMigration]] = None) -> None:
        self._dsn = dsn
        self._migrator = SchemaMigrator(dsn, migrations)

    @contextmanager
    def _partition(self, owner_id: str) -> Iterator[object]:
        self._migrator.ensure()
        with _connect(self._dsn) as conn:
            with conn.transaction():
                conn.execute("SELECT pg_advisory_xact_lock(hashtextextended(%s, 0));", (owner_id,))
                yield conn

    def get(self, owner_id: str) -> Optional[Credential]:
        with self._partition(owner_id) as conn:
            row = conn.execute(
                "SELECT access_token, balance FROM linked_credentials WHERE owner_id = %s;",
                (owner_id,),
            ).fetchone()
        if not row:
            return None
        access_token, balance = row
        return Credential(
            owner_id=owner_id,
            access_token=str(access_token),
            balance=int(balance) if balance is not None else UNKNOWN_BALANCE,
        )

    def exists(self, owner_id: str) -> bool:
        with self._partition(owner_id) as conn:
            row = conn.execute("SELECT 1 FROM linked_credentials WHERE owner_id = %s;", (owner_id,)).fetchone()
        return row is not None

    def set(self, owner_id: str, access_token: str, balance: int = UNKNOWN_BALANCE) -> None:
        if not access_token:
            raise ValueError("access_token is required")
        with self._partition(owner_id) as conn:
            conn.execute("DELETE FROM linked_credentials WHERE owner_id = %s;", (owner_id,))
            conn.execute(
                """
                INSERT INTO linked_credentials (owner_id, access_token, balance, updated_at)
                VALUES (%s, %s, %s, now());
                """,
                (owner_id, access_token, int(balance)),
            )

    def update_balance(self, owner_id: str, balance: int) -> bool:
        with self._partition(owner_id) as conn:
            cur = conn.execute(
                "UPDATE linked_credentials SET balance = %s, updated_at = now() WHERE owner_id = %s;",
                (int(balance), owner_id),
            )
            return (cur.rowcount or 0) > 0

    def clear(self, owner_id: str) -> None:
        with self._partition(owner_id) as conn:
            conn.execute("DELETE FROM linked_credentials WHERE owner_id = %s;", (owner_id,))
