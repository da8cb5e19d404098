"""
Schema migrations for the Postgres credential store.

Migrations are the bundled `migrations/NNNN_<name>.sql` files, applied in
filename order. Each one runs in its own transaction together with its row in
`schema_migrations`, which records a SHA-256 of the file. An applied file that
was edited afterwards is refused rather than re-run.

`SchemaMigrator` is the single entry point: the store calls `ensure()` before
its first query, and `python main.py --migrate` calls `run()` directly.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from linkgate.storage.config import build_postgres_dsn, load_storage_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Session advisory lock shared by every migrator of this schema ("lnkgate").
MIGRATION_LOCK_KEY = 0x6C6E6B67617465

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version text PRIMARY KEY,
  checksum text NOT NULL,
  applied_at timestamptz NOT NULL DEFAULT now()
);
"""


class ChecksumMismatch(RuntimeError):
    pass


@dataclass(frozen=True)
class SqlMigration:
    version: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def bundled_migrations() -> List[SqlMigration]:
    return [
        SqlMigration(version=p.stem, sql=p.read_text(encoding="utf-8")) for p in sorted(MIGRATIONS_DIR.glob("*.sql"))
    ]


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


class SchemaMigrator:
    """Brings one database up to the bundled schema."""

    def __init__(self, dsn: str, migrations: Optional[Iterable[SqlMigration]] = None) -> None:
        self._dsn = dsn
        self._migrations = list(migrations) if migrations is not None else bundled_migrations()
        self._ready = False
        self._lock = threading.Lock()

    def ensure(self) -> None:
        """
        Migrate once per process. Threads arriving while a run is in progress
        wait for it; a failed run is retried by the next caller.
        """
        if self._ready:
            return
        with self._lock:
            if self._ready:
                return
            self.run()
            self._ready = True

    def run(self) -> List[str]:
        """Apply whatever is pending and return the versions applied by this call."""
        with _connect(self._dsn) as conn:
            # Other processes queue here; the next one in finds nothing left to do.
            conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
            try:
                applied = self._apply_pending(conn)
            finally:
                conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))
        if applied:
            logger.info("Credential schema: applied %s", ", ".join(applied))
        else:
            logger.debug("Credential schema up to date (%d migrations)", len(self._migrations))
        return applied

    def _apply_pending(self, conn) -> List[str]:
        conn.execute(_LEDGER_DDL)
        recorded = {str(v): str(c) for v, c in conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()}

        applied: List[str] = []
        for mig in self._migrations:
            known = recorded.get(mig.version)
            if known == mig.checksum:
                continue
            if known is not None:
                raise ChecksumMismatch(
                    f"Migration checksum mismatch for {mig.version}: db={known[:12]} file={mig.checksum[:12]}"
                )
            with conn.transaction():
                conn.execute(mig.sql)
                conn.execute(
                    "INSERT INTO schema_migrations (version, checksum) VALUES (%s, %s);",
                    (mig.version, mig.checksum),
                )
            applied.append(mig.version)
        return applied


def main() -> int:
    dsn = build_postgres_dsn(load_storage_config())
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).")
        return 2
    applied = SchemaMigrator(dsn).run()
    print(f"Applied {len(applied)} migration(s): {', '.join(applied)}" if applied else "No pending migrations.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
