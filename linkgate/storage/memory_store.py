"""In-process credential store for development and tests (fallback when Postgres is not configured)."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from linkgate.storage.base import UNKNOWN_BALANCE, Credential, CredentialStore


class _Partition:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.applied: List[str] = []
        self.rows: List[Dict[str, Any]] = []


MemoryMigration = Tuple[str, Callable[[_Partition], None]]


def _create_linked_credentials(part: _Partition) -> None:
    part.rows = []


def _add_updated_at(part: _Partition) -> None:
    now = time.time()
    for row in part.rows:
        row.setdefault("updated_at", now)


# Same versions as the SQL migrations, applied per partition.
DEFAULT_MIGRATIONS: Tuple[MemoryMigration, ...] = (
    ("0001_linked_credentials", _create_linked_credentials),
    ("0002_credential_updated_at", _add_updated_at),
)


class MemoryCredentialStore(CredentialStore):
    """
    One partition per owner id, each guarded by its own lock. Only writes
    create a partition, so lookups for identities that never linked a key
    leave nothing behind.

    Pending migrations run under the partition lock on first access, so any
    concurrent operation on the same partition waits for them to finish.
    """

    def __init__(self, migrations: Optional[Iterable[MemoryMigration]] = None) -> None:
        self._migrations = tuple(migrations) if migrations is not None else DEFAULT_MIGRATIONS
        self._partitions: Dict[str, _Partition] = {}
        self._partitions_lock = threading.Lock()

    def _migrate(self, part: _Partition) -> None:
        for version, step in self._migrations:
            if version in part.applied:
                continue
            step(part)
            part.applied.append(version)

    @contextmanager
    def _partition(self, owner_id: str, *, create: bool = False) -> Iterator[Optional[_Partition]]:
        """
        Lock and migrate the owner's partition. Only writes create one; reads
        and deletes of an owner that never stored anything yield None.
        """
        with self._partitions_lock:
            part = self._partitions.get(owner_id)
            if part is None and create:
                part = self._partitions[owner_id] = _Partition()
        if part is None:
            yield None
            return
        with part.lock:
            self._migrate(part)
            yield part

    def get(self, owner_id: str) -> Optional[Credential]:
        with self._partition(owner_id) as part:
            if part is None or not part.rows:
                return None
            row = part.rows[0]
            return Credential(owner_id=owner_id, access_token=row["access_token"], balance=row["balance"])

    def exists(self, owner_id: str) -> bool:
        with self._partition(owner_id) as part:
            return part is not None and bool(part.rows)

    def set(self, owner_id: str, access_token: str, balance: int = UNKNOWN_BALANCE) -> None:
        if not access_token:
            raise ValueError("access_token is required")
        with self._partition(owner_id, create=True) as part:
            part.rows.clear()
            part.rows.append({"access_token": access_token, "balance": int(balance), "updated_at": time.time()})

    def update_balance(self, owner_id: str, balance: int) -> bool:
        with self._partition(owner_id) as part:
            if part is None or not part.rows:
                return False
            for row in part.rows:
                row["balance"] = int(balance)
                row["updated_at"] = time.time()
            return True

    def clear(self, owner_id: str) -> None:
        with self._partition(owner_id) as part:
            if part is not None:
                part.rows.clear()
