from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

UNKNOWN_BALANCE = -1


@dataclass(frozen=True)
class Credential:
    """The single linked third-party key of one identity."""

    owner_id: str
    access_token: str
    balance: int = UNKNOWN_BALANCE

    def __repr__(self) -> str:
        # Never print the key.
        return f"Credential(owner_id={self.owner_id!r}, balance={self.balance})"


class CredentialStore(ABC):
    """
    Per-identity credential storage.

    Implementations serialize all operations for one owner id and apply pending
    schema migrations before the first operation on a partition runs.
    """

    @abstractmethod
    def get(self, owner_id: str) -> Optional[Credential]: ...

    @abstractmethod
    def exists(self, owner_id: str) -> bool: ...

    @abstractmethod
    def set(self, owner_id: str, access_token: str, balance: int = UNKNOWN_BALANCE) -> None: ...

    @abstractmethod
    def update_balance(self, owner_id: str, balance: int) -> bool: ...

    @abstractmethod
    def clear(self, owner_id: str) -> None: ...

    def for_identity(self, owner_id: str) -> "CredentialPartition":
        if not owner_id:
            raise ValueError("owner_id is required")
        return CredentialPartition(self, owner_id)


class CredentialPartition:
    """Store operations bound to exactly one identity."""

    def __init__(self, store: CredentialStore, owner_id: str) -> None:
        self._store = store
        self.owner_id = owner_id

    def get(self) -> Optional[Credential]:
        return self._store.get(self.owner_id)

    def exists(self) -> bool:
        return self._store.exists(self.owner_id)

    def set(self, access_token: str, balance: int = UNKNOWN_BALANCE) -> None:
        self._store.set(self.owner_id, access_token, balance)

    def update_balance(self, balance: int) -> bool:
        return self._store.update_balance(self.owner_id, balance)

    def clear(self) -> None:
        self._store.clear(self.owner_id)
