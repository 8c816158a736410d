"""
Storage backends for the ledger maps and the admin config singleton.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional
from pathlib import Path

from trustnodes.core.types import (
    AdminConfig,
    Attestation,
    DomainReputation,
    Identity,
    LedgerSnapshot,
    Principal,
)


class StorageBackend(ABC):
    """Abstract key-value store for the four ledger maps."""

    @abstractmethod
    def load_config(self) -> Optional[AdminConfig]:
        pass

    @abstractmethod
    def save_config(self, config: AdminConfig) -> None:
        pass

    @abstractmethod
    def get_identity(self, principal: Principal) -> Optional[Identity]:
        pass

    @abstractmethod
    def put_identity(self, principal: Principal, identity: Identity) -> None:
        pass

    @abstractmethod
    def get_attestation(self, attester: Principal, attestee: Principal) -> Optional[Attestation]:
        pass

    @abstractmethod
    def put_attestation(self, attester: Principal, attestee: Principal, attestation: Attestation) -> None:
        pass

    @abstractmethod
    def get_domain_reputation(self, identity: Principal, domain: str) -> Optional[DomainReputation]:
        pass

    @abstractmethod
    def put_domain_reputation(self, identity: Principal, domain: str, reputation: DomainReputation) -> None:
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """All writes inside the block are applied together or not at all."""

    @abstractmethod
    def snapshot(self) -> LedgerSnapshot:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def latest_height(self) -> int:
        """Highest block height recorded anywhere in the maps (0 when empty)."""
        snap = self.snapshot()
        heights = [0]
        heights += [i.registration_height for i in snap.identities.values()]
        heights += [a.timestamp for a in snap.attestations.values()]
        heights += [d.last_updated for d in snap.domain_reputations.values()]
        return max(heights)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")
        return SQLiteStorage(Path(raw_path).resolve())

    elif uri.startswith("memory://"):
        from .memory import MemoryStorage
        return MemoryStorage()
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "MemoryStorage", "SQLiteStorage"]
