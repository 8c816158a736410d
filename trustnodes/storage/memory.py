import logging
from contextlib import contextmanager
from typing import Dict, Optional

from trustnodes.core.types import (
    AdminConfig,
    Attestation,
    AttestationKey,
    DomainKey,
    DomainReputation,
    Identity,
    LedgerSnapshot,
    Principal,
)
from . import StorageBackend

logger = logging.getLogger(__name__)


class MemoryStorage(StorageBackend):
    """Process-local dict storage; used by tests and throwaway ledgers."""

    def __init__(self):
        self._config: Optional[AdminConfig] = None
        self._identities: Dict[Principal, Identity] = {}
        self._attestations: Dict[AttestationKey, Attestation] = {}
        self._domains: Dict[DomainKey, DomainReputation] = {}
        self._closed = False
        self._in_transaction = False

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Storage is closed")

    def load_config(self) -> Optional[AdminConfig]:
        self._check_open()
        return self._config

    def save_config(self, config: AdminConfig) -> None:
        self._check_open()
        self._config = config

    def get_identity(self, principal: Principal) -> Optional[Identity]:
        self._check_open()
        return self._identities.get(principal)

    def put_identity(self, principal: Principal, identity: Identity) -> None:
        self._check_open()
        self._identities[principal] = identity

    def get_attestation(self, attester: Principal, attestee: Principal) -> Optional[Attestation]:
        self._check_open()
        return self._attestations.get((attester, attestee))

    def put_attestation(self, attester: Principal, attestee: Principal, attestation: Attestation) -> None:
        self._check_open()
        self._attestations[(attester, attestee)] = attestation

    def get_domain_reputation(self, identity: Principal, domain: str) -> Optional[DomainReputation]:
        self._check_open()
        return self._domains.get((identity, domain))

    def put_domain_reputation(self, identity: Principal, domain: str, reputation: DomainReputation) -> None:
        self._check_open()
        self._domains[(identity, domain)] = reputation

    @contextmanager
    def transaction(self):
        self._check_open()
        if self._in_transaction:
            raise RuntimeError("Nested transactions are not supported")
        # records are frozen, so shallow copies are enough to roll back
        saved = (self._config, dict(self._identities), dict(self._attestations), dict(self._domains))
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._config, self._identities, self._attestations, self._domains = saved
            logger.debug("Rolled back in-memory transaction")
            raise
        finally:
            self._in_transaction = False

    def snapshot(self) -> LedgerSnapshot:
        self._check_open()
        return LedgerSnapshot(
            config=self._config,
            identities=dict(self._identities),
            attestations=dict(self._attestations),
            domain_reputations=dict(self._domains),
        )

    def close(self) -> None:
        self._closed = True
