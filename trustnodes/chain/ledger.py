# trustnodes/chain/ledger.py
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Union

from trustnodes.contract.admin import AdminController
from trustnodes.contract.attestation import AttestationLedger
from trustnodes.contract.domain import DomainReputationLedger
from trustnodes.contract.identity import IdentityRegistry
from trustnodes.core.canon import state_hash
from trustnodes.core.errors import HeightRegressionError, LedgerError
from trustnodes.core.types import (
    DEFAULT_VERIFICATION_THRESHOLD,
    AdminConfig,
    Attestation,
    CallResult,
    DomainReputation,
    Identity,
    LedgerSnapshot,
    Principal,
)
from trustnodes.core.validation import check_principal, check_uint
from trustnodes.storage import MemoryStorage, StorageBackend, create_storage
from trustnodes.verify.verifier import LedgerVerifier, VerificationResult

logger = logging.getLogger(__name__)


@dataclass
class TrustLedger:
    """
    A single ledger instance: the four contract components over one store.

    Every call runs under one lock, and every mutating call runs inside a
    storage transaction, so calls are applied one at a time and a rejected
    call leaves no trace.  The host supplies the caller and the block
    height; when no height is given the last applied height is reused.

    `admin` and `verification_threshold` only seed genesis of an empty
    store; the live values are in `config`.
    """
    storage: Optional[Union[StorageBackend, str]] = None
    admin: Optional[Principal] = None
    verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD
    block_height: int = field(default=0, init=False)

    def __post_init__(self):
        if self.storage is None:
            self.storage = MemoryStorage()
        elif isinstance(self.storage, str):
            stripped = self.storage.strip()
            if stripped.startswith(("sqlite://", "memory://")):
                self.storage = create_storage(stripped)
            elif stripped:
                # plain file path -> SQLite database
                self.storage = create_storage(f"sqlite://{stripped}")
            else:
                self.storage = MemoryStorage()

        self._lock = threading.RLock()
        self.admin_controller = AdminController(self.storage)
        self.identities = IdentityRegistry(self.storage, self.admin_controller)
        self.attestations = AttestationLedger(self.storage, self.identities, self.admin_controller)
        self.domains = DomainReputationLedger(self.storage, self.attestations)

        if self.admin is not None:
            self.genesis(self.admin, self.verification_threshold)

        self.block_height = self.storage.latest_height()

    @property
    def initialized(self) -> bool:
        with self._lock:
            return self.admin_controller.initialized

    def genesis(self, admin: Principal, verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD) -> AdminConfig:
        """Deploy the ledger: first call writes the admin config, later calls return it unchanged."""
        with self._lock:
            with self.storage.transaction():
                return self.admin_controller.genesis(admin, verification_threshold)

    # ── host environment

    def _resolve_height(self, height: Optional[int]) -> int:
        """Candidate height for the next call; only a committed call advances block_height."""
        if height is None:
            return self.block_height
        check_uint(height, "height")
        if height < self.block_height:
            raise HeightRegressionError(f"Height {height} is below last applied height {self.block_height}")
        return height

    def _transact(self, operation: str, caller: Principal, height: Optional[int], apply: Callable[[int], Any]):
        with self._lock:
            try:
                current = self._resolve_height(height)
                check_principal(caller, "caller")
                with self.storage.transaction():
                    result = apply(current)
            except LedgerError as e:
                logger.warning("%s by %s rejected: %s (u%d)", operation, caller, e.tag, e.code)
                raise
            except HeightRegressionError as e:
                logger.warning("%s by %s rejected: %s", operation, caller, e)
                raise
            self.block_height = current
            return result

    # ── mutating calls

    def set_admin(self, caller: Principal, new_admin: Principal, height: Optional[int] = None) -> bool:
        return self._transact(
            "set-admin", caller, height,
            lambda h: self.admin_controller.set_admin(caller, new_admin),
        )

    def set_verification_threshold(self, caller: Principal, new_threshold: int, height: Optional[int] = None) -> bool:
        return self._transact(
            "set-verification-threshold", caller, height,
            lambda h: self.admin_controller.set_verification_threshold(caller, new_threshold),
        )

    def register_identity(self, caller: Principal, height: Optional[int] = None) -> int:
        return self._transact(
            "register-identity", caller, height,
            lambda h: self.identities.register_identity(caller, h),
        )

    def attest_to_identity(
        self,
        caller: Principal,
        attestee: Principal,
        score: int,
        context: str = "",
        height: Optional[int] = None,
    ) -> bool:
        return self._transact(
            "attest-to-identity", caller, height,
            lambda h: self.attestations.attest_to_identity(caller, attestee, score, context, h),
        )

    def update_attestation(
        self,
        caller: Principal,
        attestee: Principal,
        new_score: int,
        new_context: str = "",
        height: Optional[int] = None,
    ) -> bool:
        return self._transact(
            "update-attestation", caller, height,
            lambda h: self.attestations.update_attestation(caller, attestee, new_score, new_context, h),
        )

    def endorse_for_domain(
        self,
        caller: Principal,
        identity: Principal,
        domain: str,
        score: int,
        height: Optional[int] = None,
    ) -> bool:
        return self._transact(
            "endorse-for-domain", caller, height,
            lambda h: self.domains.endorse_for_domain(caller, identity, domain, score, h),
        )

    # ── read-only lookups

    @property
    def config(self) -> AdminConfig:
        with self._lock:
            return self.admin_controller.config

    def get_identity_info(self, identity: Principal) -> Optional[Identity]:
        with self._lock:
            return self.identities.get_identity(identity)

    def get_attestation(self, attester: Principal, attestee: Principal) -> Optional[Attestation]:
        with self._lock:
            return self.attestations.get_attestation(attester, attestee)

    def get_domain_reputation(self, identity: Principal, domain: str) -> Optional[DomainReputation]:
        with self._lock:
            return self.domains.get_domain_reputation(identity, domain)

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return self.storage.snapshot()

    def state_hash(self) -> str:
        return state_hash(self.snapshot())

    def verify(self) -> VerificationResult:
        return LedgerVerifier().verify(self.snapshot())

    # ── contract-style named calls

    def call(
        self,
        function_name: str,
        args: Sequence[Any] = (),
        sender: Optional[Principal] = None,
        height: Optional[int] = None,
    ) -> CallResult:
        """
        Invoke a public function by its contract name, e.g.
        call("attest-to-identity", [bob, 8, "solid work"], sender=alice).
        Rejections come back as CallResult(False, error_code).
        """
        handler = self._public_calls()[function_name]
        try:
            value = handler(sender, *args, height=height)
        except LedgerError as e:
            return CallResult(False, e.code)
        return CallResult(True, value)

    def read(self, function_name: str, args: Sequence[Any] = ()) -> CallResult:
        handler = self._read_only_calls()[function_name]
        return CallResult(True, handler(*args))

    def _public_calls(self) -> Dict[str, Callable[..., Any]]:
        return {
            "set-admin": self.set_admin,
            "set-verification-threshold": self.set_verification_threshold,
            "register-identity": self.register_identity,
            "attest-to-identity": self.attest_to_identity,
            "update-attestation": self.update_attestation,
            "endorse-for-domain": self.endorse_for_domain,
        }

    def _read_only_calls(self) -> Dict[str, Callable[..., Any]]:
        return {
            "get-identity-info": self.get_identity_info,
            "get-attestation": self.get_attestation,
            "get-domain-reputation": self.get_domain_reputation,
        }

    def close(self) -> None:
        """Release the storage backend (e.g. the database connection)."""
        if self.storage:
            self.storage.close()
            logger.debug("Ledger storage closed")
            self.storage = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
