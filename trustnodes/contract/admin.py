# trustnodes/contract/admin.py
import logging
from dataclasses import replace

from trustnodes.core.errors import LedgerNotInitializedError, NotAuthorizedError
from trustnodes.core.types import DEFAULT_VERIFICATION_THRESHOLD, AdminConfig, Principal
from trustnodes.core.validation import check_principal, check_uint
from trustnodes.storage import StorageBackend

logger = logging.getLogger(__name__)


class AdminController:
    """
    Owns the AdminConfig singleton: admin principal, verification threshold
    and the identity-id counter.
    """

    def __init__(self, store: StorageBackend):
        self.store = store

    @property
    def config(self) -> AdminConfig:
        config = self.store.load_config()
        if config is None:
            raise LedgerNotInitializedError("Ledger has no admin config; run genesis first")
        return config

    @property
    def initialized(self) -> bool:
        return self.store.load_config() is not None

    def genesis(self, admin: Principal, verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD) -> AdminConfig:
        """Write the initial config. Later calls leave the existing config untouched."""
        existing = self.store.load_config()
        if existing is not None:
            return existing
        check_principal(admin, "admin")
        check_uint(verification_threshold, "verification_threshold")
        config = AdminConfig(admin=admin, verification_threshold=verification_threshold)
        self.store.save_config(config)
        logger.info("Ledger genesis: admin=%s threshold=%d", admin, verification_threshold)
        return config

    def _require_admin(self, caller: Principal) -> AdminConfig:
        config = self.config
        if caller != config.admin:
            raise NotAuthorizedError(f"{caller} is not the ledger admin")
        return config

    def set_admin(self, caller: Principal, new_admin: Principal) -> bool:
        check_principal(new_admin, "new_admin")
        config = self._require_admin(caller)
        self.store.save_config(replace(config, admin=new_admin))
        logger.info("Admin changed from %s to %s", config.admin, new_admin)
        return True

    def set_verification_threshold(self, caller: Principal, new_threshold: int) -> bool:
        check_uint(new_threshold, "new_threshold")
        config = self._require_admin(caller)
        self.store.save_config(replace(config, verification_threshold=new_threshold))
        logger.info("Verification threshold set to %d (was %d)", new_threshold, config.verification_threshold)
        return True

    def allocate_identity_id(self) -> int:
        config = self.config
        self.store.save_config(replace(config, next_identity_id=config.next_identity_id + 1))
        return config.next_identity_id
