# trustnodes/contract/identity.py
import logging
from typing import Optional

from trustnodes.core.errors import AlreadyRegisteredError, NotRegisteredError
from trustnodes.core.types import Identity, Principal
from trustnodes.storage import StorageBackend
from .admin import AdminController

logger = logging.getLogger(__name__)


class IdentityRegistry:
    """One identity per principal, ids handed out sequentially from 1."""

    def __init__(self, store: StorageBackend, admin: AdminController):
        self.store = store
        self.admin = admin

    def register_identity(self, caller: Principal, height: int) -> int:
        if self.store.get_identity(caller) is not None:
            raise AlreadyRegisteredError(f"{caller} is already registered")

        new_id = self.admin.allocate_identity_id()
        self.store.put_identity(caller, Identity(id=new_id, registration_height=height))
        logger.info("Registered %s as identity #%d at height %d", caller, new_id, height)
        return new_id

    def get_identity(self, principal: Principal) -> Optional[Identity]:
        return self.store.get_identity(principal)

    def is_registered(self, principal: Principal) -> bool:
        return self.store.get_identity(principal) is not None

    def require(self, principal: Principal) -> Identity:
        identity = self.store.get_identity(principal)
        if identity is None:
            raise NotRegisteredError(f"{principal} has no registered identity")
        return identity

    def save(self, principal: Principal, identity: Identity) -> None:
        self.store.put_identity(principal, identity)
