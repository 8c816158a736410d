# trustnodes/contract/attestation.py
"""
Attestations are directed edges attester -> attestee.

The attestee's identity keeps running totals (score sum, edge count) that
are updated incrementally on every write; nothing here scans the edge set.
"""

import logging
from dataclasses import replace
from typing import Optional

from trustnodes.core.errors import (
    AttestationExistsError,
    AttestationNotFoundError,
    CorruptedStateError,
    SelfAttestationError,
)
from trustnodes.core.types import MAX_CONTEXT_LENGTH, Attestation, Principal
from trustnodes.core.validation import (
    check_bounded_ascii,
    check_int,
    check_principal,
    check_score,
)
from trustnodes.storage import StorageBackend
from .admin import AdminController
from .identity import IdentityRegistry

logger = logging.getLogger(__name__)


class AttestationLedger:

    def __init__(self, store: StorageBackend, registry: IdentityRegistry, admin: AdminController):
        self.store = store
        self.registry = registry
        self.admin = admin

    def attest_to_identity(
        self,
        caller: Principal,
        attestee: Principal,
        score: int,
        context: str,
        height: int,
    ) -> bool:
        """
        Create the (caller, attestee) attestation and credit the attestee.

        Checks run in a fixed order and the first failure wins:
        caller registered, attestee registered, not self, no existing
        attestation, score in range.
        """
        check_principal(attestee, "attestee")
        check_int(score, "score")
        check_bounded_ascii(context, MAX_CONTEXT_LENGTH, "context")

        self.registry.require(caller)
        target = self.registry.require(attestee)
        if caller == attestee:
            raise SelfAttestationError(f"{caller} cannot attest to itself")
        if self.store.get_attestation(caller, attestee) is not None:
            raise AttestationExistsError(f"{caller} already attested to {attestee}")
        check_score(score)

        threshold = self.admin.config.verification_threshold
        self.store.put_attestation(caller, attestee, Attestation(score=score, timestamp=height, context=context))

        count = target.attestation_count + 1
        updated = replace(
            target,
            verification_score=target.verification_score + score,
            attestation_count=count,
            verified=target.verified or count >= threshold,
        )
        self.registry.save(attestee, updated)

        logger.info("%s attested %s with score %d (count=%d)", caller, attestee, score, count)
        if updated.verified and not target.verified:
            logger.info("%s is now verified (%d attestations, threshold %d)", attestee, count, threshold)
        return True

    def update_attestation(
        self,
        caller: Principal,
        attestee: Principal,
        new_score: int,
        new_context: str,
        height: int,
    ) -> bool:
        check_principal(attestee, "attestee")
        check_int(new_score, "score")
        check_bounded_ascii(new_context, MAX_CONTEXT_LENGTH, "context")

        existing = self.store.get_attestation(caller, attestee)
        if existing is None:
            raise AttestationNotFoundError(f"No attestation from {caller} to {attestee}")
        check_score(new_score)

        target = self.registry.get_identity(attestee)
        if target is None:
            raise CorruptedStateError(f"Attestation {caller}->{attestee} points at an unregistered identity")

        # the old score is part of the running sum, so removing it must not go below zero
        if target.verification_score < existing.score:
            raise CorruptedStateError(
                f"verification_score {target.verification_score} of {attestee} "
                f"is below the attestation being replaced ({existing.score})"
            )
        new_total = target.verification_score - existing.score + new_score

        self.store.put_attestation(
            caller, attestee,
            replace(existing, score=new_score, context=new_context, timestamp=height),
        )
        self.registry.save(attestee, replace(target, verification_score=new_total))

        logger.info("%s updated attestation of %s: %d -> %d", caller, attestee, existing.score, new_score)
        return True

    def get_attestation(self, attester: Principal, attestee: Principal) -> Optional[Attestation]:
        return self.store.get_attestation(attester, attestee)

    def exists(self, attester: Principal, attestee: Principal) -> bool:
        return self.store.get_attestation(attester, attestee) is not None
