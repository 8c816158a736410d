# trustnodes/contract/domain.py
import logging
from typing import Optional

from trustnodes.core.errors import AttestationNotFoundError
from trustnodes.core.types import MAX_DOMAIN_LENGTH, DomainReputation, Principal
from trustnodes.core.validation import (
    check_bounded_ascii,
    check_int,
    check_principal,
    check_score,
)
from trustnodes.storage import StorageBackend
from .attestation import AttestationLedger

logger = logging.getLogger(__name__)


class DomainReputationLedger:
    """
    Per-(identity, domain) reputation.  Only a party that already attested
    to the identity may endorse it; repeat endorsements simply accumulate.
    """

    def __init__(self, store: StorageBackend, attestations: AttestationLedger):
        self.store = store
        self.attestations = attestations

    def endorse_for_domain(
        self,
        caller: Principal,
        identity: Principal,
        domain: str,
        score: int,
        height: int,
    ) -> bool:
        check_principal(identity, "identity")
        check_bounded_ascii(domain, MAX_DOMAIN_LENGTH, "domain")
        check_int(score, "score")

        if not self.attestations.exists(caller, identity):
            raise AttestationNotFoundError(f"{caller} has not attested to {identity}")
        check_score(score)

        current = self.store.get_domain_reputation(identity, domain) or DomainReputation()
        updated = DomainReputation(
            score=current.score + score,
            last_updated=height,
            endorsement_count=current.endorsement_count + 1,
        )
        self.store.put_domain_reputation(identity, domain, updated)
        logger.info(
            "%s endorsed %s for %r with %d (total=%d, endorsements=%d)",
            caller, identity, domain, score, updated.score, updated.endorsement_count,
        )
        return True

    def get_domain_reputation(self, identity: Principal, domain: str) -> Optional[DomainReputation]:
        return self.store.get_domain_reputation(identity, domain)
