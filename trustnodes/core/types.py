# trustnodes/core/types.py
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional, Tuple

Principal = str                     # opaque caller identity supplied by the host

MIN_SCORE = 1
MAX_SCORE = 10
MAX_CONTEXT_LENGTH = 100
MAX_DOMAIN_LENGTH = 20
DEFAULT_VERIFICATION_THRESHOLD = 3
# largest value an SQLite INTEGER column holds
MAX_UINT = 2**63 - 1
FIRST_IDENTITY_ID = 1


@dataclass(frozen=True)
class AdminConfig:
    """Ledger-wide settings, written once at genesis and then only by the admin."""
    admin: Principal
    verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD
    next_identity_id: int = FIRST_IDENTITY_ID

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Identity:
    """A registered principal's reputation record."""
    id: int
    registration_height: int
    verification_score: int = 0     # sum of scores of every attestation received
    attestation_count: int = 0      # distinct attesters
    verified: bool = False          # never goes back to False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Attestation:
    """Directed, scored endorsement from one identity to another."""
    score: int
    timestamp: int                  # height of the last write
    context: str = ""
    valid: bool = True              # reserved, nothing ever clears it

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DomainReputation:
    score: int = 0
    last_updated: int = 0
    endorsement_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


AttestationKey = Tuple[Principal, Principal]    # (attester, attestee)
DomainKey = Tuple[Principal, str]               # (identity, domain)


@dataclass
class LedgerSnapshot:
    """Point-in-time copy of every map plus the admin config."""
    config: Optional[AdminConfig] = None
    identities: Dict[Principal, Identity] = field(default_factory=dict)
    attestations: Dict[AttestationKey, Attestation] = field(default_factory=dict)
    domain_reputations: Dict[DomainKey, DomainReputation] = field(default_factory=dict)

    def records(self):
        """Yield (kind, payload) pairs in a stable order, for export and hashing."""
        if self.config is not None:
            yield "config", self.config.to_dict()
        for principal in sorted(self.identities):
            yield "identity", {"principal": principal, **self.identities[principal].to_dict()}
        for attester, attestee in sorted(self.attestations):
            record = self.attestations[(attester, attestee)]
            yield "attestation", {"attester": attester, "attestee": attestee, **record.to_dict()}
        for identity, domain in sorted(self.domain_reputations):
            record = self.domain_reputations[(identity, domain)]
            yield "domain_reputation", {"identity": identity, "domain": domain, **record.to_dict()}

    def to_dict(self) -> dict:
        out: Dict[str, Any] = {
            "config": self.config.to_dict() if self.config else None,
            "identities": [],
            "attestations": [],
            "domain_reputations": [],
        }
        plural = {
            "identity": "identities",
            "attestation": "attestations",
            "domain_reputation": "domain_reputations",
        }
        for kind, payload in self.records():
            if kind in plural:
                out[plural[kind]].append(payload)
        return out


@dataclass(frozen=True)
class CallResult:
    """Tagged outcome of a named ledger call: a value on success, an error code on failure."""
    success: bool
    value: Any = None

    def __bool__(self):
        return self.success
