from collections import defaultdict
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass

from trustnodes.core.types import (
    MAX_CONTEXT_LENGTH,
    MAX_DOMAIN_LENGTH,
    MAX_SCORE,
    MIN_SCORE,
    LedgerSnapshot,
    Principal,
)
from trustnodes.storage import StorageBackend


@dataclass
class VerificationFailure:
    key: str
    message: str
    category: str = "general"  # e.g. "config", "identity", "attestation", "score_sum", "domain"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, key: str, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(key, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Ledger state is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.key}] {f.category}: {f.message}")
        return "\n".join(lines)


class LedgerVerifier:
    """
    Offline auditor for a ledger snapshot.
    Recomputes every accumulator from the attestation edges and checks the
    record-level invariants the contract maintains incrementally.
    """

    def verify(self, snap: LedgerSnapshot) -> VerificationResult:
        result = VerificationResult(True)

        # 1. Config
        config = snap.config
        if config is None:
            if snap.identities or snap.attestations or snap.domain_reputations:
                result.fail("config", "Records exist but the admin config is missing", "config")
            else:
                result.message = "Empty ledger is valid"
            return result
        if config.verification_threshold < 0:
            result.fail("config", f"Negative threshold {config.verification_threshold}", "config")
        if config.next_identity_id < 1:
            result.fail("config", f"next_identity_id {config.next_identity_id} is below 1", "config")

        # 2. Identity ids
        seen_ids: Dict[int, Principal] = {}
        for principal, identity in snap.identities.items():
            if identity.id in seen_ids:
                result.fail(principal, f"Identity id {identity.id} also used by {seen_ids[identity.id]}", "identity")
            seen_ids[identity.id] = principal
            if not 1 <= identity.id < config.next_identity_id:
                result.fail(
                    principal,
                    f"Identity id {identity.id} outside allocated range 1..{config.next_identity_id - 1}",
                    "identity",
                )

        # 3. Attestation edges
        totals: Dict[Principal, Tuple[int, int]] = defaultdict(lambda: (0, 0))
        for (attester, attestee), att in snap.attestations.items():
            key = f"{attester}->{attestee}"
            if attester == attestee:
                result.fail(key, "Self-attestation", "attestation")
            if attester not in snap.identities:
                result.fail(key, f"Attester {attester} is not registered", "attestation")
            if attestee not in snap.identities:
                result.fail(key, f"Attestee {attestee} is not registered", "attestation")
            if not MIN_SCORE <= att.score <= MAX_SCORE:
                result.fail(key, f"Score {att.score} out of range", "attestation")
            if not att.valid:
                result.fail(key, "Attestation marked invalid", "attestation")
            if len(att.context) > MAX_CONTEXT_LENGTH:
                result.fail(key, f"Context longer than {MAX_CONTEXT_LENGTH} characters", "attestation")
            score_sum, count = totals[attestee]
            totals[attestee] = (score_sum + att.score, count + 1)

        # 4. Accumulators
        for principal, identity in snap.identities.items():
            score_sum, count = totals.get(principal, (0, 0))
            if identity.verification_score != score_sum:
                result.fail(
                    principal,
                    f"verification_score {identity.verification_score} != sum of attestation scores {score_sum}",
                    "score_sum",
                )
            if identity.attestation_count != count:
                result.fail(
                    principal,
                    f"attestation_count {identity.attestation_count} != number of attestations {count}",
                    "count",
                )
            if identity.verified and identity.attestation_count < 1:
                result.fail(principal, "Verified without any attestation", "verified")

        # 5. Domain reputation
        for (identity, domain), rep in snap.domain_reputations.items():
            key = f"{identity}/{domain}"
            if identity not in snap.identities:
                result.fail(key, f"Identity {identity} is not registered", "domain")
            if len(domain) > MAX_DOMAIN_LENGTH:
                result.fail(key, f"Domain longer than {MAX_DOMAIN_LENGTH} characters", "domain")
            if rep.endorsement_count < 1:
                result.fail(key, "Domain record without endorsements", "domain")
            elif not MIN_SCORE * rep.endorsement_count <= rep.score <= MAX_SCORE * rep.endorsement_count:
                result.fail(
                    key,
                    f"Score {rep.score} impossible for {rep.endorsement_count} endorsements",
                    "domain",
                )

        result.message = "Valid ledger state" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def verify_from_storage(self, storage: StorageBackend) -> VerificationResult:
        """
        Load a snapshot from persistent storage and verify it.
        A storage failure is reported as a failed result.
        """
        try:
            snap = storage.snapshot()
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load ledger state from storage: {str(e)}",
                [VerificationFailure("storage", str(e), "storage")]
            )
        return self.verify(snap)
