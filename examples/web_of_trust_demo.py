# examples/web_of_trust_demo.py
# Run with: python examples/web_of_trust_demo.py
#
# Builds a small web of trust in memory, then audits and hashes the result.

import logging

from trustnodes.chain.ledger import TrustLedger
from trustnodes.core.errors import LedgerError

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


if __name__ == "__main__":
    ledger = TrustLedger(admin="deployer", verification_threshold=2)

    for height, name in enumerate(["alice", "bob", "carol"], start=1):
        print(f"{name} -> identity #{ledger.register_identity(name, height=height)}")

    ledger.attest_to_identity("alice", "carol", 5, "Reviewed her audit reports", height=4)
    ledger.attest_to_identity("bob", "carol", 7, "Worked together on the bridge", height=5)
    ledger.update_attestation("alice", "carol", 8, "Audit reports held up", height=6)

    ledger.endorse_for_domain("bob", "carol", "security", 9, height=7)
    ledger.endorse_for_domain("bob", "carol", "security", 6, height=8)

    try:
        ledger.endorse_for_domain("carol", "bob", "security", 5, height=9)
    except LedgerError as e:
        print(f"Rejected as expected: {e}")

    carol = ledger.get_identity_info("carol")
    print(f"carol: verified={carol.verified} score={carol.verification_score} attestations={carol.attestation_count}")
    print(f"carol/security: {ledger.get_domain_reputation('carol', 'security')}")

    print(ledger.verify())
    print(f"state hash: {ledger.state_hash()}")
    ledger.close()
