# tests/conftest.py
import pytest

from trustnodes.chain.ledger import TrustLedger

DEPLOYER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
ADDRESS1 = "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG"
ADDRESS2 = "ST2JHG361ZXG51QTKY2NQCVBPPRRE2KZB1HR05NNC"
ADDRESS3 = "ST2NEB84ASENDXKYGJPQW86YXQCEFEX2ZQPG87ND"


@pytest.fixture
def ledger():
    """Fresh in-memory ledger deployed by DEPLOYER with the default threshold."""
    led = TrustLedger(admin=DEPLOYER)
    yield led
    led.close()


@pytest.fixture
def registered(ledger):
    """Ledger with ADDRESS1..3 registered as identities 1..3."""
    for principal in (ADDRESS1, ADDRESS2, ADDRESS3):
        ledger.register_identity(principal)
    return ledger
