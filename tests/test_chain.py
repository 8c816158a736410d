# tests/test_chain.py
import logging
import threading
from pathlib import Path

import pytest

from trustnodes.chain.ledger import TrustLedger
from trustnodes.core.errors import AlreadyRegisteredError, HeightRegressionError, InvalidInputError
from trustnodes.core.types import CallResult
from trustnodes.storage import MemoryStorage, SQLiteStorage

from conftest import ADDRESS1, ADDRESS2, ADDRESS3, DEPLOYER


def test_ledger_defaults_to_memory_storage(ledger):
    assert isinstance(ledger.storage, MemoryStorage)
    assert ledger.block_height == 0


def test_plain_path_becomes_sqlite(tmp_path: Path):
    db = tmp_path / "plain.db"
    led = TrustLedger(storage=str(db), admin=DEPLOYER)
    assert isinstance(led.storage, SQLiteStorage)
    assert led.storage.db_path == db.resolve()
    led.close()
    assert led.storage is None


def test_state_survives_reopen(tmp_path: Path):
    uri = f"sqlite://{tmp_path / 'ledger.db'}"
    with TrustLedger(storage=uri, admin=DEPLOYER) as led:
        led.register_identity(ADDRESS1, height=5)
        led.register_identity(ADDRESS2, height=6)
        led.attest_to_identity(ADDRESS1, ADDRESS2, 8, "x", height=7)

    reopened = TrustLedger(storage=uri)
    assert reopened.config.admin == DEPLOYER
    assert reopened.block_height == 7
    assert reopened.get_identity_info(ADDRESS2).verification_score == 8
    assert reopened.register_identity(ADDRESS3) == 3
    reopened.close()


def test_height_defaults_to_last_applied(ledger):
    ledger.register_identity(ADDRESS1, height=100)
    ledger.register_identity(ADDRESS2)
    assert ledger.get_identity_info(ADDRESS2).registration_height == 100


def test_height_cannot_go_backwards(ledger):
    ledger.register_identity(ADDRESS1, height=100)
    with pytest.raises(HeightRegressionError):
        ledger.register_identity(ADDRESS2, height=99)
    assert ledger.get_identity_info(ADDRESS2) is None
    ledger.register_identity(ADDRESS2, height=100)


def test_rejected_call_does_not_advance_height(ledger):
    ledger.register_identity(ADDRESS1, height=10)
    with pytest.raises(AlreadyRegisteredError):
        ledger.register_identity(ADDRESS1, height=1000)
    assert ledger.block_height == 10
    assert ledger.block_height == ledger.storage.latest_height()

    assert ledger.register_identity(ADDRESS2, height=50) == 2
    assert ledger.block_height == 50


def test_height_rejections_are_logged(ledger, caplog):
    ledger.register_identity(ADDRESS1, height=100)
    with caplog.at_level(logging.WARNING, logger="trustnodes.chain.ledger"):
        with pytest.raises(HeightRegressionError):
            ledger.register_identity(ADDRESS2, height=99)
        with pytest.raises(InvalidInputError):
            ledger.register_identity(ADDRESS2, height=-1)

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("below last applied height" in m for m in messages)
    assert any("InvalidInput (u8)" in m for m in messages)


def test_call_dispatch_success(ledger):
    assert ledger.call("register-identity", [], sender=ADDRESS1) == CallResult(True, 1)
    assert ledger.call("register-identity", [], sender=ADDRESS2) == CallResult(True, 2)
    result = ledger.call("attest-to-identity", [ADDRESS2, 8, "Great developer"], sender=ADDRESS1)
    assert result.success is True

    identity = ledger.read("get-identity-info", [ADDRESS2]).value
    assert identity.verification_score == 8
    attestation = ledger.read("get-attestation", [ADDRESS1, ADDRESS2]).value
    assert attestation.context == "Great developer"


def test_call_dispatch_error_codes(registered):
    assert registered.call("set-admin", [ADDRESS2], sender=ADDRESS3) == CallResult(False, 1)
    assert registered.call("register-identity", [], sender=ADDRESS1) == CallResult(False, 2)
    assert registered.call("attest-to-identity", [DEPLOYER, 5, "x"], sender=ADDRESS1) == CallResult(False, 3)
    assert registered.call("attest-to-identity", [ADDRESS1, 5, "x"], sender=ADDRESS1) == CallResult(False, 4)
    registered.call("attest-to-identity", [ADDRESS2, 5, "x"], sender=ADDRESS1)
    assert registered.call("attest-to-identity", [ADDRESS2, 7, "y"], sender=ADDRESS1) == CallResult(False, 5)
    assert registered.call("update-attestation", [ADDRESS1, 6, "z"], sender=ADDRESS3) == CallResult(False, 6)
    assert registered.call("endorse-for-domain", [ADDRESS2, "finance", 0], sender=ADDRESS1) == CallResult(False, 7)
    assert registered.call("register-identity", [], sender=None) == CallResult(False, 8)


def test_read_missing_records(ledger):
    assert ledger.read("get-identity-info", [ADDRESS1]) == CallResult(True, None)
    assert ledger.read("get-domain-reputation", [ADDRESS1, "finance"]) == CallResult(True, None)


def test_unknown_function_name(ledger):
    with pytest.raises(KeyError):
        ledger.call("revoke-attestation", [ADDRESS1], sender=DEPLOYER)
    with pytest.raises(KeyError):
        ledger.read("get-everything")


def test_invalid_caller(ledger):
    with pytest.raises(InvalidInputError):
        ledger.register_identity(None)


@pytest.fixture(params=["memory", "sqlite"])
def any_ledger(request, tmp_path: Path):
    storage = MemoryStorage() if request.param == "memory" else SQLiteStorage(tmp_path / "atomic.db")
    led = TrustLedger(storage=storage, admin=DEPLOYER)
    for principal in (ADDRESS1, ADDRESS2):
        led.register_identity(principal)
    yield led
    led.close()


def test_failure_mid_call_leaves_no_partial_write(any_ledger, monkeypatch):
    """The attestation row must not survive if updating the attestee fails."""
    def broken_save(principal, identity):
        raise OSError("disk full")

    monkeypatch.setattr(any_ledger.identities, "save", broken_save)
    with pytest.raises(OSError):
        any_ledger.attest_to_identity(ADDRESS1, ADDRESS2, 8, "x")
    monkeypatch.undo()

    assert any_ledger.get_attestation(ADDRESS1, ADDRESS2) is None
    assert any_ledger.get_identity_info(ADDRESS2).attestation_count == 0
    assert any_ledger.verify().is_valid

    # ledger keeps working after the rollback
    any_ledger.attest_to_identity(ADDRESS1, ADDRESS2, 8, "x")
    assert any_ledger.get_identity_info(ADDRESS2).verification_score == 8


def test_oversized_integers_rejected_on_every_backend(any_ledger):
    too_big = 2**64
    result = any_ledger.call("set-verification-threshold", [too_big], sender=DEPLOYER)
    assert result == CallResult(False, 8)
    assert any_ledger.config.verification_threshold == 3

    with pytest.raises(InvalidInputError):
        any_ledger.attest_to_identity(ADDRESS1, ADDRESS2, 5, "x", height=too_big)
    assert any_ledger.get_attestation(ADDRESS1, ADDRESS2) is None

    largest = 2**63 - 1
    assert any_ledger.call("set-verification-threshold", [largest], sender=DEPLOYER) == CallResult(True, True)
    assert any_ledger.config.verification_threshold == largest


def test_failed_registration_rolls_back_id_allocation(any_ledger, monkeypatch):
    def broken_put(principal, identity):
        raise OSError("disk full")

    monkeypatch.setattr(any_ledger.storage, "put_identity", broken_put)
    with pytest.raises(OSError):
        any_ledger.register_identity(ADDRESS3)
    monkeypatch.undo()

    assert any_ledger.config.next_identity_id == 3
    assert any_ledger.register_identity(ADDRESS3) == 3


def test_concurrent_registrations_get_unique_ids(ledger):
    principals = [f"SP{i:04d}" for i in range(40)]
    ids = []
    ids_lock = threading.Lock()

    def register(principal):
        new_id = ledger.register_identity(principal)
        with ids_lock:
            ids.append(new_id)

    threads = [threading.Thread(target=register, args=(p,)) for p in principals]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(ids) == list(range(1, len(principals) + 1))
    assert ledger.config.next_identity_id == len(principals) + 1


def test_state_hash_matches_for_equal_histories():
    def build():
        led = TrustLedger(admin=DEPLOYER)
        led.register_identity(ADDRESS1, height=1)
        led.register_identity(ADDRESS2, height=2)
        led.attest_to_identity(ADDRESS1, ADDRESS2, 6, "x", height=3)
        return led

    assert build().state_hash() == build().state_hash()
