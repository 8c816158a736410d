# tests/test_storage.py
import sqlite3
import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from trustnodes.storage import MemoryStorage, SQLiteStorage, StorageBackend, create_storage
from trustnodes.core.types import AdminConfig, Attestation, DomainReputation, Identity


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture(params=["memory", "sqlite"])
def store(request, temp_db_path: Path) -> StorageBackend:
    backend = MemoryStorage() if request.param == "memory" else SQLiteStorage(db_path=temp_db_path)
    yield backend
    backend.close()


def test_create_storage_dynamic_routing(temp_db_path: Path):
    storage = create_storage(f"sqlite://{temp_db_path}")
    assert isinstance(storage, SQLiteStorage)
    assert str(storage.db_path) == str(temp_db_path.resolve())
    storage.close()

    assert isinstance(create_storage("memory://"), MemoryStorage)


def test_create_storage_rejects_unknown_scheme():
    with pytest.raises(ValueError, match="Unsupported"):
        create_storage("postgres://localhost/ledger")
    with pytest.raises(ValueError, match="Missing"):
        create_storage("sqlite://")


def test_sqlite_init_default_and_env(monkeypatch):
    with TemporaryDirectory() as tmpdir:
        monkeypatch.chdir(tmpdir)
        monkeypatch.delenv("TRUSTNODES_DB_PATH", raising=False)
        default_storage = SQLiteStorage()
        assert default_storage.db_path.name == "trustnodes.db"
        default_storage.close()

        env_path = Path(tmpdir) / "nested" / "env-test.db"
        monkeypatch.setenv("TRUSTNODES_DB_PATH", str(env_path))
        env_storage = SQLiteStorage()
        assert env_storage.db_path == env_path.resolve()
        assert env_path.parent.is_dir()
        env_storage.close()


def test_sqlite_schema_creation(temp_db_path: Path):
    storage = SQLiteStorage(temp_db_path)
    tables = {
        row[0] for row in storage.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    }
    assert tables == {"config", "identities", "attestations", "domain_reputations"}

    columns = {row[1] for row in storage.conn.execute("PRAGMA table_info(attestations)")}
    assert columns == {"attester", "attestee", "score", "timestamp", "context", "valid"}
    storage.close()


def test_roundtrip_every_map(store: StorageBackend):
    config = AdminConfig(admin="deployer", verification_threshold=2, next_identity_id=3)
    identity = Identity(id=1, registration_height=4, verification_score=9, attestation_count=1, verified=True)
    attestation = Attestation(score=9, timestamp=5, context="reliable")
    reputation = DomainReputation(score=9, last_updated=6, endorsement_count=1)

    store.save_config(config)
    store.put_identity("alice", identity)
    store.put_attestation("bob", "alice", attestation)
    store.put_domain_reputation("alice", "blockchain", reputation)

    assert store.load_config() == config
    assert store.get_identity("alice") == identity
    assert store.get_attestation("bob", "alice") == attestation
    assert store.get_attestation("alice", "bob") is None
    assert store.get_domain_reputation("alice", "blockchain") == reputation
    assert store.get_domain_reputation("alice", "finance") is None


def test_empty_store(store: StorageBackend):
    assert store.load_config() is None
    assert store.get_identity("nobody") is None
    assert store.latest_height() == 0
    snap = store.snapshot()
    assert snap.config is None and not snap.identities


def test_put_overwrites(store: StorageBackend):
    store.put_identity("alice", Identity(id=1, registration_height=1))
    store.put_identity("alice", Identity(id=1, registration_height=1, verification_score=4, attestation_count=1))
    assert store.get_identity("alice").verification_score == 4
    assert len(store.snapshot().identities) == 1


def test_latest_height(store: StorageBackend):
    store.put_identity("alice", Identity(id=1, registration_height=3))
    store.put_attestation("bob", "alice", Attestation(score=1, timestamp=11))
    store.put_domain_reputation("alice", "x", DomainReputation(score=1, last_updated=7, endorsement_count=1))
    assert store.latest_height() == 11


def test_transaction_commits(store: StorageBackend):
    with store.transaction():
        store.save_config(AdminConfig(admin="deployer"))
        store.put_identity("alice", Identity(id=1, registration_height=0))
    assert store.load_config().admin == "deployer"
    assert store.get_identity("alice") is not None


def test_transaction_rolls_back(store: StorageBackend):
    store.save_config(AdminConfig(admin="deployer"))
    with pytest.raises(RuntimeError, match="boom"):
        with store.transaction():
            store.save_config(AdminConfig(admin="mallory"))
            store.put_identity("alice", Identity(id=1, registration_height=0))
            raise RuntimeError("boom")

    assert store.load_config().admin == "deployer"
    assert store.get_identity("alice") is None


def test_nested_transaction_rejected(store: StorageBackend):
    with pytest.raises(RuntimeError, match="Nested"):
        with store.transaction():
            with store.transaction():
                pass


def test_snapshot_is_a_copy(store: StorageBackend):
    store.put_identity("alice", Identity(id=1, registration_height=0))
    snap = store.snapshot()
    store.put_identity("bob", Identity(id=2, registration_height=0))
    assert set(snap.identities) == {"alice"}


def test_sqlite_persists_across_connections(temp_db_path: Path):
    first = SQLiteStorage(temp_db_path)
    first.save_config(AdminConfig(admin="deployer"))
    first.put_attestation("bob", "alice", Attestation(score=3, timestamp=2, context="ok"))
    first.close()

    second = SQLiteStorage(temp_db_path)
    assert second.load_config().admin == "deployer"
    assert second.get_attestation("bob", "alice").context == "ok"
    second.close()


def test_sqlite_rejects_negative_accumulator(temp_db_path: Path):
    storage = SQLiteStorage(temp_db_path)
    with pytest.raises(sqlite3.IntegrityError):
        storage.put_identity("alice", Identity(id=1, registration_height=0, verification_score=-1))
    storage.close()


def test_close_releases_resources(temp_db_path: Path):
    storage = SQLiteStorage(temp_db_path)
    assert storage._conn is not None
    storage.close()
    with pytest.raises(RuntimeError, match="closed"):
        storage.get_identity("alice")


def test_context_manager(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as storage:
        assert storage._conn is not None
    with pytest.raises(RuntimeError, match="closed"):
        storage.snapshot()

    with MemoryStorage() as memory:
        memory.put_identity("alice", Identity(id=1, registration_height=0))
    with pytest.raises(RuntimeError, match="closed"):
        memory.get_identity("alice")
