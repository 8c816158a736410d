import os
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from trustnodes.core.types import (
    AdminConfig,
    Attestation,
    DomainReputation,
    Identity,
    LedgerSnapshot,
    Principal,
)
from . import StorageBackend

logger = logging.getLogger(__name__)


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for the reputation ledger."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("TRUSTNODES_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "trustnodes.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False
        self._connect()

    def _connect(self):
        # autocommit mode; transaction() issues BEGIN/COMMIT explicitly
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()
        logger.debug("Opened ledger database %s", self.db_path)

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS config (
                singleton               INTEGER PRIMARY KEY CHECK (singleton = 1),
                admin                   TEXT    NOT NULL,
                verification_threshold  INTEGER NOT NULL,
                next_identity_id        INTEGER NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS identities (
                principal           TEXT    PRIMARY KEY,
                id                  INTEGER NOT NULL UNIQUE,
                registration_height INTEGER NOT NULL,
                verification_score  INTEGER NOT NULL CHECK (verification_score >= 0),
                attestation_count   INTEGER NOT NULL CHECK (attestation_count >= 0),
                verified            INTEGER NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS attestations (
                attester    TEXT    NOT NULL,
                attestee    TEXT    NOT NULL,
                score       INTEGER NOT NULL,
                timestamp   INTEGER NOT NULL,
                context     TEXT    NOT NULL,
                valid       INTEGER NOT NULL,
                PRIMARY KEY (attester, attestee)
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS domain_reputations (
                identity            TEXT    NOT NULL,
                domain              TEXT    NOT NULL,
                score               INTEGER NOT NULL,
                last_updated        INTEGER NOT NULL,
                endorsement_count   INTEGER NOT NULL,
                PRIMARY KEY (identity, domain)
            )
        """)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    def load_config(self) -> Optional[AdminConfig]:
        row = self.conn.execute(
            "SELECT admin, verification_threshold, next_identity_id FROM config WHERE singleton = 1"
        ).fetchone()
        if row is None:
            return None
        admin, threshold, next_id = row
        return AdminConfig(admin=admin, verification_threshold=threshold, next_identity_id=next_id)

    def save_config(self, config: AdminConfig) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO config (singleton, admin, verification_threshold, next_identity_id)
            VALUES (1, ?, ?, ?)
        """, (config.admin, config.verification_threshold, config.next_identity_id))

    def get_identity(self, principal: Principal) -> Optional[Identity]:
        row = self.conn.execute("""
            SELECT id, registration_height, verification_score, attestation_count, verified
            FROM identities WHERE principal = ?
        """, (principal,)).fetchone()
        return _identity_from_row(row) if row else None

    def put_identity(self, principal: Principal, identity: Identity) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO identities
            (principal, id, registration_height, verification_score, attestation_count, verified)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            principal, identity.id, identity.registration_height,
            identity.verification_score, identity.attestation_count, int(identity.verified)
        ))

    def get_attestation(self, attester: Principal, attestee: Principal) -> Optional[Attestation]:
        row = self.conn.execute("""
            SELECT score, timestamp, context, valid
            FROM attestations WHERE attester = ? AND attestee = ?
        """, (attester, attestee)).fetchone()
        return _attestation_from_row(row) if row else None

    def put_attestation(self, attester: Principal, attestee: Principal, attestation: Attestation) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO attestations
            (attester, attestee, score, timestamp, context, valid)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            attester, attestee, attestation.score, attestation.timestamp,
            attestation.context, int(attestation.valid)
        ))

    def get_domain_reputation(self, identity: Principal, domain: str) -> Optional[DomainReputation]:
        row = self.conn.execute("""
            SELECT score, last_updated, endorsement_count
            FROM domain_reputations WHERE identity = ? AND domain = ?
        """, (identity, domain)).fetchone()
        if row is None:
            return None
        score, last_updated, count = row
        return DomainReputation(score=score, last_updated=last_updated, endorsement_count=count)

    def put_domain_reputation(self, identity: Principal, domain: str, reputation: DomainReputation) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO domain_reputations
            (identity, domain, score, last_updated, endorsement_count)
            VALUES (?, ?, ?, ?, ?)
        """, (identity, domain, reputation.score, reputation.last_updated, reputation.endorsement_count))

    @contextmanager
    def transaction(self):
        if self._in_transaction:
            raise RuntimeError("Nested transactions are not supported")
        self.conn.execute("BEGIN IMMEDIATE")
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self.conn.execute("ROLLBACK")
            logger.debug("Rolled back transaction on %s", self.db_path)
            raise
        else:
            self.conn.execute("COMMIT")
        finally:
            self._in_transaction = False

    def snapshot(self) -> LedgerSnapshot:
        snap = LedgerSnapshot(config=self.load_config())

        for row in self.conn.execute("""
            SELECT principal, id, registration_height, verification_score, attestation_count, verified
            FROM identities
        """):
            snap.identities[row[0]] = _identity_from_row(row[1:])

        for row in self.conn.execute(
            "SELECT attester, attestee, score, timestamp, context, valid FROM attestations"
        ):
            snap.attestations[(row[0], row[1])] = _attestation_from_row(row[2:])

        for identity, domain, score, last_updated, count in self.conn.execute(
            "SELECT identity, domain, score, last_updated, endorsement_count FROM domain_reputations"
        ):
            snap.domain_reputations[(identity, domain)] = DomainReputation(
                score=score, last_updated=last_updated, endorsement_count=count
            )
        return snap

    def latest_height(self) -> int:
        row = self.conn.execute("""
            SELECT MAX(h) FROM (
                SELECT MAX(registration_height) AS h FROM identities
                UNION ALL SELECT MAX(timestamp) FROM attestations
                UNION ALL SELECT MAX(last_updated) FROM domain_reputations
            )
        """).fetchone()
        return row[0] if row and row[0] is not None else 0

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("Closed ledger database %s", self.db_path)


def _identity_from_row(row) -> Identity:
    id_, height, score, count, verified = row
    return Identity(
        id=id_,
        registration_height=height,
        verification_score=score,
        attestation_count=count,
        verified=bool(verified),
    )


def _attestation_from_row(row) -> Attestation:
    score, timestamp, context, valid = row
    return Attestation(score=score, timestamp=timestamp, context=context, valid=bool(valid))
