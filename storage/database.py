"""
SQLite-backed two-factor store with optional field-level encryption.

Schema
------
two_factor
  account_id  TEXT     PRIMARY KEY
  enabled     INTEGER  NOT NULL   -- 1 once enrollment is confirmed
  secret      TEXT                -- base32 secret (encrypted if an encryptor is set)

backup_codes
  id          INTEGER  PRIMARY KEY AUTOINCREMENT
  account_id  TEXT     NOT NULL
  hash        TEXT     NOT NULL   -- sha256$salt$digest
  consumed    INTEGER  NOT NULL   -- 0/1, only ever goes 0 -> 1
  consumed_at TEXT                -- ISO-8601 UTC

meta
  key         TEXT PRIMARY KEY
  value       TEXT                -- encryption salt stored as hex (NOT encrypted)
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from cryptography.exceptions import InvalidTag

from core.errors import StorageError
from core.state import (
    DISABLED,
    Disabled,
    TwoFactorState,
    from_record,
    to_record,
)
from storage.base import TwoFactorStore, same_state
from storage.encryption import FieldEncryptor

logger = logging.getLogger(__name__)


class TwoFactorDatabase(TwoFactorStore):
    """Thread-safe SQLite store; every write runs in one transaction."""

    def __init__(
        self,
        db_path: Path,
        encryptor: Optional[FieldEncryptor] = None,
    ) -> None:
        """
        Args:
            db_path:   Path to the SQLite file (``:memory:`` is accepted).
            encryptor: :class:`~storage.encryption.FieldEncryptor` for the
                       secret column. Without one, secrets are stored as
                       plain base32 and at-rest protection is up to the host.
        """
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._encryptor = encryptor
        self._lock = threading.RLock()
        # Autocommit mode; transactions are opened explicitly below.
        self._conn = sqlite3.connect(
            str(db_path), check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._bootstrap()

    # ── Schema ───────────────────────────────────────────────────────────

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS two_factor (
                account_id TEXT    PRIMARY KEY,
                enabled    INTEGER NOT NULL DEFAULT 0,
                secret     TEXT
            );
            CREATE TABLE IF NOT EXISTS backup_codes (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                account_id  TEXT    NOT NULL,
                hash        TEXT    NOT NULL,
                consumed    INTEGER NOT NULL DEFAULT 0,
                consumed_at TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_backup_codes_account
                ON backup_codes (account_id);
            CREATE TABLE IF NOT EXISTS meta (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    # ── Salt / meta ───────────────────────────────────────────────────────

    def get_salt(self) -> Optional[bytes]:
        """Return stored salt or None if database is fresh."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM meta WHERE key='salt'"
            ).fetchone()
        return bytes.fromhex(row["value"]) if row else None

    def set_salt(self, salt: bytes) -> None:
        """Persist the salt (stored as hex, NOT encrypted)."""
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('salt', ?)",
                (salt.hex(),),
            )

    def set_encryptor(self, encryptor: Optional[FieldEncryptor]) -> None:
        """Attach or replace the field encryptor."""
        self._encryptor = encryptor

    def _enc(self, account_id: str, value: Optional[str]) -> Optional[str]:
        if value is None or self._encryptor is None:
            return value
        return self._encryptor.encrypt_field(value, context=account_id)

    def _dec(self, account_id: str, value: Optional[str]) -> Optional[str]:
        if value is None or self._encryptor is None:
            return value
        try:
            return self._encryptor.decrypt_field(value, context=account_id)
        except (InvalidTag, ValueError) as exc:
            raise StorageError("Stored secret could not be decrypted.") from exc

    # ── TwoFactorStore ────────────────────────────────────────────────────

    def get_state(self, account_id: str) -> TwoFactorState:
        with self._lock:
            return self._load(self._conn, account_id)

    def set_state(self, account_id: str, state: TwoFactorState) -> None:
        with self._transaction() as conn:
            self._store(conn, account_id, state)

    def transition(
        self,
        account_id: str,
        expected: TwoFactorState,
        new_state: TwoFactorState,
    ) -> bool:
        with self._transaction() as conn:
            current = self._load(conn, account_id)
            if not same_state(current, expected):
                logger.debug(
                    "Transition for account %s lost a race (%s -> %s)",
                    account_id, expected.kind, new_state.kind,
                )
                return False
            self._store(conn, account_id, new_state)
        return True

    def mark_backup_code_consumed(
        self, account_id: str, code_hash: str, at: datetime
    ) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE backup_codes SET consumed=1, consumed_at=?
                WHERE account_id=? AND hash=? AND consumed=0
                """,
                (at.isoformat(), account_id, code_hash),
            )
        return cursor.rowcount == 1

    # ── Internals ─────────────────────────────────────────────────────────

    def _load(self, conn: sqlite3.Connection, account_id: str) -> TwoFactorState:
        row = conn.execute(
            "SELECT enabled, secret FROM two_factor WHERE account_id=?",
            (account_id,),
        ).fetchone()
        if row is None:
            return DISABLED
        codes = conn.execute(
            "SELECT hash, consumed, consumed_at FROM backup_codes "
            "WHERE account_id=? ORDER BY id",
            (account_id,),
        ).fetchall()
        record = {
            "enabled": bool(row["enabled"]),
            "secret": self._dec(account_id, row["secret"]),
            "backup_codes": [
                {
                    "hash": c["hash"],
                    "consumed": bool(c["consumed"]),
                    "consumed_at": (
                        datetime.fromisoformat(c["consumed_at"])
                        if c["consumed_at"]
                        else None
                    ),
                }
                for c in codes
            ],
        }
        try:
            return from_record(record)
        except ValueError as exc:
            raise StorageError(f"Corrupt two-factor row for account {account_id}.") from exc

    def _store(
        self, conn: sqlite3.Connection, account_id: str, state: TwoFactorState
    ) -> None:
        conn.execute("DELETE FROM backup_codes WHERE account_id=?", (account_id,))
        if isinstance(state, Disabled):
            conn.execute("DELETE FROM two_factor WHERE account_id=?", (account_id,))
            return
        record = to_record(state)
        conn.execute(
            "INSERT OR REPLACE INTO two_factor (account_id, enabled, secret) "
            "VALUES (?, ?, ?)",
            (account_id, int(record["enabled"]), self._enc(account_id, record["secret"])),
        )
        conn.executemany(
            "INSERT INTO backup_codes (account_id, hash, consumed, consumed_at) "
            "VALUES (?, ?, ?, ?)",
            [
                (
                    account_id,
                    item["hash"],
                    int(item["consumed"]),
                    item["consumed_at"].isoformat() if item["consumed_at"] else None,
                )
                for item in record["backup_codes"]
            ],
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
