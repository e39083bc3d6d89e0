"""
SQLite database initialization and the on-disk document store.

Database owns the connection and creates the schema. SqliteStore implements
the DocumentStore primitives on top of one `documents` table: one row per
(namespace, collection, id) with a JSON body and a version counter.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from homeroom.data.store import DocumentStore
from homeroom.errors import UnavailableError

logger = logging.getLogger(__name__)

# Default DB lives next to the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "homeroom.db"

SCHEMA_SQL = """
-- Documents -----------------------------------------------------------------
CREATE TABLE IF NOT EXISTS documents (
    namespace   TEXT    NOT NULL,
    collection  TEXT    NOT NULL,
    id          TEXT    NOT NULL,
    body        TEXT    NOT NULL,
    version     INTEGER NOT NULL DEFAULT 1,
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (namespace, collection, id)
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(namespace, collection);
"""


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        try:
            # autocommit; SqliteStore issues its own BEGIN/COMMIT
            self.conn = sqlite3.connect(
                str(self.db_path), check_same_thread=False, isolation_level=None
            )
            self.conn.row_factory = sqlite3.Row
            if str(self.db_path) != ":memory:":
                self.conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        except sqlite3.Error as exc:
            raise UnavailableError(f"Cannot open database {self.db_path}: {exc}") from exc
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        logger.info("Database schema ensured.")


class SqliteStore(DocumentStore):
    """DocumentStore persisted in SQLite. Every sqlite3.Error becomes UnavailableError."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__()
        self.conn = conn
        self._depth = 0

    @classmethod
    def open(cls, db_path: Optional[Path] = None) -> "SqliteStore":
        return cls(Database(db_path).connect())

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            outer = self._depth == 0
            self._depth += 1
            try:
                if outer:
                    self._execute("BEGIN IMMEDIATE")
                yield
                if outer:
                    self._execute("COMMIT")
            except BaseException:
                if outer and self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise
            finally:
                self._depth -= 1

    def _read(self, namespace, collection, doc_id):
        row = self._execute(
            "SELECT body, version FROM documents WHERE namespace = ? AND collection = ? AND id = ?",
            (namespace, collection, doc_id),
        ).fetchone()
        if row is None:
            return None
        return json.loads(row["body"]), row["version"]

    def _write(self, namespace, collection, doc_id, data, version):
        self._execute(
            """INSERT INTO documents (namespace, collection, id, body, version)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(namespace, collection, id) DO UPDATE SET
                   body = excluded.body,
                   version = excluded.version,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')""",
            (namespace, collection, doc_id, json.dumps(data), version),
        )

    def _remove(self, namespace, collection, doc_id):
        self._execute(
            "DELETE FROM documents WHERE namespace = ? AND collection = ? AND id = ?",
            (namespace, collection, doc_id),
        )

    def _scan(self, namespace, collection):
        rows = self._execute(
            "SELECT id, body FROM documents WHERE namespace = ? AND collection = ? ORDER BY rowid",
            (namespace, collection),
        ).fetchall()
        return [(r["id"], json.loads(r["body"])) for r in rows]

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise UnavailableError(f"Store call failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Opens SQLite and stores every document of every family in one table.
#   The body column is the document as JSON; version counts writes so a
#   caller can ask for a conditional write (expected_version).
#
# Key pieces:
#   - Database: connection lifecycle + schema (CREATE IF NOT EXISTS, safe to
#     run every launch).
#   - SqliteStore: the four DocumentStore primitives. Reads, merges and
#     version checks happen in DocumentStore inside one BEGIN IMMEDIATE
#     transaction, so a read-check-write is a single unit on disk.
#
# Data flow:
#   Service → Repository → DocumentStore.set() → SqliteStore._write() → row
