"""
Ledger storage backends for FinalSeal.

A LedgerStore keeps one independent, append-only chain per scope.
Rows are never updated except for the anchor columns, and never deleted.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional

from . import config
from .block import AnchorRecord, ChainBlock


class LedgerStore(ABC):
    """Abstract persistence for chain blocks, keyed by scope."""

    @abstractmethod
    def load(self, scope: str) -> List[ChainBlock]:
        """Return the scope's blocks in index order."""
        pass

    @abstractmethod
    def append(self, scope: str, block: ChainBlock) -> None:
        """
        Persist a new tail block.

        Raises:
            ValueError: if block.index is not the next index for the scope
        """
        pass

    @abstractmethod
    def update_anchor(self, scope: str, index: int, record: AnchorRecord) -> None:
        """Record the anchor state reported for a block."""
        pass

    @abstractmethod
    def scopes(self) -> List[str]:
        pass


class InMemoryLedgerStore(LedgerStore):
    """Process-local store. Keeps serialized copies so callers cannot alias stored state."""

    def __init__(self):
        self._lock = threading.RLock()
        self._chains: Dict[str, List[dict]] = {}

    def load(self, scope: str) -> List[ChainBlock]:
        with self._lock:
            return [ChainBlock.from_dict(row) for row in self._chains.get(scope, [])]

    def append(self, scope: str, block: ChainBlock) -> None:
        with self._lock:
            expected = len(self._chains.get(scope, []))
            if block.index != expected:
                raise ValueError(
                    f"Block index {block.index} is not the next index ({expected}) for scope {scope!r}"
                )
            self._chains.setdefault(scope, []).append(block.to_dict())

    def update_anchor(self, scope: str, index: int, record: AnchorRecord) -> None:
        with self._lock:
            row = self._chains[scope][index]
            row["anchor_reference"] = record.reference
            row["anchor_status"] = record.status.value
            row["anchor_error"] = record.error

    def scopes(self) -> List[str]:
        with self._lock:
            return sorted(self._chains)


class SqliteLedgerStore(LedgerStore):
    """
    SQLite-backed store.

    One connection per store instance, guarded by a lock. The
    (scope, idx) primary key makes appends non-overwriting.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = str(path or config.LEDGER_DB_PATH)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.row_factory = sqlite3.Row
        self._conn = conn
        self._init_schema()

    @contextmanager
    def _transaction(self):
        """
        Context manager for database transactions.
        Automatically commits on success, rolls back on failure.
        """
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS chain_blocks (
                scope TEXT NOT NULL,
                idx INTEGER NOT NULL,
                previous_hash TEXT NOT NULL,
                digest TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                nonce INTEGER NOT NULL,
                hash TEXT NOT NULL,
                anchor_reference TEXT,
                anchor_status TEXT NOT NULL DEFAULT 'PENDING',
                anchor_error TEXT,
                created_at INTEGER DEFAULT (strftime('%s', 'now')),
                PRIMARY KEY (scope, idx)
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_chain_blocks_status
            ON chain_blocks(anchor_status);""")

    def load(self, scope: str) -> List[ChainBlock]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT idx, previous_hash, digest, timestamp, nonce, hash, "
                "anchor_reference, anchor_status, anchor_error "
                "FROM chain_blocks WHERE scope=? ORDER BY idx ASC",
                (scope,)
            )
            rows = cur.fetchall()

        blocks = []
        for row in rows:
            data = dict(row)
            data["index"] = data.pop("idx")
            blocks.append(ChainBlock.from_dict(data))
        return blocks

    def append(self, scope: str, block: ChainBlock) -> None:
        with self._transaction() as conn:
            cur = conn.execute("SELECT COUNT(*) AS cnt FROM chain_blocks WHERE scope=?", (scope,))
            expected = cur.fetchone()["cnt"]
            if block.index != expected:
                raise ValueError(
                    f"Block index {block.index} is not the next index ({expected}) for scope {scope!r}"
                )
            conn.execute(
                "INSERT INTO chain_blocks(scope, idx, previous_hash, digest, timestamp, nonce, hash, "
                "anchor_reference, anchor_status, anchor_error) VALUES(?,?,?,?,?,?,?,?,?,?)",
                (
                    scope, block.index, block.previous_hash, block.digest, block.timestamp,
                    block.nonce, block.hash, block.anchor.reference, block.anchor.status.value,
                    block.anchor.error,
                )
            )

    def update_anchor(self, scope: str, index: int, record: AnchorRecord) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE chain_blocks SET anchor_reference=?, anchor_status=?, anchor_error=? "
                "WHERE scope=? AND idx=?",
                (record.reference, record.status.value, record.error, scope, index)
            )

    def scopes(self) -> List[str]:
        with self._lock:
            cur = self._conn.execute("SELECT DISTINCT scope FROM chain_blocks ORDER BY scope")
            return [row["scope"] for row in cur.fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def get_ledger_store(backend: Optional[str] = None, path: Optional[str] = None) -> LedgerStore:
    """
    Factory function to create the configured ledger store.

    Args:
        backend: "memory" or "sqlite" (default: SEAL_LEDGER_BACKEND)
        path: Database path for the sqlite backend (default: SEAL_LEDGER_DB_PATH)
    """
    backend = backend or config.LEDGER_BACKEND
    if backend == "sqlite":
        return SqliteLedgerStore(path=path)
    if backend == "memory":
        return InMemoryLedgerStore()
    raise ValueError(f"Unknown ledger backend: {backend}")
