"""Lightweight SQLite JSON-document store.

The default data client behind the script ``db`` object and the
``device`` lookups. Every table is a collection of JSON documents:
  - insert(table, data) stores a copy and returns it with an ``id``
  - query(table, filters, options) matches documents by field equality,
    then applies ``order`` / ``ascending`` / ``limit``

Uses WAL mode for concurrent reads/writes from Flask and worker threads.
"""

import json
import logging
import sqlite3
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _sort_key(field: str):
    def key(doc: Dict[str, Any]):
        value = doc[field]
        # Numbers before strings
        return (isinstance(value, str), value)
    return key


class DataStore:
    """SQLite-backed document store with a query/insert client interface."""

    def __init__(self, db_path: str = "dashboard_data.db"):
        self._db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._memory_conn: Optional[sqlite3.Connection] = None

        # Initialize schema on main connection
        conn = self._get_conn()
        self._init_tables(conn)

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local connection (SQLite isn't thread-safe)."""
        if self._db_path == ":memory:":
            # In-memory databases are per connection: share one under the write lock
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            return self._memory_conn
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self._db_path)
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    def _init_tables(self, conn: sqlite3.Connection):
        """Create tables and indices if they don't exist."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT NOT NULL,
                collection TEXT NOT NULL,
                created REAL NOT NULL,
                body TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            );

            CREATE INDEX IF NOT EXISTS idx_documents_collection_created
                ON documents(collection, created);
        """)
        conn.commit()

    # ------------------------------------------------------------------
    # Data client interface
    # ------------------------------------------------------------------

    def insert(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Store a document; returns it with its id."""
        if not isinstance(data, dict):
            raise TypeError("insert expects a dict")
        doc = dict(data)
        doc.setdefault("id", uuid.uuid4().hex)
        body = json.dumps(doc)

        conn = self._get_conn()
        with self._write_lock:
            conn.execute(
                "INSERT OR REPLACE INTO documents (id, collection, created, body) VALUES (?, ?, ?, ?)",
                (str(doc["id"]), table, time.time(), body),
            )
            conn.commit()
        logger.debug("DataStore insert %s/%s", table, doc["id"])
        return json.loads(body)

    def query(self, table: str, filters: Optional[Dict[str, Any]] = None,
              options: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Documents of table whose fields equal every filter value.

        options: order (field name), ascending (default True), limit.
        Without an order, documents come back in insertion order.
        """
        filters = filters or {}
        options = options or {}

        conn = self._get_conn()
        with self._write_lock:
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY created ASC, rowid ASC",
                (table,),
            ).fetchall()

        docs = [json.loads(r[0]) for r in rows]
        docs = [d for d in docs if all(d.get(k) == v for k, v in filters.items())]

        order = options.get("order")
        if order:
            ascending = options.get("ascending", True)
            present = [d for d in docs if d.get(order) is not None]
            missing = [d for d in docs if d.get(order) is None]
            present.sort(key=_sort_key(order), reverse=not ascending)
            docs = present + missing

        limit = options.get("limit")
        if limit is not None:
            docs = docs[: int(limit)]
        return docs

    def delete(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Delete matching documents; returns how many went."""
        doomed = [d["id"] for d in self.query(table, filters)]
        if not doomed:
            return 0
        conn = self._get_conn()
        with self._write_lock:
            conn.executemany(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                [(table, str(doc_id)) for doc_id in doomed],
            )
            conn.commit()
        return len(doomed)

    def tables(self) -> List[str]:
        """Return list of all collections that have data."""
        conn = self._get_conn()
        with self._write_lock:
            rows = conn.execute(
                "SELECT DISTINCT collection FROM documents ORDER BY collection"
            ).fetchall()
        return [r[0] for r in rows]

    def cleanup(self, table: str, max_days: int = 7):
        """Delete documents of table older than max_days."""
        try:
            conn = self._get_conn()
            cutoff = time.time() - (max_days * 86400)
            with self._write_lock:
                result = conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND created < ?", (table, cutoff)
                )
                conn.commit()
                if result.rowcount > 0:
                    logger.info(
                        "DataStore cleanup: deleted %d %s documents older than %d days",
                        result.rowcount,
                        table,
                        max_days,
                    )
        except sqlite3.Error as exc:
            logger.error("DataStore cleanup error: %s", exc)

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None
