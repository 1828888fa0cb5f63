# === NAVMAP v1 ===
# {
#   "module": "Otame.catalog.store",
#   "purpose": "SQLite store: connections, bootstrap, write transactions, and snapshot readers",
#   "sections": [
#     {"id": "init", "name": "Initialization & Bootstrap", "anchor": "INI", "kind": "api"},
#     {"id": "transactions", "name": "Transaction Boundaries", "anchor": "TXN", "kind": "api"},
#     {"id": "readers", "name": "Snapshot Readers", "anchor": "RDR", "kind": "api"},
#     {"id": "stats", "name": "Statistics", "anchor": "STA", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""SQLite-backed catalog store.

Key design principles:
- One explicit store object per database file; nothing is kept in module
  globals, so tests can build as many independent stores as they like
- One writer at a time: writes go through :meth:`CatalogStore.transaction`,
  which opens ``BEGIN IMMEDIATE`` and leaves serialization to SQLite
- Many readers: :meth:`CatalogStore.reader` lends out a connection from a
  small idle pool and wraps the work in a read transaction, so a reader sees
  one committed snapshot even while a bulk ingest is in flight (WAL journaling)
- All-or-nothing writes: any exception inside a transaction rolls back;
  ``sqlite3.Error`` surfaces as :class:`~Otame.errors.TransactionError`
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

from ..cancellation import CancellationToken, check_cancelled
from ..errors import ConfigurationError, TransactionError
from ..settings import StoreConfiguration
from .schema import DEFAULT_SCHEMA, SCHEMA_VERSION, CatalogSchema

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a timestamp so that string order matches time order."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class CatalogStore:
    """Transactional SQLite store for catalog datasets.

    Usage::

        store = CatalogStore(StoreConfiguration(db_path=path))
        store.bootstrap()
        try:
            # ... ingest, search ...
        finally:
            store.close()
    """

    def __init__(
        self,
        config: Optional[StoreConfiguration] = None,
        schema: CatalogSchema = DEFAULT_SCHEMA,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or StoreConfiguration()
        self.schema = schema
        self._clock = clock
        self._db_path = Path(self.config.db_path)
        self._writer: Optional[sqlite3.Connection] = None
        self._write_lock = threading.RLock()
        self._local = threading.local()
        self._readers: List[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._db_path

    def now(self) -> datetime:
        """Current time according to the store's clock."""
        return self._clock()

    # ========================================================================
    # Initialization & Bootstrap
    # ========================================================================

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly below
        if self.config.readonly:
            uri = f"file:{self._db_path.as_posix()}?mode=ro"
            conn = sqlite3.connect(
                uri,
                uri=True,
                timeout=self.config.busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
        else:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self.config.busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={int(self.config.busy_timeout_ms)}")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def bootstrap(self) -> None:
        """Open the writer connection and create the schema if needed."""

        if self._writer is not None:
            return
        if not self.config.readonly:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        elif not self._db_path.exists():
            raise ConfigurationError(f"read-only store does not exist: {self._db_path}")

        logger.info(
            "store-open",
            extra={"event": {"path": str(self._db_path), "readonly": self.config.readonly}},
        )
        conn = self._connect()
        if not self.config.readonly:
            if self.config.wal_mode:
                conn.execute("PRAGMA journal_mode=WAL")
            with self._write_lock:
                conn.executescript(self.schema.ddl())
                conn.execute(
                    "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, to_db_timestamp(self.now())),
                )
        self._writer = conn

    def close(self) -> None:
        """Close the writer and the idle reader connections.

        Readers still borrowed are closed when they are returned.
        """

        with self._readers_lock:
            idle, self._readers = self._readers, []
            writer, self._writer = self._writer, None
        for conn in idle:
            conn.close()
        if writer is not None:
            writer.close()

    def __enter__(self) -> "CatalogStore":
        self.bootstrap()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _require_writer(self) -> sqlite3.Connection:
        if self._writer is None:
            raise ConfigurationError("store is not bootstrapped; call bootstrap() first")
        return self._writer

    # ========================================================================
    # Transactions
    # ========================================================================

    @contextlib.contextmanager
    def transaction(
        self,
        cancel_token: Optional[CancellationToken] = None,
        *,
        operation: str = "transaction",
    ) -> Generator[sqlite3.Connection, None, None]:
        """Transactional context for writes.

        The token, if given, is checked before ``BEGIN`` and once more right
        before ``COMMIT`` so a late cancellation still rolls everything back.
        """

        if self.config.readonly:
            raise ConfigurationError("Cannot write in read-only mode")
        conn = self._require_writer()

        with self._write_lock:
            check_cancelled(cancel_token, operation)
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise TransactionError(f"{operation}: could not begin: {exc}") from exc
            try:
                yield conn
                check_cancelled(cancel_token, operation)
                conn.execute("COMMIT")
            except BaseException as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.warning(
                    "transaction-rolled-back",
                    extra={"event": {"operation": operation, "error": repr(exc)}},
                )
                if isinstance(exc, sqlite3.Error):
                    raise TransactionError(f"{operation}: {exc}") from exc
                raise

    # ========================================================================
    # Snapshot Readers
    # ========================================================================

    def _borrow_reader(self) -> sqlite3.Connection:
        with self._readers_lock:
            if self._readers:
                return self._readers.pop()
        self._require_writer()
        conn = self._connect()
        conn.execute("PRAGMA query_only=ON")
        return conn

    def _return_reader(self, conn: sqlite3.Connection) -> None:
        with self._readers_lock:
            if self._writer is not None and len(self._readers) < self.config.max_idle_readers:
                self._readers.append(conn)
                return
        conn.close()

    @contextlib.contextmanager
    def reader(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a read connection and hold one read transaction on it.

        Every statement issued in the block sees the same committed snapshot.
        Nested use within a thread reuses the borrowed connection. On exit
        the connection goes back to the idle pool, or is closed once
        ``max_idle_readers`` connections are already waiting.
        """

        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return
        conn = self._borrow_reader()
        self._local.conn = conn
        try:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                if conn.in_transaction:
                    conn.execute("COMMIT")
        finally:
            self._local.conn = None
            self._return_reader(conn)

    # ========================================================================
    # Statistics
    # ========================================================================

    def row_count(self, dataset: str, conn: Optional[sqlite3.Connection] = None) -> int:
        """Number of base rows physically present for ``dataset``."""

        spec = self.schema.dataset(dataset)
        with contextlib.ExitStack() as stack:
            if conn is None:
                conn = stack.enter_context(self.reader())
            row = conn.execute(f"SELECT COUNT(*) FROM {spec.base_table}").fetchone()
        return int(row[0])

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Per-dataset row counts and generation counts."""

        result: Dict[str, Dict[str, int]] = {}
        with self.reader() as conn:
            for name, spec in self.schema.datasets.items():
                rows = conn.execute(f"SELECT COUNT(*) FROM {spec.base_table}").fetchone()[0]
                gens = conn.execute(
                    """
                    SELECT COUNT(*),
                           COALESCE(SUM(CASE WHEN dead = 0 THEN 1 ELSE 0 END), 0),
                           COALESCE(SUM(CASE WHEN reclaimed_at IS NOT NULL THEN 1 ELSE 0 END), 0)
                    FROM generations WHERE dataset = ?
                    """,
                    (name,),
                ).fetchone()
                result[name] = {
                    "rows": int(rows),
                    "generations": int(gens[0]),
                    "alive": int(gens[1]),
                    "reclaimed": int(gens[2]),
                }
        return result


__all__ = ["CatalogStore", "utc_now", "to_db_timestamp", "from_db_timestamp"]
