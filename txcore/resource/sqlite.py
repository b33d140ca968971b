"""
SQLite resource manager for txcore.

Each physical transaction gets its own connection, opened in autocommit
mode so that transaction boundaries are issued explicitly:

    begin_new              → BEGIN / BEGIN IMMEDIATE
    create_savepoint       → SAVEPOINT sp_n
    rollback_to_savepoint  → ROLLBACK TO SAVEPOINT sp_n
    release_savepoint      → RELEASE SAVEPOINT sp_n
    commit / rollback      → COMMIT / ROLLBACK, then close

Isolation:
    SQLite transactions are serializable. SERIALIZABLE takes the write
    lock up front (BEGIN IMMEDIATE); READ_UNCOMMITTED enables
    ``PRAGMA read_uncommitted`` (only effective with shared cache).
    Read-only transactions run with ``PRAGMA query_only``.

Timeouts:
    The ``timeout`` passed to ``begin_new`` is a transaction deadline, tracked
    by the transaction manager. It is not SQLite's busy timeout: every
    connection waits up to the manager-wide ``timeout`` given to the
    constructor when the database is locked.

Thread Safety:
    WAL mode lets readers proceed while one writer holds the lock. A
    transaction that suspends another and then writes to the same file
    will wait on SQLite's busy timeout if the suspended one already wrote.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from txcore.core.models import Isolation, generate_id
from txcore.resource.base import ResourceManager


@dataclass(eq=False)
class SQLiteTransaction:
    """
    Handle for one SQLite physical transaction.

    Attributes:
        connection: Connection dedicated to this transaction
        isolation: Requested isolation level
        read_only: Whether the connection runs with query_only
        savepoints: Open savepoint names, oldest first
        state: "active", "committed" or "rolled_back"
    """

    connection: sqlite3.Connection = field(repr=False)
    isolation: Isolation = Isolation.DEFAULT
    read_only: bool = False
    savepoints: list[str] = field(default_factory=list)
    state: str = "active"
    id: str = field(default_factory=generate_id)

    @property
    def is_active(self) -> bool:
        return self.state == "active"


class SQLiteResourceManager(ResourceManager):
    """
    Resource manager for a SQLite database file.

    Usage:
        ```python
        rm = SQLiteResourceManager("./app.db")
        rm.execute_script("CREATE TABLE IF NOT EXISTS t (v TEXT)")

        tx = rm.begin_new(Isolation.DEFAULT, False, -1)
        rm.execute(tx, "INSERT INTO t VALUES (?)", ("a",))
        rm.commit(tx)
        ```
    """

    def __init__(self, db_path: str | Path, timeout: float = 30.0):
        """
        Initialize the SQLite resource manager.

        Args:
            db_path: Path to the SQLite database file
            timeout: Busy timeout in seconds for new connections
        """
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._lock = threading.Lock()
        self._savepoint_counter = 0

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        # Enable WAL mode for better concurrency
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    def _next_savepoint_name(self) -> str:
        with self._lock:
            self._savepoint_counter += 1
            return f"sp_{self._savepoint_counter}"

    # =========================================================================
    # ResourceManager
    # =========================================================================

    def begin_new(self, isolation: Isolation, read_only: bool, timeout: int) -> SQLiteTransaction:
        conn = self._connect()
        try:
            if isolation == Isolation.READ_UNCOMMITTED:
                conn.execute("PRAGMA read_uncommitted=1")
            if read_only:
                conn.execute("PRAGMA query_only=ON")

            if isolation == Isolation.SERIALIZABLE and not read_only:
                conn.execute("BEGIN IMMEDIATE")
            else:
                conn.execute("BEGIN")
        except Exception:
            conn.close()
            raise

        return SQLiteTransaction(connection=conn, isolation=isolation, read_only=read_only)

    def create_savepoint(self, handle: SQLiteTransaction) -> str:
        self._require_active(handle)
        name = self._next_savepoint_name()
        handle.connection.execute(f'SAVEPOINT "{name}"')
        handle.savepoints.append(name)
        return name

    def commit(self, handle: SQLiteTransaction) -> None:
        """
        Commit and close the connection.

        A failed COMMIT (deferred constraint, busy database) rolls the
        transaction back and closes the connection before the error
        propagates, so no lock outlives the handle.
        """
        self._require_active(handle)
        try:
            handle.connection.execute("COMMIT")
            handle.state = "committed"
        except sqlite3.Error:
            handle.state = "rolled_back"
            if handle.connection.in_transaction:
                handle.connection.execute("ROLLBACK")
            raise
        finally:
            handle.connection.close()

    def rollback(self, handle: SQLiteTransaction) -> None:
        if handle.state == "rolled_back":
            # a failed commit already rolled back
            return
        self._require_active(handle)
        try:
            if handle.connection.in_transaction:
                handle.connection.execute("ROLLBACK")
        finally:
            handle.state = "rolled_back"
            handle.connection.close()

    def rollback_to_savepoint(self, handle: SQLiteTransaction, savepoint: str) -> None:
        self._require_active(handle)
        handle.connection.execute(f'ROLLBACK TO SAVEPOINT "{savepoint}"')
        index = handle.savepoints.index(savepoint)
        del handle.savepoints[index + 1:]

    def release_savepoint(self, handle: SQLiteTransaction, savepoint: str) -> None:
        self._require_active(handle)
        handle.connection.execute(f'RELEASE SAVEPOINT "{savepoint}"')
        index = handle.savepoints.index(savepoint)
        del handle.savepoints[index:]

    def supports_savepoints(self, handle: SQLiteTransaction) -> bool:
        return True

    # =========================================================================
    # Statement execution
    # =========================================================================

    def execute(
        self,
        handle: SQLiteTransaction,
        sql: str,
        parameters: Sequence[Any] = (),
    ) -> sqlite3.Cursor:
        """Execute one statement inside the transaction."""
        self._require_active(handle)
        return handle.connection.execute(sql, parameters)

    def query(
        self,
        handle: Optional[SQLiteTransaction],
        sql: str,
        parameters: Sequence[Any] = (),
    ) -> list[dict[str, Any]]:
        """
        Run a query and return rows as dictionaries.

        With ``handle=None`` the query runs on a short-lived autocommit
        connection, outside any transaction.
        """
        if handle is not None:
            rows = self.execute(handle, sql, parameters).fetchall()
            return [dict(row) for row in rows]

        conn = self._connect()
        try:
            return [dict(row) for row in conn.execute(sql, parameters).fetchall()]
        finally:
            conn.close()

    def execute_script(self, script: str) -> None:
        """Run DDL or other statements outside any transaction."""
        conn = self._connect()
        try:
            conn.executescript(script)
        finally:
            conn.close()

    def _require_active(self, handle: SQLiteTransaction) -> None:
        if not handle.is_active:
            raise sqlite3.OperationalError(f"Transaction {handle.id} is {handle.state}")
