"""
In-memory resource manager for txcore.

A small key/value store with transactional writes, intended for tests,
examples and prototyping:

- Writes are staged per transaction and applied on commit
- Savepoints snapshot the staged writes
- Every operation is appended to ``journal`` for inspection
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Optional

from txcore.core.models import Isolation, generate_id
from txcore.resource.base import ResourceManager


_DELETED = object()


@dataclass(eq=False)
class InMemoryTransaction:
    """
    Handle for one in-memory physical transaction.

    Attributes:
        id: Transaction identifier
        isolation: Requested isolation (recorded, not enforced)
        read_only: Writes are refused when True
        timeout: Requested timeout in seconds
        writes: Staged writes, applied on commit
        savepoints: Savepoint names, oldest first
        state: "active", "committed" or "rolled_back"
    """

    isolation: Isolation = Isolation.DEFAULT
    read_only: bool = False
    timeout: int = -1
    writes: dict[str, Any] = field(default_factory=dict)
    savepoints: list[str] = field(default_factory=list)
    snapshots: dict[str, dict[str, Any]] = field(default_factory=dict, repr=False)
    state: str = "active"
    id: str = field(default_factory=generate_id)

    @property
    def is_active(self) -> bool:
        return self.state == "active"


class InMemoryResourceManager(ResourceManager):
    """
    Resource manager backed by a dictionary.

    Usage:
        ```python
        rm = InMemoryResourceManager()
        tx = rm.begin_new(Isolation.DEFAULT, False, -1)
        rm.put(tx, "user:1", {"name": "alice"})
        rm.commit(tx)
        rm.data["user:1"]  # → {"name": "alice"}
        ```

    Thread Safety:
        Operations are serialized with a re-entrant lock.
    """

    def __init__(self, savepoints_enabled: bool = True):
        """
        Initialize the in-memory resource manager.

        Args:
            savepoints_enabled: Whether transactions support savepoints
        """
        self.savepoints_enabled = savepoints_enabled
        self.data: dict[str, Any] = {}
        self.journal: list[tuple[str, str]] = []
        self._lock = RLock()
        self._savepoint_counter = 0

    # =========================================================================
    # ResourceManager
    # =========================================================================

    def begin_new(self, isolation: Isolation, read_only: bool, timeout: int) -> InMemoryTransaction:
        with self._lock:
            tx = InMemoryTransaction(isolation=isolation, read_only=read_only, timeout=timeout)
            self.journal.append(("begin", tx.id))
            return tx

    def create_savepoint(self, handle: InMemoryTransaction) -> str:
        with self._lock:
            self._require_active(handle)
            if not self.savepoints_enabled:
                raise ValueError("Savepoints are not enabled on this resource manager")

            self._savepoint_counter += 1
            name = f"sp_{self._savepoint_counter}"
            handle.savepoints.append(name)
            handle.snapshots[name] = copy.deepcopy(handle.writes)
            self.journal.append(("savepoint", handle.id))
            return name

    def commit(self, handle: InMemoryTransaction) -> None:
        with self._lock:
            self._require_active(handle)
            for key, value in handle.writes.items():
                if value is _DELETED:
                    self.data.pop(key, None)
                else:
                    self.data[key] = value
            handle.state = "committed"
            self.journal.append(("commit", handle.id))

    def rollback(self, handle: InMemoryTransaction) -> None:
        with self._lock:
            self._require_active(handle)
            handle.writes.clear()
            handle.state = "rolled_back"
            self.journal.append(("rollback", handle.id))

    def rollback_to_savepoint(self, handle: InMemoryTransaction, savepoint: str) -> None:
        with self._lock:
            self._require_active(handle)
            index = self._savepoint_index(handle, savepoint)
            handle.writes = copy.deepcopy(handle.snapshots[savepoint])
            # later savepoints are gone; this one stays until released
            for name in handle.savepoints[index + 1:]:
                handle.snapshots.pop(name, None)
            del handle.savepoints[index + 1:]
            self.journal.append(("rollback_to_savepoint", handle.id))

    def release_savepoint(self, handle: InMemoryTransaction, savepoint: str) -> None:
        with self._lock:
            self._require_active(handle)
            index = self._savepoint_index(handle, savepoint)
            for name in handle.savepoints[index:]:
                handle.snapshots.pop(name, None)
            del handle.savepoints[index:]
            self.journal.append(("release_savepoint", handle.id))

    def supports_savepoints(self, handle: InMemoryTransaction) -> bool:
        return self.savepoints_enabled

    # =========================================================================
    # Data access
    # =========================================================================

    def get(self, handle: Optional[InMemoryTransaction], key: str, default: Any = None) -> Any:
        """Read a key, seeing the transaction's own staged writes first."""
        with self._lock:
            if handle is not None and key in handle.writes:
                value = handle.writes[key]
                return default if value is _DELETED else value
            return self.data.get(key, default)

    def put(self, handle: InMemoryTransaction, key: str, value: Any) -> None:
        """
        Stage a write.

        Raises:
            ValueError: If the transaction is not active or is read-only
        """
        with self._lock:
            self._require_writable(handle)
            handle.writes[key] = value

    def delete(self, handle: InMemoryTransaction, key: str) -> None:
        """Stage a deletion."""
        with self._lock:
            self._require_writable(handle)
            handle.writes[key] = _DELETED

    def operations(self, name: str) -> list[str]:
        """IDs of transactions that went through ``name`` in the journal."""
        return [tx_id for op, tx_id in self.journal if op == name]

    def _require_active(self, handle: InMemoryTransaction) -> None:
        if not handle.is_active:
            raise ValueError(f"Transaction {handle.id} is {handle.state}")

    def _require_writable(self, handle: InMemoryTransaction) -> None:
        self._require_active(handle)
        if handle.read_only:
            raise ValueError(f"Transaction {handle.id} is read-only")

    def _savepoint_index(self, handle: InMemoryTransaction, savepoint: str) -> int:
        try:
            return handle.savepoints.index(savepoint)
        except ValueError:
            raise ValueError(f"Savepoint not found: {savepoint}") from None
