"""
Resource manager abstraction for txcore.

The transaction core never touches storage itself. It drives a resource
manager through seven operations and surfaces whatever that manager
raises without reinterpreting it.

Implementations:
    - InMemoryResourceManager: Development and testing
    - SQLiteResourceManager: SQLite connections with real savepoints
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from txcore.core.models import Isolation


class ResourceManager(ABC):
    """
    Abstract base class for resource managers.

    Handles returned by ``begin_new`` and ``create_savepoint`` are opaque
    to the core; it only stores them and passes them back.
    """

    @abstractmethod
    def begin_new(self, isolation: Isolation, read_only: bool, timeout: int) -> Any:
        """
        Begin a physical transaction.

        Args:
            isolation: Requested isolation level
            read_only: Read-only hint
            timeout: Timeout in seconds, -1 for the manager's default

        Returns:
            Handle for the new transaction
        """
        pass

    @abstractmethod
    def create_savepoint(self, handle: Any) -> Any:
        """Create a savepoint inside the transaction and return its handle."""
        pass

    @abstractmethod
    def commit(self, handle: Any) -> None:
        """Commit the transaction."""
        pass

    @abstractmethod
    def rollback(self, handle: Any) -> None:
        """Roll back the transaction."""
        pass

    @abstractmethod
    def rollback_to_savepoint(self, handle: Any, savepoint: Any) -> None:
        """Undo everything done after ``savepoint``; the transaction stays open."""
        pass

    @abstractmethod
    def release_savepoint(self, handle: Any, savepoint: Any) -> None:
        """Discard ``savepoint`` keeping its changes in the transaction."""
        pass

    @abstractmethod
    def supports_savepoints(self, handle: Any) -> bool:
        """Whether ``create_savepoint`` can be used on this transaction."""
        pass
