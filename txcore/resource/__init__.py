"""Resource managers driven by the transaction core."""

from .base import ResourceManager
from .memory import InMemoryResourceManager, InMemoryTransaction
from .sqlite import SQLiteResourceManager, SQLiteTransaction

__all__ = [
    "ResourceManager",
    "InMemoryResourceManager",
    "InMemoryTransaction",
    "SQLiteResourceManager",
    "SQLiteTransaction",
]
