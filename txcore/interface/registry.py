"""
Registry of named transaction managers.

The declarative surface selects a manager by the attribute's
``transaction_manager`` qualifier; an empty qualifier selects "default".
"""

from __future__ import annotations

import threading
from typing import Dict, Optional

from txcore.core.errors import TransactionManagerNotFoundError
from txcore.engine.manager import TransactionManager

DEFAULT_MANAGER_NAME = "default"

_managers: Dict[str, TransactionManager] = {}
_lock = threading.Lock()


def register_transaction_manager(
    manager: TransactionManager,
    name: str = DEFAULT_MANAGER_NAME,
) -> TransactionManager:
    """Register ``manager`` under ``name``, replacing any previous one."""
    with _lock:
        _managers[name] = manager
    return manager


def get_transaction_manager(name: Optional[str] = None) -> TransactionManager:
    """
    Look up a registered manager.

    Args:
        name: Qualifier; None or "" selects the default manager

    Raises:
        TransactionManagerNotFoundError: If nothing is registered under name
    """
    key = name or DEFAULT_MANAGER_NAME
    with _lock:
        manager = _managers.get(key)
    if manager is None:
        raise TransactionManagerNotFoundError(f"No transaction manager registered as '{key}'")
    return manager


def clear_transaction_managers() -> None:
    with _lock:
        _managers.clear()
