"""
Pytest configuration and shared fixtures for txcore tests.

This module provides a controllable clock, resource managers and
transaction managers, and makes sure every test starts with an empty
context stack and an empty manager registry.
"""

import pytest

from txcore.core.context import clear_current_stack
from txcore.core.settings import TransactionSettings
from txcore.engine.manager import TransactionManager
from txcore.interface.registry import clear_transaction_managers, register_transaction_manager
from txcore.resource.memory import InMemoryResourceManager
from txcore.resource.sqlite import SQLiteResourceManager


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Isolation between tests
# =============================================================================

@pytest.fixture(autouse=True)
def fresh_chain():
    """Start and end every test with an empty stack and registry."""
    clear_current_stack()
    clear_transaction_managers()
    yield
    clear_current_stack()
    clear_transaction_managers()


# =============================================================================
# Resource and transaction managers
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resource_manager():
    """In-memory resource manager with savepoints enabled."""
    return InMemoryResourceManager()


@pytest.fixture
def no_savepoint_resource_manager():
    """In-memory resource manager without savepoint support."""
    return InMemoryResourceManager(savepoints_enabled=False)


@pytest.fixture
def manager(resource_manager, clock):
    """Transaction manager with default settings."""
    return TransactionManager(resource_manager, clock=clock)


@pytest.fixture
def make_manager(resource_manager, clock):
    """Factory for managers with custom settings."""
    def _make(rm=None, **settings):
        return TransactionManager(
            rm or resource_manager,
            settings=TransactionSettings(**settings),
            clock=clock,
        )
    return _make


@pytest.fixture
def registered_manager(manager):
    """Manager registered as the default for @transactional."""
    register_transaction_manager(manager)
    return manager


@pytest.fixture
def sqlite_resource_manager(tmp_path):
    """SQLite resource manager with a small ledger table."""
    rm = SQLiteResourceManager(tmp_path / "txcore.db", timeout=1.0)
    rm.execute_script(
        "CREATE TABLE IF NOT EXISTS ledger (name TEXT PRIMARY KEY, amount INTEGER NOT NULL)"
    )
    return rm
