"""
Tests for SQLiteResourceManager, alone and under a TransactionManager.
"""

import sqlite3
from unittest.mock import patch

import pytest

from txcore.core.context import Outcome
from txcore.core.models import Isolation, Propagation, TransactionAttribute
from txcore.core.settings import TransactionSettings
from txcore.engine.manager import TransactionManager
from txcore.engine.rollback import Verdict


def amounts(rm):
    rows = rm.query(None, "SELECT name, amount FROM ledger ORDER BY name")
    return {row["name"]: row["amount"] for row in rows}


class TestSQLiteResourceManager:
    """Direct resource operations."""

    def test_commit_persists(self, sqlite_resource_manager):
        rm = sqlite_resource_manager
        tx = rm.begin_new(Isolation.DEFAULT, False, -1)
        rm.execute(tx, "INSERT INTO ledger VALUES (?, ?)", ("alice", 10))
        rm.commit(tx)

        assert amounts(rm) == {"alice": 10}
        assert tx.state == "committed"

    def test_rollback_discards(self, sqlite_resource_manager):
        rm = sqlite_resource_manager
        tx = rm.begin_new(Isolation.DEFAULT, False, -1)
        rm.execute(tx, "INSERT INTO ledger VALUES (?, ?)", ("alice", 10))
        rm.rollback(tx)

        assert amounts(rm) == {}

    def test_savepoint_rollback_keeps_earlier_work(self, sqlite_resource_manager):
        rm = sqlite_resource_manager
        tx = rm.begin_new(Isolation.DEFAULT, False, -1)
        rm.execute(tx, "INSERT INTO ledger VALUES (?, ?)", ("alice", 10))

        savepoint = rm.create_savepoint(tx)
        rm.execute(tx, "INSERT INTO ledger VALUES (?, ?)", ("bob", 5))
        rm.rollback_to_savepoint(tx, savepoint)
        rm.release_savepoint(tx, savepoint)

        assert tx.savepoints == []
        assert rm.query(tx, "SELECT name FROM ledger") == [{"name": "alice"}]
        rm.commit(tx)
        assert amounts(rm) == {"alice": 10}

    def test_read_only_rejects_writes(self, sqlite_resource_manager):
        rm = sqlite_resource_manager
        tx = rm.begin_new(Isolation.DEFAULT, True, -1)

        with pytest.raises(sqlite3.OperationalError):
            rm.execute(tx, "INSERT INTO ledger VALUES (?, ?)", ("alice", 10))
        rm.rollback(tx)

    def test_completed_handle_rejected(self, sqlite_resource_manager):
        rm = sqlite_resource_manager
        tx = rm.begin_new(Isolation.SERIALIZABLE, False, -1)
        rm.commit(tx)

        with pytest.raises(sqlite3.OperationalError):
            rm.execute(tx, "SELECT 1")


class TestSQLiteUnderManager:
    """Propagation driven against a real database."""

    @pytest.fixture
    def sqlite_manager(self, sqlite_resource_manager, clock):
        return TransactionManager(sqlite_resource_manager, clock=clock)

    def test_requires_new_with_failing_nested(self, sqlite_manager, sqlite_resource_manager):
        rm = sqlite_resource_manager
        a = sqlite_manager.begin(TransactionAttribute())

        b = sqlite_manager.begin(TransactionAttribute(propagation=Propagation.REQUIRES_NEW))
        rm.execute(b.resource, "INSERT INTO ledger VALUES (?, ?)", ("b", 1))

        c = sqlite_manager.begin(TransactionAttribute(propagation=Propagation.NESTED))
        rm.execute(c.resource, "INSERT INTO ledger VALUES (?, ?)", ("c", 1))
        assert sqlite_manager.complete(c, Outcome.failure(ValueError())) == Verdict.ROLLBACK

        assert sqlite_manager.complete(b, Outcome.success()) == Verdict.COMMIT
        assert amounts(rm) == {"b": 1}

        rm.execute(a.resource, "INSERT INTO ledger VALUES (?, ?)", ("a", 1))
        assert sqlite_manager.complete(a, Outcome.success()) == Verdict.COMMIT
        assert amounts(rm) == {"a": 1, "b": 1}

    def test_joined_failure_rolls_back_outer(self, sqlite_manager, sqlite_resource_manager):
        rm = sqlite_resource_manager

        with pytest.raises(RuntimeError):
            with sqlite_manager.transaction(TransactionAttribute()) as outer:
                rm.execute(outer.resource, "INSERT INTO ledger VALUES (?, ?)", ("outer", 1))
                try:
                    with sqlite_manager.transaction(TransactionAttribute()) as inner:
                        rm.execute(inner.resource, "INSERT INTO ledger VALUES (?, ?)", ("inner", 1))
                        raise KeyError("inner")
                except KeyError:
                    pass
                assert outer.is_rollback_only
                raise RuntimeError("outer gives up")

        assert amounts(rm) == {}

    def test_swallowed_joined_failure_still_rolls_back(self, sqlite_manager, sqlite_resource_manager):
        rm = sqlite_resource_manager

        with sqlite_manager.transaction(TransactionAttribute()) as outer:
            rm.execute(outer.resource, "INSERT INTO ledger VALUES (?, ?)", ("outer", 1))
            try:
                with sqlite_manager.transaction(TransactionAttribute()):
                    raise KeyError("inner")
            except KeyError:
                pass

        assert amounts(rm) == {}


class TestSQLiteCommitFailure:
    """A failed COMMIT must not leave the database locked."""

    @pytest.fixture
    def deferred_fk(self, sqlite_resource_manager):
        sqlite_resource_manager.execute_script(
            """
            CREATE TABLE IF NOT EXISTS accounts (id INTEGER PRIMARY KEY);
            CREATE TABLE IF NOT EXISTS entries (
                account_id INTEGER REFERENCES accounts(id) DEFERRABLE INITIALLY DEFERRED
            );
            """
        )
        return sqlite_resource_manager

    def test_failed_commit_releases_lock(self, deferred_fk, clock):
        rm = deferred_fk
        manager = TransactionManager(rm, clock=clock)

        with pytest.raises(sqlite3.IntegrityError):
            with manager.transaction(TransactionAttribute()) as ctx:
                rm.execute(ctx.resource, "INSERT INTO entries VALUES (?)", (42,))

        assert ctx.resource.state == "rolled_back"

        writer = rm.begin_new(Isolation.SERIALIZABLE, False, -1)
        rm.execute(writer, "INSERT INTO accounts VALUES (?)", (1,))
        rm.commit(writer)
        assert rm.query(None, "SELECT COUNT(*) AS n FROM entries") == [{"n": 0}]

    def test_rollback_after_failed_commit_is_quiet(self, deferred_fk, clock):
        rm = deferred_fk
        manager = TransactionManager(
            rm, settings=TransactionSettings(rollback_on_commit_failure=True), clock=clock
        )
        ctx = manager.begin(TransactionAttribute())
        rm.execute(ctx.resource, "INSERT INTO entries VALUES (?)", (42,))

        with pytest.raises(sqlite3.IntegrityError):
            manager.complete(ctx, Outcome.success())

        rm.rollback(ctx.resource)
        assert ctx.resource.state == "rolled_back"


class TestSQLiteTimeouts:
    """Transaction timeouts are deadlines, not busy timeouts."""

    def test_transaction_timeout_does_not_change_busy_timeout(self, sqlite_resource_manager):
        rm = sqlite_resource_manager

        with patch.object(rm, "_connect", wraps=rm._connect) as connect:
            tx = rm.begin_new(Isolation.DEFAULT, False, 7)

        connect.assert_called_once_with()
        rm.rollback(tx)
