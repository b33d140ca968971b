"""
txcore Quickstart Example

This example walks through the propagation behaviours on a small SQLite
ledger:

1. REQUIRED boundaries that join each other
2. REQUIRES_NEW for an audit log that survives the caller's rollback
3. NESTED savepoints that undo only part of the work
4. Rollback rules declared on the decorator
"""

import logging
import tempfile
from pathlib import Path

from txcore import (
    ExpectedError,
    Propagation,
    SQLiteResourceManager,
    TransactionManager,
    register_transaction_manager,
    transactional,
)


class InsufficientFunds(ExpectedError):
    """A business outcome: the work done so far is still committed."""


class FraudSuspected(Exception):
    pass


def build_manager(db_path: Path) -> tuple[TransactionManager, SQLiteResourceManager]:
    rm = SQLiteResourceManager(db_path)
    rm.execute_script(
        """
        CREATE TABLE IF NOT EXISTS accounts (name TEXT PRIMARY KEY, balance INTEGER NOT NULL);
        CREATE TABLE IF NOT EXISTS audit (message TEXT NOT NULL);
        INSERT OR REPLACE INTO accounts VALUES ('alice', 100), ('bob', 20);
        """
    )
    manager = register_transaction_manager(TransactionManager(rm))
    return manager, rm


def main():
    logging.basicConfig(level=logging.INFO)

    # ==========================================================================
    # Setup
    # ==========================================================================
    print("=" * 60)
    print("txcore Quickstart")
    print("=" * 60)

    db_path = Path(tempfile.mkdtemp()) / "ledger.db"
    manager, rm = build_manager(db_path)

    def execute(sql, *params):
        return rm.execute(manager.current_resource(), sql, params)

    @transactional(propagation=Propagation.REQUIRES_NEW)
    def audit(message):
        execute("INSERT INTO audit VALUES (?)", message)

    @transactional(propagation=Propagation.MANDATORY)
    def move(src, dst, amount):
        execute("UPDATE accounts SET balance = balance - ? WHERE name = ?", amount, src)
        execute("UPDATE accounts SET balance = balance + ? WHERE name = ?", amount, dst)

    @transactional(propagation=Propagation.NESTED)
    def bonus(name, amount):
        execute("UPDATE accounts SET balance = balance + ? WHERE name = ?", amount, name)
        raise FraudSuspected(f"bonus for {name} rejected")

    @transactional
    def transfer(src, dst, amount):
        audit(f"transfer {src} -> {dst}: {amount}")
        move(src, dst, amount)
        try:
            bonus(dst, 1000)
        except FraudSuspected as e:
            print(f"  savepoint rolled back: {e}")

        rows = rm.query(manager.current_resource(), "SELECT balance FROM accounts WHERE name = ?", (src,))
        if rows[0]["balance"] < 0:
            raise InsufficientFunds(f"{src} is overdrawn")

    # ==========================================================================
    # Run transfers
    # ==========================================================================
    print("\nTransfer alice -> bob: 30")
    transfer("alice", "bob", 30)

    print("\nTransfer bob -> alice: 500 (overdraws, committed as a business outcome)")
    try:
        transfer("bob", "alice", 500)
    except InsufficientFunds as e:
        print(f"  {e}")

    print("\nCalling move() outside a transaction")
    try:
        move("alice", "bob", 1)
    except Exception as e:
        print(f"  {type(e).__name__}: {e}")

    # ==========================================================================
    # Results
    # ==========================================================================
    print("\nBalances:")
    for row in rm.query(None, "SELECT name, balance FROM accounts ORDER BY name"):
        print(f"  {row['name']}: {row['balance']}")

    print("\nAudit log:")
    for row in rm.query(None, "SELECT message FROM audit"):
        print(f"  {row['message']}")


if __name__ == "__main__":
    main()
