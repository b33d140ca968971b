"""
Tests for transaction contexts and the per-chain context stack.
"""

import asyncio
import threading

import pytest

from txcore.core.context import (
    ContextStack,
    ContextStatus,
    Outcome,
    TransactionContext,
    current_stack,
)
from txcore.core.errors import TransactionTimedOutError


class TestContextStack:
    """Tests for push/pop/peek."""

    def test_empty_stack(self):
        stack = ContextStack()
        assert stack.is_empty()
        assert stack.peek() is None
        assert stack.active() is None
        assert stack.depth == 0

    def test_push_pop_peek(self):
        stack = ContextStack()
        first = TransactionContext()
        second = TransactionContext()

        stack.push(first)
        stack.push(second)

        assert stack.peek() is second
        assert len(stack) == 2
        assert list(stack) == [first, second]
        assert stack.pop() is second
        assert stack.pop() is first
        assert stack.is_empty()

    def test_pop_empty_raises(self):
        with pytest.raises(IndexError):
            ContextStack().pop()

    def test_active_ignores_non_transactional_top(self):
        stack = ContextStack()
        stack.push(TransactionContext(is_new_transaction=True))
        stack.push(TransactionContext(transactional=False))
        assert stack.peek() is not None
        assert stack.active() is None


class TestTransactionContext:
    """Tests for context properties."""

    def test_kinds(self):
        owner = TransactionContext(is_new_transaction=True)
        joined = TransactionContext(parent=owner)
        nested = TransactionContext(parent=owner, savepoint="sp_1")
        plain = TransactionContext(transactional=False)

        assert not owner.is_joined
        assert joined.is_joined
        assert not nested.is_joined and nested.has_savepoint
        assert not plain.is_joined

    def test_falsy_savepoint_handle_counts(self):
        assert TransactionContext(savepoint=0).has_savepoint

    def test_physical_owner(self):
        owner = TransactionContext(is_new_transaction=True)
        nested = TransactionContext(parent=owner, savepoint="sp")
        joined = TransactionContext(parent=nested)

        assert joined.physical_owner() is owner
        assert owner.physical_owner() is owner
        assert TransactionContext(transactional=False).physical_owner() is None

    def test_set_rollback_only(self):
        ctx = TransactionContext()
        ctx.set_rollback_only()
        assert ctx.is_rollback_only

    def test_completed_context_is_not_remarked(self):
        ctx = TransactionContext(status=ContextStatus.COMPLETED)
        ctx.set_rollback_only()
        assert ctx.status == ContextStatus.COMPLETED

    def test_check_deadline_uses_physical_owner(self):
        owner = TransactionContext(is_new_transaction=True, deadline=10.0)
        joined = TransactionContext(parent=owner)

        joined.check_deadline(9.0)
        with pytest.raises(TransactionTimedOutError) as exc_info:
            joined.check_deadline(11.0)
        assert exc_info.value.context_id == owner.id

    def test_no_deadline_never_expires(self):
        assert not TransactionContext(is_new_transaction=True).is_expired(1e12)


class TestOutcome:
    """Tests for Outcome."""

    def test_success(self):
        assert Outcome.success().is_success

    def test_failure(self):
        error = ValueError("x")
        outcome = Outcome.failure(error)
        assert not outcome.is_success
        assert outcome.error is error

    def test_cancellation(self):
        outcome = Outcome.cancellation()
        assert outcome.cancelled
        assert not outcome.is_success


class TestCurrentStack:
    """Per-chain stack lookup."""

    def test_same_chain_same_stack(self):
        assert current_stack() is current_stack()

    def test_threads_get_their_own_stack(self):
        current_stack().push(TransactionContext())
        seen = []

        def worker():
            seen.append(current_stack().depth)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen == [0]
        assert current_stack().depth == 1

    def test_child_task_does_not_inherit_parent_stack(self):
        async def main():
            current_stack().push(TransactionContext())

            async def child():
                stack = current_stack()
                stack.push(TransactionContext())
                return stack.depth

            child_depth = await asyncio.create_task(child())
            return current_stack().depth, child_depth

        assert asyncio.run(main()) == (1, 1)

    def test_task_stack_is_separate_from_thread_stack(self):
        current_stack().push(TransactionContext())

        async def main():
            return current_stack().depth

        assert asyncio.run(main()) == 0
        assert current_stack().depth == 1
