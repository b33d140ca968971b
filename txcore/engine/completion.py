"""
Completion engine.

Runs when an operation body finishes. It asks the rollback matcher for a
verdict, drives the resource manager according to the kind of boundary,
then pops the context stack and resumes whatever the boundary suspended.

Boundary kinds:
    new physical transaction  → commit / rollback
    savepoint (NESTED)        → release / rollback to savepoint + release
    joined participant        → on rollback, mark the parent rollback-only
    non-transactional         → nothing against the resource manager

Stack cleanup always happens, even when the resource manager raises; the
resource error is then surfaced to the caller unchanged.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from txcore.core.context import (
    ContextStack,
    ContextStatus,
    Outcome,
    SuspendedResources,
    TransactionContext,
)
from txcore.core.errors import (
    IllegalCompletionError,
    TransactionTimedOutError,
    UnexpectedRollbackError,
)
from txcore.core.settings import TransactionSettings
from txcore.engine.rollback import RollbackRuleMatcher, Verdict
from txcore.resource.base import ResourceManager

logger = logging.getLogger(__name__)


class CompletionEngine:
    """
    Complete transaction boundaries.

    Example:
        engine = CompletionEngine(resource_manager)
        verdict = engine.complete(ctx, Outcome.failure(err), current_stack())
        # → Verdict.ROLLBACK
    """

    def __init__(
        self,
        resource_manager: ResourceManager,
        matcher: Optional[RollbackRuleMatcher] = None,
        settings: Optional[TransactionSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the completion engine.

        Args:
            resource_manager: Receives commit/rollback/savepoint calls
            matcher: Rollback rule matcher (default policy if omitted)
            settings: Completion switches
            clock: Monotonic clock used for deadlines and suspension time
        """
        self.resource_manager = resource_manager
        self.matcher = matcher or RollbackRuleMatcher()
        self.settings = settings or TransactionSettings()
        self.clock = clock

    def complete(
        self,
        ctx: TransactionContext,
        outcome: Outcome,
        stack: ContextStack,
    ) -> Verdict:
        """
        Complete ``ctx`` with ``outcome``.

        Args:
            ctx: Context to complete; must be the top of ``stack``
            outcome: How the operation body finished
            stack: Context stack of the running chain

        Returns:
            The verdict that was applied

        Raises:
            IllegalCompletionError: If ctx is completed or not on top
            TransactionTimedOutError: If a successful body outlived its deadline
            UnexpectedRollbackError: If rollback-only forced a rollback of a
                successful body and fail_on_unexpected_rollback is on
        """
        if ctx.is_completed:
            raise IllegalCompletionError(
                f"Transaction context {ctx.id} is already completed",
                context_id=ctx.id,
            )
        if stack.peek() is not ctx:
            raise IllegalCompletionError(
                f"Transaction context {ctx.id} is not the innermost active context",
                context_id=ctx.id,
            )

        timeout_error: Optional[TransactionTimedOutError] = None
        if ctx.is_new_transaction and outcome.is_success and ctx.is_expired(self.clock()):
            timeout_error = TransactionTimedOutError(
                f"Transaction {ctx.id} exceeded its deadline",
                deadline=ctx.deadline,
                context_id=ctx.id,
            )
            outcome = Outcome.failure(timeout_error)

        was_rollback_only = ctx.is_rollback_only
        if ctx.transactional:
            verdict = self.matcher.decide(ctx.attribute, outcome, ctx.status)
        else:
            verdict = Verdict.COMMIT

        logger.debug(
            f"Completing context {ctx.id} "
            f"(new={ctx.is_new_transaction}, savepoint={ctx.has_savepoint}) → {verdict.value}"
        )

        try:
            if ctx.is_new_transaction:
                self._complete_transaction(ctx, verdict)
            elif ctx.has_savepoint:
                self._complete_savepoint(ctx, verdict)
            elif ctx.transactional and verdict == Verdict.ROLLBACK:
                self._mark_rollback_only(ctx)
        finally:
            stack.pop()
            if ctx.suspended is not None:
                self.resume(ctx.suspended)
                ctx.suspended = None
            ctx.status = ContextStatus.COMPLETED

        if timeout_error is not None:
            raise timeout_error

        if (
            was_rollback_only
            and outcome.is_success
            and ctx.is_new_transaction
            and self.settings.fail_on_unexpected_rollback
        ):
            logger.warning(f"Transaction {ctx.id} rolled back because it was marked rollback-only")
            raise UnexpectedRollbackError(
                "Transaction rolled back because it has been marked as rollback-only",
                context_id=ctx.id,
            )

        return verdict

    def _complete_transaction(self, ctx: TransactionContext, verdict: Verdict) -> None:
        handle = ctx.resource
        if verdict == Verdict.COMMIT:
            try:
                self.resource_manager.commit(handle)
            except Exception:
                if self.settings.rollback_on_commit_failure:
                    self._rollback_after_commit_failure(ctx)
                raise
        else:
            ctx.deadline = None
            self.resource_manager.rollback(handle)

    def _rollback_after_commit_failure(self, ctx: TransactionContext) -> None:
        try:
            self.resource_manager.rollback(ctx.resource)
        except Exception as e:
            # the commit error is the one the caller sees
            logger.error(f"Rollback after commit failure of {ctx.id} failed: {e}")

    def _complete_savepoint(self, ctx: TransactionContext, verdict: Verdict) -> None:
        if verdict == Verdict.ROLLBACK:
            self.resource_manager.rollback_to_savepoint(ctx.resource, ctx.savepoint)
        self.resource_manager.release_savepoint(ctx.resource, ctx.savepoint)

    def _mark_rollback_only(self, ctx: TransactionContext) -> None:
        """Mark joined ancestors up to the owning transaction or savepoint."""
        target = ctx.parent
        while target is not None:
            target.set_rollback_only()
            logger.debug(f"Participant {ctx.id} marked {target.id} rollback-only")
            if not target.is_joined:
                break
            target = target.parent

    def resume(self, suspended: SuspendedResources) -> None:
        """Rebind a suspended resource to its context."""
        ctx = suspended.context
        ctx.resource = suspended.resource

        if self.settings.exclude_suspension_from_timeout:
            owner = ctx.physical_owner()
            if owner is not None and owner.deadline is not None:
                owner.deadline += self.clock() - suspended.suspended_at

        logger.debug(f"Resumed context {ctx.id}")
