"""
Transaction manager facade.

TransactionManager ties the decision engine, the completion engine and a
resource manager to the context stack of the running call chain. It is
the component that applies a decision's side effects: suspending the
current resource, beginning a physical transaction, taking a savepoint,
and pushing the new context.

Usage:
    ```python
    manager = TransactionManager(InMemoryResourceManager())

    with manager.transaction(TransactionAttribute()) as ctx:
        ...  # body runs against manager.current_resource()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from txcore.core.context import (
    ContextStack,
    Outcome,
    SuspendedResources,
    TransactionContext,
    current_stack,
)
from txcore.core.errors import NoTransactionError
from txcore.core.models import TransactionAttribute
from txcore.core.settings import TransactionSettings
from txcore.engine.completion import CompletionEngine
from txcore.engine.decision import Action, ActionKind, PropagationDecisionEngine
from txcore.engine.rollback import RollbackRuleMatcher, Verdict
from txcore.resource.base import ResourceManager

logger = logging.getLogger(__name__)

# Errors that mean the call chain itself is being torn down
CANCELLATION_ERRORS = (asyncio.CancelledError, KeyboardInterrupt, SystemExit)


class TransactionManager:
    """
    Begin and complete transaction boundaries for the running call chain.

    Each thread or asyncio task gets its own context stack; one manager
    instance can be shared freely between them.
    """

    def __init__(
        self,
        resource_manager: ResourceManager,
        settings: Optional[TransactionSettings] = None,
        matcher: Optional[RollbackRuleMatcher] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the transaction manager.

        Args:
            resource_manager: Resource manager driven by this manager
            settings: Behaviour switches (defaults if omitted)
            matcher: Rollback rule matcher (default policy if omitted)
            clock: Monotonic clock for deadlines
        """
        self.resource_manager = resource_manager
        self.settings = settings or TransactionSettings()
        self.clock = clock
        self.decision_engine = PropagationDecisionEngine(resource_manager, self.settings)
        self.completion_engine = CompletionEngine(
            resource_manager,
            matcher=matcher,
            settings=self.settings,
            clock=clock,
        )

    # =========================================================================
    # Boundaries
    # =========================================================================

    def begin(self, attribute: TransactionAttribute) -> TransactionContext:
        """
        Open a boundary for an operation about to run.

        Args:
            attribute: Effective attribute of the operation

        Returns:
            The context pushed for this boundary

        Raises:
            NoTransactionError, ExistingTransactionError,
            NestedNotSupportedError, IncompatibleAttributesError:
                Decision-time failures; nothing was pushed or begun
        """
        stack = current_stack()
        action = self.decision_engine.decide(attribute, stack)
        if action.is_failure:
            logger.debug(f"Propagation '{attribute.propagation.value}' rejected: {action.error}")
            raise action.error

        ctx = self._apply(action, attribute, stack)
        logger.debug(
            f"Opened context {ctx.id} ({action.kind.value}) at depth {stack.depth}"
        )
        return ctx

    def complete(self, ctx: TransactionContext, outcome: Outcome) -> Verdict:
        """
        Close a boundary opened by ``begin``.

        Args:
            ctx: Context returned by ``begin``
            outcome: How the operation body finished

        Returns:
            Verdict applied to the boundary
        """
        return self.completion_engine.complete(ctx, outcome, current_stack())

    @contextmanager
    def transaction(self, attribute: TransactionAttribute) -> Iterator[TransactionContext]:
        """
        Run a block inside a boundary.

        The block's own error is re-raised unchanged after completion.
        Cancellation (CancelledError, KeyboardInterrupt, SystemExit)
        completes the boundary with a rollback-forcing outcome; any other
        error, including a non-Exception BaseException, goes through the
        rollback rules.
        """
        ctx = self.begin(attribute)
        try:
            yield ctx
        except CANCELLATION_ERRORS as e:
            self._complete_after_error(ctx, Outcome.cancellation(e))
            raise
        except BaseException as e:
            self._complete_after_error(ctx, Outcome.failure(e))
            raise
        else:
            self.complete(ctx, Outcome.success())

    def _complete_after_error(self, ctx: TransactionContext, outcome: Outcome) -> None:
        try:
            self.complete(ctx, outcome)
        except Exception as e:
            logger.error(f"Application error overridden by completion error: {e}")
            raise

    def cancel_all(self) -> int:
        """
        Complete every context of the running chain, innermost first.

        Each context is completed with a cancelled outcome, so every
        physical transaction and savepoint is rolled back. The first
        resource error is raised once the stack is empty.

        Returns:
            Number of contexts completed
        """
        stack = current_stack()
        count = 0
        first_error: Optional[Exception] = None

        while not stack.is_empty():
            ctx = stack.peek()
            try:
                self.complete(ctx, Outcome.cancellation())
            except Exception as e:
                if first_error is None:
                    first_error = e
            count += 1

        if count:
            logger.warning(f"Cancelled {count} transaction context(s)")
        if first_error is not None:
            raise first_error
        return count

    # =========================================================================
    # Current chain state
    # =========================================================================

    def current_context(self) -> Optional[TransactionContext]:
        """Innermost context of the running chain, transactional or not."""
        return current_stack().peek()

    def current_resource(self) -> Any:
        """Resource handle the running operation should use, or None."""
        ctx = current_stack().active()
        return ctx.resource if ctx is not None else None

    def is_transaction_active(self) -> bool:
        return current_stack().active() is not None

    def set_rollback_only(self) -> None:
        """
        Force the innermost transactional boundary to roll back.

        Raises:
            NoTransactionError: If no transaction is active
        """
        ctx = current_stack().active()
        if ctx is None:
            raise NoTransactionError("No transaction is active to mark rollback-only")
        ctx.set_rollback_only()

    def check_deadline(self) -> None:
        """
        Raise if the running chain's physical transaction is past its deadline.

        Resource-facing code calls this before work that would extend the
        transaction.

        Raises:
            TransactionTimedOutError: If the deadline has passed
        """
        ctx = current_stack().active()
        if ctx is not None:
            ctx.check_deadline(self.clock())

    # =========================================================================
    # Applying decisions
    # =========================================================================

    def _apply(
        self,
        action: Action,
        attribute: TransactionAttribute,
        stack: ContextStack,
    ) -> TransactionContext:
        current = action.current
        kind = action.kind

        if kind == ActionKind.JOIN_EXISTING:
            ctx = TransactionContext(
                attribute=attribute,
                parent=current,
                resource=current.resource,
                isolation=current.isolation,
                read_only=current.read_only,
            )

        elif kind == ActionKind.NEST_WITH_SAVEPOINT:
            savepoint = self.resource_manager.create_savepoint(current.resource)
            ctx = TransactionContext(
                attribute=attribute,
                parent=current,
                resource=current.resource,
                savepoint=savepoint,
                isolation=current.isolation,
                read_only=current.read_only,
            )

        elif kind == ActionKind.RUN_WITHOUT_TX:
            suspended = self._suspend(current) if action.suspend_existing else None
            ctx = TransactionContext(
                attribute=attribute,
                parent=current or stack.peek(),
                transactional=False,
                suspended=suspended,
            )

        else:
            ctx = self._start_new(action, attribute, stack)

        stack.push(ctx)
        return ctx

    def _start_new(
        self,
        action: Action,
        attribute: TransactionAttribute,
        stack: ContextStack,
    ) -> TransactionContext:
        suspended: Optional[SuspendedResources] = None
        if action.kind == ActionKind.SUSPEND_AND_START_NEW:
            suspended = self._suspend(action.current)

        timeout = attribute.timeout
        if timeout == -1:
            timeout = self.settings.default_timeout

        try:
            handle = self.resource_manager.begin_new(
                attribute.isolation, attribute.read_only, timeout
            )
        except BaseException:
            if suspended is not None:
                self.completion_engine.resume(suspended)
            raise

        deadline = self.clock() + timeout if timeout >= 0 else None
        return TransactionContext(
            attribute=attribute,
            parent=action.current or stack.peek(),
            resource=handle,
            is_new_transaction=True,
            isolation=attribute.isolation,
            read_only=attribute.read_only,
            start_deadline=deadline,
            deadline=deadline,
            suspended=suspended,
        )

    def _suspend(self, ctx: TransactionContext) -> SuspendedResources:
        """Detach ``ctx``'s resource, keeping it for resume."""
        suspended = SuspendedResources(
            context=ctx,
            resource=ctx.resource,
            suspended_at=self.clock(),
        )
        ctx.resource = None
        logger.debug(f"Suspended context {ctx.id}")
        return suspended
