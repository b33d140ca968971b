"""
Transaction contexts and the per-chain context stack.

This module defines the mutable side of the transaction core:

- TransactionContext: one live transaction boundary
- SuspendedResources: a detached resource waiting to be resumed
- Outcome: how an operation body finished
- ContextStack: ordered record of the contexts of one call chain

Thread Safety:
    A stack belongs to exactly one call chain (a thread, or an asyncio
    task running in it) and is never locked. ``current_stack()`` tags
    every stack with its owner and hands a fresh stack to any other
    chain that inherits the context variable, so stacks cannot leak
    between threads or tasks.
"""

from __future__ import annotations

import asyncio
import threading
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional

from txcore.core.errors import TransactionTimedOutError
from txcore.core.models import Isolation, TransactionAttribute, generate_id


class ContextStatus(str, Enum):
    """Lifecycle status of a transaction context."""

    ACTIVE = "active"
    MARKED_ROLLBACK_ONLY = "marked_rollback_only"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Outcome:
    """
    How an operation body finished.

    Attributes:
        error: Error raised by the body, None on success
        cancelled: True when the call chain was cancelled; always rolls back
    """

    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def is_success(self) -> bool:
        return self.error is None and not self.cancelled

    @classmethod
    def success(cls) -> "Outcome":
        return SUCCESS

    @classmethod
    def failure(cls, error: BaseException) -> "Outcome":
        return cls(error=error)

    @classmethod
    def cancellation(cls, error: Optional[BaseException] = None) -> "Outcome":
        """Synthetic outcome used when unwinding a cancelled chain."""
        return cls(error=error, cancelled=True)


SUCCESS = Outcome()


@dataclass
class SuspendedResources:
    """
    A resource detached from a context so another boundary can run.

    The resource is kept, not released, and is rebound to ``context``
    when the boundary that suspended it completes.
    """

    context: "TransactionContext"
    resource: Any
    suspended_at: float


@dataclass(eq=False)
class TransactionContext:
    """
    One live transaction boundary.

    A context that started a physical transaction owns ``resource``;
    joined and nested contexts only reference their parent's resource.
    Non-transactional contexts (RUN_WITHOUT_TX) carry no resource at all.

    Attributes:
        id: Opaque context identifier
        attribute: Effective attribute of the operation that opened it
        parent: Context this one joined, nested under or suspended
        resource: Resource manager handle bound to this context
        transactional: False for contexts that run without a transaction
        is_new_transaction: True if this context began a physical transaction
        savepoint: Savepoint handle, present only for NESTED contexts
        isolation: Isolation in effect on the physical transaction
        read_only: Read-only flag in effect on the physical transaction
        status: Lifecycle status
        start_deadline: Deadline computed when the physical transaction began
        deadline: Current deadline, moved forward on resume when configured
        suspended: Resources this boundary suspended, resumed on completion
    """

    attribute: Optional[TransactionAttribute] = None
    parent: Optional["TransactionContext"] = field(default=None, repr=False)
    resource: Any = field(default=None, repr=False)
    transactional: bool = True
    is_new_transaction: bool = False
    savepoint: Any = None
    isolation: Isolation = Isolation.DEFAULT
    read_only: bool = False
    status: ContextStatus = ContextStatus.ACTIVE
    start_deadline: Optional[float] = None
    deadline: Optional[float] = None
    suspended: Optional[SuspendedResources] = field(default=None, repr=False)
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_savepoint(self) -> bool:
        return self.savepoint is not None

    @property
    def is_joined(self) -> bool:
        """True for a participant that neither began a transaction nor took a savepoint."""
        return self.transactional and not self.is_new_transaction and not self.has_savepoint

    @property
    def is_completed(self) -> bool:
        return self.status == ContextStatus.COMPLETED

    @property
    def is_rollback_only(self) -> bool:
        return self.status == ContextStatus.MARKED_ROLLBACK_ONLY

    def set_rollback_only(self) -> None:
        """Demand that this boundary ends in a rollback."""
        if self.status == ContextStatus.ACTIVE:
            self.status = ContextStatus.MARKED_ROLLBACK_ONLY

    def physical_owner(self) -> Optional["TransactionContext"]:
        """Walk up to the context that began this physical transaction."""
        ctx: Optional[TransactionContext] = self
        while ctx is not None and not ctx.is_new_transaction:
            if not ctx.transactional:
                return None
            ctx = ctx.parent
        return ctx

    def is_expired(self, now: float) -> bool:
        return self.deadline is not None and now > self.deadline

    def check_deadline(self, now: float) -> None:
        """
        Raise if the physical transaction behind this context is past its deadline.

        Raises:
            TransactionTimedOutError: If the deadline has passed
        """
        owner = self.physical_owner()
        if owner is not None and owner.is_expired(now):
            raise TransactionTimedOutError(
                f"Transaction {owner.id} exceeded its deadline",
                deadline=owner.deadline,
                context_id=owner.id,
            )


class ContextStack:
    """
    Stack of transaction contexts for one call chain.

    The top of the stack is the context the running operation executes
    against; an empty stack means no transaction boundary is open.

    Example:
        stack = current_stack()
        stack.push(ctx)
        stack.peek()   # → ctx
        stack.pop()    # → ctx
    """

    def __init__(self, owner: Any = None):
        self.owner = owner
        self._contexts: list[TransactionContext] = []

    def push(self, ctx: TransactionContext) -> None:
        self._contexts.append(ctx)

    def pop(self) -> TransactionContext:
        """
        Remove and return the top context.

        Raises:
            IndexError: If the stack is empty
        """
        if not self._contexts:
            raise IndexError("pop from empty context stack")
        return self._contexts.pop()

    def peek(self) -> Optional[TransactionContext]:
        return self._contexts[-1] if self._contexts else None

    def active(self) -> Optional[TransactionContext]:
        """Top context if it runs inside a transaction, else None."""
        top = self.peek()
        if top is not None and top.transactional:
            return top
        return None

    @property
    def depth(self) -> int:
        return len(self._contexts)

    def is_empty(self) -> bool:
        return not self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def __iter__(self) -> Iterator[TransactionContext]:
        """Iterate bottom to top."""
        return iter(list(self._contexts))

    def __repr__(self) -> str:
        return f"ContextStack(depth={self.depth}, top={self.peek()!r})"


_current_stack: ContextVar[Optional[ContextStack]] = ContextVar(
    "txcore_context_stack", default=None
)


def _chain_owner() -> tuple:
    """Identify the running call chain: thread ident plus asyncio task."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    return (threading.get_ident(), task)


def current_stack() -> ContextStack:
    """Return the context stack of the running call chain, creating it if needed."""
    owner = _chain_owner()
    stack = _current_stack.get()
    if stack is None or stack.owner != owner:
        stack = ContextStack(owner)
        _current_stack.set(stack)
    return stack


def clear_current_stack() -> None:
    """Forget the running chain's stack; the next lookup starts empty."""
    _current_stack.set(None)
