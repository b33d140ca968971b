"""
Error taxonomy for txcore.

Decision-time errors (raised before an operation body runs):
    - NoTransactionError: MANDATORY with no active transaction
    - ExistingTransactionError: NEVER with an active transaction
    - NestedNotSupportedError: NESTED without savepoint capability
    - IncompatibleAttributesError: strict join with mismatched attributes

Completion-time errors:
    - IllegalCompletionError: completing a context that is not active
    - TransactionTimedOutError: physical transaction outlived its deadline
    - UnexpectedRollbackError: commit requested but rollback was forced

Errors raised by a resource manager are never wrapped; they reach the
caller exactly as the resource manager raised them.
"""

from typing import Optional


class TransactionError(Exception):
    """
    Base class for errors raised by the transaction core.

    Attributes:
        context_id: ID of the transaction context involved, if any
    """

    def __init__(self, message: str, context_id: Optional[str] = None):
        super().__init__(message)
        self.context_id = context_id


class NoTransactionError(TransactionError):
    """Raised when MANDATORY propagation finds no active transaction."""
    pass


class ExistingTransactionError(TransactionError):
    """Raised when NEVER propagation finds an active transaction."""
    pass


class NestedNotSupportedError(TransactionError):
    """Raised when NESTED propagation cannot take a savepoint."""
    pass


class IncompatibleAttributesError(TransactionError):
    """
    Raised when joining a transaction whose isolation or read-only flag
    conflicts with the joining operation's declaration.

    Attributes:
        field: Name of the conflicting attribute field
        declared: Value declared by the joining operation
        actual: Value in effect on the existing transaction
    """

    def __init__(
        self,
        message: str,
        field: str,
        declared: object,
        actual: object,
        context_id: Optional[str] = None,
    ):
        super().__init__(message, context_id)
        self.field = field
        self.declared = declared
        self.actual = actual


class IllegalCompletionError(TransactionError):
    """Raised when completing a context that is completed or not on top."""
    pass


class TransactionTimedOutError(TransactionError):
    """
    Raised when a physical transaction is found past its deadline.

    Attributes:
        deadline: Monotonic deadline that was exceeded
    """

    def __init__(
        self,
        message: str,
        deadline: Optional[float] = None,
        context_id: Optional[str] = None,
    ):
        super().__init__(message, context_id)
        self.deadline = deadline


class UnexpectedRollbackError(TransactionError):
    """Raised when a successful outcome ended in a forced rollback."""
    pass


class TransactionManagerNotFoundError(TransactionError):
    """Raised when no transaction manager is registered under a name."""
    pass


class ExpectedError(Exception):
    """
    Marker base for declared business errors.

    Absent a matching rollback rule, an ExpectedError does not force a
    rollback: the transaction commits and the error still reaches the
    caller. Every other error rolls back by default.
    """
    pass
