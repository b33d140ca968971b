"""
txcore - Declarative transaction propagation.

Operations declare how they take part in a transaction; txcore decides,
at every nested call, whether to join, start, suspend, nest or reject,
and at every completion whether to commit or roll back.

Components:
- Attribute Model: TransactionAttribute, Propagation, RollbackRule
- Rollback Rule Matcher: specificity-ranked commit/rollback verdicts
- Context Stack: per-thread / per-task record of open boundaries
- Propagation Decision Engine: boundary action on entry
- Completion Engine: commit, rollback, savepoints and resume on exit
"""
from txcore.core.models import (
    Isolation,
    Propagation,
    RollbackRule,
    RollbackSign,
    TransactionAttribute,
    declare,
    resolve_attribute,
)
from txcore.core.context import (
    ContextStack,
    ContextStatus,
    Outcome,
    TransactionContext,
    current_stack,
)
from txcore.core.errors import (
    ExistingTransactionError,
    ExpectedError,
    IllegalCompletionError,
    IncompatibleAttributesError,
    NestedNotSupportedError,
    NoTransactionError,
    TransactionError,
    TransactionManagerNotFoundError,
    TransactionTimedOutError,
    UnexpectedRollbackError,
)
from txcore.core.settings import TransactionSettings
from txcore.engine import (
    Action,
    ActionKind,
    CompletionEngine,
    PropagationDecisionEngine,
    RollbackRuleMatcher,
    TransactionManager,
    Verdict,
)
from txcore.resource import InMemoryResourceManager, ResourceManager, SQLiteResourceManager
from txcore.interface import (
    TransactionInterceptor,
    get_transaction_manager,
    register_transaction_manager,
    transactional,
)

__version__ = "0.1.0"

__all__ = [
    # Attribute model
    "Isolation",
    "Propagation",
    "RollbackRule",
    "RollbackSign",
    "TransactionAttribute",
    "declare",
    "resolve_attribute",
    # Contexts
    "ContextStack",
    "ContextStatus",
    "Outcome",
    "TransactionContext",
    "current_stack",
    # Errors
    "TransactionError",
    "NoTransactionError",
    "ExistingTransactionError",
    "NestedNotSupportedError",
    "IncompatibleAttributesError",
    "IllegalCompletionError",
    "TransactionTimedOutError",
    "UnexpectedRollbackError",
    "TransactionManagerNotFoundError",
    "ExpectedError",
    # Settings
    "TransactionSettings",
    # Engines
    "Action",
    "ActionKind",
    "PropagationDecisionEngine",
    "CompletionEngine",
    "RollbackRuleMatcher",
    "Verdict",
    "TransactionManager",
    # Resources
    "ResourceManager",
    "InMemoryResourceManager",
    "SQLiteResourceManager",
    # Declarative surface
    "transactional",
    "TransactionInterceptor",
    "register_transaction_manager",
    "get_transaction_manager",
]
