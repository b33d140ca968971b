"""
Core data model for txcore.

- models: immutable transaction attributes and rollback rules
- context: mutable transaction contexts and the per-chain stack
- errors: error taxonomy
- settings: behaviour switches
"""

from txcore.core.models import Propagation, Isolation, RollbackRule, TransactionAttribute
from txcore.core.context import ContextStack, TransactionContext, Outcome, current_stack
from txcore.core.settings import TransactionSettings

__all__ = [
    "Propagation",
    "Isolation",
    "RollbackRule",
    "TransactionAttribute",
    "ContextStack",
    "TransactionContext",
    "Outcome",
    "current_stack",
    "TransactionSettings",
]
