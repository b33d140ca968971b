"""
Transaction engines for txcore.

Pure decision logic plus the facade that applies it:
    - RollbackRuleMatcher: commit/rollback verdicts
    - PropagationDecisionEngine: boundary action on entry
    - CompletionEngine: boundary completion on exit
    - TransactionManager: ties both to the running chain's stack
"""

from .rollback import RollbackRuleMatcher, Verdict
from .decision import Action, ActionKind, PropagationDecisionEngine
from .completion import CompletionEngine
from .manager import TransactionManager

__all__ = [
    "RollbackRuleMatcher",
    "Verdict",
    "Action",
    "ActionKind",
    "PropagationDecisionEngine",
    "CompletionEngine",
    "TransactionManager",
]
