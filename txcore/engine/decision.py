"""
Propagation decision engine.

Pure computation - the engine only reads the context stack and asks the
resource manager whether savepoints are available. Applying the chosen
action (suspending, beginning, pushing) is left to the caller.

Decision table (current = stack.active()):

    propagation     current exists              current absent
    -------------   -------------------------   ---------------------
    REQUIRED        JOIN_EXISTING               START_NEW
    SUPPORTS        JOIN_EXISTING               RUN_WITHOUT_TX
    MANDATORY       JOIN_EXISTING               FAIL(NoTransaction)
    REQUIRES_NEW    SUSPEND_AND_START_NEW       START_NEW
    NOT_SUPPORTED   RUN_WITHOUT_TX(suspend)     RUN_WITHOUT_TX
    NEVER           FAIL(ExistingTransaction)   RUN_WITHOUT_TX
    NESTED          NEST_WITH_SAVEPOINT         START_NEW
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from txcore.core.context import ContextStack, TransactionContext
from txcore.core.errors import (
    ExistingTransactionError,
    IncompatibleAttributesError,
    NestedNotSupportedError,
    NoTransactionError,
    TransactionError,
)
from txcore.core.models import Isolation, Propagation, TransactionAttribute
from txcore.core.settings import TransactionSettings
from txcore.resource.base import ResourceManager


class ActionKind(str, Enum):
    """Boundary action chosen on entry to an operation."""

    JOIN_EXISTING = "join_existing"
    START_NEW = "start_new"
    SUSPEND_AND_START_NEW = "suspend_and_start_new"
    RUN_WITHOUT_TX = "run_without_tx"
    NEST_WITH_SAVEPOINT = "nest_with_savepoint"
    FAIL = "fail"


@dataclass(frozen=True)
class Action:
    """
    Result of a propagation decision.

    Attributes:
        kind: What to do at the boundary
        suspend_existing: For RUN_WITHOUT_TX, whether to detach the current
            transaction's resource
        error: For FAIL, the error to raise before the body runs
        current: The active context the decision was taken against
    """

    kind: ActionKind
    suspend_existing: bool = False
    error: Optional[TransactionError] = None
    current: Optional[TransactionContext] = None

    @property
    def is_failure(self) -> bool:
        return self.kind == ActionKind.FAIL

    @property
    def starts_transaction(self) -> bool:
        return self.kind in (ActionKind.START_NEW, ActionKind.SUSPEND_AND_START_NEW)

    @property
    def suspends(self) -> bool:
        return self.kind == ActionKind.SUSPEND_AND_START_NEW or self.suspend_existing


class PropagationDecisionEngine:
    """
    Pick the boundary action for an operation about to run.

    Example:
        engine = PropagationDecisionEngine(resource_manager)
        action = engine.decide(attr, current_stack())
        # → Action(kind=ActionKind.START_NEW, ...)
    """

    # Actions when no transaction is active
    WITHOUT_CURRENT: Dict[Propagation, ActionKind] = {
        Propagation.REQUIRED: ActionKind.START_NEW,
        Propagation.SUPPORTS: ActionKind.RUN_WITHOUT_TX,
        Propagation.MANDATORY: ActionKind.FAIL,
        Propagation.REQUIRES_NEW: ActionKind.START_NEW,
        Propagation.NOT_SUPPORTED: ActionKind.RUN_WITHOUT_TX,
        Propagation.NEVER: ActionKind.RUN_WITHOUT_TX,
        Propagation.NESTED: ActionKind.START_NEW,
    }

    # Actions when a transaction is active (NESTED is resolved separately)
    WITH_CURRENT: Dict[Propagation, ActionKind] = {
        Propagation.REQUIRED: ActionKind.JOIN_EXISTING,
        Propagation.SUPPORTS: ActionKind.JOIN_EXISTING,
        Propagation.MANDATORY: ActionKind.JOIN_EXISTING,
        Propagation.REQUIRES_NEW: ActionKind.SUSPEND_AND_START_NEW,
        Propagation.NOT_SUPPORTED: ActionKind.RUN_WITHOUT_TX,
        Propagation.NEVER: ActionKind.FAIL,
        Propagation.NESTED: ActionKind.NEST_WITH_SAVEPOINT,
    }

    def __init__(
        self,
        resource_manager: ResourceManager,
        settings: Optional[TransactionSettings] = None,
    ):
        """
        Initialize the decision engine.

        Args:
            resource_manager: Queried for savepoint support only
            settings: Strict-join and NESTED fallback switches
        """
        self.resource_manager = resource_manager
        self.settings = settings or TransactionSettings()

    def decide(self, attribute: TransactionAttribute, stack: ContextStack) -> Action:
        """
        Decide the boundary action for ``attribute`` given the chain's stack.

        Args:
            attribute: Effective attribute of the operation
            stack: Context stack of the running chain

        Returns:
            Action describing what the caller must apply
        """
        current = stack.active()
        if current is None:
            return self._decide_without_current(attribute)
        return self._decide_with_current(attribute, current)

    def _decide_without_current(self, attribute: TransactionAttribute) -> Action:
        kind = self.WITHOUT_CURRENT[attribute.propagation]
        if kind == ActionKind.FAIL:
            return Action(
                kind=kind,
                error=NoTransactionError(
                    "No existing transaction found for transaction marked with "
                    f"propagation '{attribute.propagation.value}'"
                ),
            )
        return Action(kind=kind)

    def _decide_with_current(
        self,
        attribute: TransactionAttribute,
        current: TransactionContext,
    ) -> Action:
        kind = self.WITH_CURRENT[attribute.propagation]

        if kind == ActionKind.FAIL:
            return Action(
                kind=kind,
                current=current,
                error=ExistingTransactionError(
                    "Existing transaction found for transaction marked with "
                    f"propagation '{attribute.propagation.value}'",
                    context_id=current.id,
                ),
            )

        if kind == ActionKind.RUN_WITHOUT_TX:
            return Action(kind=kind, suspend_existing=True, current=current)

        if kind == ActionKind.NEST_WITH_SAVEPOINT:
            return self._decide_nested(current)

        if kind == ActionKind.JOIN_EXISTING and self.settings.validate_existing_transaction:
            error = self._validate_join(attribute, current)
            if error is not None:
                return Action(kind=ActionKind.FAIL, error=error, current=current)

        return Action(kind=kind, current=current)

    def _decide_nested(self, current: TransactionContext) -> Action:
        if current.resource is not None and self.resource_manager.supports_savepoints(current.resource):
            return Action(kind=ActionKind.NEST_WITH_SAVEPOINT, current=current)

        if self.settings.nested_fallback_to_new:
            return Action(kind=ActionKind.SUSPEND_AND_START_NEW, current=current)

        return Action(
            kind=ActionKind.FAIL,
            current=current,
            error=NestedNotSupportedError(
                "Transaction manager does not allow nested transactions: "
                "savepoints are not supported by the current resource",
                context_id=current.id,
            ),
        )

    def _validate_join(
        self,
        attribute: TransactionAttribute,
        current: TransactionContext,
    ) -> Optional[IncompatibleAttributesError]:
        """Check that a participant's declaration fits the existing transaction."""
        if attribute.isolation != Isolation.DEFAULT and attribute.isolation != current.isolation:
            return IncompatibleAttributesError(
                f"Participating transaction with isolation '{attribute.isolation.value}' "
                f"is not compatible with existing isolation '{current.isolation.value}'",
                field="isolation",
                declared=attribute.isolation,
                actual=current.isolation,
                context_id=current.id,
            )

        if not attribute.read_only and current.read_only:
            return IncompatibleAttributesError(
                "Participating transaction is not marked read-only but the "
                "existing transaction is",
                field="read_only",
                declared=attribute.read_only,
                actual=current.read_only,
                context_id=current.id,
            )

        return None
