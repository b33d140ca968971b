"""
Rollback rule matcher.

Pure computation - no I/O. Decides whether a finished boundary commits
or rolls back from its outcome, its status and its rollback rules.

Rule priority:
    Each rule is scored by the number of MRO steps from the raised error's
    type up to the rule's target. The smallest distance wins; on a tie the
    later-declared rule wins. Rules that are not ancestors never match.

Default policy (no rule matched):
    ExpectedError subclasses      → COMMIT
    any other Exception           → ROLLBACK
    fatal BaseException           → ROLLBACK
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Tuple

from txcore.core.context import ContextStatus, Outcome
from txcore.core.errors import ExpectedError
from txcore.core.models import RollbackRule, RollbackSign, TransactionAttribute


class Verdict(str, Enum):
    """Completion verdict."""

    COMMIT = "commit"
    ROLLBACK = "rollback"


class RollbackRuleMatcher:
    """
    Decide commit vs rollback for a completed boundary.

    Example:
        matcher = RollbackRuleMatcher()
        attr = declare(rollback_for=[ZeroDivisionError], no_rollback_for=[Exception])
        matcher.decide(attr, Outcome.failure(ZeroDivisionError()))
        # → Verdict.ROLLBACK (distance 0 beats distance 2)
    """

    def __init__(self, expected_types: Iterable[type] = (ExpectedError,)):
        """
        Initialize the matcher.

        Args:
            expected_types: Error bases that commit when no rule matches
        """
        self.expected_types: Tuple[type, ...] = tuple(expected_types)

    def decide(
        self,
        attribute: Optional[TransactionAttribute],
        outcome: Outcome,
        status: ContextStatus = ContextStatus.ACTIVE,
    ) -> Verdict:
        """
        Compute the verdict for an outcome.

        Args:
            attribute: Effective attribute of the boundary (None: no rules)
            outcome: How the body finished
            status: Status of the boundary's context

        Returns:
            Verdict.COMMIT or Verdict.ROLLBACK
        """
        if outcome.cancelled:
            return Verdict.ROLLBACK

        # rollback-only wins over any commit verdict, including NO_ROLLBACK rules
        if status == ContextStatus.MARKED_ROLLBACK_ONLY:
            return Verdict.ROLLBACK

        if outcome.error is None:
            return Verdict.COMMIT

        rules = attribute.rollback_rules if attribute is not None else ()
        winner = self.find_winning_rule(rules, outcome.error)
        if winner is not None:
            if winner.sign == RollbackSign.ROLLBACK:
                return Verdict.ROLLBACK
            return Verdict.COMMIT

        return self.default_verdict(outcome.error)

    def find_winning_rule(
        self,
        rules: Iterable[RollbackRule],
        error: BaseException,
    ) -> Optional[RollbackRule]:
        """Return the closest matching rule, the latest one on ties."""
        winner: Optional[RollbackRule] = None
        best: Optional[int] = None
        error_type = type(error)

        for rule in rules:
            distance = rule.depth(error_type)
            if distance is None:
                continue
            if best is None or distance <= best:
                winner = rule
                best = distance

        return winner

    def default_verdict(self, error: BaseException) -> Verdict:
        """Fallback when no rule matches: commit only for expected errors."""
        if self.expected_types and isinstance(error, self.expected_types):
            return Verdict.COMMIT
        return Verdict.ROLLBACK
