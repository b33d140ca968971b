"""
Tests for the attribute model.

Covers rollback rule depth computation, decorator-style declarations and
field-by-field resolution of class-level and method-level attributes.
"""

import pytest
from pydantic import ValidationError

from txcore.core.models import (
    Isolation,
    Propagation,
    RollbackRule,
    RollbackSign,
    TransactionAttribute,
    declare,
    generate_id,
    resolve_attribute,
)


class LedgerError(Exception):
    pass


class OverdraftError(LedgerError):
    pass


class TestGenerateId:
    """Tests for context ID generation."""

    def test_generates_unique_ids(self):
        """IDs should be unique."""
        ids = [generate_id() for _ in range(100)]
        assert len(set(ids)) == 100


class TestRollbackRule:
    """Tests for RollbackRule depth."""

    def test_exact_type_has_depth_zero(self):
        rule = RollbackRule(target=ZeroDivisionError)
        assert rule.depth(ZeroDivisionError) == 0

    def test_ancestor_type_depth_counts_mro_steps(self):
        """ZeroDivisionError → ArithmeticError → Exception."""
        rule = RollbackRule(target=Exception)
        assert rule.depth(ZeroDivisionError) == 2

    def test_unrelated_type_does_not_match(self):
        rule = RollbackRule(target=KeyError)
        assert rule.depth(ValueError) is None

    def test_simple_name_matches_concrete_type(self):
        rule = RollbackRule(target="OverdraftError")
        assert rule.depth(OverdraftError) == 0

    def test_name_falls_back_to_ancestor(self):
        rule = RollbackRule(target="LedgerError")
        assert rule.depth(OverdraftError) == 1

    def test_qualified_name_matches(self):
        rule = RollbackRule(target=f"{LedgerError.__module__}.LedgerError")
        assert rule.depth(OverdraftError) == 1

    def test_partial_name_does_not_match(self):
        """Names match whole class names, not substrings."""
        rule = RollbackRule(target="Ledger")
        assert rule.depth(OverdraftError) is None

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            RollbackRule(target="   ")

    def test_non_exception_type_rejected(self):
        with pytest.raises(ValidationError):
            RollbackRule(target=int)

    def test_default_sign_is_rollback(self):
        assert RollbackRule(target=ValueError).sign == RollbackSign.ROLLBACK

    def test_target_name(self):
        assert RollbackRule(target="Foo").target_name == "Foo"
        assert RollbackRule(target=ValueError).target_name == "builtins.ValueError"


class TestTransactionAttribute:
    """Tests for TransactionAttribute."""

    def test_defaults(self):
        attribute = TransactionAttribute()
        assert attribute.propagation == Propagation.REQUIRED
        assert attribute.isolation == Isolation.DEFAULT
        assert attribute.timeout == -1
        assert attribute.read_only is False
        assert attribute.rollback_rules == ()
        assert attribute.transaction_manager == ""
        assert not attribute.has_timeout

    def test_is_immutable(self):
        attribute = TransactionAttribute()
        with pytest.raises(ValidationError):
            attribute.read_only = True

    def test_timeout_below_minus_one_rejected(self):
        with pytest.raises(ValidationError):
            TransactionAttribute(timeout=-2)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            TransactionAttribute(propagate="required")

    def test_tracks_explicit_fields(self):
        attribute = TransactionAttribute(read_only=True)
        assert attribute.model_fields_set == {"read_only"}


class TestDeclare:
    """Tests for decorator-style declarations."""

    def test_rule_lists_become_rules_in_order(self):
        attribute = declare(
            rollback_for=[ValueError],
            rollback_for_names=["LedgerError"],
            no_rollback_for=[KeyError],
            no_rollback_for_names=["OverdraftError"],
        )
        assert [(r.target, r.sign) for r in attribute.rollback_rules] == [
            (ValueError, RollbackSign.ROLLBACK),
            ("LedgerError", RollbackSign.ROLLBACK),
            (KeyError, RollbackSign.NO_ROLLBACK),
            ("OverdraftError", RollbackSign.NO_ROLLBACK),
        ]

    def test_plain_fields_pass_through(self):
        attribute = declare(propagation=Propagation.NESTED, timeout=5)
        assert attribute.propagation == Propagation.NESTED
        assert attribute.timeout == 5
        assert attribute.model_fields_set == {"propagation", "timeout"}

    def test_empty_declaration_sets_nothing(self):
        assert declare().model_fields_set == set()


class TestResolveAttribute:
    """Tests for class/method resolution."""

    def test_both_absent_means_no_transaction(self):
        assert resolve_attribute(None, None) is None

    def test_only_class_level(self):
        class_level = TransactionAttribute(read_only=True)
        assert resolve_attribute(class_level, None) is class_level

    def test_only_method_level(self):
        method_level = TransactionAttribute(timeout=3)
        assert resolve_attribute(None, method_level) is method_level

    def test_method_fields_override_field_by_field(self):
        class_level = TransactionAttribute(
            read_only=True,
            isolation=Isolation.SERIALIZABLE,
            timeout=30,
        )
        method_level = TransactionAttribute(propagation=Propagation.REQUIRES_NEW, timeout=5)

        effective = resolve_attribute(class_level, method_level)

        assert effective.propagation == Propagation.REQUIRES_NEW
        assert effective.timeout == 5
        assert effective.read_only is True
        assert effective.isolation == Isolation.SERIALIZABLE

    def test_explicit_default_value_still_overrides(self):
        """Setting read_only=False on the method beats read_only=True on the class."""
        class_level = TransactionAttribute(read_only=True)
        method_level = TransactionAttribute(read_only=False)
        assert resolve_attribute(class_level, method_level).read_only is False

    def test_rules_accumulate_class_first(self):
        class_level = declare(rollback_for=[ValueError])
        method_level = declare(no_rollback_for=[ValueError])

        effective = resolve_attribute(class_level, method_level)

        assert [r.sign for r in effective.rollback_rules] == [
            RollbackSign.ROLLBACK,
            RollbackSign.NO_ROLLBACK,
        ]
