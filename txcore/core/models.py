"""
Attribute model for txcore.

This module defines the immutable description of how one operation takes
part in a transaction:

- Propagation: join, start, suspend, nest or reject participation
- Isolation: requested isolation level for a newly started transaction
- RollbackRule: error type or name paired with a rollback verdict
- TransactionAttribute: the full declaration for one operation

Design Philosophy:
    Attributes are data, not behaviour. They are declared once (on a
    class, on a method, or both), resolved field by field, and never
    mutated afterwards. All decisions are taken by the engines that
    read them.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Type, Union

import ulid
from pydantic import BaseModel, Field, field_validator


def generate_id() -> str:
    """Generate a unique, sortable ID using ULID."""
    return str(ulid.new())


class Propagation(str, Enum):
    """How an operation participates in the transaction of its caller."""

    REQUIRED = "required"  # join, or start one if absent (default)
    SUPPORTS = "supports"  # join, or run without one
    MANDATORY = "mandatory"  # join, or fail
    REQUIRES_NEW = "requires_new"  # always start one, suspending the caller's
    NOT_SUPPORTED = "not_supported"  # run without one, suspending the caller's
    NEVER = "never"  # run without one, or fail if one exists
    NESTED = "nested"  # savepoint inside the caller's, or start one


class Isolation(str, Enum):
    """Isolation level requested for a new physical transaction."""

    DEFAULT = "default"  # whatever the resource manager uses
    READ_UNCOMMITTED = "read_uncommitted"
    READ_COMMITTED = "read_committed"
    REPEATABLE_READ = "repeatable_read"
    SERIALIZABLE = "serializable"


class RollbackSign(str, Enum):
    """Verdict carried by a rollback rule."""

    ROLLBACK = "rollback"
    NO_ROLLBACK = "no_rollback"


class RollbackRule(BaseModel):
    """
    A declared pairing of an error type (or name) with a verdict.

    Targets given as classes match by identity along the error's MRO.
    Targets given as strings match a class whose ``__name__`` or fully
    qualified ``module.qualname`` equals the string, so rules can refer
    to errors that are not importable where the rule is declared.

    Example:
        rule = RollbackRule(target=ZeroDivisionError, sign=RollbackSign.ROLLBACK)
        rule.depth(ZeroDivisionError)  # → 0
        rule.depth(ValueError)         # → None
    """

    target: Union[Type[BaseException], str] = Field(
        ...,
        description="Error class, or its simple or qualified name"
    )
    sign: RollbackSign = Field(
        default=RollbackSign.ROLLBACK,
        description="Verdict when this rule is the closest match"
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: Union[Type[BaseException], str]) -> Union[Type[BaseException], str]:
        """Ensure a name target is not empty."""
        if isinstance(v, str):
            if not v.strip():
                raise ValueError("rollback rule target cannot be empty")
            return v.strip()
        return v

    @property
    def target_name(self) -> str:
        """Readable name of the target, for logs."""
        if isinstance(self.target, str):
            return self.target
        return f"{self.target.__module__}.{self.target.__qualname__}"

    def depth(self, error_type: type) -> Optional[int]:
        """
        Count ancestor steps from ``error_type`` up to this rule's target.

        Args:
            error_type: Concrete type of the raised error

        Returns:
            0 for an exact match, n for the n-th entry of the MRO,
            None when the target is not an ancestor
        """
        for distance, klass in enumerate(error_type.__mro__):
            if self._matches(klass):
                return distance
        return None

    def _matches(self, klass: type) -> bool:
        if isinstance(self.target, str):
            qualified = f"{klass.__module__}.{klass.__qualname__}"
            return self.target in (klass.__name__, qualified)
        return klass is self.target


class TransactionAttribute(BaseModel):
    """
    Declared transaction behaviour for one operation.

    Fields not passed to the constructor are inherited when this attribute
    is resolved against a class-level default (see ``resolve_attribute``);
    pydantic's ``model_fields_set`` records which fields were declared.

    Attributes:
        propagation: Participation policy
        isolation: Only meaningful when a new physical transaction starts
        timeout: Seconds, -1 for the resource manager default
        read_only: Hint to the resource manager
        rollback_rules: Ordered rules; priority comes from specificity
        transaction_manager: Qualifier of the manager to use, "" for default
    """

    propagation: Propagation = Field(default=Propagation.REQUIRED, description="Propagation policy")
    isolation: Isolation = Field(default=Isolation.DEFAULT, description="Isolation level")
    timeout: int = Field(default=-1, ge=-1, description="Timeout in seconds, -1 for default")
    read_only: bool = Field(default=False, description="Read-only hint")
    rollback_rules: tuple[RollbackRule, ...] = Field(
        default=(),
        description="Rollback rules in declaration order"
    )
    transaction_manager: str = Field(default="", description="Manager qualifier")

    model_config = {"frozen": True, "extra": "forbid"}

    @property
    def has_timeout(self) -> bool:
        """Whether a timeout other than the default was declared."""
        return self.timeout != -1


def declare(
    *,
    rollback_for: Iterable[Type[BaseException]] = (),
    rollback_for_names: Iterable[str] = (),
    no_rollback_for: Iterable[Type[BaseException]] = (),
    no_rollback_for_names: Iterable[str] = (),
    **fields,
) -> TransactionAttribute:
    """
    Build a (possibly partial) attribute from decorator-style keywords.

    The four rule lists are turned into rollback rules in the order
    rollback_for, rollback_for_names, no_rollback_for, no_rollback_for_names.
    Remaining keywords are TransactionAttribute fields.

    Example:
        declare(propagation=Propagation.REQUIRES_NEW, no_rollback_for=[KeyError])
    """
    rules = [RollbackRule(target=t, sign=RollbackSign.ROLLBACK) for t in rollback_for]
    rules += [RollbackRule(target=n, sign=RollbackSign.ROLLBACK) for n in rollback_for_names]
    rules += [RollbackRule(target=t, sign=RollbackSign.NO_ROLLBACK) for t in no_rollback_for]
    rules += [RollbackRule(target=n, sign=RollbackSign.NO_ROLLBACK) for n in no_rollback_for_names]

    if rules:
        fields["rollback_rules"] = tuple(fields.get("rollback_rules", ())) + tuple(rules)

    return TransactionAttribute(**fields)


def resolve_attribute(
    class_level: Optional[TransactionAttribute],
    method_level: Optional[TransactionAttribute],
) -> Optional[TransactionAttribute]:
    """
    Compute the effective attribute for a method.

    Fields explicitly set at method level override the class-level value
    one by one; unset fields inherit. Rollback rules accumulate, class
    rules first, so method rules count as the more recent declaration.

    Args:
        class_level: Default declared on the owning class
        method_level: Declaration on the method itself

    Returns:
        Effective attribute, or None when neither level declares anything
        (the operation runs without transactional semantics)
    """
    if class_level is None:
        return method_level
    if method_level is None:
        return class_level

    values = {name: getattr(class_level, name) for name in class_level.model_fields_set}
    for name in method_level.model_fields_set:
        if name != "rollback_rules":
            values[name] = getattr(method_level, name)

    rules = class_level.rollback_rules + method_level.rollback_rules
    if rules:
        values["rollback_rules"] = rules

    return TransactionAttribute(**values)
