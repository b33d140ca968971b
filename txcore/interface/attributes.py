"""
Attribute sources.

An attribute source answers one question: which TransactionAttribute
applies to this callable? The declarative source reads the declarations
left by ``@transactional`` on the function and on its owning class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from txcore.core.models import TransactionAttribute, resolve_attribute

# Attribute names written by @transactional
DECLARATION_ATTR = "__transaction_declaration__"
OWNER_ATTR = "__transaction_owner__"


class AttributeSource(ABC):
    """Supplies the effective attribute for a call site."""

    @abstractmethod
    def get_attribute(self, method: Callable[..., Any]) -> Optional[TransactionAttribute]:
        """Return the attribute for ``method``, or None for no transactional semantics."""
        pass


class DeclarativeAttributeSource(AttributeSource):
    """
    Resolve attributes declared with ``@transactional``.

    The method-level declaration overrides the class-level one field by
    field (see ``resolve_attribute``).
    """

    def get_attribute(self, method: Callable[..., Any]) -> Optional[TransactionAttribute]:
        method_level = getattr(method, DECLARATION_ATTR, None)
        owner = getattr(method, OWNER_ATTR, None)
        class_level = vars(owner).get(DECLARATION_ATTR) if owner is not None else None
        return resolve_attribute(class_level, method_level)


class MappingAttributeSource(AttributeSource):
    """
    Attributes registered explicitly per callable.

    Useful when the decorated code cannot be changed:

        source = MappingAttributeSource({charge: declare(propagation=Propagation.MANDATORY)})
    """

    def __init__(self, attributes: Optional[Dict[Callable[..., Any], TransactionAttribute]] = None):
        self._attributes: Dict[Callable[..., Any], TransactionAttribute] = dict(attributes or {})

    def register(self, method: Callable[..., Any], attribute: TransactionAttribute) -> None:
        self._attributes[method] = attribute

    def get_attribute(self, method: Callable[..., Any]) -> Optional[TransactionAttribute]:
        target = getattr(method, "__wrapped__", method)
        return self._attributes.get(method, self._attributes.get(target))
