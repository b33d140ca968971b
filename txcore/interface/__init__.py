# coding: utf-8
"""
Declarative interface for txcore.

    - transactional: decorator for functions, coroutines and classes
    - TransactionInterceptor: invocation wrapper
    - AttributeSource: where attributes come from
    - registry: named transaction managers
"""

from .attributes import AttributeSource, DeclarativeAttributeSource, MappingAttributeSource
from .interceptor import TransactionInterceptor
from .decorators import transactional
from .registry import (
    clear_transaction_managers,
    get_transaction_manager,
    register_transaction_manager,
)

__all__ = [
    "AttributeSource",
    "DeclarativeAttributeSource",
    "MappingAttributeSource",
    "TransactionInterceptor",
    "transactional",
    "register_transaction_manager",
    "get_transaction_manager",
    "clear_transaction_managers",
]
