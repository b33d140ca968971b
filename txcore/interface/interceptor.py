# coding: utf-8
"""
Invocation wrapper for txcore.

The interceptor sits between a caller and an operation body: it looks up
the operation's attribute, opens a boundary on the selected manager, runs
the body, and completes the boundary. The body's return value or error
reaches the caller unchanged once bookkeeping is done.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from txcore.engine.manager import TransactionManager
from txcore.interface.attributes import AttributeSource, DeclarativeAttributeSource
from txcore.interface.registry import get_transaction_manager

logger = logging.getLogger(__name__)


ManagerLookup = Callable[[Optional[str]], TransactionManager]


class TransactionInterceptor:
    """
    Run callables inside the boundary their attribute declares.

    Example:
        interceptor = TransactionInterceptor()
        interceptor.invoke(service.transfer, (a, b), {})
    """

    def __init__(
        self,
        attribute_source: Optional[AttributeSource] = None,
        manager_lookup: Optional[ManagerLookup] = None,
    ):
        """
        Initialize the interceptor.

        Args:
            attribute_source: Where attributes come from (declarative by default)
            manager_lookup: Maps a qualifier to a manager (registry by default)
        """
        self.attribute_source = attribute_source or DeclarativeAttributeSource()
        self.manager_lookup = manager_lookup or get_transaction_manager

    def invoke(
        self,
        method: Callable[..., Any],
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Call ``method`` inside its boundary.

        Args:
            method: Decorated callable (its ``__wrapped__`` is the body)
            args: Positional arguments
            kwargs: Keyword arguments

        Returns:
            Whatever the body returns
        """
        kwargs = kwargs or {}
        body = getattr(method, "__wrapped__", method)
        attribute = self.attribute_source.get_attribute(method)
        if attribute is None:
            return body(*args, **kwargs)

        manager = self.manager_lookup(attribute.transaction_manager or None)
        logger.debug(f"Invoking {body.__qualname__} with {attribute.propagation.value}")
        with manager.transaction(attribute):
            return body(*args, **kwargs)

    async def ainvoke(
        self,
        method: Callable[..., Any],
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Coroutine counterpart of ``invoke``; the boundary is bound to the running task."""
        kwargs = kwargs or {}
        body = getattr(method, "__wrapped__", method)
        attribute = self.attribute_source.get_attribute(method)
        if attribute is None:
            return await body(*args, **kwargs)

        manager = self.manager_lookup(attribute.transaction_manager or None)
        logger.debug(f"Invoking {body.__qualname__} with {attribute.propagation.value}")
        with manager.transaction(attribute):
            return await body(*args, **kwargs)


_default_interceptor: Optional[TransactionInterceptor] = None


def get_default_interceptor() -> TransactionInterceptor:
    """Shared interceptor used by ``@transactional`` when none is given."""
    global _default_interceptor
    if _default_interceptor is None:
        _default_interceptor = TransactionInterceptor()
    return _default_interceptor
