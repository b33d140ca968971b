# coding: utf-8
"""
Declarative transaction demarcation.

``@transactional`` attaches a TransactionAttribute to a function, a
coroutine function, or a class, and routes calls through a
TransactionInterceptor.

Usage:
    ```python
    @transactional(read_only=True)
    class AccountService:

        def balance(self, account_id): ...           # read-only, REQUIRED

        @transactional(read_only=False, rollback_for=[LedgerError])
        def transfer(self, src, dst, amount): ...    # read-write, REQUIRED

    @transactional(propagation=Propagation.REQUIRES_NEW)
    async def audit(event): ...
    ```

On a class, the declaration becomes the default for every public method
defined in the class body; methods decorated themselves override it field
by field.
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Optional, TypeVar

from txcore.core.models import TransactionAttribute, declare
from txcore.interface.attributes import DECLARATION_ATTR, OWNER_ATTR
from txcore.interface.interceptor import TransactionInterceptor, get_default_interceptor

T = TypeVar("T")


def transactional(
    target: Optional[T] = None,
    *,
    interceptor: Optional[TransactionInterceptor] = None,
    **declaration: Any,
) -> Any:
    """
    Declare transaction behaviour for a function or class.

    Args:
        target: Set when used bare (``@transactional``)
        interceptor: Interceptor to route calls through (shared default if omitted)
        **declaration: Keywords accepted by ``declare``: propagation,
            isolation, timeout, read_only, transaction_manager,
            rollback_for, rollback_for_names, no_rollback_for,
            no_rollback_for_names

    Returns:
        The decorated object, or a decorator when called with keywords
    """
    attribute = declare(**declaration)

    def decorate(obj: T) -> T:
        if inspect.isclass(obj):
            return _decorate_class(obj, attribute, interceptor)
        return _wrap(obj, attribute, interceptor)

    if target is not None:
        return decorate(target)
    return decorate


def _wrap(
    func: Callable[..., Any],
    declaration: Optional[TransactionAttribute],
    interceptor: Optional[TransactionInterceptor],
) -> Callable[..., Any]:
    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            return await (interceptor or get_default_interceptor()).ainvoke(
                async_wrapper, args, kwargs
            )

        wrapper: Callable[..., Any] = async_wrapper
    else:
        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            return (interceptor or get_default_interceptor()).invoke(
                sync_wrapper, args, kwargs
            )

        wrapper = sync_wrapper

    setattr(wrapper, DECLARATION_ATTR, declaration)
    return wrapper


def _decorate_class(
    cls: T,
    declaration: TransactionAttribute,
    interceptor: Optional[TransactionInterceptor],
) -> T:
    setattr(cls, DECLARATION_ATTR, declaration)

    for name, member in list(vars(cls).items()):
        if name.startswith("_") or not inspect.isfunction(member):
            continue
        if not hasattr(member, DECLARATION_ATTR):
            member = _wrap(member, None, interceptor)
            setattr(cls, name, member)
        setattr(member, OWNER_ATTR, cls)

    return cls
