"""
Async support for bqiam.

The Google SDK clients are synchronous. The cache crawl fans out over
projects with asyncio, so every blocking store call is pushed to a worker
thread through :func:`asyncio.to_thread`. ``AsyncMixin`` generates an
``a<method>`` coroutine for each public method of a concrete store, e.g.
``store.alist_datasets(project)``.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable, Coroutine, TypeVar

T = TypeVar("T")


def async_wrap(
    fn: Callable[..., T],
) -> Callable[..., Coroutine[Any, Any, T]]:
    """Return an async version of *fn* that runs it in a thread.

    The wrapper preserves the original function's signature and docstring.

    Args:
        fn: A synchronous callable to wrap.

    Returns:
        An async callable with the same parameters and return type.
    """

    @functools.wraps(fn)
    async def _wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    return _wrapper


class AsyncMixin:
    """Mixin that auto-generates ``a<method>`` async variants.

    Abstract methods are skipped, so a blueprint can inherit the mixin and
    each concrete subclass gets async variants bound to its own
    implementations.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for name in list(vars(cls)):
            if name.startswith("_"):
                continue
            attr = getattr(cls, name)
            if not callable(attr) or inspect.iscoroutinefunction(attr):
                continue
            if getattr(attr, "__isabstractmethod__", False):
                continue
            async_name = f"a{name}"
            if async_name not in vars(cls):
                setattr(cls, async_name, async_wrap(attr))
