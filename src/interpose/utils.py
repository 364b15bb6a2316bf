# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

import inspect
from collections.abc import Callable
from typing import Any

__all__ = ("is_coro_func", "maybe_await")


def is_coro_func(func: Callable[..., Any]) -> bool:
    """Check if a function, or a callable object's ``__call__``, is async.

    The result is not cached; no reference to ``func`` is kept.
    """
    # Check if it's a native coroutine function
    if inspect.iscoroutinefunction(func):
        return True

    # Callable object with async __call__ method
    call = getattr(func, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it as-is."""
    if inspect.isawaitable(value):
        return await value
    return value
