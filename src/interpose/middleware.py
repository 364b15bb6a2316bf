# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Middleware system for dispatch composition.

A middleware takes the ``next`` dispatch function and returns a replacement
of the same shape. ``compose([m1, m2, m3])(base)`` builds
``m1(m2(m3(base)))``: the rightmost layer sits closest to ``base`` and the
leftmost layer's logic runs first on every call.

Every replacement must accept and return exactly what the function it wraps
accepts and returns. A layer that changes that shape breaks every layer above
it; only a layer that returns something non-callable can be caught here.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from .config import settings
from .core import Action, Dispatch, Reducer
from .errors import MiddlewareContractViolation

__all__ = (
    "LoggingMW",
    "Middleware",
    "MiddlewareAPI",
    "MiddlewareFactory",
    "StoreEnhancer",
    "ThunkMW",
    "apply_middleware",
    "chain_middleware",
    "compose",
)

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


@runtime_checkable
class WrappingLayer(Protocol):
    """Object form of a middleware - a single ``wrap(next)`` method."""

    def wrap(self, next_dispatch: Dispatch) -> Dispatch: ...


# next -> replacement, or an object exposing wrap(next)
Middleware = Callable[[Dispatch], Dispatch] | WrappingLayer


@dataclass(slots=True, frozen=True)
class MiddlewareAPI:
    """Store capabilities handed to middleware factories."""

    get_state: Callable[[], Any]
    dispatch: Dispatch


MiddlewareFactory = Callable[[MiddlewareAPI], Middleware]

# (reducer, preloaded_state) -> store
StoreCreator = Callable[..., Any]
StoreEnhancer = Callable[[StoreCreator], StoreCreator]


def _as_wrapper(layer: Middleware) -> Callable[[Dispatch], Dispatch]:
    if isinstance(layer, type) and callable(getattr(layer, "wrap", None)):
        raise MiddlewareContractViolation(
            f"Middleware class {layer.__name__} exposes wrap(next); pass an instance",
            details={"layer": repr(layer)},
        )
    if isinstance(layer, WrappingLayer):
        return layer.wrap
    if callable(layer):
        return layer
    raise MiddlewareContractViolation(
        f"Middleware must be callable or expose wrap(next), got {type(layer).__name__}",
        details={"layer": repr(layer)},
    )


def _identity(base: F) -> F:
    return base


def compose(
    layers: Iterable[Middleware],
    *,
    strict: bool | None = None,
) -> Callable[[F], F]:
    """Compose middleware layers right-to-left into a single enhancer.

    No layer runs here; the layer list is only captured. Layers wrap their
    ``next`` when the returned enhancer is applied to a base operation.
    With no layers the enhancer returns ``base`` itself.
    """
    layers = tuple(layers)
    if not layers:
        return _identity

    strict = settings.strict_middleware if strict is None else strict

    def enhance(base: F) -> F:
        dispatch: Any = base
        for position in range(len(layers) - 1, -1, -1):
            dispatch = _as_wrapper(layers[position])(dispatch)
            if strict and not callable(dispatch):
                raise MiddlewareContractViolation(
                    f"Middleware at position {position} returned "
                    f"{type(dispatch).__name__}, expected a dispatch function",
                    context={"position": position, "layer": repr(layers[position])},
                )
        return dispatch

    return enhance


class _PendingDispatch:
    """Entry point handed to factories; refuses calls until bound."""

    __slots__ = ("_target",)

    def __init__(self):
        self._target: Dispatch | None = None

    def bind(self, target: Dispatch) -> None:
        self._target = target

    def __call__(self, action: Any) -> Any:
        if self._target is None:
            raise MiddlewareContractViolation(
                "Dispatching while constructing middleware is not allowed. "
                "Other middleware would not be applied to this dispatch."
            )
        return self._target(action)


def chain_middleware(
    factories: Sequence[MiddlewareFactory],
    get_state: Callable[[], Any],
    base: Dispatch,
    *,
    strict: bool | None = None,
) -> Dispatch:
    """Build the enhanced dispatch for ``base`` from middleware factories.

    Every factory receives the same ``MiddlewareAPI``; its ``dispatch``
    routes through the fully enhanced entry point once construction is done.
    """
    entry = _PendingDispatch()
    api = MiddlewareAPI(get_state=get_state, dispatch=entry)
    layers = [factory(api) for factory in factories]
    entry.bind(compose(layers, strict=strict)(base))
    return entry


def apply_middleware(*factories: MiddlewareFactory) -> StoreEnhancer:
    """Store enhancer that installs middleware around the store's dispatch.

    Usage:
        store = create_store(reducer, enhancer=apply_middleware(ThunkMW, LoggingMW))
    """

    def enhancer(create: StoreCreator) -> StoreCreator:
        def create_enhanced(reducer: Reducer, preloaded_state: Any = None):
            store = create(reducer, preloaded_state)
            store.dispatch = chain_middleware(
                factories, store.get_state, store.dispatch
            )
            return store

        return create_enhanced

    return enhancer


# Core middleware implementations


class ThunkMW:
    """Lets callables be dispatched.

    A callable action is invoked as ``action(dispatch, get_state)`` and its
    return value becomes the dispatch result; any other action is passed on.
    """

    def __init__(self, api: MiddlewareAPI):
        self.api = api

    def wrap(self, next_dispatch: Dispatch) -> Dispatch:
        def dispatch(action: Any) -> Any:
            if callable(action):
                return action(self.api.dispatch, self.api.get_state)
            return next_dispatch(action)

        return dispatch


class LoggingMW:
    """Logs every dispatch with its duration and outcome.

    When the next dispatch returns an awaitable, the outcome is logged once
    that awaitable settles and the caller receives a coroutine wrapping it.
    """

    def __init__(self, api: MiddlewareAPI, *, logger_name: str = __name__):
        self.api = api
        self.logger = logging.getLogger(logger_name)

    def wrap(self, next_dispatch: Dispatch) -> Dispatch:
        def dispatch(action: Any) -> Any:
            action_type = _action_type(action)
            start_time = time.perf_counter()

            try:
                result = next_dispatch(action)
            except Exception as e:
                self._failed(action_type, start_time, e)
                raise

            if inspect.isawaitable(result):
                return self._settle(result, action_type, start_time)

            self._completed(action_type, start_time)
            return result

        return dispatch

    async def _settle(
        self, pending: Awaitable[Any], action_type: str | None, start_time: float
    ) -> Any:
        try:
            result = await pending
        except Exception as e:
            self._failed(action_type, start_time, e)
            raise

        self._completed(action_type, start_time)
        return result

    def _completed(self, action_type: str | None, start_time: float) -> None:
        self.logger.info(
            "Dispatch completed",
            extra={
                "action_type": action_type,
                "duration_s": time.perf_counter() - start_time,
                "status": "success",
            },
        )

    def _failed(
        self, action_type: str | None, start_time: float, e: Exception
    ) -> None:
        self.logger.error(
            "Dispatch failed",
            extra={
                "action_type": action_type,
                "duration_s": time.perf_counter() - start_time,
                "status": "error",
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )


def _action_type(action: Any) -> str | None:
    if isinstance(action, Action):
        return action.type
    if isinstance(action, Mapping):
        return action.get("type")
    return None
