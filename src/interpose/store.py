# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""State container whose dispatch entry point can be wrapped by middleware."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from uuid import uuid4

from .core import Action, Dispatch, Reducer
from .errors import ReentrantDispatchError, ValidationError
from .middleware import MiddlewareFactory, StoreEnhancer, chain_middleware

logger = logging.getLogger(__name__)

__all__ = (
    "ActionTypes",
    "Store",
    "create_store",
    "handlers_reducer",
)

Listener = Callable[[], Any]


def _sentinel(name: str) -> str:
    return f"@@interpose/{name}.{uuid4().hex[:8]}"


class ActionTypes:
    """Reserved action types; reducers must not handle them."""

    INIT = _sentinel("INIT")
    REPLACE = _sentinel("REPLACE")


class Store:
    """Owns state, a reducer and the active dispatch entry point.

    The reducer is run once with ``ActionTypes.INIT`` through the base
    dispatch before anything else can dispatch, so state is defined from the
    start. ``dispatch`` is an attribute: middleware replaces it with the
    enhanced entry point, the base dispatch stays reachable internally.

    Only the reducer changes state. Middleware and listeners get read access
    through ``get_state``; keeping them from mutating what it returns is a
    caller discipline, not something the store enforces.
    """

    dispatch: Dispatch

    def __init__(
        self,
        reducer: Reducer,
        preloaded_state: Any = None,
        *,
        middleware: Sequence[MiddlewareFactory] = (),
    ):
        if not callable(reducer):
            raise ValidationError.from_value(
                reducer, expected="callable", message="reducer must be callable"
            )
        self._reducer = reducer
        self._state = preloaded_state
        self._listeners: list[Listener] = []
        self._dispatching = False

        self._base_dispatch(Action(type=ActionTypes.INIT))
        self.dispatch = self._base_dispatch
        if middleware:
            self.dispatch = chain_middleware(
                middleware, self.get_state, self._base_dispatch
            )

    def get_state(self) -> Any:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every dispatch; returns an unsubscribe callable."""
        if not callable(listener):
            raise ValidationError.from_value(
                listener, expected="callable", message="listener must be callable"
            )
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def replace_reducer(self, reducer: Reducer) -> None:
        if not callable(reducer):
            raise ValidationError.from_value(
                reducer, expected="callable", message="reducer must be callable"
            )
        self._reducer = reducer
        self._base_dispatch(Action(type=ActionTypes.REPLACE))

    def _base_dispatch(self, action: Any) -> Action:
        action = Action.of(action)
        if self._dispatching:
            raise ReentrantDispatchError(context={"action_type": action.type})

        self._dispatching = True
        try:
            self._state = self._reducer(self._state, action)
        finally:
            self._dispatching = False

        for listener in tuple(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Store listener failed: {e}", exc_info=True)
        return action


def create_store(
    reducer: Reducer,
    preloaded_state: Any = None,
    enhancer: StoreEnhancer | None = None,
) -> Store:
    """Create a store, optionally through an enhancer such as ``apply_middleware``."""
    if enhancer is not None:
        return enhancer(create_store)(reducer, preloaded_state)
    return Store(reducer, preloaded_state)


def handlers_reducer(
    handlers: Mapping[str, Callable[[Any, Any], Any]],
    default: Any = None,
) -> Reducer:
    """Build a reducer from an action-type table.

    Each handler is called as ``handler(state, payload)`` and returns the next
    state. Unknown types, including the reserved ones, leave state unchanged.
    An absent state starts from a copy of ``default``.
    """
    table = dict(handlers)

    def reducer(state: Any, action: Action) -> Any:
        if state is None:
            state = copy.deepcopy(default)
        handler = table.get(action.type)
        if handler is None:
            return state
        return handler(state, action.payload)

    return reducer
