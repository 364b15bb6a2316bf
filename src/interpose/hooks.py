# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Hook registry - before/after observers around asynchronous actions."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import anyio

from .config import settings
from .core import UNSET, Action, ActionHandler
from .errors import UnknownActionType, ValidationError
from .utils import is_coro_func, maybe_await

logger = logging.getLogger(__name__)

__all__ = ("ActionSubscriber", "HookRegistry")

Observer = Callable[..., Any]


@dataclass(slots=True, frozen=True, eq=False)
class ActionSubscriber:
    """Observers invoked around one dispatched action.

    ``before(action, state)`` runs synchronously before the handler.
    ``after(action, state)`` runs once the handler settled successfully.
    ``error(action, state, exc)`` runs when the handler failed.
    ``after`` and ``error`` may be coroutine functions.
    """

    before: Observer | None = None
    after: Observer | None = None
    error: Observer | None = None

    def __post_init__(self):
        if self.before is None and self.after is None and self.error is None:
            raise ValidationError("Subscriber needs at least one observer")
        if self.before is not None and is_coro_func(self.before):
            raise ValidationError(
                "before observers must be synchronous",
                details={"observer": repr(self.before)},
            )


class HookRegistry:
    """Container that owns state and an action handler table.

    Subscribers observe every dispatch but cannot veto or change the action:
    their exceptions are logged and swallowed. The handler is the only place
    that mutates state - it can mutate the state it receives in place, or
    return a new state object which then replaces the current one.

    Dispatches are not serialized. Two in-flight dispatches interleave their
    ``after`` observers by completion order; callers that need mutual
    exclusion must serialize themselves.
    """

    def __init__(
        self,
        handlers: Mapping[str, ActionHandler] | None = None,
        state: Any = None,
        *,
        hook_timeout: float | None = None,
    ):
        self._handlers: dict[str, ActionHandler] = {}
        self._subscribers: list[ActionSubscriber] = []
        self._state = state
        self._hook_timeout = (
            settings.hook_timeout if hook_timeout is None else hook_timeout
        )
        for action_type, handler in (handlers or {}).items():
            self.register(action_type, handler)

    @property
    def state(self) -> Any:
        """Read view of the current state."""
        if isinstance(self._state, Mapping):
            return MappingProxyType(self._state)
        return self._state

    @property
    def action_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register the handler for an action type, replacing any previous one."""
        if not callable(handler):
            raise ValidationError.from_value(
                handler, expected="callable", message="handler must be callable"
            )
        self._handlers[action_type] = handler
        logger.debug(f"Registered action handler for {action_type!r}")

    def subscribe(
        self,
        subscriber: ActionSubscriber | Observer,
        *,
        prepend: bool = False,
    ) -> Callable[[], None]:
        """Add a subscriber and return a callable that removes it again.

        A plain callable is treated as a ``before`` observer.
        """
        if not isinstance(subscriber, ActionSubscriber):
            if not callable(subscriber):
                raise ValidationError.from_value(
                    subscriber,
                    expected="ActionSubscriber or callable",
                    message="subscriber must be an ActionSubscriber or callable",
                )
            subscriber = ActionSubscriber(before=subscriber)

        if prepend:
            self._subscribers.insert(0, subscriber)
        else:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(subscriber)
            except ValueError:
                pass

        return unsubscribe

    def dispatch(self, action: Any, payload: Any = UNSET) -> Awaitable[Any]:
        """Dispatch an action and return an awaitable for its completion.

        The handler lookup and every ``before`` observer run synchronously,
        so an unknown action type raises here rather than when awaited.

        The returned awaitable must be awaited (or handed to a task group).
        An async handler only runs from there, and the ``after``/``error``
        observers with it; a dropped awaitable leaves state unchanged after
        the ``before`` observers have already seen the action.
        """
        action = Action.of(action, payload)

        handler = self._handlers.get(action.type)
        if handler is None:
            raise UnknownActionType(
                f"Unknown action type: {action.type!r}",
                context={
                    "action_type": action.type,
                    "known_types": sorted(self._handlers),
                },
            )

        subscribers = tuple(self._subscribers)
        for sub in subscribers:
            if sub.before is not None:
                self._observe(sub.before, action, self.state)

        try:
            pending = handler(self._state, action.payload)
        except Exception as e:
            pending = _reraise(e)

        return self._settle(action, subscribers, pending)

    async def _settle(
        self,
        action: Action,
        subscribers: tuple[ActionSubscriber, ...],
        pending: Any,
    ) -> Any:
        try:
            result = await maybe_await(pending)
        except Exception as e:
            for sub in subscribers:
                if sub.error is not None:
                    await self._aobserve(sub.error, action, self.state, e)
            raise

        if result is not None:
            self._state = result

        for sub in subscribers:
            if sub.after is not None:
                await self._aobserve(sub.after, action, self.state)
        return result

    def _observe(self, observer: Observer, *args: Any) -> None:
        try:
            observer(*args)
        except Exception as e:
            logger.error(f"Hook observer failed: {e}", exc_info=True)

    async def _aobserve(self, observer: Observer, *args: Any) -> None:
        if not is_coro_func(observer):
            self._observe(observer, *args)
            return

        try:
            with anyio.fail_after(self._hook_timeout):
                await observer(*args)
        except TimeoutError:
            logger.warning(
                f"Hook observer timed out after {self._hook_timeout}s: {observer!r}"
            )
        except Exception as e:
            logger.error(f"Hook observer failed: {e}", exc_info=True)


async def _reraise(e: Exception) -> Any:
    raise e
