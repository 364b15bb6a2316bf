# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Interceptor chain - paired success/failure handlers around one operation.

A chain is assembled at ``run`` time as::

    [*reversed(pre), core, *post]

and folded from a successful outcome wrapping the input. Each stage offers
its ``resolved`` handler to a success and its ``rejected`` handler to a
failure; a stage without the matching handler passes the outcome through
unchanged. The core operation is a stage with no ``rejected`` handler, so a
failure raised before it skips the operation and reaches the post stages.

Caller hazard: a ``rejected`` handler that returns normally recovers the
chain. If it returns nothing, the chain continues with ``None`` as its
successful value - re-raise to keep the failure propagating.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import Any

from .config import settings
from .core import Operation
from .errors import StageTransformError, ValidationError
from .utils import maybe_await

logger = logging.getLogger(__name__)

__all__ = (
    "Interceptor",
    "InterceptorChain",
    "InterceptorManager",
    "Outcome",
    "Phase",
)

Handler = Callable[[Any], Any]
Predicate = Callable[[Any], bool]


class Phase(str, Enum):
    """Position of a stage relative to the core operation."""

    PRE = "pre"
    CORE = "core"
    POST = "post"


@dataclass(slots=True, frozen=True)
class Interceptor:
    """One stage of a chain."""

    resolved: Handler | None = None
    rejected: Handler | None = None
    run_when: Predicate | None = None
    phase: Phase = Phase.PRE
    handle: int = 0

    def __post_init__(self):
        if self.resolved is None and self.rejected is None:
            raise ValidationError(
                "Interceptor needs a resolved or a rejected handler",
                context={"phase": self.phase.value},
            )
        for name in ("resolved", "rejected", "run_when"):
            fn = getattr(self, name)
            if fn is not None and not callable(fn):
                raise ValidationError.from_value(
                    fn, expected="callable", message=f"{name} must be callable"
                )


@dataclass(slots=True, frozen=True)
class Outcome:
    """Settled state of a chain between two stages."""

    value: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> Outcome:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> Outcome:
        return cls(error=error)

    async def then(
        self,
        resolved: Handler | None,
        rejected: Handler | None,
        *,
        wrap: Callable[[Exception], Exception] | None = None,
    ) -> Outcome:
        """Offer this outcome to the matching handler and settle its result."""
        handler = resolved if self.ok else rejected
        if handler is None:
            return self

        try:
            value = await maybe_await(handler(self.value if self.ok else self.error))
        except Exception as e:
            return Outcome.failure(wrap(e) if wrap is not None else e)
        return Outcome.success(value)

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class InterceptorManager:
    """Registered interceptors of one phase, in registration order."""

    def __init__(self, phase: Phase):
        self.phase = phase
        self._interceptors: dict[int, Interceptor] = {}
        self._handles = count(1)

    def use(
        self,
        resolved: Handler | None = None,
        rejected: Handler | None = None,
        *,
        run_when: Predicate | None = None,
    ) -> int:
        """Register a handler pair and return its handle for ``eject``."""
        if run_when is not None and self.phase is not Phase.PRE:
            raise ValidationError(
                "run_when is only supported on pre interceptors",
                context={"phase": self.phase.value},
            )

        handle = next(self._handles)
        self._interceptors[handle] = Interceptor(
            resolved=resolved,
            rejected=rejected,
            run_when=run_when,
            phase=self.phase,
            handle=handle,
        )
        logger.debug(f"Registered {self.phase.value} interceptor #{handle}")
        return handle

    def eject(self, handle: int) -> bool:
        """Remove an interceptor; returns False if the handle is unknown."""
        if self._interceptors.pop(handle, None) is None:
            return False
        logger.debug(f"Ejected {self.phase.value} interceptor #{handle}")
        return True

    def clear(self) -> None:
        self._interceptors.clear()

    def snapshot(self) -> tuple[Interceptor, ...]:
        return tuple(self._interceptors.values())

    def __iter__(self) -> Iterator[Interceptor]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._interceptors)


class InterceptorChain:
    """Runs registered pre/post interceptors around a core operation.

    Pre interceptors run last-registered-first, post interceptors run
    first-registered-first. Registration after ``run`` has started does
    not affect that run.

    Usage:
        chain = InterceptorChain(fetch)
        chain.register_pre(add_auth_header)
        chain.register_post(parse_body, log_failure)
        result = await chain.run(request)
    """

    def __init__(
        self,
        operation: Operation[Any, Any],
        *,
        wrap_stage_errors: bool | None = None,
    ):
        if not callable(operation):
            raise ValidationError.from_value(
                operation, expected="callable", message="operation must be callable"
            )
        self.operation = operation
        self.pre = InterceptorManager(Phase.PRE)
        self.post = InterceptorManager(Phase.POST)
        self.wrap_stage_errors = (
            settings.wrap_stage_errors
            if wrap_stage_errors is None
            else wrap_stage_errors
        )

    def register_pre(
        self,
        resolved: Handler | None = None,
        rejected: Handler | None = None,
        *,
        run_when: Predicate | None = None,
    ) -> int:
        return self.pre.use(resolved, rejected, run_when=run_when)

    def register_post(
        self,
        resolved: Handler | None = None,
        rejected: Handler | None = None,
    ) -> int:
        return self.post.use(resolved, rejected)

    def assemble(self, value: Any) -> tuple[Interceptor, ...]:
        """Snapshot the chain for one run with ``value`` as input."""
        pre = [
            i for i in self.pre.snapshot() if i.run_when is None or i.run_when(value)
        ]
        core = Interceptor(resolved=self.operation, phase=Phase.CORE)
        return (*reversed(pre), core, *self.post.snapshot())

    async def run(self, value: Any) -> Any:
        """Drive ``value`` through every stage and return the final value.

        Raises the last failure if no ``rejected`` handler recovered it.
        """
        stages = self.assemble(value)
        outcome = Outcome.success(value)

        for stage in stages:
            wrap = None
            if self.wrap_stage_errors and stage.phase is not Phase.CORE:
                wrap = _stage_error_wrapper(stage)
            outcome = await outcome.then(stage.resolved, stage.rejected, wrap=wrap)

        if not outcome.ok:
            logger.debug(
                f"Chain settled with failure: {type(outcome.error).__name__}"
            )
        return outcome.unwrap()

    async def __call__(self, value: Any) -> Any:
        return await self.run(value)


def _stage_error_wrapper(stage: Interceptor) -> Callable[[Exception], Exception]:
    def wrap(e: Exception) -> Exception:
        if isinstance(e, StageTransformError):
            return e
        return StageTransformError(
            f"{stage.phase.value} interceptor #{stage.handle} failed: {e}",
            context={"phase": stage.phase.value, "handle": stage.handle},
            cause=e,
        )

    return wrap
