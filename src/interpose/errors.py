# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Unified error hierarchy for interpose.

Every error carries a human message, optional structured ``details`` and
``context``, and a machine-readable ``code`` so failures can be logged the
same way regardless of which component raised them.
"""

from __future__ import annotations

from typing import Any, ClassVar

__all__ = (
    "InterposeError",
    "ValidationError",
    "StageTransformError",
    "UnknownActionType",
    "MiddlewareContractViolation",
    "ReentrantDispatchError",
)


class InterposeError(Exception):
    """Base for all interpose errors."""

    default_message: ClassVar[str] = "interpose error"
    code: ClassVar[str] = "interpose_error"  # Machine-readable error code
    severity: ClassVar[str] = "error"  # Log severity level

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message or self.default_message)
        if cause is not None:
            self.__cause__ = cause  # Preserves traceback chain
        self.message = message or self.default_message
        self.details = details or {}
        self.context = context or {}

    def to_dict(self, *, include_cause: bool = False) -> dict[str, Any]:
        """Serialize error to structured dictionary for logging."""
        data = {
            "error": self.__class__.__name__,
            "code": type(self).code,
            "message": self.message,
            "severity": type(self).severity,
            **({"details": self.details} if self.details else {}),
            **({"context": self.context} if self.context else {}),
        }
        if include_cause and (cause := self.get_cause()):
            data["cause"] = repr(cause)
        return data

    def get_cause(self) -> BaseException | None:
        """Get the cause of this error, if any."""
        return self.__cause__

    @classmethod
    def from_value(
        cls,
        value: Any,
        *,
        expected: str | None = None,
        message: str | None = None,
        cause: BaseException | None = None,
        **extra: Any,
    ):
        """Create error from an offending value with optional expected type."""
        details = {
            "value": value,
            "type": type(value).__name__,
            **({"expected": expected} if expected else {}),
            **extra,
        }
        return cls(message=message, details=details, cause=cause)


class ValidationError(InterposeError):
    """Invalid registration arguments or malformed action."""

    default_message = "Validation failed"
    code = "validation_failed"


class StageTransformError(InterposeError):
    """An interceptor's resolved/rejected handler raised.

    Only materialised when a chain runs with ``wrap_stage_errors``; otherwise
    the handler's own exception is propagated untouched.
    """

    default_message = "Interceptor stage failed"
    code = "stage_transform_failed"

    @property
    def phase(self) -> str | None:
        return self.context.get("phase")

    @property
    def handle(self) -> int | None:
        return self.context.get("handle")


class UnknownActionType(InterposeError):
    """Dispatch received an action type with no registered handler."""

    default_message = "Unknown action type"
    code = "unknown_action_type"

    @property
    def action_type(self) -> str | None:
        return self.context.get("action_type")


class MiddlewareContractViolation(InterposeError):
    """A middleware layer broke the dispatch contract.

    Only the detectable cases raise this (a layer returning something that is
    not callable, or dispatching while the middleware chain is still being
    built). A replacement dispatch that changes the input/output shape cannot
    be detected and shows up as downstream misbehaviour instead.
    """

    default_message = "Middleware broke the dispatch contract"
    code = "middleware_contract_violation"


class ReentrantDispatchError(InterposeError):
    """A reducer tried to dispatch while it was being run."""

    default_message = "Reducers may not dispatch actions"
    code = "reentrant_dispatch"
