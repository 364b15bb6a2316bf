# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Core contracts - Operation, Dispatch and the Action descriptor.

The wrapped subject is never implemented here. Every component only relies
on one of these small shapes:

- an ``Operation`` turns an input into an awaitable output,
- a ``Dispatch`` function takes an action and returns whatever the base
  operation returns,
- an ``ActionHandler`` applies an action payload to container state.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, TypeVar

import msgspec

from .errors import ValidationError

In = TypeVar("In", contravariant=True)
Out = TypeVar("Out", covariant=True)

__all__ = (
    "Action",
    "ActionHandler",
    "Dispatch",
    "Operation",
    "Reducer",
    "UNSET",
)


class Operation(Protocol[In, Out]):
    """Subject of a chain - takes an input, returns a deferred output.

    A plain function returning its output directly is accepted as well; the
    chain awaits the result only when it is awaitable.
    """

    def __call__(self, value: In, /) -> Awaitable[Out]: ...


# (action) -> result, result shape owned by the base dispatch
Dispatch = Callable[[Any], Any]

# (state, payload) -> awaitable | None
ActionHandler = Callable[[Any, Any], Any]

UNSET: Any = object()


class Action(msgspec.Struct, frozen=True, kw_only=True):
    """Descriptor of a state-changing request, tagged by ``type``."""

    type: str
    payload: Any = None

    @classmethod
    def of(cls, obj: Any, payload: Any = UNSET) -> Action:
        """Coerce ``obj`` into an Action.

        Accepts an ``Action``, a type string (with ``payload`` passed
        separately), or a mapping. Mappings either carry an explicit
        ``payload`` key or have every other key collected into the payload;
        a mapping with ``payload`` and further keys is rejected.
        """
        if isinstance(obj, Action):
            if payload is not UNSET:
                return msgspec.structs.replace(obj, payload=payload)
            return obj

        if isinstance(obj, str):
            return cls(type=obj, payload=None if payload is UNSET else payload)

        if isinstance(obj, Mapping):
            if not isinstance(obj.get("type"), str):
                raise ValidationError.from_value(
                    obj,
                    expected="mapping with a string 'type'",
                    message="Action mapping requires a string 'type' key",
                )
            rest = {k: v for k, v in obj.items() if k != "type"}
            if "payload" in rest and len(rest) > 1:
                raise ValidationError(
                    "Action mapping with a 'payload' key cannot carry other fields",
                    details={"extra_keys": [k for k in rest if k != "payload"]},
                )
            if payload is not UNSET:
                return cls(type=obj["type"], payload=payload)
            if "payload" in rest:
                return cls(type=obj["type"], payload=rest["payload"])
            return cls(type=obj["type"], payload=rest or None)

        raise ValidationError.from_value(
            obj,
            expected="Action, str or mapping",
            message=f"Cannot build an action from {type(obj).__name__}",
        )

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


# (state, action) -> next state
Reducer = Callable[[Any, Action], Any]
