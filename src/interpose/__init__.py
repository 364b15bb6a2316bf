# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

import logging

from .chain import Interceptor, InterceptorChain, InterceptorManager, Outcome, Phase
from .config import InterposeSettings, settings
from .core import UNSET, Action, ActionHandler, Dispatch, Operation, Reducer
from .errors import (
    InterposeError,
    MiddlewareContractViolation,
    ReentrantDispatchError,
    StageTransformError,
    UnknownActionType,
    ValidationError,
)
from .hooks import ActionSubscriber, HookRegistry
from .middleware import (
    LoggingMW,
    Middleware,
    MiddlewareAPI,
    ThunkMW,
    apply_middleware,
    chain_middleware,
    compose,
)
from .store import ActionTypes, Store, create_store, handlers_reducer
from .version import __version__

logger = logging.getLogger(__name__)
logger.setLevel(settings.log_level)

__all__ = (
    "__version__",
    "Action",
    "ActionHandler",
    "ActionSubscriber",
    "ActionTypes",
    "Dispatch",
    "HookRegistry",
    "Interceptor",
    "InterceptorChain",
    "InterceptorManager",
    "InterposeError",
    "InterposeSettings",
    "LoggingMW",
    "Middleware",
    "MiddlewareAPI",
    "MiddlewareContractViolation",
    "Operation",
    "Outcome",
    "Phase",
    "Reducer",
    "ReentrantDispatchError",
    "StageTransformError",
    "Store",
    "ThunkMW",
    "UNSET",
    "UnknownActionType",
    "ValidationError",
    "apply_middleware",
    "chain_middleware",
    "compose",
    "create_store",
    "handlers_reducer",
    "logger",
    "settings",
)
