# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ("InterposeSettings", "settings")


class InterposeSettings(BaseSettings, frozen=True):
    """Package settings with environment variable support.

    Every field can be set through an ``INTERPOSE_``-prefixed environment
    variable (e.g. ``INTERPOSE_HOOK_TIMEOUT=5``). Components read these
    values when they are constructed; explicit keyword arguments win.
    """

    model_config = SettingsConfigDict(
        env_prefix="INTERPOSE_",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Level of the package logger"
    )

    @field_validator("log_level", mode="before")
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    hook_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds an async after/error observer may run",
    )

    wrap_stage_errors: bool = Field(
        default=False,
        description="Wrap interceptor handler failures in StageTransformError",
    )

    strict_middleware: bool = Field(
        default=True,
        description="Reject middleware layers that do not return a callable",
    )


# Create a singleton instance
settings = InterposeSettings()
