# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures - asyncio backend only."""

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    """Force tests to run only on asyncio backend."""
    return "asyncio"


@pytest.fixture
def trace():
    """Shared log that handlers append to, for ordering assertions."""
    return []
