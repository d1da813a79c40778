"""Shared fixtures for asyncstore tests."""

import asyncio

import pytest

from asyncstore import StoreConfig


@pytest.fixture
def reported():
    """Errors passed to the error hook of ``quiet_config``."""
    return []


@pytest.fixture
def quiet_config(reported):
    """A StoreConfig that collects errors instead of logging them."""
    return StoreConfig(log_error=reported.append)


@pytest.fixture
def settle():
    """Let scheduled callbacks, timers and tasks run."""

    async def _settle(seconds: float = 0.01) -> None:
        await asyncio.sleep(seconds)

    return _settle
