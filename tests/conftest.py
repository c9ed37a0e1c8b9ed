"""Pytest configuration and shared fixtures."""

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from xswd_client import AppInfo, SessionConfig


@pytest.fixture
def app_info() -> AppInfo:
    """Identity used for handshakes in tests."""
    return AppInfo.create("test", "A brief testing application", url="http://localhost")


@pytest.fixture
def fast_config() -> SessionConfig:
    """Primary config with short timeouts so failures surface quickly."""
    return SessionConfig.primary(
        auth_timeout=0.5,
        request_timeout=0.5,
        event_wait_timeout=0.5,
        poll_interval=0.01,
    )


@pytest.fixture
def fast_fallback_config() -> SessionConfig:
    return SessionConfig.fallback(request_timeout=0.5)


@pytest.fixture
def wait_until() -> Callable[[Callable[[], bool]], Awaitable[None]]:
    """Yield to the event loop until a condition holds (1s limit)."""

    async def _wait(condition: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.001)

    return _wait
