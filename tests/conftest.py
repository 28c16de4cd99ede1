import asyncio
from types import SimpleNamespace

import pytest

from gpsync import fetch


@pytest.fixture
def sleeps(monkeypatch):
    """Record sleeps made by the fetch client instead of waiting."""
    recorded: list[float] = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(
        fetch, "asyncio", SimpleNamespace(sleep=fake_sleep, TimeoutError=asyncio.TimeoutError)
    )
    return recorded
