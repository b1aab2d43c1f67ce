import asyncio

import pytest

from chatbridge.core.reconnect import ReconnectPolicy
from chatbridge.domain.models import DisconnectReason


@pytest.mark.parametrize("code", [None, 408, 428, 440, 500, 515])
def test_retries_everything_but_logout(code):
    assert ReconnectPolicy().should_reconnect(code)


def test_logout_is_terminal():
    assert not ReconnectPolicy().should_reconnect(DisconnectReason.logged_out)
    assert not ReconnectPolicy().should_reconnect(401)


def test_reason_names():
    assert DisconnectReason.describe(401) == "logged_out"
    assert DisconnectReason.describe(515) == "restart_required"
    assert DisconnectReason.describe(999) == "connection_closed"
    assert DisconnectReason.describe(None) == "connection_closed"


@pytest.mark.asyncio
async def test_timer_fires_once_after_delay():
    calls = []

    async def cb():
        calls.append(asyncio.get_running_loop().time())

    policy = ReconnectPolicy(delay_s=0.05)
    start = asyncio.get_running_loop().time()
    task = policy.schedule(cb)
    await task
    assert len(calls) == 1
    assert calls[0] - start >= 0.04


@pytest.mark.asyncio
async def test_cancelled_timer_never_fires():
    calls = []

    async def cb():
        calls.append(1)

    task = ReconnectPolicy(delay_s=0.05).schedule(cb)
    task.cancel()
    await asyncio.sleep(0.1)
    assert task.cancelled()
    assert calls == []
