"""Reconnect decision and timer for closed protocol sessions."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from chatbridge.domain.models import DisconnectReason
from chatbridge.observability import metrics
from chatbridge.observability.logging import get_logger

log = get_logger("reconnect")


class ReconnectPolicy:
    """
    Fixed-delay, single-shot reconnect.

    Every non-logout closure schedules exactly one retry after `delay_s`.
    There is no attempt cap and no backoff growth; a retry that fails
    schedules the next one through the same path.
    """

    def __init__(self, delay_s: float = 3.0):
        self.delay_s = delay_s

    def should_reconnect(self, status_code: int | None) -> bool:
        # logged out: credentials are gone, only a fresh QR pairing helps
        return status_code != DisconnectReason.logged_out

    def schedule(self, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Run `callback` once after the delay. Cancel the returned task to abort."""

        async def _fire() -> None:
            await asyncio.sleep(self.delay_s)
            await callback()

        metrics.reconnects_scheduled.inc()
        log.info("reconnect_scheduled", delay_s=self.delay_s)
        return asyncio.create_task(_fire(), name="chatbridge-reconnect")
