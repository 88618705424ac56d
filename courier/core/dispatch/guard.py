"""Single-flight guard for dispatch cycles."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from courier.core.logging import get_logger

logger = get_logger('guard')


class RunGuard:
    """At most one dispatch cycle in flight per engine.

    Overlapping triggers are collapsed rather than queued: the running cycle
    re-reads the table, so it picks up whatever the skipped trigger was for
    (or the next trigger does).
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def run_once(self, cycle_fn: Callable[[], Awaitable[object]]) -> bool:
        """Run *cycle_fn* unless a cycle is already running.

        Returns True if it ran, False if skipped. Exceptions from *cycle_fn*
        propagate after the guard is released.
        """
        if self._lock.locked():
            logger.debug('Dispatch cycle already running, skipping')
            return False
        async with self._lock:
            await cycle_fn()
        return True

    async def wait_idle(self) -> None:
        """Wait until no cycle is in flight."""
        async with self._lock:
            pass
