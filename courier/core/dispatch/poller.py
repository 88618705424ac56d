"""Interval trigger for dispatch cycles."""

from __future__ import annotations

import asyncio
from typing import Callable

from courier.core.logging import get_logger

logger = get_logger('poller')


class PollScheduler:
    """Calls *on_tick* every *interval_ms* until *stop* is set.

    The first tick fires one interval after ``run()`` starts. *on_tick* must
    not block: the engine passes a trigger that only schedules a cycle.
    """

    def __init__(self, interval_ms: int, on_tick: Callable[[], object]) -> None:
        if interval_ms <= 0:
            raise ValueError('interval_ms must be positive')
        self.interval_ms = interval_ms
        self.on_tick = on_tick

    async def run(self, stop: asyncio.Event) -> None:
        logger.info(f'Poll interval: {self.interval_ms}ms')
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_ms / 1000)
                break  # Stop signal received
            except asyncio.TimeoutError:
                pass
            logger.debug('Poll interval elapsed')
            self.on_tick()
