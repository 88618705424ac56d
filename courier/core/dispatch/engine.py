# courier/core/dispatch/engine.py
"""
Dispatch engine: the long-running part of a worker.

Two trigger sources feed one guarded pipeline:

  NotificationListener --(id, deduped)--\
                                         +--> RunGuard --> Dispatcher.run_cycle()
  PollScheduler -------(every N ms)-----/

Triggers never wait for the cycle they start; each one is a tracked
background task that either runs a cycle or is collapsed by the guard.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Sequence

from courier.core.brokers.listener import NotificationListener, parse_notification_id
from courier.core.dispatch.dedup import RecentIdSet
from courier.core.dispatch.dispatcher import Dispatcher
from courier.core.dispatch.guard import RunGuard
from courier.core.dispatch.poller import PollScheduler
from courier.core.logging import get_logger
from courier.core.models.dispatch import DispatchConfig
from courier.core.utils.db import is_retryable_connection_error

logger = get_logger('engine')

AsyncHook = Callable[[], Awaitable[Any]]


class DispatchEngine:
    """Runs a ``Dispatcher`` whenever a notification or a poll tick arrives.

    Lifecycle: ``run_forever()`` starts everything and returns after
    ``request_stop()``; it raises ``ListenerDisconnectedError`` if the
    notification connection drops. Shutdown always lets the in-flight cycle
    finish before closing the listener and the ``on_close`` hooks.
    """

    def __init__(
        self,
        name: str,
        config: DispatchConfig,
        dispatcher: Dispatcher[Any],
        listener: NotificationListener,
        *,
        on_start: Sequence[AsyncHook] = (),
        on_close: Sequence[AsyncHook] = (),
    ) -> None:
        self.name = name
        self.config = config
        self.dispatcher = dispatcher
        self.listener = listener
        self.guard = RunGuard()
        self.recent_ids = RecentIdSet(config.dedup_capacity)
        self.poller = PollScheduler(config.effective_poll_interval_ms, self._on_poll)
        self._on_start = tuple(on_start)
        self._on_close = tuple(on_close)
        self._stop = asyncio.Event()
        self._cycle_tasks: set[asyncio.Task[None]] = set()
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._listen_task: Optional[asyncio.Task[None]] = None
        self._stopped = False

    # ----------------- lifecycle -----------------

    async def start(self) -> None:
        """Subscribe, run startup hooks, log the backlog and drain it once."""
        await self.listener.start()
        for hook in self._on_start:
            await hook()
        queued = await self.dispatcher.store.count_queued()
        logger.info(f'{self.name}: {queued} item(s) queued at startup')

        self._listen_task = asyncio.create_task(
            self._consume_notifications(), name=f'{self.name}-listen'
        )
        self._poll_task = asyncio.create_task(
            self.poller.run(self._stop), name=f'{self.name}-poll'
        )
        self.trigger('startup')
        logger.info(f'{self.name}: ready and listening for notifications')

    async def run_forever(self) -> None:
        """Run until ``request_stop()``. Re-raises a fatal listener error."""
        try:
            await self.start()
            assert self._listen_task is not None
            stop_waiter = asyncio.create_task(self._stop.wait(), name=f'{self.name}-stop')
            try:
                await asyncio.wait(
                    {stop_waiter, self._listen_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                stop_waiter.cancel()
            if self._listen_task.done() and not self._listen_task.cancelled():
                # Raises ListenerDisconnectedError when the connection dropped.
                self._listen_task.result()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Request a graceful stop (signal-handler safe)."""
        self._stop.set()

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._stop.set()
        logger.info(f'{self.name}: shutting down')

        for task in (self._poll_task, self._listen_task):
            if task is not None and not task.done():
                task.cancel()
        await asyncio.gather(
            *(t for t in (self._poll_task, self._listen_task) if t is not None),
            return_exceptions=True,
        )

        if self.guard.in_flight:
            logger.info(f'{self.name}: waiting for in-flight dispatch cycle')
        await self.guard.wait_idle()
        if self._cycle_tasks:
            await asyncio.gather(*self._cycle_tasks, return_exceptions=True)

        await self.listener.close()
        for hook in self._on_close:
            try:
                await hook()
            except Exception as e:
                logger.error(f'{self.name}: close hook failed: {e}')
        logger.info(f'{self.name}: stopped')

    # ----------------- triggers -----------------

    def trigger(self, reason: str) -> None:
        """Schedule a guarded dispatch cycle without waiting for it."""
        if self._stop.is_set():
            return
        task = asyncio.create_task(self._guarded_cycle(reason))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    def _on_poll(self) -> None:
        self.trigger('poll')

    async def _guarded_cycle(self, reason: str) -> None:
        try:
            ran = await self.guard.run_once(self.dispatcher.run_cycle)
        except Exception as exc:
            if is_retryable_connection_error(exc):
                logger.warning(
                    f'{self.name}: database unavailable during {reason} cycle: {exc}'
                )
            else:
                logger.error(f'{self.name}: {reason} cycle failed: {exc}', exc_info=True)
            return
        if not ran:
            logger.debug(f'{self.name}: {reason} trigger collapsed into running cycle')

    async def _consume_notifications(self) -> None:
        async for notification in self.listener.notifications():
            self.handle_notification(notification.payload)

    def handle_notification(self, payload: Optional[str]) -> None:
        """Dedup by item id and trigger a cycle for ids not seen recently."""
        item_id = parse_notification_id(payload)
        if item_id is None:
            logger.warning(f'{self.name}: ignoring malformed notification {payload!r}')
            return
        if not self.recent_ids.add(item_id):
            logger.debug(f'{self.name}: duplicate notification for {item_id}')
            return
        logger.debug(f'{self.name}: notification for {item_id}')
        self.trigger('notify')
