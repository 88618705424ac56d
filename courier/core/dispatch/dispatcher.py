# courier/core/dispatch/dispatcher.py
"""One dispatch cycle: claim a batch, deliver each item, write back the result."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from courier.core.logging import get_logger
from courier.core.models.backoff import RetryPolicy, compute_retry
from courier.core.models.queue import QueueItem
from courier.core.store.claimer import QueueStore

logger = get_logger('dispatcher')

T = TypeVar('T')

# Returns None when there is nothing to deliver for the item (e.g. no handler).
ContentResolver = Callable[[QueueItem], Awaitable[Optional[T]]]
DeliveryFn = Callable[[T], Awaitable[object]]


class ItemOutcome(Enum):
    SENT = 'sent'
    UNHANDLED = 'unhandled'
    RETRY_SCHEDULED = 'retry_scheduled'
    FAILED = 'failed'


@dataclass
class CycleSummary:
    fetched: int = 0
    outcomes: dict[str, ItemOutcome] = field(default_factory=lambda: {})

    def count(self, outcome: ItemOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o is outcome)

    @property
    def sent(self) -> int:
        return self.count(ItemOutcome.SENT)

    @property
    def unhandled(self) -> int:
        return self.count(ItemOutcome.UNHANDLED)

    @property
    def retried(self) -> int:
        return self.count(ItemOutcome.RETRY_SCHEDULED)

    @property
    def failed(self) -> int:
        return self.count(ItemOutcome.FAILED)


def describe_error(exc: BaseException) -> str:
    """Error text persisted on the row: exception type plus message."""
    message = str(exc)
    name = type(exc).__name__
    return f'{name}: {message}' if message else name


class Dispatcher(Generic[T]):
    """Claims a batch from a ``QueueStore`` and processes it sequentially.

    Per item: ``resolve(item)`` produces the deliverable (or None), then
    ``deliver(resolved)`` sends it. Any exception from either step is recorded
    on the row through the retry policy and does not affect the rest of the
    batch. Storage errors during claim or write-back propagate.
    """

    def __init__(
        self,
        store: QueueStore,
        resolve: ContentResolver[T],
        deliver: DeliveryFn[T],
        policy: RetryPolicy,
        *,
        batch_size: int,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.resolve = resolve
        self.deliver = deliver
        self.policy = policy
        self.batch_size = batch_size
        self._now = now

    async def run_cycle(self) -> CycleSummary:
        items = await self.store.claim(self.batch_size)
        summary = CycleSummary(fetched=len(items))
        if not items:
            logger.debug(f'{self.store.table.name}: nothing to dispatch')
            return summary

        logger.info(f'{self.store.table.name}: fetched {len(items)} item(s)')
        for item in items:
            summary.outcomes[item.id] = await self._process(item)

        logger.info(
            f'{self.store.table.name}: cycle done '
            f'fetched={summary.fetched} sent={summary.sent} '
            f'unhandled={summary.unhandled} retried={summary.retried} '
            f'failed={summary.failed}'
        )
        return summary

    async def _process(self, item: QueueItem) -> ItemOutcome:
        try:
            resolved = await self.resolve(item)
            if resolved is not None:
                await self.deliver(resolved)
        except Exception as exc:
            return await self._record_failure(item, exc)

        await self.store.mark_succeeded(item.id)
        if resolved is None:
            logger.warning(
                f'{self.store.table.name} {item.id}: no handler, acknowledged without delivery'
            )
            return ItemOutcome.UNHANDLED
        logger.debug(f'{self.store.table.name} {item.id}: delivered')
        return ItemOutcome.SENT

    async def _record_failure(self, item: QueueItem, exc: Exception) -> ItemOutcome:
        decision = compute_retry(item.retry_count, self.policy, self._now())
        await self.store.mark_retry(item.id, decision, describe_error(exc))
        if decision.should_retry:
            logger.warning(
                f'{self.store.table.name} {item.id}: attempt {decision.retry_count} '
                f'failed ({exc}); next attempt at {decision.next_retry_at}'
            )
            return ItemOutcome.RETRY_SCHEDULED
        logger.error(
            f'{self.store.table.name} {item.id}: failed after '
            f'{decision.retry_count} attempt(s): {exc}'
        )
        return ItemOutcome.FAILED
