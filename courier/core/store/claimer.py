# courier/core/store/claimer.py
"""Claiming and write-back against a queue table."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courier.core.logging import get_logger
from courier.core.models.backoff import RetryDecision
from courier.core.models.queue import QueueItem, QueueTable
from courier.core.store.sql import (
    claim_sql,
    count_queued_sql,
    mark_retry_sql,
    mark_succeeded_sql,
)
from courier.core.types.status import ItemStatus

logger = get_logger('claimer')


class QueueStore:
    """Skip-locked claimer plus status-guarded write-backs for one ``QueueTable``.

    Every operation runs in its own short session and commits before
    returning: a claim is visible as ``processing`` to other workers as soon
    as ``claim()`` returns.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        table: QueueTable,
        *,
        default_limit: int = 10,
    ) -> None:
        self.sf = session_factory
        self.table = table
        self.default_limit = default_limit
        self._claim_sql = claim_sql(table)
        self._mark_succeeded_sql = mark_succeeded_sql(table)
        self._mark_retry_sql = mark_retry_sql(table)
        self._count_queued_sql = count_queued_sql(table)

    async def claim(self, limit: Optional[int] = None) -> list[QueueItem]:
        """Claim up to *limit* eligible items, oldest first.

        Returns an empty list when nothing is eligible.
        """
        lim = self.default_limit if limit is None else limit
        if lim <= 0:
            return []
        async with self.sf() as s:
            res = await s.execute(
                self._claim_sql,
                {'queued': self.table.label(ItemStatus.QUEUED), 'lim': lim},
            )
            rows: list[dict[str, Any]] = [dict(r) for r in res.mappings().all()]
            await s.commit()

        # UPDATE ... RETURNING does not preserve the CTE ordering.
        created = self.table.created_column
        rows.sort(key=lambda r: (r.get(created) is None, r.get(created), str(r['id'])))
        return [QueueItem.from_row(r, self.table) for r in rows]

    async def mark_succeeded(self, item_id: str) -> bool:
        """Move a processing item to the success state.

        Returns False when the row was no longer ``processing``.
        """
        async with self.sf() as s:
            res = await s.execute(
                self._mark_succeeded_sql,
                {'id': item_id, 'sent': self.table.label(ItemStatus.SENT)},
            )
            updated = res.fetchone() is not None
            await s.commit()
        if not updated:
            logger.warning(
                f'{self.table.name} {item_id}: success write-back skipped, '
                'status is no longer processing'
            )
        return updated

    async def mark_retry(
        self, item_id: str, decision: RetryDecision, error: str
    ) -> bool:
        """Persist a failed attempt: requeue with ``next_retry_at`` or fail terminally."""
        async with self.sf() as s:
            res = await s.execute(
                self._mark_retry_sql,
                {
                    'id': item_id,
                    'status': self.table.label(decision.new_status),
                    'error': error,
                    'retry_count': decision.retry_count,
                    'next_retry_at': decision.next_retry_at,
                },
            )
            updated = res.fetchone() is not None
            await s.commit()
        if not updated:
            logger.warning(
                f'{self.table.name} {item_id}: retry write-back skipped, '
                'status is no longer processing'
            )
        return updated

    async def count_queued(self) -> int:
        """Number of items waiting in the queued state, retries not yet due included."""
        async with self.sf() as s:
            res = await s.execute(
                self._count_queued_sql,
                {'queued': self.table.label(ItemStatus.QUEUED)},
            )
            row = res.fetchone()
            return int(row[0]) if row else 0
