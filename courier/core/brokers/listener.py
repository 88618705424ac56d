# courier/core/brokers/listener.py
"""
PostgreSQL LISTEN/NOTIFY wake-up source for dispatch engines.

Flow:
  1. Producer: INSERT into a queue table -> AFTER INSERT trigger ->
     pg_notify('<channel>', '{"id": ..., "operation": ..., "table": ...}')
  2. Listener: one autocommit connection LISTENs on the configured channels
     and yields each ``Notify`` to the engine
  3. Engine: extracts the id, drops duplicates, triggers a dispatch cycle

Notifications are only a wake-up hint. The queue table stays the source of
truth, so a lost notification costs latency (the poll tick picks it up) but
never an item.
"""

from __future__ import annotations

import json
from typing import AsyncIterator, Optional, Sequence

import psycopg
from psycopg import AsyncConnection, InterfaceError, Notify, OperationalError
from psycopg import sql

from courier.core.errors import ListenerDisconnectedError
from courier.core.logging import get_logger
from courier.core.utils.url import mask_database_url

logger = get_logger('listener')


class NotificationListener:
    """
    Single-connection LISTEN wrapper.

    Usage:
    ------
    listener = NotificationListener(url, ['email_message_channel'])
    await listener.start()
    async for notification in listener.notifications():
        ...
    await listener.close()

    Notes:
    ------
    * autocommit=True: LISTEN takes effect immediately
    * Channel names are quoted with ``sql.Identifier``
    * There is no reconnect. A lost connection raises
      ``ListenerDisconnectedError`` from ``notifications()``
    """

    def __init__(
        self,
        database_url: str,
        channels: Sequence[str],
        *,
        options: Optional[str] = None,
    ) -> None:
        self.database_url = database_url
        self.channels: tuple[str, ...] = tuple(channels)
        self.options = options
        self._conn: Optional[AsyncConnection] = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    async def start(self) -> None:
        """Connect and LISTEN on every channel. Safe to call more than once."""
        if self.connected:
            return
        self._closing = False
        connect_kwargs: dict[str, str] = {}
        if self.options:
            connect_kwargs['options'] = self.options
        self._conn = await psycopg.AsyncConnection.connect(
            self.database_url,
            autocommit=True,
            **connect_kwargs,
        )
        for channel in self.channels:
            await self._conn.execute(
                sql.SQL('LISTEN {}').format(sql.Identifier(channel))
            )
        logger.info(
            f'Listening on {", ".join(self.channels)} '
            f'({mask_database_url(self.database_url)})'
        )

    async def notifications(self) -> AsyncIterator[Notify]:
        """Yield notifications until ``close()`` is called.

        Raises ``ListenerDisconnectedError`` if the server connection drops.
        """
        if self._conn is None:
            raise RuntimeError('NotificationListener.start() must be awaited first')
        conn = self._conn
        try:
            async for notification in conn.notifies():
                yield notification
        except (OperationalError, InterfaceError) as exc:
            if self._closing:
                return
            logger.error(f'Notification connection lost: {exc}')
            raise ListenerDisconnectedError(str(exc)) from exc
        if not self._closing:
            logger.error('Notification stream ended unexpectedly')
            raise ListenerDisconnectedError('notification stream ended')

    async def close(self) -> None:
        self._closing = True
        conn, self._conn = self._conn, None
        if conn is not None and not conn.closed:
            await conn.close()


def parse_notification_id(payload: Optional[str]) -> Optional[str]:
    """Extract the item id from a notification payload.

    Returns None for empty, non-JSON, non-object or id-less payloads.
    Extra keys (``operation``, ``table``) are ignored.
    """
    if not payload:
        return None
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    item_id = data.get('id')
    if item_id is None or item_id == '':
        return None
    return str(item_id)
