# courier/events/worker.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from courier.core.brokers.listener import NotificationListener
from courier.core.dispatch.dispatcher import Dispatcher
from courier.core.dispatch.engine import DispatchEngine
from courier.core.logging import get_logger
from courier.core.models.settings import Settings
from courier.core.store.claimer import QueueStore
from courier.core.store.engine import create_store_engine
from courier.core.utils.url import to_psycopg_url
from courier.events.handlers import create_default_registry
from courier.events.matrix import is_matrix_configured
from courier.events.registry import BoundHandler, HandlerRegistry, invoke

logger = get_logger('events')


def build_events_engine(
    settings: Settings,
    *,
    registry: Optional[HandlerRegistry] = None,
    db: Optional[tuple[AsyncEngine, async_sessionmaker[AsyncSession]]] = None,
) -> DispatchEngine:
    """Wire the domain-event worker: events -> handler registry -> Matrix."""
    engine, sf = db if db is not None else create_store_engine(settings.database)
    cfg = settings.events
    handlers = registry or create_default_registry(settings.matrix)

    async def announce_delivery_mode() -> None:
        if not is_matrix_configured(settings.matrix):
            logger.warning('Matrix not configured, events will be logged only')
        logger.info(f'Handlers registered for: {", ".join(handlers.event_types)}')

    store = QueueStore(sf, cfg.table, default_limit=cfg.batch_size)
    dispatcher: Dispatcher[BoundHandler] = Dispatcher(
        store,
        handlers.resolve,
        invoke,
        cfg.retry_policy,
        batch_size=cfg.batch_size,
    )
    listener = NotificationListener(
        to_psycopg_url(settings.database.database_url),
        cfg.channels,
        options=settings.database.session_options,
    )
    return DispatchEngine(
        'events',
        cfg,
        dispatcher,
        listener,
        on_start=[announce_delivery_mode],
        on_close=[engine.dispose],
    )
