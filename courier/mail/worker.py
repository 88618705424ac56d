# courier/mail/worker.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from courier.core.brokers.listener import NotificationListener
from courier.core.dispatch.dispatcher import Dispatcher
from courier.core.dispatch.engine import DispatchEngine
from courier.core.models.settings import Settings
from courier.core.store.claimer import QueueStore
from courier.core.store.engine import create_store_engine
from courier.core.utils.url import to_psycopg_url
from courier.mail.smtp import SmtpSender
from courier.mail.templates import OutgoingEmail, TemplateResolver


def build_email_engine(
    settings: Settings,
    *,
    sender: Optional[SmtpSender] = None,
    db: Optional[tuple[AsyncEngine, async_sessionmaker[AsyncSession]]] = None,
) -> DispatchEngine:
    """Wire the transactional-email worker: email_messages -> template -> SMTP."""
    engine, sf = db if db is not None else create_store_engine(settings.database)
    cfg = settings.email
    smtp = sender or SmtpSender(settings.smtp)

    store = QueueStore(sf, cfg.table, default_limit=cfg.batch_size)
    dispatcher: Dispatcher[OutgoingEmail] = Dispatcher(
        store,
        TemplateResolver(sf),
        smtp.send,
        cfg.retry_policy,
        batch_size=cfg.batch_size,
    )
    listener = NotificationListener(
        to_psycopg_url(settings.database.database_url),
        cfg.channels,
        options=settings.database.session_options,
    )
    return DispatchEngine(
        'email',
        cfg,
        dispatcher,
        listener,
        on_start=[smtp.verify],
        on_close=[engine.dispose],
    )
