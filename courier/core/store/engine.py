# courier/core/store/engine.py
from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from courier.core.models.broker import PostgresConfig


def create_store_engine(
    config: PostgresConfig,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the async engine and session factory used by every ``QueueStore``.

    Role and search_path are applied as startup options so pooled connections
    never run statements under the login role.
    """
    engine_cfg = config.model_dump(
        exclude={'database_url', 'role', 'search_path'}, exclude_none=True
    )
    options = config.session_options
    if options:
        engine_cfg['connect_args'] = {'options': options}
    engine = create_async_engine(config.database_url, **engine_cfg)
    return engine, async_sessionmaker(engine, expire_on_commit=False)
