"""Integration test fixtures: a throwaway schema with both queue tables.

Set ``COURIER_TEST_DATABASE_URL`` (``postgresql+psycopg://...``) to run these
tests; they are skipped otherwise. Tables live in the ``courier_test`` schema
and are truncated before each test.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from courier.core.models.broker import PostgresConfig
from courier.core.store.engine import create_store_engine

TEST_SCHEMA = 'courier_test'

SCHEMA_DDL = [
    f'CREATE SCHEMA IF NOT EXISTS {TEST_SCHEMA}',
    f"""
    CREATE TABLE IF NOT EXISTS {TEST_SCHEMA}.email_templates (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name TEXT NOT NULL,
        subject TEXT NOT NULL,
        html_body TEXT NOT NULL,
        text_body TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TEST_SCHEMA}.email_messages (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        recipient_email TEXT NOT NULL,
        template_id UUID NOT NULL REFERENCES {TEST_SCHEMA}.email_templates(id) ON DELETE CASCADE,
        variables JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        status TEXT NOT NULL DEFAULT 'queued'
            CHECK (status IN ('queued', 'processing', 'sent', 'failed')),
        error_message TEXT,
        sent_at TIMESTAMPTZ,
        retry_count INT DEFAULT 0 CHECK (retry_count >= 0),
        next_retry_at TIMESTAMPTZ,
        date_published TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TEST_SCHEMA}.events (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        event_type TEXT NOT NULL,
        payload JSONB NOT NULL DEFAULT '{{}}',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'processing', 'dispatched', 'failed')),
        error_message TEXT,
        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
        next_retry_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        processed_at TIMESTAMPTZ
    )
    """,
    f"""
    CREATE OR REPLACE FUNCTION {TEST_SCHEMA}.notify_inserted()
    RETURNS trigger
    LANGUAGE plpgsql
    AS $$
    BEGIN
        PERFORM pg_notify(
            TG_ARGV[0],
            json_build_object('id', NEW.id, 'operation', lower(TG_OP), 'table', TG_TABLE_NAME)::text
        );
        RETURN NEW;
    END;
    $$
    """,
    f'DROP TRIGGER IF EXISTS trg_notify_email_queued ON {TEST_SCHEMA}.email_messages',
    f"""
    CREATE TRIGGER trg_notify_email_queued
        AFTER INSERT ON {TEST_SCHEMA}.email_messages
        FOR EACH ROW EXECUTE FUNCTION {TEST_SCHEMA}.notify_inserted('email_message_channel')
    """,
    f'DROP TRIGGER IF EXISTS trg_notify_event_created ON {TEST_SCHEMA}.events',
    f"""
    CREATE TRIGGER trg_notify_event_created
        AFTER INSERT ON {TEST_SCHEMA}.events
        FOR EACH ROW EXECUTE FUNCTION {TEST_SCHEMA}.notify_inserted('events_channel')
    """,
]


@pytest.fixture(scope='session')
def database_url() -> str:
    url = os.environ.get('COURIER_TEST_DATABASE_URL')
    if not url:
        pytest.skip('COURIER_TEST_DATABASE_URL not set')
    return url


@pytest.fixture
def pg_config(database_url: str) -> PostgresConfig:
    return PostgresConfig(database_url=database_url, search_path=TEST_SCHEMA)


@pytest_asyncio.fixture
async def db(
    pg_config: PostgresConfig,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]], None]:
    """Engine + session factory bound to the test schema, with empty tables."""
    engine, sf = create_store_engine(pg_config)
    async with engine.begin() as conn:
        for stmt in SCHEMA_DDL:
            await conn.exec_driver_sql(stmt)
        await conn.exec_driver_sql(
            f'TRUNCATE {TEST_SCHEMA}.email_messages, {TEST_SCHEMA}.email_templates, '
            f'{TEST_SCHEMA}.events'
        )
    yield engine, sf
    await engine.dispose()


@pytest.fixture
def session_factory(
    db: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> async_sessionmaker[AsyncSession]:
    return db[1]


# =============================================================================
# Row helpers
# =============================================================================


class QueueRows:
    """Inserts and reads queue rows through the test session factory."""

    def __init__(self, sf: async_sessionmaker[AsyncSession]) -> None:
        self.sf = sf

    async def _insert(self, sql: str, params: dict[str, Any]) -> str:
        async with self.sf() as s:
            res = await s.execute(text(sql), params)
            row_id = str(res.scalar_one())
            await s.commit()
        return row_id

    async def template(
        self,
        *,
        name: str = 'welcome',
        subject: str = 'Welcome {{ name }}',
        html_body: str = '<p>Hi {{ name }}</p>',
        text_body: Optional[str] = 'Hi {{ name }}',
    ) -> str:
        return await self._insert(
            'INSERT INTO email_templates (name, subject, html_body, text_body) '
            'VALUES (:name, :subject, :html, :text) RETURNING id',
            {'name': name, 'subject': subject, 'html': html_body, 'text': text_body},
        )

    async def email(
        self,
        template_id: str,
        *,
        recipient: str = 'user@example.com',
        variables: Optional[dict[str, Any]] = None,
        published: Optional[datetime] = None,
        next_retry_at: Optional[datetime] = None,
        retry_count: int = 0,
    ) -> str:
        return await self._insert(
            'INSERT INTO email_messages '
            '(recipient_email, template_id, variables, date_published, next_retry_at, retry_count) '
            'VALUES (:to, CAST(:tid AS UUID), CAST(:vars AS JSONB), '
            'COALESCE(CAST(:published AS TIMESTAMPTZ), now()), '
            'CAST(:next_retry_at AS TIMESTAMPTZ), :retry_count) RETURNING id',
            {
                'to': recipient,
                'tid': template_id,
                'vars': json.dumps(variables or {}),
                'published': published,
                'next_retry_at': next_retry_at,
                'retry_count': retry_count,
            },
        )

    async def event(
        self,
        event_type: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        retry_count: int = 0,
    ) -> str:
        return await self._insert(
            'INSERT INTO events (event_type, payload, retry_count) '
            'VALUES (:type, CAST(:payload AS JSONB), :retry_count) RETURNING id',
            {'type': event_type, 'payload': json.dumps(payload or {}), 'retry_count': retry_count},
        )

    async def fetch(self, table: str, row_id: str) -> dict[str, Any]:
        async with self.sf() as s:
            res = await s.execute(
                text(f'SELECT * FROM {table} WHERE id = CAST(:id AS UUID)'),
                {'id': row_id},
            )
            return dict(res.mappings().one())


@pytest.fixture
def rows(session_factory: async_sessionmaker[AsyncSession]) -> QueueRows:
    return QueueRows(session_factory)
