# courier/mail/templates.py
"""Email template loading and rendering.

Templates live in the ``email_templates`` table and are rendered with jinja2:
autoescaping is on, missing variables (including missing nested attributes)
render as an empty string, and three filters are available:

- ``autolink``: turn http(s) URLs into styled links
- ``nl2br``: turn newlines into ``<br>``
- ``format_message``: both of the above, with long URLs allowed to wrap
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from jinja2 import ChainableUndefined, Environment
from markupsafe import Markup, escape
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courier.core.errors import ContentNotFoundError
from courier.core.logging import get_logger
from courier.core.models.queue import QueueItem
from courier.core.store.sql import FETCH_EMAIL_TEMPLATE_SQL

logger = get_logger('templates')

LINK_STYLE = 'color: #3498db; text-decoration: none;'
MESSAGE_LINK_STYLE = f'{LINK_STYLE} word-break: break-all;'

_URL_RE = re.compile(r'https?://[^\s<>"]+')


def _linkify(text: Any, style: str) -> Markup:
    if not text:
        return Markup('')
    escaped = str(escape(text))

    def _anchor(match: re.Match[str]) -> str:
        url = match.group(0)
        return f'<a href="{url}" style="{style}">{url}</a>'

    return Markup(_URL_RE.sub(_anchor, escaped))


def autolink(text: Any) -> Markup:
    return _linkify(text, LINK_STYLE)


def nl2br(text: Any) -> Markup:
    if not text:
        return Markup('')
    return Markup(str(escape(text)).replace('\n', '<br>'))


def format_message(text: Any) -> Markup:
    """Linkify URLs (wrapping allowed) and keep line breaks."""
    if not text:
        return Markup('')
    return Markup(str(_linkify(text, MESSAGE_LINK_STYLE)).replace('\n', '<br>'))


def create_environment() -> Environment:
    env = Environment(autoescape=True, undefined=ChainableUndefined)
    env.filters['autolink'] = autolink
    env.filters['nl2br'] = nl2br
    env.filters['format_message'] = format_message
    return env


_default_env = create_environment()


def render_template(
    source: str,
    variables: Optional[Mapping[str, Any]],
    env: Optional[Environment] = None,
) -> str:
    return (env or _default_env).from_string(source).render(**dict(variables or {}))


@dataclass(frozen=True)
class EmailTemplate:
    id: str
    name: str
    subject: str
    html_body: str
    text_body: Optional[str] = None


@dataclass(frozen=True)
class OutgoingEmail:
    """A rendered message ready for the SMTP sender."""

    to: str
    subject: str
    html: str
    text: Optional[str] = None
    message_id: Optional[str] = None


class TemplateResolver:
    """Resolves an ``email_messages`` item into an ``OutgoingEmail``.

    Raises ``ContentNotFoundError`` when the referenced template is gone;
    the dispatcher treats that like any other failed attempt.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        env: Optional[Environment] = None,
    ) -> None:
        self.sf = session_factory
        self.env = env or _default_env

    async def fetch_template(self, template_id: str) -> Optional[EmailTemplate]:
        async with self.sf() as s:
            res = await s.execute(FETCH_EMAIL_TEMPLATE_SQL, {'id': template_id})
            row = res.mappings().fetchone()
        if row is None:
            return None
        return EmailTemplate(
            id=str(row['id']),
            name=row['name'],
            subject=row['subject'],
            html_body=row['html_body'],
            text_body=row['text_body'],
        )

    async def __call__(self, item: QueueItem) -> OutgoingEmail:
        template_id = item.payload.get('template_id')
        template = (
            await self.fetch_template(str(template_id)) if template_id else None
        )
        if template is None:
            raise ContentNotFoundError(f'Template not found: {template_id}')

        variables = item.payload.get('variables') or {}
        text_body = template.text_body
        email = OutgoingEmail(
            to=item.payload['recipient_email'],
            subject=render_template(template.subject, variables, self.env),
            html=render_template(template.html_body, variables, self.env),
            text=render_template(text_body, variables, self.env) if text_body else None,
            message_id=item.id,
        )
        logger.debug(f'Rendered template {template.name} for message {item.id}')
        return email
