# courier/core/utils/url.py
"""Database URL helpers: masking for logs and driver-suffix stripping for psycopg."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

_DRIVER_SUFFIXES = ('+psycopg', '+asyncpg')


def mask_database_url(url: str) -> str:
    """Replace the password of *url* with ``***`` so it can be logged."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    host = parts.netloc.rsplit('@', 1)[-1]
    user = parts.username or ''
    return urlunsplit(parts._replace(netloc=f'{user}:***@{host}'))


def to_psycopg_url(url: str) -> str:
    """Turn a SQLAlchemy URL (``postgresql+psycopg://``) into a plain libpq URL.

    The notification listener talks to psycopg directly and does not accept
    the SQLAlchemy driver suffix.
    """
    scheme, sep, rest = url.partition('://')
    if not sep:
        return url
    for suffix in _DRIVER_SUFFIXES:
        if scheme.endswith(suffix):
            return f'{scheme[: -len(suffix)]}://{rest}'
    return url
