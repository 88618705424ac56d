# courier/events/handlers.py
"""Built-in event handlers: admin notifications posted to a Matrix room."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx

from courier.core.logging import get_logger
from courier.core.models.delivery import MatrixConfig
from courier.events.matrix import is_matrix_configured, send_matrix_message
from courier.events.registry import HandlerRegistry

logger = get_logger('handlers')


def format_user_signup(payload: Mapping[str, Any]) -> str:
    name = payload.get('name') or 'Unknown'
    email = payload.get('email') or '?'
    message = f'New signup: {name} <{email}>'
    provider = payload.get('provider')
    if provider:
        message += f' ({provider})'
    return message


def format_user_deleted(payload: Mapping[str, Any]) -> str:
    name = payload.get('name') or 'Unknown'
    email = payload.get('email') or '?'
    return f'Account deleted: {name} <{email}>'


def format_credits_purchased(payload: Mapping[str, Any]) -> str:
    email = payload.get('user_email') or '?'
    amount = payload.get('amount', '?')
    balance = payload.get('balance_after', '?')
    return f'Credits purchased: {email} bought {amount} credits (balance: {balance})'


FORMATTERS = {
    'user.signup': format_user_signup,
    'user.deleted': format_user_deleted,
    'credits.purchased': format_credits_purchased,
}


def create_default_registry(
    matrix: MatrixConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HandlerRegistry:
    """Registry with one Matrix notifier per known event type.

    Without Matrix configuration the handlers only log the message.
    """
    registry = HandlerRegistry()

    for event_type, formatter in FORMATTERS.items():

        async def notify(
            payload: Mapping[str, Any],
            _event_type: str = event_type,
            _format: Any = formatter,
        ) -> None:
            body = _format(payload)
            if not is_matrix_configured(matrix):
                logger.info(f'{_event_type}: {body}')
                return
            await send_matrix_message(matrix, body, transport=transport)

        registry.register(event_type)(notify)

    return registry
