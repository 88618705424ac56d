"""Matrix room notifications over the client-server API."""

from __future__ import annotations

import uuid
from typing import Optional
from urllib.parse import quote

import httpx

from courier.core.logging import get_logger
from courier.core.models.delivery import MatrixConfig

logger = get_logger('matrix')


class MatrixError(RuntimeError):
    """The homeserver answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f'Matrix API error {status_code}: {body}')
        self.status_code = status_code
        self.body = body


def is_matrix_configured(config: MatrixConfig) -> bool:
    return config.is_configured


def message_url(config: MatrixConfig, txn_id: str) -> str:
    base = (config.homeserver_url or '').rstrip('/')
    room = quote(config.room_id or '', safe='')
    return f'{base}/_matrix/client/v3/rooms/{room}/send/m.room.message/{quote(txn_id, safe="")}'


async def send_matrix_message(
    config: MatrixConfig,
    body: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Post a plain-text message to the configured room.

    Returns the transaction id used. Network errors propagate unchanged;
    non-2xx responses raise ``MatrixError``.
    """
    if not config.is_configured or config.access_token is None:
        raise ValueError('Matrix is not configured')
    txn_id = uuid.uuid4().hex
    headers = {'Authorization': f'Bearer {config.access_token.get_secret_value()}'}
    async with httpx.AsyncClient(timeout=config.timeout_seconds, transport=transport) as client:
        response = await client.put(
            message_url(config, txn_id),
            headers=headers,
            json={'msgtype': 'm.text', 'body': body},
        )
    if response.is_error:
        raise MatrixError(response.status_code, response.text)
    logger.debug(f'Matrix message sent (txn {txn_id})')
    return txn_id
