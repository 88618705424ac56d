"""Event type -> handler mapping."""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Mapping, Optional

from courier.core.logging import get_logger
from courier.core.models.queue import QueueItem

logger = get_logger('registry')

EventHandler = Callable[[Mapping[str, Any]], Awaitable[None]]
BoundHandler = Callable[[], Awaitable[None]]


class HandlerRegistry:
    """Maps ``event_type`` to an async handler taking the event payload.

    ``resolve`` is the content resolver for the events dispatcher: it returns
    the handler bound to the item's payload, or None for unknown types.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, EventHandler] = {}

    def register(self, event_type: str) -> Callable[[EventHandler], EventHandler]:
        def decorator(fn: EventHandler) -> EventHandler:
            if event_type in self._handlers:
                raise ValueError(f'handler for {event_type!r} already registered')
            self._handlers[event_type] = fn
            return fn

        return decorator

    @property
    def event_types(self) -> list[str]:
        return sorted(self._handlers)

    async def resolve(self, item: QueueItem) -> Optional[BoundHandler]:
        event_type = item.payload.get('event_type')
        handler = self._handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            logger.debug(f'No handler for event type {event_type!r} (event {item.id})')
            return None
        payload = item.payload.get('payload') or {}
        return functools.partial(handler, payload)


async def invoke(bound: BoundHandler) -> None:
    """Delivery function for the events dispatcher."""
    await bound()
