# courier/core/models/queue.py
"""Queue table contract and the claimed-item record."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from courier.core.errors import ConfigurationError, ErrorCode
from courier.core.types.status import ItemStatus

_IDENT_RE = re.compile(r'^[a-z_][a-z0-9_]*$')


class QueueTable(BaseModel):
    """
    Describes a table used as a work queue.

    The claim and write-back SQL is generated from these names, so each of
    them is restricted to a lower-case identifier.

    Fields:
        name: table name
        queued_label: on-disk spelling of ItemStatus.QUEUED
        sent_label: on-disk spelling of ItemStatus.SENT
        created_column: creation timestamp, first claim ordering key
        processed_column: set when the item reaches the success state
        payload_columns: columns copied into ``QueueItem.payload``
        channel: NOTIFY channel the insert trigger publishes on
    """

    model_config = ConfigDict(frozen=True)

    name: str
    queued_label: str = 'queued'
    sent_label: str = 'sent'
    created_column: str = 'created_at'
    processed_column: str = 'processed_at'
    payload_columns: tuple[str, ...] = Field(default=())
    channel: str

    @field_validator('name', 'created_column', 'processed_column', 'channel')
    def validate_identifier(cls, v: str) -> str:
        _check_identifier(v)
        return v

    @field_validator('payload_columns')
    def validate_payload_columns(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for column in v:
            _check_identifier(column)
        return v

    def label(self, status: ItemStatus) -> str:
        """On-disk value for a logical status."""
        match status:
            case ItemStatus.QUEUED:
                return self.queued_label
            case ItemStatus.SENT:
                return self.sent_label
            case _:
                return status.value

    def status_from_label(self, value: str) -> ItemStatus:
        if value == self.queued_label:
            return ItemStatus.QUEUED
        if value == self.sent_label:
            return ItemStatus.SENT
        return ItemStatus(value)


def _check_identifier(value: str) -> None:
    if not _IDENT_RE.match(value):
        raise ConfigurationError(
            message='invalid queue table identifier',
            code=ErrorCode.CONFIG_INVALID_IDENTIFIER,
            notes=[f'got: {value!r}'],
            help_text='table, column and channel names must match [a-z_][a-z0-9_]*',
        )


EMAIL_MESSAGES = QueueTable(
    name='email_messages',
    queued_label='queued',
    sent_label='sent',
    created_column='date_published',
    processed_column='sent_at',
    payload_columns=('template_id', 'recipient_email', 'variables', 'metadata'),
    channel='email_message_channel',
)

EVENTS = QueueTable(
    name='events',
    queued_label='pending',
    sent_label='dispatched',
    created_column='created_at',
    processed_column='processed_at',
    payload_columns=('event_type', 'payload'),
    channel='events_channel',
)


@dataclass(frozen=True)
class QueueItem:
    """A row claimed from a queue table (status is PROCESSING once claimed)."""

    id: str
    status: ItemStatus
    retry_count: int
    created_at: datetime | None = None
    next_retry_at: datetime | None = None
    error_message: str | None = None
    processed_at: datetime | None = None
    payload: Mapping[str, Any] = field(default_factory=lambda: {})

    @classmethod
    def from_row(cls, row: Mapping[str, Any], table: QueueTable) -> QueueItem:
        return cls(
            id=str(row['id']),
            status=table.status_from_label(row['status']),
            retry_count=row.get('retry_count') or 0,
            created_at=row.get(table.created_column),
            next_retry_at=row.get('next_retry_at'),
            error_message=row.get('error_message'),
            processed_at=row.get(table.processed_column),
            payload={c: row.get(c) for c in table.payload_columns},
        )
