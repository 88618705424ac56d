# courier/core/models/dispatch.py
from __future__ import annotations

import re
from typing import Annotated, Self

from pydantic import BaseModel, Field, model_validator

from courier.core.defaults import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DEDUP_CAPACITY,
    DEFAULT_RATE_LIMIT_PER_MINUTE,
    MIN_POLL_INTERVAL_MS,
)
from courier.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from courier.core.models.backoff import RetryPolicy, calculate_batch_delay_ms
from courier.core.models.queue import QueueTable

_CHANNEL_RE = re.compile(r'^[a-z_][a-z0-9_]*$')


class DispatchConfig(BaseModel):
    """
    Configuration for one dispatch engine.

    Throttling is batch based: each tick claims at most ``batch_size`` items
    and ticks are spaced so that ``rate_limit`` items per minute is never
    exceeded. ``poll_interval_ms`` overrides the derived spacing.
    """

    table: QueueTable
    channels: list[str] = Field(
        default_factory=lambda: [],
        description='NOTIFY channels to LISTEN on; defaults to the table channel',
    )
    batch_size: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=DEFAULT_BATCH_SIZE,
        description='Maximum items claimed per dispatch cycle (1-1000)',
    )
    rate_limit: Annotated[int, Field(ge=1)] = Field(
        default=DEFAULT_RATE_LIMIT_PER_MINUTE,
        description='Items per minute allowed by the downstream transport',
    )
    poll_interval_ms: Annotated[int, Field(ge=MIN_POLL_INTERVAL_MS, le=3_600_000)] | None = Field(
        default=None,
        description='Explicit poll interval; derived from batch_size/rate_limit when unset',
    )
    dedup_capacity: Annotated[int, Field(ge=1, le=1_000_000)] = Field(
        default=DEFAULT_DEDUP_CAPACITY,
        description='Number of recently seen notification ids remembered',
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    @model_validator(mode='after')
    def validate_dispatch(self) -> Self:
        report = ValidationReport('dispatch')
        if not self.channels:
            self.channels = [self.table.channel]
        for channel in self.channels:
            if not _CHANNEL_RE.match(channel):
                report.add(
                    ConfigurationError(
                        message='invalid notification channel name',
                        code=ErrorCode.CONFIG_INVALID_IDENTIFIER,
                        notes=[f'got: {channel!r}'],
                        help_text='channel names must match [a-z_][a-z0-9_]*',
                    )
                )

        if self.poll_interval_ms is None:
            derived = calculate_batch_delay_ms(self.rate_limit, self.batch_size)
            if derived < MIN_POLL_INTERVAL_MS:
                report.add(
                    ConfigurationError(
                        message='derived poll interval is too short',
                        code=ErrorCode.CONFIG_INVALID_SETTING,
                        notes=[
                            f'batch_size={self.batch_size} rate_limit={self.rate_limit} '
                            f'gives {derived}ms'
                        ],
                        help_text=(
                            'lower rate_limit, raise batch_size or set poll_interval_ms '
                            f'(at least {MIN_POLL_INTERVAL_MS}ms)'
                        ),
                    )
                )
        raise_collected(report)
        return self

    @property
    def effective_poll_interval_ms(self) -> int:
        if self.poll_interval_ms is not None:
            return self.poll_interval_ms
        return calculate_batch_delay_ms(self.rate_limit, self.batch_size)
