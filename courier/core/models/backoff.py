# courier/core/models/backoff.py
"""Retry policy and throttle arithmetic.

Everything here is pure: ``compute_retry`` takes ``now`` as a parameter so the
resulting schedule is deterministic under test.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from courier.core.defaults import (
    DEFAULT_EXPONENTIAL_UNIT_S,
    DEFAULT_FIXED_DELAY_S,
    DEFAULT_MAX_RETRIES,
)
from courier.core.types.status import ItemStatus


class RetryPolicy(BaseModel):
    """
    Retry policy for a dispatch engine.

    Two strategies:
    1. fixed: every retry waits ``base_delay_seconds``
    2. exponential: retry N waits ``2**N * exponential_unit_seconds`` (uncapped)

    Fields:
        max_retries: failed attempts tolerated before the item becomes terminal
        strategy: 'fixed' or 'exponential'
        base_delay_seconds: delay used by the fixed strategy
        exponential_unit_seconds: multiplier used by the exponential strategy
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    max_retries: Annotated[
        int, Field(ge=1, le=20, description='Number of retry attempts (1-20)')
    ] = DEFAULT_MAX_RETRIES
    strategy: Literal['fixed', 'exponential'] = 'fixed'
    base_delay_seconds: Annotated[
        int, Field(ge=1, le=86_400, description='Fixed retry delay in seconds')
    ] = DEFAULT_FIXED_DELAY_S
    exponential_unit_seconds: Annotated[
        int, Field(ge=1, le=86_400, description='Exponential unit in seconds')
    ] = DEFAULT_EXPONENTIAL_UNIT_S

    @classmethod
    def fixed(
        cls,
        delay_seconds: int = DEFAULT_FIXED_DELAY_S,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> 'RetryPolicy':
        """Constant delay between attempts (transactional email: 300s, 3 retries)."""
        return cls(
            max_retries=max_retries,
            strategy='fixed',
            base_delay_seconds=delay_seconds,
        )

    @classmethod
    def exponential(
        cls,
        unit_seconds: int = DEFAULT_EXPONENTIAL_UNIT_S,
        *,
        max_retries: int = 5,
    ) -> 'RetryPolicy':
        """Delay doubles per attempt (domain events: 2**n minutes, 5 retries)."""
        return cls(
            max_retries=max_retries,
            strategy='exponential',
            exponential_unit_seconds=unit_seconds,
        )

    def delay_for(self, retries: int) -> timedelta:
        """Delay before attempt number *retries* (1-based)."""
        match self.strategy:
            case 'fixed':
                return timedelta(seconds=self.base_delay_seconds)
            case 'exponential':
                return timedelta(seconds=(2**retries) * self.exponential_unit_seconds)


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of ``compute_retry``: the state to write back for a failed attempt."""

    should_retry: bool
    new_status: ItemStatus
    retry_count: int
    next_retry_at: datetime | None


def compute_retry(
    current_retry_count: int | None,
    policy: RetryPolicy,
    now: datetime | None = None,
) -> RetryDecision:
    """Compute the next retry state after a failed delivery attempt.

    ``current_retry_count`` may be ``None`` (treated as 0). The attempt just
    made is counted first; the item retries while that count stays within
    ``policy.max_retries`` and is marked failed otherwise.
    """
    retries = (current_retry_count or 0) + 1
    if retries > policy.max_retries:
        return RetryDecision(
            should_retry=False,
            new_status=ItemStatus.FAILED,
            retry_count=retries,
            next_retry_at=None,
        )

    if now is None:
        now = datetime.now(timezone.utc)
    return RetryDecision(
        should_retry=True,
        new_status=ItemStatus.QUEUED,
        retry_count=retries,
        next_retry_at=now + policy.delay_for(retries),
    )


def calculate_batch_delay_ms(rate_limit_per_minute: int, batch_size: int) -> int:
    """Poll interval that keeps ``batch_size`` items per tick under the rate limit.

    ``60_000 * batch_size / rate_limit``, e.g. 60/min with batches of 10 gives
    one tick every 10 seconds.
    """
    if rate_limit_per_minute <= 0:
        raise ValueError('rate_limit_per_minute must be positive')
    if batch_size <= 0:
        raise ValueError('batch_size must be positive')
    return int(60_000 * batch_size / rate_limit_per_minute)
