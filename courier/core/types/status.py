"""Lifecycle states of a queue item."""

from __future__ import annotations

from enum import Enum


class ItemStatus(Enum):
    """Logical status of a queue item.

    Tables may spell these differently on disk (see ``QueueTable.label``);
    the dispatch core only deals in the logical values.

    - QUEUED: eligible for claiming once ``next_retry_at`` has passed
    - PROCESSING: claimed by exactly one worker
    - SENT: delivered (terminal)
    - FAILED: retries exhausted (terminal)
    """

    QUEUED = 'queued'
    PROCESSING = 'processing'
    SENT = 'sent'
    FAILED = 'failed'
