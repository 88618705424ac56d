"""courier - PostgreSQL-backed work queues for transactional email and domain events"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.brokers.listener import NotificationListener, parse_notification_id
from .core.dispatch.dedup import RecentIdSet
from .core.dispatch.dispatcher import CycleSummary, Dispatcher, ItemOutcome
from .core.dispatch.engine import DispatchEngine
from .core.dispatch.guard import RunGuard
from .core.dispatch.poller import PollScheduler
from .core.errors import (
    ConfigurationError,
    ContentNotFoundError,
    CourierError,
    ErrorCode,
    ListenerDisconnectedError,
)
from .core.models.backoff import (
    RetryDecision,
    RetryPolicy,
    calculate_batch_delay_ms,
    compute_retry,
)
from .core.models.broker import PostgresConfig
from .core.models.delivery import MatrixConfig, SmtpConfig
from .core.models.dispatch import DispatchConfig
from .core.models.queue import EMAIL_MESSAGES, EVENTS, QueueItem, QueueTable
from .core.models.settings import Settings
from .core.store.claimer import QueueStore
from .core.types.status import ItemStatus

__all__ = [
    'ConfigurationError',
    'ContentNotFoundError',
    'CourierError',
    'CycleSummary',
    'DispatchConfig',
    'DispatchEngine',
    'Dispatcher',
    'EMAIL_MESSAGES',
    'EVENTS',
    'ErrorCode',
    'ItemOutcome',
    'ItemStatus',
    'ListenerDisconnectedError',
    'MatrixConfig',
    'NotificationListener',
    'PollScheduler',
    'PostgresConfig',
    'QueueItem',
    'QueueStore',
    'QueueTable',
    'RecentIdSet',
    'RetryDecision',
    'RetryPolicy',
    'RunGuard',
    'Settings',
    'SmtpConfig',
    'calculate_batch_delay_ms',
    'compute_retry',
    'parse_notification_id',
]
