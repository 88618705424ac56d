"""Shared default constants for the courier dispatch engine."""

# Retry ceiling for transactional sends. An item whose retry_count exceeds
# this value becomes terminal ('failed').
DEFAULT_MAX_RETRIES: int = 3

# Fixed-strategy delay between attempts.
DEFAULT_FIXED_DELAY_S: int = 300  # 5 minutes

# Exponential strategy: delay = 2**retries * unit.
DEFAULT_EXPONENTIAL_UNIT_S: int = 60  # minutes

# Claim size per dispatch cycle.
DEFAULT_BATCH_SIZE: int = 10

# Items per minute allowed by the downstream transport.
DEFAULT_RATE_LIMIT_PER_MINUTE: int = 60

# Capacity of the recently-seen notification id set (FIFO eviction).
DEFAULT_DEDUP_CAPACITY: int = 1000

# Transport-level network timeout for SMTP and HTTP deliveries.
DEFAULT_TRANSPORT_TIMEOUT_S: float = 10.0

# Shortest poll interval, derived or explicit.
MIN_POLL_INTERVAL_MS: int = 100
