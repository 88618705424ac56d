"""SQL for the queue store.

Statements are generated per ``QueueTable``. Table and column names come from
validated identifiers; status labels and values are always bound parameters.
"""

from __future__ import annotations

from sqlalchemy import TextClause, text

from courier.core.models.queue import QueueTable


# ---------- Claim SQL (created + id order) ----------
# A row is claimable when queued and its retry time (if any) has passed.
# SKIP LOCKED keeps concurrent claimers disjoint without blocking each other.


def claim_sql(table: QueueTable) -> TextClause:
    return text(f"""
WITH next AS (
  SELECT id
  FROM {table.name}
  WHERE status = :queued
    AND (next_retry_at IS NULL OR next_retry_at <= now())
  ORDER BY {table.created_column} ASC, id ASC
  FOR UPDATE SKIP LOCKED
  LIMIT :lim
)
UPDATE {table.name} t
SET status = 'processing'
FROM next
WHERE t.id = next.id
RETURNING t.*;
""")


# ---------- Write-back SQL ----------
# Guarded by status = 'processing' so a row never leaves a terminal state.


def mark_succeeded_sql(table: QueueTable) -> TextClause:
    return text(f"""
    UPDATE {table.name}
    SET status = :sent,
        {table.processed_column} = now(),
        error_message = NULL
    WHERE id = :id
      AND status = 'processing'
    RETURNING id
""")


def mark_retry_sql(table: QueueTable) -> TextClause:
    return text(f"""
    UPDATE {table.name}
    SET status = :status,
        error_message = :error,
        retry_count = :retry_count,
        next_retry_at = :next_retry_at
    WHERE id = :id
      AND status = 'processing'
    RETURNING id
""")


def count_queued_sql(table: QueueTable) -> TextClause:
    return text(f"""
    SELECT COUNT(*) FROM {table.name} WHERE status = :queued
""")


FETCH_EMAIL_TEMPLATE_SQL = text("""
    SELECT id, name, subject, html_body, text_body
    FROM email_templates
    WHERE id = CAST(:id AS UUID)
""")
