# courier/core/utils/db.py
"""Classification of database errors seen by the claimer and the listener."""

from __future__ import annotations

from psycopg import InterfaceError, OperationalError
from sqlalchemy.exc import DBAPIError, OperationalError as SAOperationalError


def is_dbapi_disconnect(exc: DBAPIError) -> bool:
    """True when SQLAlchemy flagged the wrapped DBAPI error as a lost connection."""
    return bool(getattr(exc, 'connection_invalidated', False)) or bool(
        getattr(exc, 'is_disconnect', False)
    )


def is_retryable_connection_error(exc: BaseException) -> bool:
    """True for transient connection-level errors (refused, reset, broken pipe)."""
    match exc:
        case OperationalError() | InterfaceError() | SAOperationalError():
            return True
        case DBAPIError() as db_exc:
            return is_dbapi_disconnect(db_exc)
        case _:
            return False
