"""
Store error taxonomy.

Absence is never an error: reads return None and writes against
missing rows are no-ops.
"""
from sqlalchemy import exc as sa_exc


class StoreError(Exception):
    """Base class for all table store failures."""


class BackendUnavailable(StoreError):
    """Connection refused, lost, or timed out."""


class StatementFailed(StoreError):
    """The backend rejected a statement."""


class InvalidTableName(StatementFailed):
    """Table name is empty after sanitization."""


class ValueTooLarge(StatementFailed):
    """Value exceeds the configured maximum length."""


_UNAVAILABLE = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)


def translate(error: sa_exc.SQLAlchemyError) -> StoreError:
    """Map a SQLAlchemy exception onto the store taxonomy."""
    if isinstance(error, _UNAVAILABLE):
        return BackendUnavailable(str(error))
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return BackendUnavailable(str(error))
    return StatementFailed(str(error))
