"""
Dynamic-table key-value store.

Every caller-supplied table name maps to its own physical two-column
relation (key TEXT PRIMARY KEY, value TEXT NOT NULL), created on demand.
Table names are sanitized and emitted as quoted identifiers; keys and
values only ever travel as bound parameters.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from sqlalchemy import Column, MetaData, Table, Text, delete, insert, update
from sqlalchemy import text as sql_text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateTable, DropTable
from sqlmodel import Session, create_engine, select

from tablekv.config import Settings
from tablekv.db.errors import InvalidTableName, ValueTooLarge, translate
from tablekv.db.identifiers import sanitize

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def kv_table(name: str) -> Table:
    """Build the (key, value) table definition for a caller-supplied name."""
    physical = sanitize(name)
    if not physical:
        raise InvalidTableName(f"Table name {name!r} is empty after sanitization")
    return Table(
        physical,
        MetaData(),
        Column("key", Text, primary_key=True),
        Column("value", Text, nullable=False),
        quote=True,
    )


def _in_memory(settings: Settings) -> bool:
    return settings.is_sqlite and make_url(settings.DATABASE_URL).database in (None, "", ":memory:")


def _engine_kwargs(settings: Settings) -> dict[str, Any]:
    """Connection arguments carrying the configured backend timeouts."""
    url = make_url(settings.DATABASE_URL)
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}

    if settings.is_sqlite:
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.DB_TIMEOUT_SECONDS,
        }
        # One shared connection, otherwise every thread gets its own empty database
        if _in_memory(settings):
            kwargs["poolclass"] = StaticPool
            return kwargs
    elif url.get_backend_name() == "postgresql":
        kwargs["connect_args"] = {"connect_timeout": int(settings.DB_TIMEOUT_SECONDS)}

    kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT_SECONDS
    return kwargs


class TableStore:
    """
    Facade over a relational backend where each table name is an
    independently provisioned key -> value mapping.

    Usage:
        store = TableStore.from_settings(get_settings())
        store.set_data("users", "1", "alice")
        store.get_data("users", "1")  # "alice"
    """

    def __init__(self, engine: Engine, max_value_length: int = 1_048_576):
        self.engine = engine
        self.max_value_length = max_value_length

    @classmethod
    def from_settings(cls, settings: Settings) -> "TableStore":
        """Create the engine described by settings."""
        # Ensure the SQLite data directory exists
        if settings.is_sqlite and not _in_memory(settings):
            Path(make_url(settings.DATABASE_URL).database).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            settings.DATABASE_URL,
            **_engine_kwargs(settings),
        )
        return cls(engine, max_value_length=settings.MAX_VALUE_LENGTH)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Session that commits on success and maps backend errors."""
        try:
            with Session(self.engine) as session:
                yield session
                session.commit()
        except SQLAlchemyError as e:
            raise translate(e) from e

    def _check_value(self, value: str) -> None:
        if len(value) > self.max_value_length:
            raise ValueTooLarge(
                f"Value of length {len(value)} exceeds limit of {self.max_value_length}"
            )

    # === Table lifecycle ===

    def ensure_table(self, table: str) -> None:
        """Create the table if it does not exist (idempotent)."""
        self._ensure(kv_table(table))

    def _ensure(self, definition: Table) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(CreateTable(definition, if_not_exists=True))
        except SQLAlchemyError as e:
            raise translate(e) from e
        logger.debug("Ensured table %s", definition.name)

    def delete_table(self, table: str) -> None:
        """Drop the table if it exists. Irreversible."""
        definition = kv_table(table)
        try:
            with self.engine.begin() as conn:
                conn.execute(DropTable(definition, if_exists=True))
        except SQLAlchemyError as e:
            raise translate(e) from e
        logger.debug("Dropped table %s", definition.name)

    # === Records ===

    def set_data(self, table: str, key: str, value: str) -> None:
        """Insert the record, or replace the value if the key exists."""
        self._check_value(value)
        definition = kv_table(table)
        self._ensure(definition)

        dialect_insert = _UPSERT_DIALECTS.get(self.dialect)
        with self._session() as session:
            if dialect_insert is not None:
                stmt = dialect_insert(definition).values(key=key, value=value)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[definition.c["key"]],
                    set_={"value": stmt.excluded["value"]},
                )
                session.exec(stmt)
                return

            result = session.exec(
                update(definition).where(definition.c["key"] == key).values(value=value)
            )
            if result.rowcount == 0:
                session.exec(insert(definition).values(key=key, value=value))

    def update_data(self, table: str, key: str, value: str) -> None:
        """
        Update the value of an existing key.

        A missing key is a silent no-op: nothing is created and no
        error is raised. Use set_data to insert.
        """
        self._check_value(value)
        definition = kv_table(table)
        self._ensure(definition)

        with self._session() as session:
            session.exec(
                update(definition).where(definition.c["key"] == key).values(value=value)
            )

    def get_data(self, table: str, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        definition = kv_table(table)
        self._ensure(definition)

        with self._session() as session:
            return session.exec(
                select(definition.c["value"]).where(definition.c["key"] == key)
            ).first()

    def delete_data(self, table: str, key: str) -> None:
        """
        Delete a record whether or not it exists.

        The table is not provisioned first; deleting from a table that
        was never created affects zero rows and succeeds.
        """
        definition = kv_table(table)
        stmt = delete(definition).where(definition.c["key"] == key)

        # A second attempt covers a table dropped and re-created in between
        for attempt in range(2):
            try:
                with Session(self.engine) as session:
                    session.exec(stmt)
                    session.commit()
                return
            except SQLAlchemyError as e:
                # Never created or dropped concurrently: zero rows affected
                if not self._table_exists(definition):
                    logger.debug("Delete from absent table %s", definition.name)
                    return
                if attempt:
                    raise translate(e) from e

    def _table_exists(self, definition: Table) -> bool:
        try:
            with self.engine.connect() as conn:
                return self.engine.dialect.has_table(conn, definition.name)
        except SQLAlchemyError as e:
            raise translate(e) from e

    # === Health & lifecycle ===

    def health(self) -> dict[str, Any]:
        """
        Check backend connectivity.

        Returns:
            Dict with status and backend dialect (or the error)
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "healthy", "backend": self.dialect}
        except SQLAlchemyError as e:
            return {"status": "unhealthy", "error": str(e)}

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()
