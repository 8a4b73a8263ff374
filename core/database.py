"""
core/database.py -- Explicitly constructed store handle.

One Database wraps one SQLAlchemy Engine. It is built once in the API
lifespan (or the CLI) and passed to every store constructor, so there is no
module-level connection singleton and tests can hand each store an isolated
in-memory database.

transaction() is the only unit-of-work primitive: store methods accept an
optional Connection and, when given one, run inside the caller's transaction
instead of committing on their own.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Connection, Engine


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journaling and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection and not inherited from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine owner and transaction factory.

    Usage:
        db = Database("sqlite:///inkwell.db")
        db.create_schema(metadata)
        with db.transaction() as conn:
            ...
        db.close()
    """

    def __init__(self, url: str) -> None:
        connect_args: dict = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.url = url
        self.engine: Engine = create_engine(url, connect_args=connect_args)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    def create_schema(self, metadata: MetaData) -> None:
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside BEGIN ... COMMIT.

        Any exception raised inside the block rolls back every statement
        issued on the connection and is re-raised unchanged.
        """
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def scope(self, conn: Connection | None = None) -> Iterator[Connection]:
        """Join the caller's transaction if one is given, else open a new one."""
        if conn is not None:
            yield conn
            return
        with self.engine.begin() as own:
            yield own

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by the health check."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
