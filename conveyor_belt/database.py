from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker


def build_session_factory(database_url: str, *, echo: bool = False) -> sessionmaker[Session]:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, future=True, echo=echo, connect_args=connect_args)
    if database_url.startswith("sqlite"):
        _enable_sqlite_savepoints(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def engine_for(session: Session) -> Engine:
    bind = session.get_bind()
    return getattr(bind, "engine", bind)


@contextmanager
def transaction_scope(session: Session) -> Generator[Session, None, None]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
    except BaseException:
        session.rollback()
        raise
    session.commit()


@contextmanager
def record_scope(session: Session | None, *, nested: bool) -> Generator[None, None, None]:
    """Isolate one record's work.

    Inside a run-wide transaction the record gets a SAVEPOINT, so a failure
    only discards that record's changes. Without one, each record commits on
    its own. The session expires loaded objects on commit, so records of the
    current chunk that are touched after an earlier commit are refreshed with
    one SELECT each.
    """
    if session is None:
        yield
        return

    if nested:
        with session.begin_nested():
            yield
        return

    try:
        yield
    except Exception:
        session.rollback()
        raise
    session.commit()


@dataclass(frozen=True)
class LoggedQuery:
    statement: str
    parameters: Any
    executemany: bool


class QueryLog:
    """Collects every statement the engine sends to the driver until drained."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._entries: list[LoggedQuery] = []

    def enable(self) -> None:
        if not event.contains(self.engine, "before_cursor_execute", self._record):
            event.listen(self.engine, "before_cursor_execute", self._record)

    def disable(self) -> None:
        if event.contains(self.engine, "before_cursor_execute", self._record):
            event.remove(self.engine, "before_cursor_execute", self._record)

    def drain(self) -> list[LoggedQuery]:
        entries, self._entries = self._entries, []
        return entries

    def _record(self, conn, cursor, statement, parameters, context, executemany) -> None:
        self._entries.append(LoggedQuery(statement, parameters, executemany))
