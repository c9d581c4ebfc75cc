from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from conveyor_belt.database import engine_for
from conveyor_belt.errors import Misconfigured
from conveyor_belt.sql import QueryText, compile_query


class DataSource(ABC):
    """Where the runner pulls records from.

    A source reports how many records it will yield, hands them out in bounded
    chunks, and can describe itself as SQL for ``--dump-sql``. Sources are single
    use: construct a new one for every run.
    """

    _consumed = False

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError

    def fetch_chunks(self, chunk_size: int) -> Iterator[list[Any]]:
        if chunk_size < 1:
            raise Misconfigured("Chunk size must be at least 1")
        if self._consumed:
            raise Misconfigured(f"{type(self).__name__} has already been iterated; create a new source per run")
        self._consumed = True
        return self._iter_chunks(chunk_size)

    @abstractmethod
    def _iter_chunks(self, chunk_size: int) -> Iterator[list[Any]]:
        raise NotImplementedError

    @abstractmethod
    def to_query_text(self) -> QueryText:
        raise NotImplementedError


class QuerySource(DataSource):
    """Pages through a SELECT with LIMIT/OFFSET, in the statement's own order."""

    def __init__(self, session: Session, statement: Select) -> None:
        if not isinstance(statement, Select):
            raise Misconfigured(f"Expected a SELECT statement, got {type(statement).__name__}")
        self.session = session
        self.statement = statement
        self.yields_entities = _selects_single_entity(statement)

    def count(self) -> int:
        counted = select(func.count()).select_from(self.statement.order_by(None).subquery())
        return int(self.session.execute(counted).scalar_one())

    def _iter_chunks(self, chunk_size: int) -> Iterator[list[Any]]:
        offset = 0
        while True:
            chunk = self._fetch(self.statement.limit(chunk_size).offset(offset))
            if chunk:
                yield chunk
            if len(chunk) < chunk_size:
                return
            offset += chunk_size

    def _fetch(self, statement: Select) -> list[Any]:
        result = self.session.execute(statement)
        if self.yields_entities:
            return list(result.unique().scalars().all())
        return list(result.all())

    def to_query_text(self) -> QueryText:
        return compile_query(self.statement, engine_for(self.session).dialect)


class KeysetQuerySource(QuerySource):
    """Pages by a unique, ascending column instead of by offset.

    Each chunk starts after the last key seen, so handlers may change the
    columns the query filters or sorts on without skipping records.
    """

    def __init__(self, session: Session, statement: Select, column: Any) -> None:
        super().__init__(session, statement)
        self.column = column
        self.key = column.key

    def _iter_chunks(self, chunk_size: int) -> Iterator[list[Any]]:
        ordered = self.statement.order_by(None).order_by(self.column)
        last_key = None
        while True:
            statement = ordered if last_key is None else ordered.where(self.column > last_key)
            chunk = self._fetch(statement.limit(chunk_size))
            if not chunk:
                return
            # Read the key before handlers run; they may delete or expire the record.
            last_key = getattr(chunk[-1], self.key)
            yield chunk
            if len(chunk) < chunk_size:
                return

    def to_query_text(self) -> QueryText:
        ordered = self.statement.order_by(None).order_by(self.column)
        return compile_query(ordered, engine_for(self.session).dialect)


class IterableSource(DataSource):
    def __init__(self, records: Sequence[Any]) -> None:
        self.records = list(records)

    def count(self) -> int:
        return len(self.records)

    def _iter_chunks(self, chunk_size: int) -> Iterator[list[Any]]:
        for start in range(0, len(self.records), chunk_size):
            yield self.records[start : start + chunk_size]

    def to_query_text(self) -> QueryText:
        raise Misconfigured("--dump-sql requires a query-backed data source")


def as_data_source(
    value: Any,
    session: Session | None,
    *,
    chunk_column: Any = None,
    owner: str = "command",
) -> DataSource:
    if isinstance(value, DataSource):
        return value

    if isinstance(value, Select):
        if session is None:
            raise Misconfigured(f"{owner}.query() returned a SELECT but no database session is configured")
        if chunk_column is not None:
            return KeysetQuerySource(session, value, chunk_column)
        return QuerySource(session, value)

    if isinstance(value, (list, tuple)):
        return IterableSource(value)

    raise Misconfigured(f"{owner}.query() must return a query or data source")


def _selects_single_entity(statement: Select) -> bool:
    descriptions = statement.column_descriptions
    return len(descriptions) == 1 and isinstance(descriptions[0]["type"], type)
