from typing import Any

from sqlalchemy.orm import Session


class BatchCommand:
    """Base class for commands driven by a BatchRunner.

    Subclasses must add ``query()`` (a SELECT, a list, or a DataSource) and
    ``handle_row(record)``. Every other hook is optional.
    """

    row_name: str = "record"
    row_name_plural: str | None = None
    transaction: bool = False
    collect: bool = False
    chunk_by: Any = None
    batch_size: int | None = None

    def __init__(self, session: Session | None = None) -> None:
        self.session = session

    def get_row_name(self) -> str:
        return self.row_name

    def get_row_name_plural(self) -> str:
        return self.row_name_plural or f"{self.row_name}s"

    def use_transaction(self) -> bool:
        return self.transaction

    def collect_exceptions(self) -> bool:
        return self.collect

    def chunk_column(self) -> Any:
        return self.chunk_by

    def chunk_size(self) -> int | None:
        return self.batch_size

    def before_first_row(self) -> None:
        pass

    def before_first_query(self) -> None:
        pass

    def prepare_chunk(self, chunk: list[Any]) -> None:
        pass

    def after_last_row(self) -> None:
        pass
