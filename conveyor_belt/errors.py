from collections.abc import Sequence
from typing import TYPE_CHECKING

from conveyor_belt.config import FAILURE, INVALID

if TYPE_CHECKING:
    from conveyor_belt.collector import CollectedFailure


class ConveyorBeltError(RuntimeError):
    pass


class AbortRun(ConveyorBeltError):
    """Stops the run. An empty message aborts silently."""

    def __init__(self, message: str = "", code: int = FAILURE) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class Misconfigured(AbortRun):
    def __init__(self, message: str) -> None:
        super().__init__(message, INVALID)


class QueryDumped(AbortRun):
    """Raised after --dump-sql has printed the query."""

    def __init__(self) -> None:
        super().__init__("", FAILURE)


class UserAbort(AbortRun):
    def __init__(self, message: str = "Operation cancelled.") -> None:
        super().__init__(message, FAILURE)


class AggregateFailure(AbortRun):
    def __init__(self, failures: Sequence["CollectedFailure"]) -> None:
        super().__init__("", FAILURE)
        self.failures = tuple(failures)


class RecordFailure(ConveyorBeltError):
    def __init__(self, record: object, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}")
        self.record = record
        self.cause = cause
