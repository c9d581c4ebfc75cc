from collections.abc import Iterator
from dataclasses import dataclass
import traceback

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable


def describe_record(record: object) -> str:
    """Identity of a record for messages: the ORM identity key, else repr()."""
    try:
        state = inspect(record)
    except NoInspectionAvailable:
        return repr(record)

    identity = getattr(state, "identity", None)
    if not identity:
        return repr(record)
    key = identity[0] if len(identity) == 1 else identity
    return f"#{key}"


@dataclass(frozen=True)
class CollectedFailure:
    cause: BaseException
    verbose: bool
    row_name: str
    record: object

    def render(self) -> str:
        heading = f"{self.row_name.title()} {describe_record(self.record)}: {type(self.cause).__name__}: {self.cause}"
        if not self.verbose:
            return heading
        trace = "".join(traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__))
        return f"{heading}\n{trace.rstrip()}"

    def __str__(self) -> str:
        return self.render()


class ExceptionCollector:
    def __init__(self) -> None:
        self._failures: list[CollectedFailure] = []

    def append(self, cause: BaseException, record: object, *, verbose: bool, row_name: str) -> CollectedFailure:
        failure = CollectedFailure(cause=cause, verbose=verbose, row_name=row_name, record=record)
        self._failures.append(failure)
        return failure

    def is_empty(self) -> bool:
        return not self._failures

    def render(self) -> list[str]:
        return [failure.render() for failure in self._failures]

    @property
    def failures(self) -> tuple[CollectedFailure, ...]:
        return tuple(self._failures)

    def __len__(self) -> int:
        return len(self._failures)

    def __iter__(self) -> Iterator[CollectedFailure]:
        return iter(self._failures)
