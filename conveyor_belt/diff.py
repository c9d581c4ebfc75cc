from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from rich.console import Console
from rich.table import Table
from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import InstanceState

from conveyor_belt.errors import Misconfigured


@runtime_checkable
class TracksChanges(Protocol):
    def original_values(self) -> Mapping[str, Any]: ...

    def changed_values(self) -> Mapping[str, Any]: ...


def _mapped_state(record: object) -> InstanceState | None:
    try:
        state = inspect(record)
    except NoInspectionAvailable:
        return None
    return state if isinstance(state, InstanceState) else None


def _column_values(record: object, state: InstanceState) -> dict[str, Any]:
    return {attr.key: getattr(record, attr.key) for attr in state.mapper.column_attrs}


class DiffReporter:
    def __init__(self, console: Console, *, enabled: bool) -> None:
        self.console = console
        self.enabled = enabled

    def capture_before(self, record: object) -> dict[str, Any]:
        if not self.enabled:
            return {}
        if isinstance(record, TracksChanges):
            return dict(record.original_values())
        state = _mapped_state(record)
        if state is None:
            return {}
        return _column_values(record, state)

    def render_diff(self, record: object, before: Mapping[str, Any]) -> list[tuple[str, Any, Any]]:
        if isinstance(record, TracksChanges):
            changes = dict(record.changed_values())
            originals = {**record.original_values(), **before}
            return [(field, originals.get(field), value) for field, value in changes.items()]

        state = _mapped_state(record)
        if state is None:
            raise Misconfigured("The --diff flag requires records that track changes")
        if state.was_deleted:
            return [(field, value, None) for field, value in before.items()]

        after = _column_values(record, state)
        return [(field, before.get(field), value) for field, value in after.items() if before.get(field) != value]

    def print_diff(self, record: object, before: Mapping[str, Any], row_name: str) -> None:
        if not self.enabled:
            return

        rows = self.render_diff(record, before)
        table = Table("", "Original", "Updated", title=f"Changes to {row_name.title()}")
        for field, original, updated in rows:
            table.add_row(field, _display(original), _display(updated))
        self.console.print(table)
        self.console.print()


def _display(value: Any) -> str:
    return "NULL" if value is None else str(value)
