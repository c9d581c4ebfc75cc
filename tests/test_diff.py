from collections.abc import Mapping
from typing import Any

import pytest

from conveyor_belt.diff import DiffReporter
from conveyor_belt.errors import Misconfigured
from support import User, output_of


class TrackedRecord:
    def __init__(self, **values: Any) -> None:
        self._original = dict(values)
        self.values = dict(values)

    def original_values(self) -> Mapping[str, Any]:
        return self._original

    def changed_values(self) -> Mapping[str, Any]:
        return {key: value for key, value in self.values.items() if self._original.get(key) != value}


def test_diff_is_empty_when_disabled(console) -> None:
    reporter = DiffReporter(console, enabled=False)

    assert reporter.capture_before(TrackedRecord(a=1)) == {}
    reporter.print_diff("anything", {}, "row")
    assert output_of(console) == ""


def test_diff_lists_only_changed_fields_of_tracked_records(console) -> None:
    reporter = DiffReporter(console, enabled=True)
    record = TrackedRecord(name="Ada", age=30)

    before = reporter.capture_before(record)
    record.values["age"] = 31

    assert reporter.render_diff(record, before) == [("age", 30, 31)]


def test_diff_of_mapped_instance(seeded, console) -> None:
    reporter = DiffReporter(console, enabled=True)
    user = seeded.get(User, 1)

    before = reporter.capture_before(user)
    user.name = "Christopher Morrell"
    seeded.commit()

    assert reporter.render_diff(user, before) == [("name", "Chris Morrell", "Christopher Morrell")]

    reporter.print_diff(user, before, "user")
    out = output_of(console)
    assert "Changes to User" in out
    assert "Christopher Morrell" in out


def test_diff_of_deleted_instance_reports_removed_values(seeded, console) -> None:
    reporter = DiffReporter(console, enabled=True)
    user = seeded.get(User, 3)

    before = reporter.capture_before(user)
    seeded.delete(user)
    seeded.commit()

    assert ("name", "Taylor Otwell", None) in reporter.render_diff(user, before)


def test_diff_requires_change_tracking(console) -> None:
    reporter = DiffReporter(console, enabled=True)

    assert reporter.capture_before({"plain": "dict"}) == {}
    with pytest.raises(Misconfigured, match="track changes"):
        reporter.render_diff({"plain": "dict"}, {})
