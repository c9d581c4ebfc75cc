from conveyor_belt.collector import ExceptionCollector, describe_record
from support import User


def raise_and_capture(message: str) -> ValueError:
    try:
        raise ValueError(message)
    except ValueError as exc:
        return exc


def test_collector_keeps_every_failure_in_order() -> None:
    collector = ExceptionCollector()
    assert collector.is_empty()

    collector.append(raise_and_capture("first"), "A", verbose=False, row_name="row")
    collector.append(raise_and_capture("first"), "A", verbose=False, row_name="row")
    collector.append(raise_and_capture("second"), "B", verbose=False, row_name="row")

    assert len(collector) == 3
    assert collector.render() == [
        "Row 'A': ValueError: first",
        "Row 'A': ValueError: first",
        "Row 'B': ValueError: second",
    ]


def test_verbose_failures_include_traceback() -> None:
    collector = ExceptionCollector()
    collector.append(raise_and_capture("boom"), 7, verbose=True, row_name="order")

    [rendered] = collector.render()

    assert rendered.startswith("Order 7: ValueError: boom\nTraceback")
    assert "raise_and_capture" in rendered


def test_mapped_records_are_described_by_identity(seeded) -> None:
    user = seeded.get(User, 2)

    assert describe_record(user) == "#2"
    assert describe_record(User(name="pending")).startswith("<")
