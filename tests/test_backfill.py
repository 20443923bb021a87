"""Tests for services/backfill.py — ordering, skipping, pacing, summary."""
from datetime import date
from io import StringIO
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from commerce_ingest.exceptions import IncompleteItemError
from commerce_ingest.services.backfill import BackfillDriver, date_range, default_window


def _console():
    return Console(file=StringIO(), width=200, color_system=None)


def _output(console):
    return console.file.getvalue()


class Clock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        self.t += 1.0
        return self.t


# ── date_range / default_window ──────────────────────────────────────

def test_date_range_inclusive():
    assert date_range("2025-02-27", "2025-03-01") == ["2025-02-27", "2025-02-28", "2025-03-01"]


def test_date_range_single_day():
    assert date_range(date(2025, 3, 1), date(2025, 3, 1)) == ["2025-03-01"]


def test_date_range_reversed():
    with pytest.raises(ValueError, match="after end date"):
        date_range("2025-03-02", "2025-03-01")


def test_default_window():
    assert default_window(30, today=date(2025, 3, 31)) == ("2025-03-01", "2025-03-30")


# ── run ──────────────────────────────────────────────────────────────

def test_three_dates_newest_first():
    processed = []
    console = _console()

    def process(day):
        processed.append(day)
        return 2

    driver = BackfillDriver(process, sleep=MagicMock(), clock=Clock(), console=console)
    result = driver.run(date_range("2025-03-01", "2025-03-03"))

    assert processed == ["2025-03-03", "2025-03-02", "2025-03-01"]
    assert (result.succeeded, result.failed, result.rows) == (3, 0, 6)
    assert "3 succeeded, 0 failed" in _output(console)


def test_skips_existing():
    process = MagicMock(return_value=1)
    console = _console()

    driver = BackfillDriver(process, console=console, sleep=MagicMock())
    result = driver.run(date_range("2025-03-01", "2025-03-03"), existing={"2025-03-02"})

    assert [c.args[0] for c in process.call_args_list] == ["2025-03-03", "2025-03-01"]
    assert result.skipped == 1
    assert "Skipping 1 dates" in _output(console)


def test_everything_existing_is_a_no_op():
    process = MagicMock()
    console = _console()

    result = BackfillDriver(process, console=console).run(["2025-03-01"], existing=["2025-03-01"])

    process.assert_not_called()
    assert result.total == 0
    assert "Nothing to do" in _output(console)


def test_failure_is_counted_and_run_continues():
    def process(day):
        if day == "2025-03-02":
            raise RuntimeError("report FAILED")
        return 1

    console = _console()
    result = BackfillDriver(process, console=console, sleep=MagicMock()).run(date_range("2025-03-01", "2025-03-03"))

    assert result.succeeded == 2
    assert result.failed == 1
    assert result.failures == {"2025-03-02": "report FAILED"}
    assert "2 succeeded, 1 failed" in _output(console)


def test_row_errors_reach_the_final_tally():
    def process(day):
        if day == "2025-03-02":
            raise IncompleteItemError("2 of 5 rows failed to store", row_errors=2)
        return 5

    console = _console()
    result = BackfillDriver(process, console=console, sleep=MagicMock()).run(date_range("2025-03-01", "2025-03-02"))

    assert (result.succeeded, result.failed, result.rows, result.row_errors) == (1, 1, 5, 2)
    assert "1 succeeded, 1 failed" in _output(console)
    assert "2 rows could not be stored" in _output(console)


def test_sleeps_between_items_not_after_last():
    sleep = MagicMock()

    BackfillDriver(MagicMock(return_value=0), delay=5.0, sleep=sleep, console=_console()).run(
        date_range("2025-03-01", "2025-03-03")
    )

    assert sleep.call_count == 2
    sleep.assert_called_with(5.0)


def test_no_sleep_for_single_item():
    sleep = MagicMock()

    BackfillDriver(MagicMock(return_value=0), delay=5.0, sleep=sleep, console=_console()).run(["2025-03-01"])

    sleep.assert_not_called()


def test_sort_key_orders_non_date_items():
    purchase = {"A": "2025-03-01T10:00:00Z", "B": "2025-03-05T10:00:00Z", "C": "2025-03-03T10:00:00Z"}
    processed = []

    driver = BackfillDriver(
        lambda o: processed.append(o) or 1,
        console=_console(),
        sleep=MagicMock(),
        label="orders",
        sort_key=purchase.get,
    )
    driver.run(["A", "B", "C"])

    assert processed == ["B", "C", "A"]


def test_progress_line_shows_counts():
    console = _console()

    BackfillDriver(MagicMock(return_value=4), console=console, clock=Clock(), sleep=MagicMock()).run(["2025-03-01"])

    out = _output(console)
    assert "[1/1 100%" in out
    assert "2025-03-01: 4 rows" in out


def test_error_text_with_brackets_is_printed_literally():
    console = _console()

    def process(day):
        raise RuntimeError("bad [bold]markup[/bold]")

    BackfillDriver(process, console=console).run(["2025-03-01"])
    assert "bad [bold]markup[/bold]" in _output(console)


def test_plan():
    driver = BackfillDriver(MagicMock())
    assert driver.plan(["2025-03-01", "2025-03-03", "2025-03-02", "2025-03-03"], {"2025-03-02"}) == [
        "2025-03-03", "2025-03-01",
    ]
