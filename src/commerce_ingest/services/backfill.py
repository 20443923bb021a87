"""Date-range backfill driver.

Works through a list of keys (usually ISO dates) one at a time, newest
first, skipping keys that are already stored. A failing item is counted
and the run moves on; only setup problems stop a run, and those are raised
before the driver is started.
"""

from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Any, Callable, Iterable

from pydantic import BaseModel, Field
from rich.console import Console
from rich.markup import escape

from commerce_ingest.exceptions import IncompleteItemError

logger = logging.getLogger(__name__)

console = Console(stderr=True)


class BackfillResult(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    rows: int = 0
    row_errors: int = 0
    elapsed_seconds: float = 0.0
    failures: dict[str, str] = Field(default_factory=dict)


def date_range(start: date | str, end: date | str) -> list[str]:
    """Inclusive ISO dates from start to end, oldest first."""
    if isinstance(start, str):
        start = date.fromisoformat(start)
    if isinstance(end, str):
        end = date.fromisoformat(end)
    if start > end:
        raise ValueError(f"Start date {start} is after end date {end}")
    return [(start + timedelta(days=i)).isoformat() for i in range((end - start).days + 1)]


def default_window(days: int = 30, today: date | None = None) -> tuple[str, str]:
    """(days ago, yesterday) as ISO dates."""
    today = today or date.today()
    return (today - timedelta(days=days)).isoformat(), (today - timedelta(days=1)).isoformat()


class BackfillDriver:
    """Runs process_item over each outstanding key with a fixed delay between items.

    Args:
        process_item: Ingests one key and returns the number of rows stored.
        delay: Seconds to wait between items (not after the last).
        sleep: Injected for tests.
        clock: Monotonic seconds, used for elapsed time and the ETA.
        console: Where progress lines go.
        label: Noun used in progress and summary lines.
        sort_key: Orders the work list, newest (largest) first. Defaults to the key itself.
    """

    def __init__(
        self,
        process_item: Callable[[str], int | None],
        delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        console: Console = console,
        label: str = "dates",
        sort_key: Callable[[str], Any] | None = None,
    ) -> None:
        self._process_item = process_item
        self._delay = delay
        self._sleep = sleep
        self._clock = clock
        self._console = console
        self._label = label
        self._sort_key = sort_key

    def plan(self, items: Iterable[str], existing: Iterable[str] = ()) -> list[str]:
        """Keys still to do, newest first."""
        done = set(existing)
        return sorted({item for item in items if item not in done}, key=self._sort_key, reverse=True)

    def run(self, items: Iterable[str], existing: Iterable[str] = ()) -> BackfillResult:
        items = list(items)
        work = self.plan(items, existing)
        result = BackfillResult(total=len(work), skipped=len(set(items)) - len(work))

        if result.skipped:
            self._console.print(f"Skipping {result.skipped} {self._label} already in the database")
        if not work:
            self._console.print("Nothing to do")
            return result

        self._console.print(f"Processing {len(work)} {self._label} (newest first)")
        started = self._clock()

        for index, item in enumerate(work, start=1):
            try:
                rows = self._process_item(item) or 0
            except Exception as e:
                result.failed += 1
                if isinstance(e, IncompleteItemError):
                    result.row_errors += e.row_errors
                result.failures[item] = str(e)
                logger.warning("%s failed: %s", item, e)
                outcome = f"[red]{escape(item)}: {escape(str(e))}[/red]"
            else:
                result.succeeded += 1
                result.rows += rows
                outcome = f"[green]{escape(item)}: {rows} rows[/green]"

            self._console.print(f"{self._progress(index, len(work), started, result)} {outcome}")

            if index < len(work) and self._delay > 0:
                self._sleep(self._delay)

        result.elapsed_seconds = round(self._clock() - started, 1)
        self._console.print(
            f"Done! {result.succeeded} succeeded, {result.failed} failed "
            f"out of {result.total} {self._label} in {result.elapsed_seconds:.0f}s"
        )
        if result.row_errors:
            self._console.print(f"[yellow]{result.row_errors} rows could not be stored[/yellow]")
        return result

    def _progress(self, index: int, total: int, started: float, result: BackfillResult) -> str:
        elapsed = self._clock() - started
        pct = round(index / total * 100)
        eta_minutes = round(elapsed / index * (total - index) / 60)
        return f"[{index}/{total} {pct}% | ETA {eta_minutes}min | ✅{result.succeeded} ❌{result.failed}]"
