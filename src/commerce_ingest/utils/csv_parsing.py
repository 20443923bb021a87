"""CSV parsing helpers for manual exports.

Handles quoted fields with embedded commas and newlines, UK and free-text
dates, and numbers carrying currency symbols or thousands separators.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import datetime
from pathlib import Path

_UK_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NAMED_DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%d %b %Y", "%d %B %Y", "%b %d %Y", "%B %d %Y")
# "¬" shows up when a UTF-8 "£" is re-read as Mac Roman
_NUMBER_NOISE = re.compile(r"[£$€¬%,\s]")


def read_csv(path: str | Path) -> list[dict[str, str]]:
    """Read a CSV file into a list of row dicts keyed by the header row."""
    with open(path, encoding="utf-8-sig", newline="") as f:
        return parse_csv(f.read())


def parse_csv(content: str) -> list[dict[str, str]]:
    """Parse CSV text. Blank lines are dropped and short rows padded with ''."""
    content = content.lstrip("\ufeff")
    reader = csv.reader(io.StringIO(content, newline=""))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        return []

    headers = [h.strip() for h in rows[0]]
    result = []
    for row in rows[1:]:
        padded = row + [""] * (len(headers) - len(row))
        result.append({h: padded[i].strip() for i, h in enumerate(headers)})
    return result


def find_column(headers: list[str], name: str) -> str | None:
    """First header containing name, case-insensitive."""
    needle = name.lower()
    for header in headers:
        if needle in header.lower():
            return header
    return None


def parse_date(raw: str | None) -> str | None:
    """Normalize a date cell to YYYY-MM-DD, or None if it can't be read.

    Accepts DD/MM/YYYY, free-text month names ("Apr 01, 2025",
    "January 15, 2025") and YYYY-MM-DD.
    """
    if raw is None:
        return None
    trimmed = raw.strip()
    if not trimmed:
        return None

    uk = _UK_DATE.match(trimmed)
    if uk:
        day, month, year = (int(part) for part in uk.groups())
        try:
            return datetime(year, month, day).date().isoformat()
        except ValueError:
            return None

    if re.search(r"[A-Za-z]", trimmed):
        for fmt in _NAMED_DATE_FORMATS:
            try:
                return datetime.strptime(trimmed, fmt).date().isoformat()
            except ValueError:
                continue
        return None

    if _ISO_DATE.match(trimmed):
        try:
            return datetime.strptime(trimmed, "%Y-%m-%d").date().isoformat()
        except ValueError:
            return None

    return None


def parse_number(raw: str | None) -> float:
    """Parse a numeric cell. Empty, "-" and unparseable cells are 0."""
    if raw is None:
        return 0.0
    trimmed = raw.strip()
    if trimmed in ("", "-"):
        return 0.0
    try:
        return float(_NUMBER_NOISE.sub("", trimmed))
    except ValueError:
        return 0.0


def to_num(raw: str | None) -> float | None:
    """Like parse_number but keeps blanks as None."""
    if raw is None or not raw.strip():
        return None
    cleaned = _NUMBER_NOISE.sub("", raw.strip())
    try:
        return float(cleaned)
    except ValueError:
        return None


def to_int(raw: str | None) -> int | None:
    value = to_num(raw)
    return None if value is None else int(value)


def to_bool(raw: str | None) -> bool:
    return (raw or "").strip().lower() in ("true", "1", "yes", "y", "on")


def to_text(raw: str | None) -> str | None:
    if raw is None:
        return None
    return raw.strip() or None
