from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

from timesheet_merger.errors import ParseError
from timesheet_merger.m3.model import SourceEntry, match_key

# Timemator CSV export, in column order.
COLUMNS = [
    "unix_begin",
    "unix_end",
    "date",
    "begin",
    "end",
    "folder",
    "task",
    "duration",
    "duration_decimal",
    "rounding_to",
    "rounding_method",
    "hourly_rate",
    "revenue",
    "billing_status",
    "notes",
]

SOURCE_SUFFIX = ".csv"

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y", "%m/%d/%Y")


def _parse_date(s: str) -> date:
    s = s.strip()
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognised date {s!r}")


def _parse_decimal(s: str) -> Decimal:
    s = s.strip().replace(",", ".")
    try:
        d = Decimal(s)
    except InvalidOperation as e:
        raise ValueError(f"not a decimal: {s!r}") from e
    if not d.is_finite():
        raise ValueError(f"not a decimal: {s!r}")
    return d


def _is_header(row: list[str]) -> bool:
    return bool(row) and row[0].strip().lower() == COLUMNS[0]


def row_to_entry(row: dict[str, str]) -> SourceEntry:
    begin = row["unix_begin"].strip()
    end = row["unix_end"].strip()
    if not begin.isdigit() or not end.isdigit():
        raise ValueError(f"unix timestamps must be integers (got {begin!r}, {end!r})")

    rate = row["hourly_rate"].strip()
    return SourceEntry(
        uuid=f"{begin}{end}",
        date=_parse_date(row["date"]),
        folder=row["folder"].strip(),
        task=row["task"].strip(),
        duration_hours=_parse_decimal(row["duration_decimal"]),
        duration_text=row["duration_decimal"],
        description=row["notes"].strip(),
        hourly_rate=_parse_decimal(rate) if rate else None,
    )


def parse_csv(path: Path) -> list[SourceEntry]:
    """Parse one Timemator export file.

    Any row that does not fit the 15-column schema fails the whole file.
    """

    entries: list[SourceEntry] = []
    try:
        with path.open(encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f)
            first = True
            for row in reader:
                if not any(c.strip() for c in row):
                    continue
                if first:
                    first = False
                    if _is_header(row):
                        continue
                if len(row) != len(COLUMNS):
                    raise ParseError(
                        f"{path}:{reader.line_num}: expected {len(COLUMNS)} columns, "
                        f"got {len(row)}"
                    )
                try:
                    entries.append(row_to_entry(dict(zip(COLUMNS, row, strict=True))))
                except ValueError as e:
                    raise ParseError(f"{path}:{reader.line_num}: {e}") from e
    except csv.Error as e:
        raise ParseError(f"{path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"{path}: cannot read: {e}") from e
    return entries


def make_unique_entries(entries: Iterable[SourceEntry]) -> list[SourceEntry]:
    seen: set[str] = set()
    out: list[SourceEntry] = []
    for e in entries:
        if e.uuid in seen:
            continue
        seen.add(e.uuid)
        out.append(e)
    return out


@dataclass(frozen=True)
class SourceSet:
    entries: list[SourceEntry]
    files: list[Path]

    @property
    def tasks(self) -> list[str]:
        out: list[str] = []
        for e in self.entries:
            k = match_key(e.folder, e.task)
            if k not in out:
                out.append(k)
        return out


def list_source_files(folder: Path) -> list[Path]:
    if not folder.is_dir():
        raise ParseError(f"source directory not found: {folder}")
    return sorted(
        p for p in folder.iterdir() if p.is_file() and p.suffix.lower() == SOURCE_SUFFIX
    )


def read_source_dir(folder: Path, *, log: logging.Logger) -> SourceSet:
    files = list_source_files(folder)
    raw: list[SourceEntry] = []
    for p in files:
        log.info("processing file: %s", p.name)
        raw.extend(parse_csv(p))

    unique = make_unique_entries(raw)
    # sorted() is stable: same-day entries keep file order.
    entries = sorted(unique, key=lambda e: e.date)
    log.info(
        "found %d unique entr(y/ies) (%d row(s) in %d file(s))",
        len(entries),
        len(raw),
        len(files),
    )
    return SourceSet(entries=entries, files=files)
