from __future__ import annotations

import csv
import logging
from pathlib import Path

import pytest


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class RecordingLog:
    def __init__(self) -> None:
        # Not registered with logging.getLogger: nothing else writes to it.
        self.logger = logging.Logger("timesheet-merger-test", level=logging.DEBUG)
        self._handler = _ListHandler()
        self.logger.addHandler(self._handler)

    def messages(self, level: int | None = None) -> list[str]:
        return [
            r.getMessage()
            for r in self._handler.records
            if level is None or r.levelno == level
        ]


@pytest.fixture
def log() -> RecordingLog:
    return RecordingLog()


def timemator_row(
    *,
    begin: int,
    end: int,
    date: str = "2024-01-05",
    folder: str = "ProjA",
    task: str = "Dev",
    hours: str = "2.5",
    notes: str = "",
) -> list[str]:
    return [
        str(begin),
        str(end),
        date,
        "09:00",
        "11:30",
        folder,
        task,
        "2:30",
        hours,
        "0",
        "none",
        "50",
        "125",
        "unbilled",
        notes,
    ]


def write_csv(path: Path, rows: list[list[str]], *, header: bool = False) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.writer(f)
        if header:
            w.writerow(
                [
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
            )
        w.writerows(rows)
    return path
