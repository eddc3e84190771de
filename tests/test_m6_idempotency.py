from __future__ import annotations

import base64
from dataclasses import replace
from datetime import date
from decimal import Decimal
from pathlib import Path

from conftest import timemator_row, write_csv

from timesheet_merger.m2.timemator import parse_csv
from timesheet_merger.m3.model import BillingKey, SourceEntry
from timesheet_merger.m6.idempotency import fingerprint

ENTRY = SourceEntry(
    uuid="100200",
    date=date(2024, 1, 5),
    folder="ProjA",
    task="Dev",
    duration_hours=Decimal("2.5"),
    description="notes",
)
KEY = BillingKey.parse("ORD1/SUB2/PH3")


def test_fingerprint_is_deterministic() -> None:
    assert fingerprint(ENTRY, KEY) == fingerprint(replace(ENTRY), BillingKey.parse("ORD1/SUB2/PH3"))


def test_fingerprint_matches_existing_ledger_layout() -> None:
    raw = base64.b64decode(fingerprint(ENTRY, KEY)).decode()
    assert raw == "100200-ProjA-Dev-2.5-ORD1-SUB2-PH3-notes"


def test_fingerprint_uses_duration_as_exported(tmp_path: Path) -> None:
    p = write_csv(
        tmp_path / "a.csv", [timemator_row(begin=100, end=200, hours="2,5", notes="notes")]
    )
    [e] = parse_csv(p)

    raw = base64.b64decode(fingerprint(e, KEY)).decode()
    assert raw == "100200-ProjA-Dev-2,5-ORD1-SUB2-PH3-notes"


def test_fingerprint_changes_with_any_field() -> None:
    fp = fingerprint(ENTRY, KEY)
    variants = [
        fingerprint(replace(ENTRY, duration_hours=Decimal("2.75")), KEY),
        fingerprint(replace(ENTRY, uuid="100201"), KEY),
        fingerprint(replace(ENTRY, folder="ProjB"), KEY),
        fingerprint(replace(ENTRY, task="Test"), KEY),
        fingerprint(replace(ENTRY, description="other"), KEY),
        fingerprint(ENTRY, BillingKey.parse("ORD9/SUB2/PH3")),
        fingerprint(ENTRY, BillingKey.parse("ORD1/SUB9/PH3")),
        fingerprint(ENTRY, BillingKey.parse("ORD1/SUB2/PH9")),
    ]
    assert fp not in variants
    assert len(set(variants)) == len(variants)
