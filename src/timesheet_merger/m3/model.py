from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from timesheet_merger.errors import ConfigError


@dataclass(frozen=True)
class SourceEntry:
    uuid: str
    date: date
    folder: str
    task: str
    duration_hours: Decimal
    description: str
    hourly_rate: Decimal | None = None
    # duration_decimal cell as exported ("2,5" stays "2,5"); empty when not read from CSV.
    duration_text: str = ""

    @property
    def match_key(self) -> str:
        return match_key(self.folder, self.task)

    @property
    def raw_duration(self) -> str:
        return self.duration_text or str(self.duration_hours)


def match_key(folder: str, task: str) -> str:
    return f"{folder}/{task}" if folder else task


@dataclass(frozen=True)
class BillingKey:
    order_id: str
    sub_project_id: str
    phase_id: str
    line_item_id: str | None = None

    @classmethod
    def parse(cls, key: str) -> BillingKey:
        parts = key.split("/")
        if len(parts) not in (3, 4) or not all(parts):
            raise ConfigError(
                f"invalid billing key {key!r}: expected order/subproject/phase[/line]"
            )
        return cls(*parts)

    def __str__(self) -> str:
        parts = [self.order_id, self.sub_project_id, self.phase_id]
        if self.line_item_id:
            parts.append(self.line_item_id)
        return "/".join(parts)


@dataclass(frozen=True)
class BillingEntry:
    date: date
    duration_hours: Decimal
    description: str
    billing_key: BillingKey


def billing_description(entry: SourceEntry) -> str:
    parts = [p for p in (entry.folder, entry.task, entry.description) if p]
    parts.append(f"[ref.{entry.uuid}]")
    return " - ".join(parts)


def to_billing_entry(entry: SourceEntry, key: BillingKey) -> BillingEntry:
    return BillingEntry(
        date=entry.date,
        duration_hours=entry.duration_hours,
        description=billing_description(entry),
        billing_key=key,
    )


@dataclass(frozen=True)
class RemotePhase:
    phase_id: str
    sub_project_id: str
    description: str
    line_item_id: str | None = None


@dataclass(frozen=True)
class RemoteProject:
    id: str
    order_id: str
    description: str
    customer_name: str | None
    phases: list[RemotePhase]

    def billing_keys(self) -> dict[str, BillingKey]:
        """`project/phase` label -> billing key, for building a match table by hand."""
        out: dict[str, BillingKey] = {}
        for ph in self.phases:
            out[f"{self.description}/{ph.description}"] = BillingKey(
                order_id=self.order_id,
                sub_project_id=ph.sub_project_id,
                phase_id=ph.phase_id,
                line_item_id=ph.line_item_id,
            )
        return out
