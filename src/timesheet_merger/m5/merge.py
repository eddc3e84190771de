from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import typer

from timesheet_merger.errors import (
    AuthError,
    DeletionError,
    ParseError,
    SubmissionError,
    UnmatchedEntryError,
)
from timesheet_merger.m3.model import BillingEntry, SourceEntry, to_billing_entry
from timesheet_merger.m6.config import MatchTable
from timesheet_merger.m6.idempotency import fingerprint
from timesheet_merger.m6.ledger import Ledger


class BillingClient(Protocol):
    def create_entry(self, entry: BillingEntry) -> str: ...

    def delete_entry(self, remote_id: str) -> None: ...


@dataclass(frozen=True)
class PlanItem:
    entry: SourceEntry
    billing: BillingEntry
    fingerprint: str
    duplicate: bool


@dataclass(frozen=True)
class Plan:
    items: list[PlanItem]
    unmatched: list[SourceEntry]

    @property
    def pending(self) -> list[PlanItem]:
        return [p for p in self.items if not p.duplicate]


@dataclass
class MergeResult:
    created: list[tuple[str, str]] = field(default_factory=list)
    duplicates: list[SourceEntry] = field(default_factory=list)
    unmatched: list[SourceEntry] = field(default_factory=list)
    halted: bool = False
    error: SubmissionError | None = None


@dataclass
class RollbackResult:
    attempted: int = 0
    deleted: int = 0
    failed: list[str] = field(default_factory=list)


class Merger:
    """Push source entries to the timesheet service, each at most once.

    Entries go through in date order. The ledger is saved after every entry,
    so an interrupted run leaves at most the in-flight entry unaccounted for.
    """

    def __init__(
        self,
        entries: list[SourceEntry],
        matches: MatchTable,
        ledger: Ledger,
        client: BillingClient | None,
        *,
        log: logging.Logger,
        strict: bool = False,
    ):
        self.entries = entries
        self.matches = matches
        self.ledger = ledger
        self.client = client
        self.log = log
        self.strict = strict

    def build_plan(self) -> Plan:
        items: list[PlanItem] = []
        unmatched: list[SourceEntry] = []
        for e in self.entries:
            key = self.matches.lookup(e)
            if key is None:
                unmatched.append(e)
                continue
            fp = fingerprint(e, key)
            items.append(
                PlanItem(
                    entry=e,
                    billing=to_billing_entry(e, key),
                    fingerprint=fp,
                    duplicate=fp in self.ledger,
                )
            )
        return Plan(items=items, unmatched=unmatched)

    def check_strict(self) -> None:
        missing: list[str] = []
        for e in self.entries:
            if self.matches.lookup(e) is None and e.match_key not in missing:
                missing.append(e.match_key)
        if missing:
            raise UnmatchedEntryError(missing)

    def merge(self) -> MergeResult:
        if self.client is None:
            raise RuntimeError("merge needs a billing client")
        if self.strict:
            self.check_strict()

        result = MergeResult()
        for e in self.entries:
            try:
                if not self._merge_one(e, result):
                    break
            finally:
                self.ledger.save()
        return result

    def _merge_one(self, e: SourceEntry, result: MergeResult) -> bool:
        """Process one entry. Returns False when the run must stop."""
        assert self.client is not None

        key_label = e.match_key
        key = self.matches.lookup(e)
        if key is None:
            self.log.warning("no match found for %s (%s, ref.%s)", key_label, e.date, e.uuid)
            result.unmatched.append(e)
            return True

        billing = to_billing_entry(e, key)
        fp = fingerprint(e, key)
        if fp in self.ledger:
            self.log.warning(
                "duplicate entry found for %s (ref.%s, id %s)",
                key_label,
                e.uuid,
                self.ledger.get(fp),
            )
            result.duplicates.append(e)
            return True

        try:
            remote_id = self.client.create_entry(billing)
        except SubmissionError as err:
            self.log.error(
                "unable to save entry for %s -> %s: %s | %s",
                key_label,
                key,
                billing.description,
                err,
            )
            result.halted = True
            result.error = err
            return False
        except (AuthError, ParseError) as err:
            self.log.error("unable to save entry for %s -> %s: %s", key_label, key, err)
            raise

        self.ledger.record(fp, remote_id)
        result.created.append((fp, remote_id))
        self.log.info(
            "saved entry %s: %s -> %s (%s h)", remote_id, key_label, key, e.duration_hours
        )
        return True

    def rollback(self) -> RollbackResult:
        """Delete every entry the working ledger knows about, then forget it.

        Remote failures are logged and do not stop the loop: the ledger is
        drained either way. A failed login (AuthError) propagates before the
        current fingerprint is removed.
        """
        if self.client is None:
            raise RuntimeError("rollback needs a billing client")

        result = RollbackResult()
        for fp, remote_id in self.ledger.items():
            result.attempted += 1
            self.log.info("deleting entry: %s", remote_id)
            try:
                self.client.delete_entry(remote_id)
            except DeletionError as err:
                self.log.warning("unable to delete entry %s: %s", remote_id, err)
                result.failed.append(remote_id)
            else:
                result.deleted += 1
            self.ledger.remove(fp)
            self.ledger.save()
        return result


def print_plan(plan: Plan) -> None:
    dupes = len(plan.items) - len(plan.pending)
    typer.echo(
        f"plan: {len(plan.pending)} new entr(y/ies), {dupes} already submitted, "
        f"{len(plan.unmatched)} unmatched"
    )
    for i, p in enumerate(plan.pending, start=1):
        typer.echo(
            f"{i:>2}. {p.billing.date} | {p.billing.duration_hours}h | "
            f"{p.billing.billing_key} | {p.billing.description}"
        )
