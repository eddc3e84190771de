from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from timesheet_merger.errors import ConfigError


def read_ledger_document(path: Path) -> dict[str, str]:
    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: not valid JSON ({e.msg}, line {e.lineno})") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"{path}: cannot read: {e}") from e
    if not isinstance(obj, dict):
        raise ConfigError(f"{path}: ledger must be a JSON object")

    out: dict[str, str] = {}
    for k, v in obj.items():
        if not isinstance(v, (str, int)) or isinstance(v, bool):
            raise ConfigError(f"{path}: remote id for {k!r} must be a string")
        out[k] = str(v)
    return out


def write_ledger_document(path: Path, entries: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(entries, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    os.replace(tmp, path)


class Ledger:
    """Fingerprint -> remote entry id, persisted as a JSON object.

    Every `save()` rewrites the whole document.
    """

    def __init__(self, path: Path, entries: dict[str, str] | None = None):
        self.path = path
        self._entries: dict[str, str] = dict(entries or {})

    @classmethod
    def open(cls, path: Path) -> Ledger:
        """Load `path`, creating (and persisting) an empty ledger if it is absent."""
        if not path.exists():
            ledger = cls(path)
            ledger.save()
            return ledger
        return cls(path, read_ledger_document(path))

    def save(self) -> None:
        write_ledger_document(self.path, self._entries)

    def __contains__(self, fp: object) -> bool:
        return fp in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, fp: str) -> str | None:
        return self._entries.get(fp)

    def items(self) -> list[tuple[str, str]]:
        return list(self._entries.items())

    def record(self, fp: str, remote_id: str) -> None:
        self._entries[fp] = remote_id

    def remove(self, fp: str) -> str | None:
        return self._entries.pop(fp, None)

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self) -> dict[str, str]:
        return dict(self._entries)


def archive(ledger: Ledger, archive_path: Path, *, log: logging.Logger) -> int:
    """Fold the working ledger into the archive ledger and reset it.

    The archive document must already exist. Returns the number of
    fingerprints moved.
    """

    if not archive_path.exists():
        raise ConfigError(f"archive ledger not found: {archive_path}")

    archived = read_ledger_document(archive_path)
    moved = ledger.snapshot()
    collisions = [fp for fp in moved if fp in archived and archived[fp] != moved[fp]]
    for fp in collisions:
        log.warning(
            "archive already holds %s (id %s); replacing with %s", fp, archived[fp], moved[fp]
        )

    archived.update(moved)
    write_ledger_document(archive_path, archived)
    log.info("archived %d entr(y/ies) into %s", len(moved), archive_path)

    ledger.clear()
    ledger.save()
    return len(moved)


@dataclass(frozen=True)
class LedgerRow:
    fingerprint: str
    remote_id: str
    description: str | None


def _decode(fp: str) -> str | None:
    try:
        return base64.b64decode(fp, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def list_applied(ledger: Ledger, *, limit: int = 50) -> list[LedgerRow]:
    if limit <= 0:
        return []
    out: list[LedgerRow] = []
    for fp, remote_id in ledger.items()[-limit:]:
        out.append(LedgerRow(fingerprint=fp, remote_id=remote_id, description=_decode(fp)))
    return out


@dataclass(frozen=True)
class LedgerStats:
    count: int
    unique_remote_ids: int


def stats(ledger: Ledger) -> LedgerStats:
    ids = {remote_id for _fp, remote_id in ledger.items()}
    return LedgerStats(count=len(ledger), unique_remote_ids=len(ids))
