from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import typer

from timesheet_merger.errors import ConfigError
from timesheet_merger.m3.model import BillingKey, SourceEntry
from timesheet_merger.m5.nsp_api import DEFAULT_BASE_URL, EntryDefaults, NspConfig

ENV_USERNAME = "NSP_TIMESHEET_USERNAME"
ENV_PASSWORD = "NSP_TIMESHEET_PASSWORD"
ENV_URL = "NSP_TIMESHEET_URL"

# Optional overrides for the fixed fields sent with every entry.
ENV_DEFAULTS = {
    "user_id": "NSP_TIMESHEET_USER_ID",
    "company": "NSP_TIMESHEET_COMPANY",
    "site_id": "NSP_TIMESHEET_SITE_ID",
    "centro_id": "NSP_TIMESHEET_CENTRO_ID",
    "line_item_id": "NSP_TIMESHEET_LINE_ITEM_ID",
}


@dataclass(frozen=True)
class MatchTable:
    # "folder/task" (or bare task) -> billing key
    matches: dict[str, BillingKey]

    def lookup(self, entry: SourceEntry) -> BillingKey | None:
        return self.matches.get(entry.match_key)

    def __len__(self) -> int:
        return len(self.matches)


def load_matches(path: Path) -> MatchTable:
    if not path.exists():
        raise ConfigError(f"match file not found: {path}")

    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: not valid JSON ({e.msg}, line {e.lineno})") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"{path}: cannot read: {e}") from e
    if not isinstance(obj, dict):
        raise ConfigError(f"{path}: match file must be a JSON object")

    matches: dict[str, BillingKey] = {}
    for k, v in obj.items():
        if not isinstance(v, str):
            raise ConfigError(f"{path}: value for {k!r} must be a billing key string")
        matches[k] = BillingKey.parse(v)
    return MatchTable(matches=matches)


def load_config_from_env() -> NspConfig:
    user = os.environ.get(ENV_USERNAME)
    password = os.environ.get(ENV_PASSWORD)
    if not user:
        raise typer.BadParameter(f"missing {ENV_USERNAME}")
    if not password:
        raise typer.BadParameter(f"missing {ENV_PASSWORD}")

    overrides = {
        field: os.environ[var] for field, var in ENV_DEFAULTS.items() if os.environ.get(var)
    }
    return NspConfig(
        username=user,
        password=password,
        base_url=os.environ.get(ENV_URL) or DEFAULT_BASE_URL,
        defaults=EntryDefaults(**overrides),
    )


def env_status() -> list[tuple[str, bool]]:
    names = [ENV_USERNAME, ENV_PASSWORD, ENV_URL, *ENV_DEFAULTS.values()]
    return [(n, bool(os.environ.get(n))) for n in names]
