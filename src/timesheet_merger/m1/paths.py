from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "timesheet-merger"


def xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def default_matches_path() -> Path:
    return xdg_config_home() / APP_NAME / "matches.json"


def default_source_dir() -> Path:
    return xdg_data_home() / APP_NAME / "data"


def default_ledger_path() -> Path:
    return xdg_data_home() / APP_NAME / "hashes.json"


def default_archive_path() -> Path:
    return xdg_data_home() / APP_NAME / "archive" / "hashes.json"


def default_export_path() -> Path:
    return Path("export.json")
