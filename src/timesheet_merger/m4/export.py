from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from timesheet_merger.m3.model import RemoteProject


def project_match_keys(projects: list[RemoteProject]) -> dict[str, str]:
    out: dict[str, str] = {}
    for p in projects:
        for label, key in p.billing_keys().items():
            out[label] = str(key)
    return out


def build_export(tasks: list[str], projects: list[RemoteProject]) -> dict:
    """Snapshot used to hand-build `matches.json`.

    - timematorProjects: distinct source task labels
    - timesheetProjects: remote project/phase tree
    - hashes: "project/phase" -> billing key
    """

    return {
        "timematorProjects": list(tasks),
        "timesheetProjects": [asdict(p) for p in projects],
        "hashes": project_match_keys(projects),
    }


def write_export(path: str | Path, data: dict) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.write("\n")
