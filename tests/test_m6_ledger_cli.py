from __future__ import annotations

import base64
import json
from pathlib import Path

from click.testing import CliRunner
from typer.main import get_command

import timesheet_merger.cli as cli


def _seed_ledger(path: Path) -> None:
    fp_a = base64.b64encode(b"100200-ProjA-Dev-2.5-ORD1-SUB2-PH3-").decode()
    fp_b = base64.b64encode(b"300400--Admin-1-ORD9-SUB1-PH1-call").decode()
    path.write_text(json.dumps({fp_a: "101", fp_b: "102"}), encoding="utf-8")


def test_ledger_list_limit(tmp_path: Path) -> None:
    p = tmp_path / "hashes.json"
    _seed_ledger(p)

    runner = CliRunner()
    res = runner.invoke(
        get_command(cli.app),
        ["ledger", "list", "--ledger", str(p), "--limit", "1"],
    )
    assert res.exit_code == 0
    assert "id=102 | 300400--Admin-1-ORD9-SUB1-PH1-call" in res.output
    assert "id=101" not in res.output


def test_ledger_list_show_fingerprint(tmp_path: Path) -> None:
    p = tmp_path / "hashes.json"
    _seed_ledger(p)

    runner = CliRunner()
    res = runner.invoke(
        get_command(cli.app),
        ["ledger", "list", "--ledger", str(p), "--show-fingerprint"],
    )
    assert res.exit_code == 0
    assert res.output.count("fp=") == 2


def test_ledger_stats_smoke(tmp_path: Path) -> None:
    p = tmp_path / "hashes.json"
    _seed_ledger(p)

    runner = CliRunner()
    res = runner.invoke(get_command(cli.app), ["ledger", "stats", "--ledger", str(p)])
    assert res.exit_code == 0
    assert "count: 2" in res.output
    assert "unique_remote_ids: 2" in res.output


def test_ledger_stats_corrupt_file(tmp_path: Path) -> None:
    p = tmp_path / "hashes.json"
    p.write_text("[1, 2]", encoding="utf-8")

    runner = CliRunner()
    res = runner.invoke(get_command(cli.app), ["ledger", "stats", "--ledger", str(p)])
    assert res.exit_code == 1
    assert "error:" in res.output
