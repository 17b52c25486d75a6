from pathlib import Path
import json

import yaml
from typer.testing import CliRunner

from gofi.cli import app


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "db_path": str(tmp_path / "gofi.sqlite3"),
                "staging_dir": str(tmp_path / "staging"),
            }
        )
    )
    return path


def _tree(root: Path) -> None:
    (root / "docs").mkdir(parents=True)
    (root / "docs" / "a.txt").write_text("hello")
    (root / "docs" / "b.txt").write_text("hello")
    (root / "report.pdf").write_bytes(b"%PDF-1.4" + b"0" * 1492)


def test_snapshot_ingest_query(tmp_path: Path) -> None:
    runner = CliRunner()
    cfg = str(_config(tmp_path))
    root = tmp_path / "tree"
    _tree(root)
    snap = tmp_path / "snap.sqlite3"

    result = runner.invoke(
        app,
        ["--config", cfg, "snapshot", str(root), str(snap), "--machine", "alpha", "--ip", "10.0.0.1", "--hash"],
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["--config", cfg, "ingest", str(snap), "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"processed": 4, "inserted": 4, "skipped": 0}
    assert snap.exists()

    result = runner.invoke(app, ["--config", cfg, "query", "--filetype", "txt", "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert sorted(r["name"] for r in payload["rows"]) == ["a.txt", "b.txt"]
    hashes = {r["hash"] for r in payload["rows"]}
    assert len(hashes) == 1 and "" not in hashes
    assert payload["facets"]["filetypes"] == ["directory", "pdf", "txt"]

    result = runner.invoke(app, ["--config", cfg, "query", "--filetype", "pdf", "--json"])
    assert json.loads(result.stdout)["rows"][0]["size_human"] == "1.5 kB"


def test_ingest_reports_undecodable_file(tmp_path: Path) -> None:
    runner = CliRunner()
    cfg = str(_config(tmp_path))
    bad = tmp_path / "bad.json"
    bad.write_text("{")

    result = runner.invoke(app, ["--config", cfg, "ingest", str(bad)])
    assert result.exit_code == 1
    assert bad.exists()


def test_status_json(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--config", str(_config(tmp_path)), "status", "--json"])
    assert result.exit_code == 0, result.output
    status = json.loads(result.stdout)
    assert status["files"] == 0
    assert status["snapshots"] == []
