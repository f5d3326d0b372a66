# tests/test_cli.py
import json

import pytest
from typer.testing import CliRunner

from folderplan import __version__
from folderplan.cli import app


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setenv("FOLDERPLAN_LOG_LEVEL", "CRITICAL") # Keep stdout clean for JSON
    return CliRunner()


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_version(runner):
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout

def test_scan_to_file(runner, project_dir, tmp_path):
    out = tmp_path / "out" / "tree.json"
    result = runner.invoke(app, ["scan", str(project_dir), "--output", str(out)])
    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text())
    assert [n["name"] for n in data] == ["docs", "a.txt"]
    assert data[1]["isDirectory"] is False

def test_scan_missing_directory(runner, tmp_path):
    result = runner.invoke(app, ["scan", str(tmp_path / "nope")])
    assert result.exit_code == 1

def test_validate(runner, project_dir, tmp_path):
    scanned = tmp_path / "tree.json"
    runner.invoke(app, ["scan", str(project_dir), "-o", str(scanned)])
    assert runner.invoke(app, ["validate", str(project_dir), "--tree", str(scanned)]).exit_code == 0

    (project_dir / "late.txt").write_text("x")
    result = runner.invoke(app, ["validate", str(project_dir), "--tree", str(scanned)])
    assert result.exit_code == 1
    report = json.loads(result.stdout)
    assert report["isMatch"] is False
    assert report["differences"][0]["path"] == "late.txt"

def test_diff_two_directories(runner, project_dir, tmp_path):
    other = tmp_path / "other"
    (other / "docs").mkdir(parents=True)
    result = runner.invoke(app, ["diff", str(project_dir), str(other)])
    assert result.exit_code == 1
    kinds = {(d["type"], d["path"]) for d in json.loads(result.stdout)["differences"]}
    assert kinds == {("missing_on_server", "a.txt"), ("missing_on_server", "docs/old"),
                     ("missing_on_server", "docs/readme.md")}

def test_apply_and_discard_backup(runner, project_dir, tmp_path):
    changes = _write_json(tmp_path / "changes.json", [{"type": "rename", "path": "a.txt", "newName": "b.txt"}])
    result = runner.invoke(app, ["apply", str(project_dir), "--changes", str(changes),
                                 "--backup", "--discard-backup"])
    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["clone"] is True
    assert summary["backupRemoved"] == "removed"
    assert (project_dir / "b.txt").exists()
    assert not any(p.name.startswith(".proj_backup_") for p in tmp_path.iterdir())

def test_apply_rejects_bad_change_log(runner, project_dir, tmp_path):
    changes = _write_json(tmp_path / "changes.json", [])
    result = runner.invoke(app, ["apply", str(project_dir), "--changes", str(changes), "--no-backup"])
    assert result.exit_code == 1
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert runner.invoke(app, ["apply", str(project_dir), "--changes", str(broken)]).exit_code == 2

def test_plan_is_a_dry_run(runner, project_dir, tmp_path):
    changes = _write_json(tmp_path / "changes.json", [
        {"type": "move", "from": "a.txt", "to": "docs/old/first.txt"},
        {"type": "delete", "path": "docs/readme.md"},
    ])
    result = runner.invoke(app, ["plan", str(project_dir), "--changes", str(changes)])
    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["changed"] is True
    assert report["stats"] == {"fileCount": 1, "dirCount": 2, "totalSize": 5}
    new_docs = report["summary"]["newStructure"][0]
    assert new_docs["children"][0]["children"][0]["name"] == "first.txt"
    assert len(report["summary"]["changeLog"]) == 3 # move, then rename to the new name, then delete
    assert (project_dir / "a.txt").exists()

def test_discard_backup_failure_exits_cleanly(runner, project_dir, tmp_path, mocker):
    changes = _write_json(tmp_path / "changes.json", [{"type": "rename", "path": "a.txt", "newName": "b.txt"}])
    mocker.patch("folderplan.core.applier._remove_entry", side_effect=OSError("busy"))
    result = runner.invoke(app, ["apply", str(project_dir), "--changes", str(changes),
                                 "--backup", "--discard-backup"])
    assert result.exit_code == 1
    assert not isinstance(result.exception, OSError)
    assert json.loads(result.stdout)["clone"] is True
    assert (project_dir / "b.txt").exists()
