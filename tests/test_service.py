# tests/test_service.py
import asyncio

import pytest

from folderplan.config.schema import AppConfig
from folderplan.service import FolderPlanService


CLIENT_TREE = [
    {"name": "a.txt", "isDirectory": False, "size": 5},
    {"name": "docs", "isDirectory": True, "children": [
        {"name": "old", "isDirectory": True, "children": []},
        {"name": "readme.md", "isDirectory": False, "size": 8},
    ]},
]


@pytest.fixture
def service():
    return FolderPlanService(config=AppConfig(log_to_file=False))


def run(coro):
    return asyncio.run(coro)


def test_validate_match(service, project_dir):
    response = run(service.validate(str(project_dir), CLIENT_TREE))
    assert response.status_code == 200
    assert response.body["ok"] is True

def test_validate_mismatch_lists_differences(service, project_dir):
    tree = CLIENT_TREE + [{"name": "extra.txt", "isDirectory": False}]
    response = run(service.validate(str(project_dir), tree))
    assert response.status_code == 400
    assert response.body["kind"] == "structural_mismatch"
    assert response.body["details"] == [{
        "type": "missing_on_server", "path": "extra.txt",
        "message": 'File/folder "extra.txt" exists in uploaded structure but not on server',
    }]

@pytest.mark.parametrize("path", [None, "", "relative/dir"])
def test_validate_requires_absolute_path(service, path):
    response = run(service.validate(path, CLIENT_TREE))
    assert response.status_code == 400
    assert response.body["kind"] == "input_error"

def test_validate_missing_root(service, tmp_path):
    response = run(service.validate(str(tmp_path / "nope"), CLIENT_TREE))
    assert response.status_code == 400
    assert response.body["kind"] == "not_found"

def test_apply_then_remove_backup(service, project_dir):
    response = run(service.apply(str(project_dir), [{"type": "rename", "path": "a.txt", "newName": "b.txt"}]))
    assert response.status_code == 200
    assert response.body["clone"] is True
    assert (project_dir / "b.txt").exists()
    assert str(project_dir) in service.backups

    first = run(service.remove_backup(str(project_dir)))
    assert first.status_code == 200 and first.body["status"] == "removed"
    second = run(service.remove_backup(str(project_dir)))
    assert second.status_code == 400
    assert second.body["kind"] == "no_backup"

def test_apply_without_backup(service, project_dir):
    response = run(service.apply(str(project_dir), [{"type": "delete", "path": "a.txt"}], make_backup=False))
    assert response.body["clone"] is False
    assert "tmpPath" not in response.body
    assert len(service.backups) == 0

def test_apply_failure_reports_restore(service, project_dir):
    response = run(service.apply(str(project_dir), [
        {"type": "delete", "path": "a.txt"},
        {"type": "move", "from": "ghost.txt", "to": "docs/ghost.txt"},
    ]))
    assert response.status_code == 500
    assert response.body["kind"] == "apply_failed"
    assert response.body["details"]["restored"] is True
    assert (project_dir / "a.txt").exists()

def test_unexpected_errors_become_500(service, project_dir, mocker):
    mocker.patch.object(service.applier, "apply", side_effect=RuntimeError("boom"))
    response = run(service.apply(str(project_dir), [{"type": "delete", "path": "a.txt"}]))
    assert response.status_code == 500
    assert response.body == {"ok": False, "error": "Server error: boom", "kind": "internal"}

def test_edit_session_lifecycle(service, project_dir):
    opened = run(service.open_session(str(project_dir), CLIENT_TREE))
    assert opened.status_code == 200
    assert opened.body["stats"] == {"fileCount": 2, "dirCount": 2, "totalSize": 13}

    session = service.get_session(str(project_dir))
    session.move("a.txt", "docs/old")
    session.delete("docs/readme.md")
    committed = run(service.commit_session(str(project_dir), make_backup=False))
    assert committed.status_code == 200
    assert (project_dir / "docs" / "old" / "a.txt").read_text() == "hello"
    assert not (project_dir / "docs" / "readme.md").exists()
    assert session.change_log == []

    again = run(service.commit_session(str(project_dir)))
    assert again.status_code == 400
    assert again.body["error"] == "No changes to apply"

    assert service.close_session(str(project_dir)) is True
    missing = run(service.commit_session(str(project_dir)))
    assert missing.body["kind"] == "not_found"

def test_open_session_refuses_stale_tree(service, project_dir):
    (project_dir / "new.txt").write_text("x")
    response = run(service.open_session(str(project_dir), CLIENT_TREE))
    assert response.status_code == 400
    assert response.body["kind"] == "structural_mismatch"

def test_health(service):
    response = service.health()
    assert response.ok
    assert response.body["status"] == "ok"
