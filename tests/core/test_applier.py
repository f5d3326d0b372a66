# tests/core/test_applier.py
import asyncio
from pathlib import Path

import pytest

from folderplan.core.applier import BackupRegistry, FilesystemApplier
from folderplan.core.errors import (
    ApplyError, BackupError, InputError, NoBackupError, NotDirectoryError, NotFoundError, RestoreError,
)
from folderplan.core.models import DeleteChange, MoveChange, RenameChange


def _snapshot(root: Path):
    """Relative path -> file content (None for directories)."""
    return {
        p.relative_to(root).as_posix(): (None if p.is_dir() else p.read_text())
        for p in sorted(root.rglob("*"))
    }


@pytest.fixture
def applier():
    return FilesystemApplier(BackupRegistry())


def test_rename_with_backup(applier, project_dir):
    result = asyncio.run(applier.apply(project_dir, [RenameChange("a.txt", "a.txt", "b.txt")], make_backup=True))
    assert (project_dir / "b.txt").read_text() == "hello"
    assert not (project_dir / "a.txt").exists()
    assert result.applied == 1
    assert result.backup_path.parent == project_dir.parent.resolve()
    assert result.backup_path.name.startswith(".proj_backup_")
    assert (result.backup_path / "a.txt").read_text() == "hello"
    assert applier.registry.get(project_dir) == result.backup_path

def test_changes_run_in_order(applier, project_dir):
    changes = [
        MoveChange("a.txt", "docs/old/a.txt"),
        RenameChange("docs/old", "old", "archive"),
        DeleteChange("docs/readme.md"),
    ]
    result = asyncio.run(applier.apply(project_dir, changes))
    assert result.backup_path is None
    assert _snapshot(project_dir) == {"docs": None, "docs/archive": None, "docs/archive/a.txt": "hello"}
    assert len(applier.registry) == 0

def test_failure_restores_exact_state_and_keeps_backup(applier, project_dir):
    before = _snapshot(project_dir)
    changes = [
        RenameChange("a.txt", "a.txt", "b.txt"),
        MoveChange("never/created.txt", "docs/created.txt"),
    ]
    with pytest.raises(ApplyError) as exc_info:
        asyncio.run(applier.apply(project_dir, changes, make_backup=True))
    error = exc_info.value
    assert not isinstance(error, RestoreError)
    assert error.details["index"] == 1
    assert error.details["restored"] is True
    assert _snapshot(project_dir) == before

    backup = applier.registry.get(project_dir)
    assert backup is not None and backup.exists()
    removed = asyncio.run(applier.remove_backup(project_dir))
    assert removed.status == "removed"
    assert not backup.exists()

def test_failure_can_drop_backup_after_restore(project_dir):
    applier = FilesystemApplier(keep_backup_after_restore=False)
    with pytest.raises(ApplyError):
        asyncio.run(applier.apply(project_dir, [DeleteChange("a.txt"), MoveChange("ghost", "x")],
                                  make_backup=True))
    assert (project_dir / "a.txt").exists()
    assert len(applier.registry) == 0
    assert not any(p.name.startswith(".proj_backup_") for p in project_dir.parent.iterdir())

def test_failure_without_backup_leaves_partial_state(applier, project_dir):
    with pytest.raises(ApplyError) as exc_info:
        asyncio.run(applier.apply(project_dir, [DeleteChange("a.txt"), MoveChange("ghost", "x")]))
    assert exc_info.value.details["restored"] is False
    assert not (project_dir / "a.txt").exists()

def test_remove_backup_twice(applier, project_dir):
    asyncio.run(applier.apply(project_dir, [DeleteChange("a.txt")], make_backup=True))
    first = asyncio.run(applier.remove_backup(project_dir))
    assert first.status == "removed"
    assert first.message == "Backup removed successfully!"
    with pytest.raises(NoBackupError):
        asyncio.run(applier.remove_backup(project_dir))

def test_remove_backup_that_vanished(applier, project_dir):
    import shutil
    result = asyncio.run(applier.apply(project_dir, [DeleteChange("a.txt")], make_backup=True))
    shutil.rmtree(result.backup_path)
    removed = asyncio.run(applier.remove_backup(project_dir))
    assert removed.status == "already_gone"
    assert project_dir not in applier.registry

def test_missing_delete_target_is_skipped(applier, project_dir):
    result = asyncio.run(applier.apply(project_dir, [DeleteChange("gone.txt"), DeleteChange("a.txt")]))
    assert result.skipped == ["gone.txt"]
    assert result.applied == 1

def test_existing_destination_needs_override(applier, project_dir):
    (project_dir / "docs" / "a.txt").write_text("older")
    with pytest.raises(ApplyError, match="Destination already exists"):
        asyncio.run(applier.apply(project_dir, [MoveChange("a.txt", "docs/a.txt")]))
    assert (project_dir / "docs" / "a.txt").read_text() == "older"

    asyncio.run(applier.apply(project_dir, [MoveChange("a.txt", "docs/a.txt", override=True)]))
    assert (project_dir / "docs" / "a.txt").read_text() == "hello"
    assert not (project_dir / "a.txt").exists()

def test_rename_override_replaces_folder(applier, project_dir):
    asyncio.run(applier.apply(project_dir, [RenameChange("a.txt", "a.txt", "docs", override=True)]))
    assert (project_dir / "docs").read_text() == "hello"

def test_paths_cannot_escape_root(applier, project_dir):
    with pytest.raises(ApplyError):
        asyncio.run(applier.apply(project_dir, [DeleteChange("../outside")]))
    with pytest.raises(ApplyError):
        asyncio.run(applier.apply(project_dir, [RenameChange("a.txt", "a.txt", "../b.txt")]))
    assert (project_dir / "a.txt").exists()

def test_links_inside_root_cannot_reach_outside(applier, project_dir, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "victim.txt").write_text("keep me")
    (project_dir / "link").symlink_to(outside, target_is_directory=True)

    for change in (DeleteChange("link/victim.txt"), MoveChange("a.txt", "link/a.txt"),
                   RenameChange("link/victim.txt", "victim.txt", "gone.txt")):
        with pytest.raises(ApplyError, match="leaves the root"):
            asyncio.run(applier.apply(project_dir, [change]))
    assert (outside / "victim.txt").read_text() == "keep me"
    assert not (outside / "a.txt").exists()

    # The link itself is an entry of the root and can be removed
    asyncio.run(applier.apply(project_dir, [DeleteChange("link")]))
    assert not (project_dir / "link").is_symlink()
    assert (outside / "victim.txt").exists()

def test_symlinked_root_is_restored_in_place(applier, tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.txt").write_text("hello")
    root = tmp_path / "proj"
    root.symlink_to(real, target_is_directory=True)

    with pytest.raises(ApplyError) as exc_info:
        asyncio.run(applier.apply(root, [DeleteChange("a.txt"), MoveChange("ghost", "x")], make_backup=True))
    assert exc_info.value.details["restored"] is True
    assert root.is_symlink()
    assert (real / "a.txt").read_text() == "hello"
    assert applier.registry.get(root) is not None

    removed = asyncio.run(applier.remove_backup(root))
    assert removed.status == "removed"
    assert not removed.backup_path.exists()

def test_bad_inputs(applier, project_dir, tmp_path):
    with pytest.raises(InputError):
        asyncio.run(applier.apply(project_dir, []))
    with pytest.raises(NotFoundError):
        asyncio.run(applier.apply(tmp_path / "missing", [DeleteChange("a")]))
    with pytest.raises(NotDirectoryError):
        asyncio.run(applier.apply(project_dir / "a.txt", [DeleteChange("a")]))
    with pytest.raises(NoBackupError):
        asyncio.run(applier.remove_backup(project_dir))

def test_backup_failure_leaves_tree_untouched(applier, project_dir, mocker):
    mocker.patch("folderplan.core.applier._copy_tree", side_effect=OSError("disk full"))
    before = _snapshot(project_dir)
    with pytest.raises(BackupError):
        asyncio.run(applier.apply(project_dir, [DeleteChange("a.txt")], make_backup=True))
    assert _snapshot(project_dir) == before
    assert len(applier.registry) == 0

def test_restore_failure_is_terminal(applier, project_dir, mocker):
    mocker.patch("folderplan.core.applier._restore_tree", side_effect=OSError("device busy"))
    with pytest.raises(RestoreError) as exc_info:
        asyncio.run(applier.apply(project_dir, [MoveChange("ghost", "x")], make_backup=True))
    backup = applier.registry.get(project_dir)
    assert backup is not None and backup.exists()
    assert exc_info.value.details["backup_path"] == str(backup)
    assert "Backup still exists at" in exc_info.value.message

def test_backup_names_do_not_collide(applier, project_dir, mocker):
    mocker.patch("folderplan.core.applier.time.time", return_value=1700000000.0)
    first = applier.backup_path_for(project_dir)
    assert first.name == ".proj_backup_1700000000000"
    first.mkdir()
    assert applier.backup_path_for(project_dir).name == ".proj_backup_1700000000000_1"

def test_registry_keeps_one_backup_per_root(tmp_path):
    registry = BackupRegistry()
    registry.track(tmp_path / "proj", tmp_path / "b1")
    registry.track(str(tmp_path / "proj") + "/", tmp_path / "b2")
    assert len(registry) == 1
    assert registry.get(tmp_path / "proj") == tmp_path / "b2"
    assert registry.forget(tmp_path / "proj") == tmp_path / "b2"
    assert tmp_path / "proj" not in registry

def test_failed_backup_removal_is_reported_and_kept(applier, project_dir, mocker):
    result = asyncio.run(applier.apply(project_dir, [DeleteChange("a.txt")], make_backup=True))
    mocker.patch("folderplan.core.applier._remove_entry", side_effect=OSError("busy"))
    with pytest.raises(BackupError) as exc_info:
        asyncio.run(applier.remove_backup(project_dir))
    assert exc_info.value.details["backup_path"] == str(result.backup_path)
    assert applier.registry.get(project_dir) == result.backup_path
