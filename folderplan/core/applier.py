# folderplan/core/applier.py
import os
import shutil
import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from loguru import logger

from ..services.async_utils import run_blocking
from .errors import (
    ApplyError, BackupError, FolderPlanError, InputError, NoBackupError,
    NotDirectoryError, NotFoundError, RestoreError,
)
from .models import ApplyResult, ChangeEntry, DeleteChange, MoveChange, RemoveResult, RenameChange
from .tree import split_path

DEFAULT_BACKUP_TEMPLATE = ".{name}_backup_{timestamp}"


def normalize_root(root_path: Union[str, Path]) -> str:
    """Key used to track a root path: absolute and normalized, symlinks untouched."""
    return os.path.normpath(os.path.abspath(str(root_path)))


class BackupRegistry:
    """
    Tracks the pending backup of each root path.

    At most one backup per root. Tracking a new backup for a root replaces the
    old association; the older directory is left on disk.
    """

    def __init__(self):
        self._pending: Dict[str, Path] = {}

    def track(self, root_path: Union[str, Path], backup_path: Path) -> None:
        key = normalize_root(root_path)
        previous = self._pending.get(key)
        if previous is not None and previous != backup_path:
            logger.warning(f"Replacing pending backup for {key}: {previous} is no longer tracked")
        self._pending[key] = Path(backup_path)

    def get(self, root_path: Union[str, Path]) -> Optional[Path]:
        return self._pending.get(normalize_root(root_path))

    def forget(self, root_path: Union[str, Path]) -> Optional[Path]:
        return self._pending.pop(normalize_root(root_path), None)

    def __contains__(self, root_path: object) -> bool:
        return isinstance(root_path, (str, Path)) and normalize_root(root_path) in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[Tuple[str, Path]]:
        return iter(list(self._pending.items()))


# --- Blocking filesystem helpers (run in worker threads) ---

def _remove_entry(path: Path) -> None:
    """Removes a file, link, or whole directory tree."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()

def _copy_tree(src: Path, dest: Path) -> None:
    shutil.copytree(src, dest, symlinks=True)

def _restore_tree(root: Path, backup: Path) -> None:
    if root.exists() or root.is_symlink():
        _remove_entry(root)
    _copy_tree(backup, root)


class FilesystemApplier:
    """
    Replays a change log against a real directory, optionally behind a backup.

    Instructions run strictly in recorded order. With a backup, a failed replay
    restores the root from it; the backup is then kept and tracked.
    """

    def __init__(self,
                 registry: Optional[BackupRegistry] = None,
                 backup_name_template: str = DEFAULT_BACKUP_TEMPLATE,
                 keep_backup_after_restore: bool = True):
        self.registry = registry if registry is not None else BackupRegistry()
        self.backup_name_template = backup_name_template
        self.keep_backup_after_restore = keep_backup_after_restore

    # --- Paths ---

    def backup_path_for(self, root: Path) -> Path:
        timestamp = int(time.time() * 1000)
        candidate = root.parent / self.backup_name_template.format(name=root.name, timestamp=timestamp)
        suffix = 1
        while candidate.exists() or candidate.is_symlink():
            candidate = root.parent / (self.backup_name_template.format(name=root.name, timestamp=timestamp)
                                       + f"_{suffix}")
            suffix += 1
        return candidate

    @staticmethod
    def _inside(root: Path, relative: str) -> Path:
        """Resolves a change-log path under `root` (already resolved).

        Links along the way are followed and must stay inside the root; the last
        component is left as is so a link itself can be moved or deleted.
        """
        parts = split_path(relative.replace("\\", "/"))
        if not parts or any(p in (".", "..") for p in parts):
            raise ApplyError(f"Invalid path in change log: {relative!r}", path=relative)
        target = root.joinpath(*parts)
        if not target.parent.resolve().is_relative_to(root):
            raise ApplyError(f"Path leaves the root folder through a link: {relative!r}", path=relative)
        return target

    # --- Apply ---

    async def apply(self, root_path: Union[str, Path], change_log: Sequence[ChangeEntry],
                    make_backup: bool = False) -> ApplyResult:
        key = normalize_root(root_path)
        root = Path(key)
        if not change_log:
            raise InputError("Change log is required and must not be empty")
        if not root.exists():
            raise NotFoundError(f"Path does not exist: {root}", path=str(root))
        if not root.is_dir():
            raise NotDirectoryError(f"Path exists but is not a directory: {root}", path=str(root))
        # Work on the real folder so a symlinked root is copied and restored in place
        root = root.resolve()

        backup: Optional[Path] = None
        if make_backup:
            backup = await self._create_backup(root)

        logger.info(f"Applying {len(change_log)} change(s) to {root}")
        skipped: List[str] = []
        for index, change in enumerate(change_log):
            try:
                missing = await self._apply_one(root, change)
            except (OSError, FolderPlanError) as e:
                raise await self._recover(key, root, backup, index, change, e) from e
            if missing:
                skipped.append(missing)

        if backup is not None:
            self.registry.track(key, backup)
        logger.success(f"Applied {len(change_log) - len(skipped)} change(s) to {root}"
                       + (f", backup kept at {backup}" if backup else ""))
        return ApplyResult(applied=len(change_log) - len(skipped), skipped=skipped, backup_path=backup)

    async def _create_backup(self, root: Path) -> Path:
        backup = self.backup_path_for(root)
        logger.info(f"Creating backup at: {backup}")
        try:
            await run_blocking(_copy_tree, root, backup)
        except (OSError, shutil.Error) as e:
            logger.error(f"Backup of {root} failed: {e}")
            if backup.exists():
                try:
                    await run_blocking(shutil.rmtree, backup)
                except OSError as cleanup_err:
                    logger.error(f"Failed to remove partial backup {backup}: {cleanup_err}")
            raise BackupError(f"Failed to create backup: {e}", path=str(root),
                              details={"backup_path": str(backup)})
        logger.info("Backup created successfully")
        return backup

    async def _apply_one(self, root: Path, change: ChangeEntry) -> Optional[str]:
        """Executes one instruction. Returns the path of a delete target that was already gone."""
        if isinstance(change, MoveChange):
            source = self._inside(root, change.from_path)
            dest = self._inside(root, change.to_path)
            await run_blocking(dest.parent.mkdir, parents=True, exist_ok=True)
            await self._clear_destination(dest, change.override, change.to_path)
            logger.debug(f"move {source} -> {dest}")
            await run_blocking(os.rename, source, dest)
        elif isinstance(change, RenameChange):
            source = self._inside(root, change.path)
            if split_path(change.new_name) != [change.new_name] or change.new_name in (".", "..") \
                    or "\\" in change.new_name:
                raise ApplyError(f"Invalid new name in change log: {change.new_name!r}", path=change.path)
            dest = source.parent / change.new_name
            await self._clear_destination(dest, change.override, dest.relative_to(root).as_posix())
            logger.debug(f"rename {source} -> {dest}")
            await run_blocking(os.rename, source, dest)
        elif isinstance(change, DeleteChange):
            target = self._inside(root, change.path)
            if not (target.exists() or target.is_symlink()):
                logger.warning(f"Could not delete {target}: already gone, continuing")
                return change.path
            logger.debug(f"delete {target}")
            await run_blocking(_remove_entry, target)
        else:
            raise ApplyError(f"Unknown change type: {type(change).__name__}")
        return None

    async def _clear_destination(self, dest: Path, override: bool, relative: str) -> None:
        exists = dest.exists() or dest.is_symlink()
        if not exists:
            return
        if not override:
            raise ApplyError(f"Destination already exists: {relative}", path=relative)
        logger.debug(f"override: removing existing {dest}")
        await run_blocking(_remove_entry, dest)

    async def _recover(self, key: str, root: Path, backup: Optional[Path], index: int,
                       change: ChangeEntry, error: Exception) -> ApplyError:
        """Restores from the backup, if any, and returns the error to surface."""
        message = error.message if isinstance(error, FolderPlanError) else str(error)
        failed_path = (getattr(error, "path", None) if isinstance(error, FolderPlanError) else None) \
            or getattr(change, "path", None) or getattr(change, "from_path", None)
        details = {"index": index, "change": change.type, "restored": False}
        logger.error(f"Error applying change #{index} ({change.type}): {message}")

        if backup is None:
            return ApplyError(f"Failed to apply changes: {message}", path=failed_path, details=details)

        logger.info(f"Restoring {root} from backup {backup}...")
        try:
            await run_blocking(_restore_tree, root, backup)
        except (OSError, shutil.Error) as restore_err:
            logger.critical(f"Restore of {root} failed: {restore_err}. Backup still exists at: {backup}")
            self.registry.track(key, backup)
            details["backup_path"] = str(backup)
            return RestoreError(
                f"Failed to apply changes and restore failed: {message}. Backup still exists at: {backup}",
                path=failed_path, details=details)

        details["restored"] = True
        if self.keep_backup_after_restore:
            self.registry.track(key, backup)
            details["backup_path"] = str(backup)
            logger.info(f"Restored from backup successfully, backup kept at {backup}")
        else:
            try:
                await run_blocking(shutil.rmtree, backup)
                logger.info("Restored from backup successfully, backup removed")
            except OSError as cleanup_err:
                logger.error(f"Restored, but could not remove backup {backup}: {cleanup_err}")
                self.registry.track(key, backup)
                details["backup_path"] = str(backup)
        return ApplyError(f"Failed to apply changes: {message}", path=failed_path, details=details)

    # --- Backup cleanup ---

    async def remove_backup(self, root_path: Union[str, Path]) -> RemoveResult:
        backup = self.registry.get(root_path)
        if backup is None:
            raise NoBackupError("No backup found for this path", path=normalize_root(root_path))

        if not (backup.exists() or backup.is_symlink()):
            self.registry.forget(root_path)
            logger.warning(f"Backup folder no longer exists: {backup}")
            return RemoveResult(status="already_gone", backup_path=backup,
                                message="Backup folder no longer exists")

        logger.info(f"Removing backup: {backup}")
        try:
            await run_blocking(_remove_entry, backup)
        except OSError as e:
            logger.error(f"Could not remove backup {backup}: {e}")
            raise BackupError(f"Failed to remove backup: {e}", path=normalize_root(root_path),
                              details={"backup_path": str(backup)}) from e
        self.registry.forget(root_path)
        logger.info("Backup removed successfully")
        return RemoveResult(status="removed", backup_path=backup, message="Backup removed successfully!")
