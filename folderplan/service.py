# folderplan/service.py
"""
Entry points the HTTP layer calls.

Each public coroutine returns a ServiceResponse: the HTTP status plus the JSON
body to send. Typed folderplan errors become 4xx/5xx bodies; anything else is
logged and reported as a 500.
"""
import functools
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from loguru import logger

from .config.loader import get_config
from .config.schema import AppConfig
from .core.applier import BackupRegistry, FilesystemApplier, normalize_root
from .core.differ import compare_structures
from .core.edit_log import EditSession
from .core.errors import FolderPlanError, InputError, NotFoundError
from .core.fs_scanner import DirectoryScanner
from .core.models import ChangeEntry, DeleteChange, DiffResult, MoveChange, RenameChange, TreeNode
from .core.tree import clone_tree, normalize_tree
from .core import wire

TreeInput = Union[Sequence[Dict[str, Any]], Sequence[TreeNode]]
ChangeLogInput = Union[Sequence[Dict[str, Any]], Sequence[ChangeEntry]]


@dataclass
class ServiceResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def error_response(error: FolderPlanError) -> ServiceResponse:
    body: Dict[str, Any] = {"ok": False, "error": error.message, "kind": error.kind}
    if error.path is not None:
        body["path"] = error.path
    if error.details:
        body["details"] = error.details
    return ServiceResponse(error.status_code, body)


def _responds(method: Callable[..., Awaitable[ServiceResponse]]):
    """Turns raised errors into ServiceResponses at the service boundary."""
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs) -> ServiceResponse:
        try:
            return await method(self, *args, **kwargs)
        except FolderPlanError as e:
            log = logger.error if e.status_code >= 500 else logger.warning
            log(f"{method.__name__} failed ({e.kind}): {e.message}")
            return error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error in {method.__name__}: {e}")
            return ServiceResponse(500, {"ok": False, "error": f"Server error: {e}", "kind": "internal"})
    return wrapper


class FolderPlanService:
    """Owns the backup registry and the open edit sessions, keyed by root path."""

    def __init__(self, config: Optional[AppConfig] = None,
                 applier: Optional[FilesystemApplier] = None):
        self.config = config or get_config()
        self.applier = applier or FilesystemApplier(
            BackupRegistry(),
            backup_name_template=self.config.backup_name_template,
            keep_backup_after_restore=self.config.keep_backup_after_restore,
        )
        self._sessions: Dict[str, EditSession] = {}

    @property
    def backups(self) -> BackupRegistry:
        return self.applier.registry

    # --- Input handling ---

    @staticmethod
    def _root(absolute_path: Any) -> str:
        if not absolute_path or not isinstance(absolute_path, str):
            raise InputError("Absolute path is required")
        if not os.path.isabs(absolute_path):
            raise InputError("Path must be an absolute path", path=absolute_path)
        return normalize_root(absolute_path)

    @staticmethod
    def _tree(client_tree: TreeInput) -> List[TreeNode]:
        items = list(client_tree) if isinstance(client_tree, (list, tuple)) else client_tree
        if items and all(isinstance(n, TreeNode) for n in items):
            return normalize_tree(clone_tree(items))
        return wire.parse_tree(items)

    @staticmethod
    def _change_log(change_log: ChangeLogInput) -> List[ChangeEntry]:
        items = list(change_log) if isinstance(change_log, (list, tuple)) else change_log
        if items and all(isinstance(c, (MoveChange, RenameChange, DeleteChange)) for c in items):
            return items
        return wire.parse_change_log(items)

    async def scan(self, root: str) -> List[TreeNode]:
        scanner = DirectoryScanner(root, skip_symlinks=self.config.skip_symlinks,
                                   concurrency=self.config.scan_concurrency)
        return await scanner.scan()

    async def compare(self, absolute_path: str, client_tree: TreeInput) -> DiffResult:
        """Core validation without the response envelope; raises typed errors."""
        root = self._root(absolute_path)
        nodes = self._tree(client_tree)
        server_tree = await self.scan(root)
        return compare_structures(nodes, server_tree)

    # --- Endpoints ---

    @_responds
    async def validate(self, absolute_path: str, client_tree: TreeInput) -> ServiceResponse:
        result = await self.compare(absolute_path, client_tree)
        if not result.is_match:
            return ServiceResponse(400, {
                "ok": False,
                "error": "Folder structure mismatch",
                "kind": "structural_mismatch",
                "details": [wire.dump_discrepancy(d) for d in result.differences],
            })
        return ServiceResponse(200, {"ok": True, "message": "Validation successful! Folder structure matches."})

    @_responds
    async def apply(self, absolute_path: str, change_log: ChangeLogInput,
                    make_backup: Optional[bool] = None) -> ServiceResponse:
        root = self._root(absolute_path)
        changes = self._change_log(change_log)
        if make_backup is None:
            make_backup = self.config.make_backup_by_default
        result = await self.applier.apply(root, changes, make_backup=make_backup)
        message = ("Changes applied successfully! Backup is available." if result.backup_path
                   else "Changes applied successfully!")
        return ServiceResponse(200, {"ok": True, "message": message, **wire.dump_apply_result(result)})

    @_responds
    async def remove_backup(self, absolute_path: str) -> ServiceResponse:
        root = self._root(absolute_path)
        result = await self.applier.remove_backup(root)
        return ServiceResponse(200, {"ok": True, **wire.dump_remove_result(result)})

    # --- Edit sessions ---

    @_responds
    async def open_session(self, absolute_path: str, client_tree: TreeInput) -> ServiceResponse:
        """Validates the client tree and, on a match, starts a fresh edit session for the root."""
        root = self._root(absolute_path)
        nodes = self._tree(client_tree)
        result = compare_structures(nodes, await self.scan(root))
        if not result.is_match:
            return ServiceResponse(400, {
                "ok": False,
                "error": "Folder structure mismatch",
                "kind": "structural_mismatch",
                "details": [wire.dump_discrepancy(d) for d in result.differences],
            })
        if root in self._sessions:
            logger.info(f"Replacing open edit session for {root}")
        session = EditSession(nodes, root_path=root)
        self._sessions[root] = session
        return ServiceResponse(200, {"ok": True, "message": "Edit session opened.",
                                     "stats": wire.dump_stats(session.stats())})

    def get_session(self, absolute_path: str) -> EditSession:
        root = self._root(absolute_path)
        session = self._sessions.get(root)
        if session is None:
            raise NotFoundError("No open edit session for this path", path=root)
        return session

    @_responds
    async def commit_session(self, absolute_path: str, make_backup: Optional[bool] = None) -> ServiceResponse:
        """Applies the session's change log; on success the log is cleared."""
        session = self.get_session(absolute_path)
        changes = session.change_log
        if not changes:
            raise InputError("No changes to apply", path=session.root_path)
        if make_backup is None:
            make_backup = self.config.make_backup_by_default
        result = await self.applier.apply(session.root_path, changes, make_backup=make_backup)
        session.mark_applied()
        message = ("Changes applied successfully! Backup is available." if result.backup_path
                   else "Changes applied successfully!")
        return ServiceResponse(200, {"ok": True, "message": message, **wire.dump_apply_result(result)})

    def close_session(self, absolute_path: str) -> bool:
        return self._sessions.pop(self._root(absolute_path), None) is not None

    def health(self) -> ServiceResponse:
        return ServiceResponse(200, {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})
