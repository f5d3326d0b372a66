# folderplan/core/errors.py
"""Exceptions for folderplan.

Every error carries a machine-readable ``kind``, a message, and optionally the
offending path plus extra ``details``. ``status_code`` is the HTTP status the
service layer reports for it.
"""
from typing import Any, Dict, Optional


class FolderPlanError(Exception):
    """Base class for all structured folderplan errors."""
    kind: str = "error"
    status_code: int = 500

    def __init__(self, message: str, path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.path = path
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.path is not None:
            data["path"] = self.path
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, path={self.path!r})"


class InputError(FolderPlanError):
    """Missing or malformed input: a bad path, tree, or change log."""
    kind = "input_error"
    status_code = 400


class NameConflictError(InputError):
    """A sibling with the requested name already exists.

    Raised by the edit log engine when the conflict policy is ``FAIL``. The
    caller may retry the same operation with ``ConflictPolicy.OVERWRITE``.
    """
    kind = "name_conflict"

    def __init__(self, message: str, path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None, existing: Any = None):
        super().__init__(message, path, details)
        self.existing = existing


class NotFoundError(FolderPlanError):
    """A path does not exist (on disk or in a tree snapshot)."""
    kind = "not_found"
    status_code = 400


class NotDirectoryError(FolderPlanError):
    """A path exists but is not a directory."""
    kind = "not_a_directory"
    status_code = 400


class AccessDeniedError(FolderPlanError):
    """A path exists but cannot be read."""
    kind = "permission_denied"
    status_code = 403


class NoBackupError(FolderPlanError):
    """No pending backup is tracked for a root path."""
    kind = "no_backup"
    status_code = 400


class ScanCancelledError(FolderPlanError):
    """A directory scan was cancelled before it finished."""
    kind = "scan_cancelled"


class BackupError(FolderPlanError):
    """Creating the safety backup failed. The real tree was not touched."""
    kind = "backup_failed"


class ApplyError(FolderPlanError):
    """Replaying a change log against the filesystem failed part way."""
    kind = "apply_failed"


class RestoreError(ApplyError):
    """Replay failed and restoring from the backup failed too.

    Terminal: the surviving backup path is in ``details["backup_path"]`` and
    needs manual recovery.
    """
    kind = "restore_failed"
