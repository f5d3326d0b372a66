# folderplan/core/models.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import ClassVar, List, Literal, Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TreeNode:
    """Represents a file or directory in a tree snapshot."""
    name: str
    is_dir: bool
    size: int = 0 # Bytes; for directories the sum of all descendant files
    last_modified: Optional[datetime] = None # Informational only, never compared
    children: List['TreeNode'] = field(default_factory=list) # Only meaningful for directories


@dataclass
class TreeStats:
    """File/folder counts and total size of a tree."""
    file_count: int = 0
    dir_count: int = 0
    total_size: int = 0


class ConflictPolicy(str, Enum):
    """What an edit does when the destination name is already taken."""
    FAIL = "fail"
    OVERWRITE = "overwrite"


# --- Change log entries ---

@dataclass(frozen=True)
class MoveChange:
    from_path: str
    to_path: str
    override: bool = False
    timestamp: datetime = field(default_factory=utc_now)
    type: ClassVar[str] = "move"


@dataclass(frozen=True)
class RenameChange:
    path: str
    old_name: str
    new_name: str
    override: bool = False
    timestamp: datetime = field(default_factory=utc_now)
    type: ClassVar[str] = "rename"


@dataclass(frozen=True)
class DeleteChange:
    path: str
    is_dir: bool = False
    timestamp: datetime = field(default_factory=utc_now)
    type: ClassVar[str] = "delete"


ChangeEntry = Union[MoveChange, RenameChange, DeleteChange]


# --- Validation results ---

DiscrepancyKind = Literal["missing_on_server", "missing_on_client", "type_mismatch"]


@dataclass(frozen=True)
class Discrepancy:
    """One structural difference between a client and a server tree."""
    kind: DiscrepancyKind
    path: str
    message: str


@dataclass
class DiffResult:
    differences: List[Discrepancy] = field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return not self.differences


# --- Session and applier results ---

@dataclass
class ChangeSummary:
    """Snapshot of an edit session: what was recorded and what it produces."""
    root_path: Optional[str]
    change_log: List[ChangeEntry]
    original: List[TreeNode]
    current: List[TreeNode]
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class ApplyResult:
    applied: int # Instructions executed against the filesystem
    skipped: List[str] = field(default_factory=list) # Delete targets that were already gone
    backup_path: Optional[Path] = None


RemoveStatus = Literal["removed", "already_gone"]


@dataclass
class RemoveResult:
    status: RemoveStatus
    backup_path: Path
    message: str
