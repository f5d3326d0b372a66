# folderplan/core/wire.py
"""JSON wire shapes for trees, change logs, and results (pydantic v2)."""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import InputError
from .models import (
    ApplyResult, ChangeEntry, ChangeSummary, DeleteChange, DiffResult, Discrepancy,
    MoveChange, RemoveResult, RenameChange, TreeNode, TreeStats, utc_now,
)
from .tree import normalize_tree


def _check_relative(path: str) -> str:
    parts = path.replace("\\", "/").split("/")
    if path.startswith(("/", "\\")) or not path.strip("/"):
        raise ValueError("path must be a non-empty relative path")
    if any(part in (".", "..") for part in parts):
        raise ValueError("path must not contain '.' or '..' segments")
    return "/".join(p for p in parts if p)

def _check_name(name: str) -> str:
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError("name must be a single, non-empty path segment")
    return name


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# --- Trees ---

class TreeNodeSchema(_WireModel):
    name: str
    is_dir: bool = Field(alias="isDirectory")
    size: int = Field(default=0, ge=0)
    last_modified: Optional[datetime] = Field(default=None, alias="lastModified")
    children: Optional[List["TreeNodeSchema"]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_name(v)

    def to_node(self) -> TreeNode:
        return TreeNode(name=self.name, is_dir=self.is_dir, size=self.size,
                        last_modified=self.last_modified,
                        children=[c.to_node() for c in self.children or []] if self.is_dir else [])

    @classmethod
    def from_node(cls, node: TreeNode) -> "TreeNodeSchema":
        return cls(name=node.name, is_dir=node.is_dir, size=node.size, last_modified=node.last_modified,
                   children=[cls.from_node(c) for c in node.children] if node.is_dir else None)


# --- Change log ---

class MoveSchema(_WireModel):
    type: Literal["move"]
    from_path: str = Field(alias="from")
    to_path: str = Field(alias="to")
    override: bool = False
    timestamp: Optional[datetime] = None

    @field_validator("from_path", "to_path")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return _check_relative(v)

    def to_change(self) -> MoveChange:
        return MoveChange(from_path=self.from_path, to_path=self.to_path, override=self.override,
                          timestamp=self.timestamp or utc_now())


class RenameSchema(_WireModel):
    type: Literal["rename"]
    path: str
    old_name: Optional[str] = Field(default=None, alias="oldName")
    new_name: str = Field(alias="newName")
    override: bool = False
    timestamp: Optional[datetime] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        return _check_relative(v)

    @field_validator("new_name")
    @classmethod
    def validate_new_name(cls, v: str) -> str:
        return _check_name(v)

    def to_change(self) -> RenameChange:
        old_name = self.old_name or self.path.rsplit("/", 1)[-1]
        return RenameChange(path=self.path, old_name=old_name, new_name=self.new_name,
                            override=self.override, timestamp=self.timestamp or utc_now())


class DeleteSchema(_WireModel):
    type: Literal["delete"]
    path: str
    is_dir: bool = Field(default=False, alias="isDirectory")
    timestamp: Optional[datetime] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        return _check_relative(v)

    def to_change(self) -> DeleteChange:
        return DeleteChange(path=self.path, is_dir=self.is_dir, timestamp=self.timestamp or utc_now())


ChangeSchema = Annotated[Union[MoveSchema, RenameSchema, DeleteSchema], Field(discriminator="type")]

_tree_adapter = TypeAdapter(List[TreeNodeSchema])
_change_log_adapter = TypeAdapter(List[ChangeSchema])


def _input_error(what: str, error: ValidationError) -> InputError:
    problems = [
        {"loc": ".".join(str(p) for p in item["loc"]), "message": item["msg"]}
        for item in error.errors()
    ]
    logger.debug(f"Rejected {what}: {problems}")
    return InputError(f"Invalid {what}: {len(problems)} problem(s)", details={"errors": problems})


# --- Parsing ---

def parse_tree(data: Any) -> List[TreeNode]:
    """Validates a JSON tree (list of nodes) and returns it in canonical form."""
    if not isinstance(data, list):
        raise InputError("Folder structure is required and must be an array")
    try:
        schemas = _tree_adapter.validate_python(data)
    except ValidationError as e:
        raise _input_error("folder structure", e)
    nodes = [s.to_node() for s in schemas]
    _check_unique_names(nodes, "")
    return normalize_tree(nodes)

def _check_unique_names(nodes: List[TreeNode], prefix: str) -> None:
    seen = set()
    for node in nodes:
        if node.name in seen:
            raise InputError(f"Duplicate name in folder structure: {prefix + node.name}",
                             path=prefix + node.name)
        seen.add(node.name)
        if node.is_dir:
            _check_unique_names(node.children, f"{prefix}{node.name}/")

def parse_change_log(data: Any) -> List[ChangeEntry]:
    if not isinstance(data, list) or not data:
        raise InputError("Change log is required and must not be empty")
    try:
        schemas = _change_log_adapter.validate_python(data)
    except ValidationError as e:
        raise _input_error("change log", e)
    return [s.to_change() for s in schemas]


# --- Dumping ---

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None

def dump_tree(nodes: List[TreeNode]) -> List[Dict[str, Any]]:
    return [TreeNodeSchema.from_node(n).model_dump(mode="json", by_alias=True, exclude_none=True)
            for n in nodes]

def dump_change(change: ChangeEntry) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": change.type, "timestamp": _iso(change.timestamp)}
    if isinstance(change, MoveChange):
        data.update({"from": change.from_path, "to": change.to_path, "override": change.override})
    elif isinstance(change, RenameChange):
        data.update({"path": change.path, "oldName": change.old_name, "newName": change.new_name,
                     "override": change.override})
    else:
        data.update({"path": change.path, "isDirectory": change.is_dir})
    return data

def dump_change_log(changes: List[ChangeEntry]) -> List[Dict[str, Any]]:
    return [dump_change(c) for c in changes]

def dump_discrepancy(item: Discrepancy) -> Dict[str, Any]:
    return {"type": item.kind, "path": item.path, "message": item.message}

def dump_diff_result(result: DiffResult) -> Dict[str, Any]:
    return {"isMatch": result.is_match, "differences": [dump_discrepancy(d) for d in result.differences]}

def dump_stats(stats: TreeStats) -> Dict[str, Any]:
    return {"fileCount": stats.file_count, "dirCount": stats.dir_count, "totalSize": stats.total_size}

def dump_summary(summary: ChangeSummary) -> Dict[str, Any]:
    return {
        "timestamp": _iso(summary.timestamp),
        "absolutePath": summary.root_path,
        "changeLog": dump_change_log(summary.change_log),
        "originalStructure": dump_tree(summary.original),
        "newStructure": dump_tree(summary.current),
    }

def dump_apply_result(result: ApplyResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {"applied": result.applied, "skipped": list(result.skipped),
                            "clone": result.backup_path is not None}
    if result.backup_path is not None:
        data["tmpPath"] = str(result.backup_path)
    return data

def dump_remove_result(result: RemoveResult) -> Dict[str, Any]:
    return {"status": result.status, "backupPath": str(result.backup_path), "message": result.message}
