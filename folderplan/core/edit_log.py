# folderplan/core/edit_log.py
from typing import List, Optional

from loguru import logger

from .arena import NodeArena
from .differ import has_structure_changed
from .errors import InputError, NameConflictError, NotDirectoryError, NotFoundError
from .models import (
    ChangeEntry, ChangeSummary, ConflictPolicy, DeleteChange, MoveChange,
    RenameChange, TreeNode, TreeStats,
)
from .tree import calculate_stats, clone_tree, is_same_or_descendant, join_path, parent_path, split_path


def _check_new_name(new_name: str) -> None:
    if "/" in new_name or "\\" in new_name or new_name in (".", ".."):
        raise InputError(f"Invalid name: {new_name!r}", details={"name": new_name})


class EditSession:
    """
    Live, editable copy of a validated tree plus the log of edits made to it.

    The original snapshot is kept untouched for change detection and reset.
    Every successful edit appends one ChangeEntry; no-op edits return None and
    log nothing. One session belongs to one root path and one caller.
    """

    def __init__(self, tree: List[TreeNode], root_path: Optional[str] = None):
        self.root_path = root_path
        self._original = clone_tree(tree)
        self._arena = NodeArena.from_tree(tree)
        self._change_log: List[ChangeEntry] = []
        logger.debug(f"Edit session opened for {root_path or '<unbound>'} with {len(self._arena)} nodes.")

    @property
    def change_log(self) -> List[ChangeEntry]:
        return list(self._change_log)

    @property
    def original(self) -> List[TreeNode]:
        return clone_tree(self._original)

    def current_tree(self) -> List[TreeNode]:
        return self._arena.to_tree()

    # --- Lookups ---

    def _require(self, path: str) -> int:
        node_id = self._arena.resolve(path)
        if node_id is None:
            raise NotFoundError(f"Path not found in tree: {path}", path=path)
        return node_id

    def _require_dir(self, path: str) -> int:
        node_id = self._require(path)
        if not self._arena.get(node_id).is_dir:
            raise NotDirectoryError(f"Not a directory: {path}", path=path)
        return node_id

    def _snapshot(self, node_id: int) -> TreeNode:
        entry = self._arena.get(node_id)
        return TreeNode(name=entry.name, is_dir=entry.is_dir, size=entry.size,
                        last_modified=entry.last_modified, children=self._arena.to_tree(node_id))

    def find_conflict(self, target_path: str, name: str,
                      excluding_path: Optional[str] = None) -> Optional[TreeNode]:
        """Returns a copy of the node called `name` inside `target_path`, if any."""
        parent_id = self._require_dir(target_path)
        excluding = self._arena.resolve(excluding_path) if excluding_path else None
        match = self._arena.find_child(parent_id, name, excluding=excluding)
        return self._snapshot(match.node_id) if match else None

    def _resolve_conflict(self, parent_id: int, name: str, excluding: Optional[int],
                          policy: ConflictPolicy, operation: str) -> bool:
        """Returns True if an existing node was removed to make room."""
        existing = self._arena.find_child(parent_id, name, excluding=excluding)
        if existing is None:
            return False
        existing_path = self._arena.path_of(existing.node_id)
        if policy is not ConflictPolicy.OVERWRITE:
            raise NameConflictError(
                f"Cannot {operation}: '{name}' already exists in '{self._arena.path_of(parent_id) or 'root'}'",
                path=existing_path, details={"name": name, "isDirectory": existing.is_dir},
                existing=self._snapshot(existing.node_id))
        if excluding is not None and self._arena.is_descendant(excluding, existing.node_id):
            raise InputError(f"Cannot {operation}: '{existing_path}' contains the item being moved",
                             path=existing_path)
        logger.info(f"Overwriting existing {'folder' if existing.is_dir else 'file'}: {existing_path}")
        self._arena.discard(existing.node_id)
        self._arena.refresh_sizes(parent_id)
        return True

    # --- Edits ---

    def move(self, source_path: str, target_path: str,
             conflict_policy: ConflictPolicy = ConflictPolicy.FAIL) -> Optional[MoveChange]:
        """Moves the node at `source_path` into the directory `target_path` ("" is the root)."""
        source_path = "/".join(split_path(source_path))
        target_path = "/".join(split_path(target_path))
        source_id = self._require(source_path)
        if source_id == NodeArena.ROOT_ID:
            raise InputError("Cannot move the root")

        if target_path == source_path:
            logger.debug(f"Move skipped, target is the source itself: {source_path}")
            return None
        if is_same_or_descendant(target_path, source_path):
            logger.warning(f"Move rejected, cannot move '{source_path}' into itself ('{target_path}')")
            return None
        if parent_path(source_path) == target_path:
            logger.debug(f"Move skipped, '{source_path}' is already in '{target_path or 'root'}'")
            return None

        target_id = self._require_dir(target_path)
        name = self._arena.get(source_id).name
        override = self._resolve_conflict(target_id, name, source_id, conflict_policy, "move")

        old_parent_id = self._arena.get(source_id).parent_id
        self._arena.attach(source_id, target_id)
        self._arena.sort_children(target_id)
        self._arena.refresh_sizes(old_parent_id)
        self._arena.refresh_sizes(target_id)

        change = MoveChange(from_path=source_path, to_path=join_path(target_path, name), override=override)
        self._change_log.append(change)
        logger.info(f"Move: {change.from_path} -> {change.to_path}{' (override)' if override else ''}")
        return change

    def rename(self, path: str, new_name: str,
               conflict_policy: ConflictPolicy = ConflictPolicy.FAIL) -> Optional[RenameChange]:
        path = "/".join(split_path(path))
        node_id = self._require(path)
        if node_id == NodeArena.ROOT_ID:
            raise InputError("Cannot rename the root")
        new_name = (new_name or "").strip()
        entry = self._arena.get(node_id)
        old_name = entry.name
        if not new_name or new_name == old_name:
            logger.debug(f"Rename skipped for {path}: name unchanged or empty")
            return None
        _check_new_name(new_name)

        override = self._resolve_conflict(entry.parent_id, new_name, node_id, conflict_policy, "rename")
        self._arena.rename(node_id, new_name)
        self._arena.sort_children(entry.parent_id)

        change = RenameChange(path=path, old_name=old_name, new_name=new_name, override=override)
        self._change_log.append(change)
        logger.info(f"Rename: {path} -> {new_name}{' (override)' if override else ''}")
        return change

    def delete(self, path: str) -> DeleteChange:
        path = "/".join(split_path(path))
        node_id = self._require(path)
        if node_id == NodeArena.ROOT_ID:
            raise InputError("Cannot delete the root")
        entry = self._arena.get(node_id)
        parent_id = entry.parent_id
        self._arena.discard(node_id)
        self._arena.refresh_sizes(parent_id)

        change = DeleteChange(path=path, is_dir=entry.is_dir)
        self._change_log.append(change)
        logger.info(f"Delete: {path}{'/' if entry.is_dir else ''}")
        return change

    # --- Session state ---

    def has_changes(self) -> bool:
        return has_structure_changed(self._original, self.current_tree())

    def stats(self) -> TreeStats:
        return calculate_stats(self.current_tree())

    def summary(self) -> ChangeSummary:
        return ChangeSummary(root_path=self.root_path, change_log=self.change_log,
                             original=self.original, current=self.current_tree())

    def reset(self) -> None:
        """Discards every edit and returns to the original snapshot."""
        self._arena = NodeArena.from_tree(self._original)
        self._change_log.clear()
        logger.info(f"Edit session reset for {self.root_path or '<unbound>'}")

    def mark_applied(self) -> None:
        """Adopts the edited tree as the new baseline once the log has been applied."""
        self._original = self.current_tree()
        self._change_log.clear()
