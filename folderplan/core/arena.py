# folderplan/core/arena.py
"""Editable tree stored as an arena of nodes with stable ids and parent pointers.

Moves re-link ids instead of copying subtrees. The arena is always rooted at a
virtual directory node (``ROOT_ID``) whose path is the empty string.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from .models import TreeNode
from .tree import join_path, sort_key, split_path


@dataclass
class ArenaNode:
    node_id: int
    name: str
    is_dir: bool
    size: int = 0
    last_modified: Optional[datetime] = None
    parent_id: Optional[int] = None
    child_ids: List[int] = field(default_factory=list)


class NodeArena:
    ROOT_ID = 0

    def __init__(self):
        self._nodes: Dict[int, ArenaNode] = {self.ROOT_ID: ArenaNode(self.ROOT_ID, "", True)}
        self._next_id = self.ROOT_ID + 1

    @classmethod
    def from_tree(cls, nodes: List[TreeNode]) -> "NodeArena":
        arena = cls()
        stack = [(node, cls.ROOT_ID) for node in reversed(nodes)]
        while stack:
            node, parent_id = stack.pop()
            node_id = arena._add(node, parent_id)
            if node.is_dir:
                stack.extend((child, node_id) for child in reversed(node.children))
        arena.refresh_sizes(cls.ROOT_ID, recursive=True)
        arena.sort_children(cls.ROOT_ID, recursive=True)
        return arena

    def _add(self, node: TreeNode, parent_id: int) -> int:
        node_id = self._next_id
        self._next_id += 1
        self._nodes[node_id] = ArenaNode(node_id, node.name, node.is_dir, node.size,
                                         node.last_modified, parent_id)
        self._nodes[parent_id].child_ids.append(node_id)
        return node_id

    def to_tree(self, node_id: int = ROOT_ID) -> List[TreeNode]:
        """Returns a detached nested copy of the children of `node_id`."""
        return [self._build(child_id) for child_id in self._nodes[node_id].child_ids]

    def _build(self, node_id: int) -> TreeNode:
        entry = self._nodes[node_id]
        return TreeNode(name=entry.name, is_dir=entry.is_dir, size=entry.size,
                        last_modified=entry.last_modified,
                        children=[self._build(c) for c in entry.child_ids])

    # --- Lookups ---

    def __len__(self) -> int:
        return len(self._nodes) - 1 # Excludes the virtual root

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    def get(self, node_id: int) -> ArenaNode:
        return self._nodes[node_id]

    def children(self, node_id: int) -> List[ArenaNode]:
        return [self._nodes[c] for c in self._nodes[node_id].child_ids]

    def resolve(self, path: str) -> Optional[int]:
        node_id = self.ROOT_ID
        for part in split_path(path):
            entry = self._nodes[node_id]
            if not entry.is_dir:
                return None
            match = self.find_child(node_id, part)
            if match is None:
                return None
            node_id = match.node_id
        return node_id

    def path_of(self, node_id: int) -> str:
        names = []
        entry = self._nodes[node_id]
        while entry.parent_id is not None:
            names.append(entry.name)
            entry = self._nodes[entry.parent_id]
        return "/".join(reversed(names))

    def find_child(self, parent_id: int, name: str,
                   excluding: Optional[int] = None) -> Optional[ArenaNode]:
        for child_id in self._nodes[parent_id].child_ids:
            child = self._nodes[child_id]
            if child.name == name and child_id != excluding:
                return child
        return None

    def ancestors(self, node_id: int) -> Iterator[int]:
        parent_id = self._nodes[node_id].parent_id
        while parent_id is not None:
            yield parent_id
            parent_id = self._nodes[parent_id].parent_id

    def is_descendant(self, node_id: int, ancestor_id: int) -> bool:
        return any(a == ancestor_id for a in self.ancestors(node_id))

    def subtree_ids(self, node_id: int) -> List[int]:
        ids, stack = [], [node_id]
        while stack:
            current = stack.pop()
            ids.append(current)
            stack.extend(self._nodes[current].child_ids)
        return ids

    # --- Mutations ---

    def detach(self, node_id: int) -> None:
        """Unlinks a node from its parent; the subtree stays in the arena."""
        entry = self._nodes[node_id]
        if entry.parent_id is None:
            raise ValueError("Cannot detach the root node")
        self._nodes[entry.parent_id].child_ids.remove(node_id)
        entry.parent_id = None

    def attach(self, node_id: int, parent_id: int) -> None:
        parent = self._nodes[parent_id]
        if not parent.is_dir:
            raise ValueError(f"Cannot attach under a file: {parent.name}")
        if node_id == parent_id or self.is_descendant(parent_id, node_id):
            raise ValueError("Attaching would create a cycle")
        entry = self._nodes[node_id]
        if entry.parent_id is not None:
            self.detach(node_id)
        parent.child_ids.append(node_id)
        entry.parent_id = parent_id

    def discard(self, node_id: int) -> None:
        """Removes a node and its whole subtree from the arena."""
        if self._nodes[node_id].parent_id is not None:
            self.detach(node_id)
        for doomed in self.subtree_ids(node_id):
            del self._nodes[doomed]

    def rename(self, node_id: int, new_name: str) -> None:
        self._nodes[node_id].name = new_name

    def sort_children(self, node_id: int, recursive: bool = False) -> None:
        entry = self._nodes[node_id]
        entry.child_ids.sort(key=lambda c: sort_key(self._nodes[c].is_dir, self._nodes[c].name))
        if recursive:
            for child_id in entry.child_ids:
                if self._nodes[child_id].is_dir:
                    self.sort_children(child_id, recursive=True)

    def refresh_sizes(self, node_id: int, recursive: bool = False) -> int:
        """Recomputes the size of `node_id` and every ancestor above it.

        With `recursive`, the whole subtree below `node_id` is recomputed first.
        """
        entry = self._nodes[node_id]
        if recursive:
            self._rollup(node_id)
        elif entry.is_dir:
            entry.size = sum(self._nodes[c].size for c in entry.child_ids)
        for ancestor_id in self.ancestors(node_id):
            ancestor = self._nodes[ancestor_id]
            ancestor.size = sum(self._nodes[c].size for c in ancestor.child_ids)
        return entry.size

    def _rollup(self, node_id: int) -> int:
        entry = self._nodes[node_id]
        if entry.is_dir:
            entry.size = sum(self._rollup(c) for c in entry.child_ids)
        return entry.size

    def iter_paths(self, node_id: int = ROOT_ID) -> Iterator[str]:
        prefix = self.path_of(node_id)
        for child in self.children(node_id):
            path = join_path(prefix, child.name)
            yield path
            if child.is_dir:
                yield from self.iter_paths(child.node_id)
