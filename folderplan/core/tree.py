# folderplan/core/tree.py
"""Pure operations on nested TreeNode lists. No I/O."""
import copy
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .models import TreeNode, TreeStats

PATH_SEP = "/"


# --- Paths ---

def split_path(path: str) -> List[str]:
    """Splits a tree path into its names, ignoring empty segments."""
    return [part for part in path.split(PATH_SEP) if part]

def join_path(parent: str, name: str) -> str:
    return f"{parent}{PATH_SEP}{name}" if parent else name

def parent_path(path: str) -> str:
    return PATH_SEP.join(split_path(path)[:-1])

def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """True if `path` equals `ancestor` or lies below it (path-prefix test)."""
    path = PATH_SEP.join(split_path(path))
    ancestor = PATH_SEP.join(split_path(ancestor))
    if not ancestor:
        return True
    return path == ancestor or path.startswith(ancestor + PATH_SEP)


# --- Ordering and sizes ---

def sort_key(is_dir: bool, name: str) -> Tuple[bool, str, str]:
    """Canonical order: directories first, then by name, case-insensitive first."""
    return (not is_dir, name.casefold(), name)

def node_sort_key(node: TreeNode) -> Tuple[bool, str, str]:
    return sort_key(node.is_dir, node.name)

def sort_nodes(nodes: List[TreeNode], recursive: bool = True) -> List[TreeNode]:
    """Sorts `nodes` in place into canonical order and returns it."""
    nodes.sort(key=node_sort_key)
    if recursive:
        for node in nodes:
            if node.is_dir and node.children:
                sort_nodes(node.children, recursive=True)
    return nodes

def recalculate_sizes(nodes: List[TreeNode]) -> int:
    """Sets every directory's size to the sum of its children. Returns the total."""
    total = 0
    for node in nodes:
        if node.is_dir:
            node.size = recalculate_sizes(node.children)
        total += node.size
    return total

def calculate_stats(nodes: Iterable[TreeNode]) -> TreeStats:
    stats = TreeStats()
    stack = list(nodes)
    while stack:
        node = stack.pop()
        if node.is_dir:
            stats.dir_count += 1
            stack.extend(node.children)
        else:
            stats.file_count += 1
            stats.total_size += node.size
    return stats

def clone_tree(nodes: List[TreeNode]) -> List[TreeNode]:
    return copy.deepcopy(nodes)

def normalize_tree(nodes: List[TreeNode]) -> List[TreeNode]:
    """Rolls up directory sizes and applies canonical order, in place."""
    recalculate_sizes(nodes)
    return sort_nodes(nodes)


# --- Lookups ---

@dataclass
class NodeLocation:
    """Where a node sits: its sibling list, its index there, and the node."""
    parent: List[TreeNode]
    index: int
    node: TreeNode

def find_node_location(nodes: List[TreeNode], path: str) -> Optional[NodeLocation]:
    parts = split_path(path)
    if not parts:
        return None
    current = nodes
    for part in parts[:-1]:
        parent = next((n for n in current if n.name == part), None)
        if parent is None or not parent.is_dir:
            return None
        current = parent.children
    for index, node in enumerate(current):
        if node.name == parts[-1]:
            return NodeLocation(parent=current, index=index, node=node)
    return None

def find_node_by_path(nodes: List[TreeNode], path: str) -> Optional[TreeNode]:
    location = find_node_location(nodes, path)
    return location.node if location else None

def find_conflict(siblings: Iterable[TreeNode], name: str,
                  excluding: Optional[TreeNode] = None) -> Optional[TreeNode]:
    """Returns the sibling called `name`, other than `excluding` (by identity)."""
    for node in siblings:
        if node.name == name and node is not excluding:
            return node
    return None

def iter_paths(nodes: List[TreeNode], prefix: str = "") -> Iterable[Tuple[str, TreeNode]]:
    """Yields (path, node) for every node, depth first in list order."""
    for node in nodes:
        path = join_path(prefix, node.name)
        yield path, node
        if node.is_dir:
            yield from iter_paths(node.children, path)
