# folderplan/core/differ.py
"""Structural comparison of two trees: names, types and hierarchy only."""
from typing import Dict, List

from loguru import logger

from .models import DiffResult, Discrepancy, TreeNode
from .tree import join_path, node_sort_key


def _by_name(nodes: List[TreeNode]) -> Dict[str, TreeNode]:
    # Canonical order so results never depend on input order
    return {node.name: node for node in sorted(nodes, key=node_sort_key)}

def _kind_label(node: TreeNode) -> str:
    return "directory" if node.is_dir else "file"


def compare_structures(client_tree: List[TreeNode], server_tree: List[TreeNode]) -> DiffResult:
    """
    Compares a client tree snapshot against the server's ground truth.

    Reports names only on one side and names whose file/directory type differs.
    Sizes and modification times are ignored. A type mismatch stops the walk
    for that subtree.
    """
    differences: List[Discrepancy] = []

    def compare(client_items: List[TreeNode], server_items: List[TreeNode], prefix: str) -> None:
        client_map = _by_name(client_items)
        server_map = _by_name(server_items)

        for name, client_item in client_map.items():
            current_path = join_path(prefix, name)
            server_item = server_map.get(name)
            if server_item is None:
                differences.append(Discrepancy(
                    "missing_on_server", current_path,
                    f'File/folder "{current_path}" exists in uploaded structure but not on server'))
                continue
            if client_item.is_dir != server_item.is_dir:
                differences.append(Discrepancy(
                    "type_mismatch", current_path,
                    f'"{current_path}" is a {_kind_label(client_item)} in upload '
                    f'but a {_kind_label(server_item)} on server'))
                continue
            if client_item.is_dir:
                compare(client_item.children or [], server_item.children or [], current_path)

        for name in server_map:
            if name not in client_map:
                current_path = join_path(prefix, name)
                differences.append(Discrepancy(
                    "missing_on_client", current_path,
                    f'File/folder "{current_path}" exists on server but not in uploaded structure'))

    compare(client_tree, server_tree, "")
    result = DiffResult(differences=differences)
    if result.is_match:
        logger.debug("Structures match.")
    else:
        logger.info(f"Structure comparison found {len(differences)} difference(s).")
    return result


def has_structure_changed(original: List[TreeNode], current: List[TreeNode]) -> bool:
    """True if any name was added, removed, or swapped between file and directory."""
    if len(original) != len(current):
        return True
    original_map = {node.name: node for node in original}
    current_map = {node.name: node for node in current}
    if original_map.keys() != current_map.keys():
        return True
    for name, orig_item in original_map.items():
        curr_item = current_map[name]
        if orig_item.is_dir != curr_item.is_dir:
            return True
        if orig_item.is_dir and has_structure_changed(orig_item.children or [], curr_item.children or []):
            return True
    return False
