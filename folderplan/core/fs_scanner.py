# folderplan/core/fs_scanner.py
import asyncio
import os
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple, Union

from loguru import logger

from ..services.async_utils import run_blocking
from .errors import AccessDeniedError, InputError, NotDirectoryError, NotFoundError, ScanCancelledError
from .models import TreeNode
from .tree import normalize_tree, split_path

Timestamp = Union[datetime, int, float, None]
ListingEntry = Tuple[str, int, Timestamp]


def _mtime(st: os.stat_result) -> datetime:
    return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)


class DirectoryScanner:
    """Walks a real directory and builds a canonical TreeNode snapshot."""

    def __init__(self,
                 root_path: Union[str, Path],
                 skip_symlinks: bool = False,
                 concurrency: int = 16,
                 progress_callback: Optional[Callable[[str], None]] = None,
                 error_callback: Optional[Callable[[str], None]] = None):
        self.root_path = Path(root_path).absolute()
        self.skip_symlinks = skip_symlinks
        self.concurrency = max(1, concurrency)
        self.progress_callback = progress_callback
        self.error_callback = error_callback
        self._is_cancelled = False
        self._slots: Optional[asyncio.Semaphore] = None
        logger.debug(f"Scanner initialized for {self.root_path} (concurrency={self.concurrency})")

    def _emit_progress(self, message: str):
        if self.progress_callback:
            try: self.progress_callback(message)
            except Exception as e: logger.error(f"Error in progress callback: {e}")

    def _emit_error(self, message: str):
        if self.error_callback:
            try: self.error_callback(message)
            except Exception as e: logger.error(f"Error in error callback: {e}")

    def cancel(self):
        """Signals the scanner to stop processing."""
        logger.info(f"Cancellation requested for scan of {self.root_path}")
        self._is_cancelled = True

    def _check_cancelled(self):
        if self._is_cancelled:
            raise ScanCancelledError(f"Scan cancelled: {self.root_path}", path=str(self.root_path))

    async def scan(self) -> List[TreeNode]:
        """
        Scans the root directory and returns its children as a canonical tree.
        Raises NotFoundError / NotDirectoryError / AccessDeniedError for a bad root;
        unreadable entries below the root are skipped with a warning.
        """
        logger.info(f"Scan starting for: {self.root_path}")
        self._is_cancelled = False
        self._slots = asyncio.Semaphore(self.concurrency)
        try:
            root_stat = await run_blocking(os.stat, self.root_path)
        except FileNotFoundError:
            raise NotFoundError(f"Path does not exist: {self.root_path}", path=str(self.root_path))
        except PermissionError as e:
            raise AccessDeniedError(f"Path is not accessible: {e}", path=str(self.root_path))
        if not stat.S_ISDIR(root_stat.st_mode):
            raise NotDirectoryError(f"Path exists but is not a directory: {self.root_path}",
                                    path=str(self.root_path))

        try:
            nodes = await self._scan_level(self.root_path)
        except PermissionError as e:
            raise AccessDeniedError(f"Cannot read directory: {e}", path=str(self.root_path))
        normalize_tree(nodes)
        logger.info(f"Scan finished for: {self.root_path} ({len(nodes)} top-level entries)")
        return nodes

    async def _blocking(self, func, *args, **kwargs):
        # One pool of slots for the whole scan, held only for the blocking call
        async with self._slots:
            return await run_blocking(func, *args, **kwargs)

    async def _scan_level(self, dir_path: Path) -> List[TreeNode]:
        """Lists one directory; its entries are stat'd (and descended into) concurrently."""
        self._check_cancelled()
        entries = await self._blocking(lambda: list(os.scandir(dir_path)))
        nodes = await asyncio.gather(*(self._scan_entry(e) for e in entries))
        return [node for node in nodes if node is not None]

    async def _scan_entry(self, entry: os.DirEntry) -> Optional[TreeNode]:
        self._check_cancelled()
        try:
            st = await self._blocking(entry.stat, follow_symlinks=False)
        except OSError as e:
            logger.warning(f"Cannot access {entry.path}: {e}")
            self._emit_error(f"Access Error stating: {entry.name}")
            return None

        if stat.S_ISLNK(st.st_mode):
            if self.skip_symlinks:
                logger.trace(f"Ignoring symlink entry: {entry.path}")
                return None
            # Links are never followed; recorded as plain entries
            return TreeNode(name=entry.name, is_dir=False, size=st.st_size, last_modified=_mtime(st))

        if not stat.S_ISDIR(st.st_mode):
            return TreeNode(name=entry.name, is_dir=False, size=st.st_size, last_modified=_mtime(st))

        self._emit_progress(f"Scanning: {entry.name}")
        try:
            children = await self._scan_level(Path(entry.path))
        except OSError as e:
            logger.warning(f"Cannot read directory {entry.path}: {e}")
            self._emit_error(f"Access Error scanning: {entry.name}")
            return None
        return TreeNode(name=entry.name, is_dir=True, last_modified=_mtime(st), children=children)


async def scan_directory(root_path: Union[str, Path], **options) -> List[TreeNode]:
    """Convenience wrapper: `DirectoryScanner(root_path, **options).scan()`."""
    return await DirectoryScanner(root_path, **options).scan()


# --- Client-side listing ---

class ListingTree(NamedTuple):
    root_name: str
    nodes: List[TreeNode]


def _listing_time(value: Timestamp) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    # Browsers report File.lastModified in milliseconds
    seconds = value / 1000 if value > 1e11 else value
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def build_tree_from_listing(entries: Iterable[ListingEntry]) -> ListingTree:
    """
    Builds a tree from flat `(relative_path, size, last_modified)` file entries,
    as produced by a folder picker. The first path segment names the picked
    folder and is dropped; directories are inferred from the segments between.
    """
    root: List[TreeNode] = []
    root_name = ""
    for relative_path, size, last_modified in entries:
        parts = split_path(relative_path.replace("\\", "/"))
        if not parts:
            continue
        if not root_name:
            root_name = parts[0]
        parts = parts[1:]
        if not parts:
            continue

        modified = _listing_time(last_modified)
        current_level = root
        for index, part in enumerate(parts):
            is_file = index == len(parts) - 1
            existing = next((n for n in current_level if n.name == part), None)
            if is_file:
                if existing is not None and existing.is_dir:
                    raise InputError(f"Listing uses '{part}' as both a file and a folder",
                                     path=relative_path)
                if existing is not None:
                    logger.warning(f"Duplicate listing entry replaced: {relative_path}")
                    current_level.remove(existing)
                current_level.append(TreeNode(name=part, is_dir=False, size=int(size),
                                              last_modified=modified))
            else:
                if existing is not None and not existing.is_dir:
                    raise InputError(f"Listing uses '{part}' as both a file and a folder",
                                     path=relative_path)
                if existing is None:
                    existing = TreeNode(name=part, is_dir=True, last_modified=modified)
                    current_level.append(existing)
                current_level = existing.children

    normalize_tree(root)
    logger.debug(f"Built tree from listing for '{root_name}' with {len(root)} top-level entries.")
    return ListingTree(root_name=root_name, nodes=root)
