# folderplan/cli.py

import json
from pathlib import Path
from typing import Any, List, Optional

import typer
from loguru import logger

from .services.logging import setup_logging
from .services.async_utils import run_sync
from .config.loader import get_config
from .core.applier import FilesystemApplier
from .core.differ import compare_structures
from .core.edit_log import EditSession
from .core.errors import FolderPlanError
from .core.fs_scanner import DirectoryScanner
from .core.models import ChangeEntry, ConflictPolicy, MoveChange, RenameChange, TreeNode
from .core.tree import join_path, parent_path, split_path
from .core import wire
from . import __version__

app = typer.Typer(help="FolderPlan CLI - validate folder snapshots and apply staged edits.")

def version_callback(value: bool):
    if value:
        print(f"FolderPlan CLI Version: {__version__}")
        raise typer.Exit()

@app.callback()
def main_options(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: Optional[bool] = typer.Option(None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."),
):
    """ Main callback to set up logging """
    config = get_config()
    setup_logging(level=config.log_level, verbose=verbose, log_to_file=config.log_to_file)
    ctx.ensure_object(dict)
    ctx.obj["VERBOSE"] = verbose


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read {what} from {path}: {e}")
        raise typer.Exit(code=2)

def _emit_json(data: Any, output: Optional[Path] = None) -> None:
    text = json.dumps(data, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        logger.success(f"Written to: {output}")
    else:
        typer.echo(text)

def _scan(path: Path) -> List[TreeNode]:
    config = get_config()
    scanner = DirectoryScanner(path, skip_symlinks=config.skip_symlinks, concurrency=config.scan_concurrency)
    return run_sync(scanner.scan())

def _fail(error: FolderPlanError) -> None:
    logger.error(f"{error.kind}: {error.message}")
    if error.details:
        logger.error(f"Details: {error.details}")
    raise typer.Exit(code=1)


@app.command()
def scan(
    path: Path = typer.Argument(..., help="Directory to scan.", resolve_path=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON tree here instead of stdout."),
):
    """Scans a directory and prints its tree as JSON."""
    try:
        nodes = _scan(path)
    except FolderPlanError as e:
        _fail(e)
    _emit_json(wire.dump_tree(nodes), output)


@app.command()
def validate(
    path: Path = typer.Argument(..., help="Directory holding the ground truth.", resolve_path=True),
    tree: Path = typer.Option(..., "--tree", "-t", help="JSON file with the client tree.", exists=True, dir_okay=False),
):
    """Checks that a client tree matches the directory structure (names and types only)."""
    try:
        client_tree = wire.parse_tree(_read_json(tree, "client tree"))
        result = compare_structures(client_tree, _scan(path))
    except FolderPlanError as e:
        _fail(e)
    if result.is_match:
        logger.success("Validation successful! Folder structure matches.")
        return
    _emit_json(wire.dump_diff_result(result))
    raise typer.Exit(code=1)


@app.command()
def diff(
    left: Path = typer.Argument(..., help="Directory treated as the client side.", resolve_path=True),
    right: Path = typer.Argument(..., help="Directory treated as the server side.", resolve_path=True),
):
    """Structural diff of two real directories."""
    try:
        result = compare_structures(_scan(left), _scan(right))
    except FolderPlanError as e:
        _fail(e)
    _emit_json(wire.dump_diff_result(result))
    if not result.is_match:
        raise typer.Exit(code=1)


@app.command()
def apply(
    path: Path = typer.Argument(..., help="Directory to modify.", resolve_path=True),
    changes: Path = typer.Option(..., "--changes", "-c", help="JSON file with the change log.", exists=True, dir_okay=False),
    backup: Optional[bool] = typer.Option(None, "--backup/--no-backup", help="Copy the folder before applying (default from config)."),
    discard_backup: bool = typer.Option(False, "--discard-backup", help="Remove the backup once the changes are applied."),
):
    """Applies a change log to a directory, with optional backup and rollback."""
    config = get_config()
    make_backup = config.make_backup_by_default if backup is None else backup
    applier = FilesystemApplier(backup_name_template=config.backup_name_template,
                                keep_backup_after_restore=config.keep_backup_after_restore)
    try:
        change_log = wire.parse_change_log(_read_json(changes, "change log"))
        result = run_sync(applier.apply(path, change_log, make_backup=make_backup))
    except FolderPlanError as e:
        _fail(e)

    summary = wire.dump_apply_result(result)
    if result.backup_path and discard_backup:
        try:
            removed = run_sync(applier.remove_backup(path))
        except FolderPlanError as e:
            _emit_json(summary)
            _fail(e)
        summary["backupRemoved"] = removed.status
    _emit_json(summary)


def _replay(session: EditSession, change: ChangeEntry) -> None:
    policy = ConflictPolicy.OVERWRITE if getattr(change, "override", False) else ConflictPolicy.FAIL
    if isinstance(change, MoveChange):
        session.move(change.from_path, parent_path(change.to_path), policy)
        source_name, target_name = split_path(change.from_path)[-1], split_path(change.to_path)[-1]
        if source_name != target_name:
            session.rename(join_path(parent_path(change.to_path), source_name), target_name, policy)
    elif isinstance(change, RenameChange):
        session.rename(change.path, change.new_name, policy)
    else:
        session.delete(change.path)

@app.command()
def plan(
    path: Path = typer.Argument(..., help="Directory the change log was recorded against.", resolve_path=True),
    changes: Path = typer.Option(..., "--changes", "-c", help="JSON file with the change log.", exists=True, dir_okay=False),
):
    """Dry run: shows the tree a change log would produce, without touching the disk."""
    try:
        change_log = wire.parse_change_log(_read_json(changes, "change log"))
        session = EditSession(_scan(path), root_path=str(path))
        for change in change_log:
            _replay(session, change)
    except FolderPlanError as e:
        _fail(e)
    _emit_json({
        "changed": session.has_changes(),
        "stats": wire.dump_stats(session.stats()),
        "summary": wire.dump_summary(session.summary()),
    })


if __name__ == "__main__":
    app()
