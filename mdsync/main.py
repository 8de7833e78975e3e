#!/usr/bin/env python3
"""CLI entry point for the Markdown to Notion sync tool."""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .core.client import NotionAPIError, NotionClient, PermanentRemoteError
from .core.files import ensure_front_matter, list_markdown_files, load_source
from .core.operations import SyncOperations, SyncResult, build_document
from .core.watcher import WatchService
from .models.config import DEFAULT_CONFIG_FILENAME, SyncConfig
from .models.document import ValidationError

console = Console()
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", log_file: str = "") -> None:
    """Send log records to the console through rich, and optionally a file."""
    handlers: list[logging.Handler] = [
        RichHandler(console=console, show_path=False, rich_tracebacks=True)
    ]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )
    # urllib3 logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config(args: argparse.Namespace) -> tuple[SyncConfig, Path]:
    """Load the config file named on the command line (or the default)."""
    config_path = Path(args.config)
    config = SyncConfig.load(config_path)
    return config, config_path.resolve().parent


def _print_results(results: list[SyncResult]) -> tuple[int, int, int]:
    """Print per-file results and return (synced, skipped, failed) counts."""
    for result in results:
        if not result.success:
            console.print(f"[red]FAILED: {result.filepath}")
            console.print(f"        {result.message}")
        elif result.skipped:
            console.print(f"[dim]{result.message}[/dim]")
        else:
            console.print(f"[green]{result.message}")

    synced = sum(1 for r in results if r.success and not r.skipped)
    skipped = sum(1 for r in results if r.skipped)
    failed = sum(1 for r in results if not r.success)
    return synced, skipped, failed


def cmd_verify_auth(args: argparse.Namespace) -> int:
    """Verify API authentication and database access."""
    console.print("Verifying Notion API credentials...", style="blue")

    try:
        client = NotionClient()
        if not client.verify_connection():
            console.print("[red]Authentication failed: unexpected response")
            return 1
        console.print(f"[green]Authentication successful! (token {client.auth.masked_token()})")

        config, base_dir = load_config(args)
        if config.notion.database_id:
            ops = SyncOperations(config, client=client, base_dir=base_dir)
            schema = ops.reconciler.load_schema()
            console.print(f"[green]Database reachable: {len(schema)} properties")
        return 0
    except NotionAPIError as e:
        console.print(f"[red]Authentication failed: {e}")
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Configuration error: {e}")

    return 1


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync Markdown files to Notion."""
    config, base_dir = load_config(args)
    ops = SyncOperations(config, base_dir=base_dir)

    files = [Path(f) for f in args.files] if args.files else None
    missing = [f for f in files or [] if not f.is_file()]
    if missing:
        for f in missing:
            console.print(f"[red]File not found: {f}")
        return 1

    console.print(f"Syncing {ops.content_dir} to Notion...", style="blue")
    if args.force:
        console.print("[yellow](FORCE - will resync unchanged files)")

    try:
        results = ops.sync_all(force=args.force, files=files)
    except PermanentRemoteError as e:
        console.print(f"[red]Aborted: {e}")
        return 1
    except (ValueError, ValidationError, NotionAPIError) as e:
        console.print(f"[red]Configuration error: {e}")
        return 1

    synced, skipped, failed = _print_results(results)
    console.print(
        f"\n[bold]Summary:[/bold] {synced} synced, {skipped} skipped, "
        f"{failed} failed of {len(results)}"
    )
    return 0 if failed == 0 else 1


def cmd_watch(args: argparse.Namespace) -> int:
    """Sync once, then keep syncing files as they change."""
    config, base_dir = load_config(args)
    ops = SyncOperations(config, base_dir=base_dir)
    service = WatchService(ops, on_result=lambda result: _print_results([result]))

    console.print(f"Watching {ops.content_dir} (Ctrl+C to stop)", style="blue")
    try:
        service.run()
    except PermanentRemoteError as e:
        console.print(f"[red]Aborted: {e}")
        return 1
    except (ValueError, ValidationError, NotionAPIError) as e:
        console.print(f"[red]Configuration error: {e}")
        return 1
    return 0


def cmd_prune(args: argparse.Namespace) -> int:
    """Archive managed pages that have no local file."""
    config, base_dir = load_config(args)
    ops = SyncOperations(config, base_dir=base_dir)

    if args.dry_run:
        console.print("[yellow](DRY RUN - no pages will be archived)")

    try:
        pruned = ops.prune(dry_run=args.dry_run)
    except (ValueError, ValidationError, NotionAPIError) as e:
        console.print(f"[red]Prune failed: {e}")
        return 1

    if not pruned:
        console.print("[green]Nothing to prune.")
        return 0

    table = Table(title="Orphaned Pages")
    table.add_column("Slug")
    table.add_column("Page ID")
    table.add_column("Archived")
    for record in pruned:
        archived = "[green]Yes" if record.archived else "[yellow]Would archive"
        table.add_row(record.slug or "[dim](none)[/dim]", record.page_id, archived)
    console.print(table)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show sync status."""
    config, base_dir = load_config(args)
    ops = SyncOperations(config, base_dir=base_dir)
    try:
        status = ops.get_status()
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1

    console.print(f"\n[bold]Content Directory:[/bold] {status['content_dir']}")
    console.print(f"[bold]Database:[/bold] {config.notion.database_id or '[red]not configured'}")
    console.print(f"[bold]Tracked Files:[/bold] {status['tracked_files']}")

    if status["files"]:
        table = Table()
        table.add_column("Path")
        table.add_column("Slug")
        table.add_column("Last Sync")

        for f in status["files"]:
            table.add_row(f["path"], f["slug"], f["last_sync"][:19] if f["last_sync"] else "Never")

        console.print(table)
    else:
        console.print("[dim]No files tracked yet. Run 'sync' to start syncing.[/dim]")

    if status["pending"]:
        console.print(f"\n[bold]Pending:[/bold] {len(status['pending'])}")
        for path in status["pending"]:
            console.print(f"  [yellow]{path}")

    return 0


def cmd_frontmatter(args: argparse.Namespace) -> int:
    """Add default front matter to every Markdown file."""
    config, base_dir = load_config(args)
    content_dir, _ = config.resolve_paths(base_dir)

    changed = 0
    files = list_markdown_files(content_dir, config.should_exclude)
    for path in files:
        try:
            if ensure_front_matter(path, config.settings.default_status, force=args.force):
                changed += 1
                console.print(f"[green]Updated: {path.relative_to(content_dir)}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            console.print(f"[red]FAILED: {path.relative_to(content_dir)}: {e}")

    console.print(f"\n[bold]Summary:[/bold] {changed} updated of {len(files)}")
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    """Print the Notion blocks for one Markdown file."""
    try:
        document = build_document(load_source(Path(args.file)), full_page=args.full_page)
    except (OSError, ValueError, ValidationError) as e:
        console.print(f"[red]Cannot convert {args.file}: {e}")
        return 1

    console.print(f"[bold]{document.title}[/bold] ({document.slug})")
    console.print_json(json.dumps(document.to_notion_blocks(), ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mdsync",
        description="Sync Markdown files to a Notion database",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_FILENAME,
        help=f"Config file (default: {DEFAULT_CONFIG_FILENAME})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Sync files to Notion")
    sync_parser.add_argument("files", nargs="*", help="Specific files to sync")
    sync_parser.add_argument("--force", action="store_true", help="Resync unchanged files")

    # watch command
    subparsers.add_parser("watch", help="Sync files whenever they change")

    # prune command
    prune_parser = subparsers.add_parser("prune", help="Archive pages with no local file")
    prune_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")

    # status command
    subparsers.add_parser("status", help="Show sync status")

    # verify-auth command
    subparsers.add_parser("verify-auth", help="Verify API authentication")

    # frontmatter command
    fm_parser = subparsers.add_parser("frontmatter", help="Add default front matter to files")
    fm_parser.add_argument("--force", action="store_true", help="Overwrite existing values")

    # convert command
    convert_parser = subparsers.add_parser("convert", help="Print the Notion blocks for a file")
    convert_parser.add_argument("file", help="Markdown file")
    convert_parser.add_argument("--full-page", action="store_true", help="Prepend title and byline")

    return parser


COMMANDS = {
    "sync": cmd_sync,
    "watch": cmd_watch,
    "prune": cmd_prune,
    "status": cmd_status,
    "verify-auth": cmd_verify_auth,
    "frontmatter": cmd_frontmatter,
    "convert": cmd_convert,
}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    try:
        settings = SyncConfig.load(Path(args.config)).settings
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid config {args.config}: {e}")
        return 1
    setup_logging("DEBUG" if args.verbose else settings.log_level, settings.log_file)
    logger.debug("Config: %s", Path(args.config).resolve())

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
