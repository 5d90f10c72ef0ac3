#!/usr/bin/env python3
"""
bksync - keep a catalog of browser extensions and bookmarks in sync.

Reconciles live browser state, the locally stored snapshot, imported files
and the remote backup into one snapshot.
"""
import sys
import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from bksync.browser import detect_host, find_chrome_profiles
from bksync.catalog import CatalogView
from bksync.config import init_config, get_config
from bksync.snapshot import is_folder, is_leaf
from bksync.storage import get_store
from bksync.sync import ActionResult, SyncEngine

logger = logging.getLogger(__name__)


console = Console()
err_console = Console(stderr=True)


def setup_consoles(color: bool) -> None:
    """Rebuild the output consoles, honouring the color_output setting."""
    global console, err_console
    console = Console(no_color=not color)
    err_console = Console(stderr=True, no_color=not color)


def setup_logging(level: str) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def get_engine(args) -> SyncEngine:
    """Build the orchestrator from the active configuration."""
    config = get_config()
    return SyncEngine(get_store(config.database), detect_host(config), config=config)


def run(coro) -> ActionResult:
    return asyncio.run(coro)


def report(result: ActionResult, args) -> None:
    """Print an action result; exit non-zero on failure."""
    if not result.success:
        console.print(f"[red]{escape(result.message)}[/red]")
        sys.exit(1)
    if not args.quiet:
        console.print(f"[green]{escape(result.message)}[/green]")


def output_extensions(extensions: List[Dict[str, Any]], format: str = "table"):
    """Output extension records in the specified format."""
    if format == "json":
        print(json.dumps(extensions, indent=2))
    elif format == "table":
        table = Table(title="Extensions")
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Homepage", style="blue")

        for ext in extensions:
            table.add_row(
                escape(str(ext.get("id") or "")),
                escape(str(ext.get("name") or "")[:50]),
                escape(str(ext.get("homepageUrl") or "")[:60]),
            )

        console.print(table)
    else:  # plain
        for ext in extensions:
            print(f"{ext.get('id') or '-'}\t{ext.get('name') or ''}")


def _add_tree_nodes(tree: Tree, nodes: List[Any]):
    for node in nodes:
        if is_folder(node):
            branch = tree.add(f"[bold yellow]{escape(str(node.get('title') or '(untitled)'))}[/bold yellow]")
            _add_tree_nodes(branch, node["children"])
        elif is_leaf(node):
            tree.add(f"{escape(str(node.get('title') or node['url']))} [dim]{escape(str(node['url']))}[/dim]")


def output_bookmarks(bookmarks: List[Any], format: str = "table"):
    """Output a bookmark forest in the specified format."""
    if format == "json":
        print(json.dumps(bookmarks, indent=2))
    elif format == "table":
        tree = Tree("Bookmarks")
        _add_tree_nodes(tree, bookmarks)
        console.print(tree)
    else:  # plain
        def walk(nodes, depth=0):
            for node in nodes:
                if is_folder(node):
                    print(f"{'  ' * depth}{node.get('title') or '(untitled)'}/")
                    walk(node["children"], depth + 1)
                elif is_leaf(node):
                    print(f"{'  ' * depth}{node['url']}")
        walk(bookmarks)


def cmd_load(args):
    """Reconcile stored and live data."""
    engine = get_engine(args)
    result = run(engine.load(persist=args.save))
    report(result, args)


def cmd_import(args):
    """Import a snapshot file."""
    engine = get_engine(args)
    result = run(engine.import_file(Path(args.file), sync_browser=args.sync_browser or None))
    report(result, args)


def cmd_export(args):
    """Export stored and live data to a file."""
    engine = get_engine(args)
    result = run(engine.export(Path(args.file), args.format))
    report(result, args)


def cmd_backup(args):
    """Back up to the remote store."""
    engine = get_engine(args)
    result = run(engine.backup())
    report(result, args)


def cmd_restore(args):
    """Restore from the remote store, then reconcile with the live browser."""
    engine = get_engine(args)
    result = run(engine.restore())
    report(result, args)

    reload = run(engine.load(persist=True))
    report(reload, args)


def cmd_account(args):
    """Show or set the remote account ID."""
    engine = get_engine(args)

    if args.action == "show":
        account_id = asyncio.run(engine.account_id())
        if account_id:
            print(account_id)
        else:
            console.print("[yellow]No account ID set[/yellow]")
    elif args.action == "set":
        if not args.account_id:
            console.print("[red]Account ID required for 'set'[/red]")
            sys.exit(1)
        report(run(engine.set_account_id(args.account_id)), args)


def cmd_list(args):
    """List reconciled extensions or bookmarks."""
    engine = get_engine(args)
    result = run(engine.load())
    if not result.success:
        report(result, args)

    view = CatalogView.from_snapshot(result.snapshot)
    if args.kind == "extensions":
        output_extensions(view.filter_extensions(args.filter or ""), args.output)
    else:
        output_bookmarks(view.filter_bookmarks(args.filter or ""), args.output)


def cmd_bookmark(args):
    """Live bookmark operations."""
    engine = get_engine(args)
    if args.bookmark_command == "remove":
        report(run(engine.remove_bookmark(args.id)), args)


def cmd_extension(args):
    """Extension operations."""
    engine = get_engine(args)
    command = args.extension_command

    if command == "enable":
        result = run(engine.set_extension_enabled(args.id, True))
    elif command == "disable":
        result = run(engine.set_extension_enabled(args.id, False))
    elif command == "uninstall":
        result = run(engine.uninstall_extension(args.id))
    else:  # forget
        result = run(engine.forget_extension(args.id))
    report(result, args)


def cmd_profiles(args):
    """List detected browser profiles."""
    profiles = find_chrome_profiles()

    if not profiles:
        console.print("[yellow]No browser profiles detected[/yellow]")
        return

    if args.output == "json":
        print(json.dumps([
            {"browser": p.browser, "profile_name": p.name, "path": str(p.path), "is_default": p.is_default}
            for p in profiles
        ], indent=2))
        return

    table = Table(title="Detected Browser Profiles")
    table.add_column("Browser", style="cyan")
    table.add_column("Profile", style="white")
    table.add_column("Path", style="dim")
    table.add_column("Default", style="green")

    for profile in profiles:
        table.add_row(profile.browser, profile.name, str(profile.path),
                      "✓" if profile.is_default else "")

    console.print(table)


def _coerce(current: Any, value: str) -> Any:
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    return value


def cmd_config(args):
    """Manage configuration."""
    config = get_config()

    if args.action == "show":
        if args.key:
            if not hasattr(config, args.key):
                console.print(f"[red]Unknown config key: {escape(str(args.key))}[/red]")
                sys.exit(1)
            print(getattr(config, args.key))
        else:
            print(json.dumps(asdict(config), indent=2))

    elif args.action == "set":
        if not hasattr(config, args.key or ""):
            console.print(f"[red]Unknown config key: {escape(str(args.key))}[/red]")
            sys.exit(1)
        setattr(config, args.key, _coerce(getattr(config, args.key), args.value))
        config.save()
        if not args.quiet:
            console.print(f"[green]Set {args.key} = {args.value}[/green]")

    elif args.action == "init":
        config_path = Path.home() / ".config" / "bksync" / "config.toml"
        config.save(config_path)
        console.print(f"[green]Created config at {config_path}[/green]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bksync",
        description="bksync - keep browser extensions and bookmarks in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bksync load --save
  bksync import backup.json
  bksync export bookmarks.html --format html
  bksync account set <pantry-id>
  bksync backup
  bksync restore
  bksync list bookmarks --filter python

Configuration:
  Default database: ./bksync.db or from config
  Config file: ~/.config/bksync/config.toml
  Environment: BKSYNC_DATABASE, BKSYNC_CHROME_PROFILE
        """
    )

    parser.add_argument("--db", help="Local snapshot database (default: bksync.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("--profile", help="Browser profile directory")
    parser.add_argument("--browser", help="Browser name recorded in snapshots")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-o", "--output", choices=["table", "json", "plain"],
                        help="Output format")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    load_parser = subparsers.add_parser("load", help="Reconcile stored and live data")
    load_parser.add_argument("--save", action="store_true", help="Persist the merged snapshot")
    load_parser.set_defaults(func=cmd_load)

    import_parser = subparsers.add_parser("import", help="Import a snapshot JSON file")
    import_parser.add_argument("file", help="Snapshot file")
    import_parser.add_argument("--sync-browser", action="store_true",
                               help="Rebuild the browser's bookmarks bar from the import")
    import_parser.set_defaults(func=cmd_import)

    export_parser = subparsers.add_parser("export", help="Export stored and live data")
    export_parser.add_argument("file", help="Output file")
    export_parser.add_argument("--format", choices=["json", "html", "extensions-html"],
                               help="Export format (default: json)")
    export_parser.set_defaults(func=cmd_export)

    backup_parser = subparsers.add_parser("backup", help="Back up to the remote store")
    backup_parser.set_defaults(func=cmd_backup)

    restore_parser = subparsers.add_parser("restore", help="Restore from the remote store")
    restore_parser.set_defaults(func=cmd_restore)

    account_parser = subparsers.add_parser("account", help="Remote account ID")
    account_parser.add_argument("action", choices=["show", "set"])
    account_parser.add_argument("account_id", nargs="?", help="Account ID (for set)")
    account_parser.set_defaults(func=cmd_account)

    list_parser = subparsers.add_parser("list", help="List reconciled data")
    list_parser.add_argument("kind", choices=["extensions", "bookmarks"])
    list_parser.add_argument("--filter", "-f", help="Case-insensitive filter")
    list_parser.set_defaults(func=cmd_list)

    bookmark_parser = subparsers.add_parser("bookmark", help="Live bookmark operations")
    bookmark_subparsers = bookmark_parser.add_subparsers(dest="bookmark_command", required=True)
    bm_remove = bookmark_subparsers.add_parser("remove", help="Remove a bookmark or folder")
    bm_remove.add_argument("id", help="Bookmark ID")
    bm_remove.set_defaults(func=cmd_bookmark)

    extension_parser = subparsers.add_parser("extension", help="Extension operations")
    extension_subparsers = extension_parser.add_subparsers(dest="extension_command", required=True)
    for name, help_text in [
        ("enable", "Enable an installed extension"),
        ("disable", "Disable an installed extension"),
        ("uninstall", "Uninstall an extension"),
        ("forget", "Remove an extension from the stored list"),
    ]:
        sub = extension_subparsers.add_parser(name, help=help_text)
        sub.add_argument("id", help="Extension ID")
        sub.set_defaults(func=cmd_extension)

    profiles_parser = subparsers.add_parser("profiles", help="List detected browser profiles")
    profiles_parser.set_defaults(func=cmd_profiles)

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("action", choices=["show", "set", "init"],
                               help="Config action")
    config_parser.add_argument("key", nargs="?", help="Config key")
    config_parser.add_argument("value", nargs="?", help="Config value (for set)")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = init_config(
        database=args.db,
        config_file=Path(args.config) if args.config else None,
        chrome_profile=args.profile,
        browser_name=args.browser,
        output_format=args.output,
    )
    setup_consoles(config.color_output)
    setup_logging(config.log_level)

    if not args.output:
        args.output = config.output_format

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
