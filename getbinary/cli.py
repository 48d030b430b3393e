"""Command-line interface for getbinary."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from rich.table import Table

from . import __version__
from .batch import get_binaries
from .cache import FingerprintCache
from .config import GetBinaryConfig
from .utils import console, log, setup_logging

logger = logging.getLogger(__name__)


def fetch_binaries(args: argparse.Namespace, config: GetBinaryConfig) -> int:
    """Fetch the binaries declared in the config file."""
    requests = _select_binaries(args.binaries, config)
    if not requests:
        log("No binaries to fetch", "warning")
        return 0

    result = get_binaries(
        requests,
        force_fetch=args.force,
        config=config,
        show_progress=not args.no_progress,
    )

    table = Table(title="Binaries")
    table.add_column("Name", style="green")
    table.add_column("Source", style="blue")
    table.add_column("Path")
    for name, binary in sorted(result.resolved.items()):
        table.add_row(name, binary.source.value, binary.path)
    console.print(table)

    for message in result.errors:
        log(message, "error")

    log(
        f"Completed: {len(result.resolved)} resolved, {len(result.errors)} failed",
        "info",
        "🔄",
    )
    return 0 if result.ok else 1


def _select_binaries(names: list[str], config: GetBinaryConfig) -> list[dict[str, Any]]:
    """Pick the requested binaries out of the config, all when none are named."""
    if not names:
        return list(config.binaries)
    known = set(config.binary_names())
    unknown = [n for n in names if n not in known]
    if unknown:
        log(f"Unknown binaries: {', '.join(unknown)}", "error")
        sys.exit(1)
    return [b for b in config.binaries if isinstance(b, dict) and b.get("name") in names]


def list_binaries(_args: argparse.Namespace, config: GetBinaryConfig) -> int:
    """List binaries declared in the config."""
    log("Declared binaries:", "info", "🔧")
    for binary in config.binaries:
        if not isinstance(binary, dict):
            continue
        url = binary.get("url") or (binary.get("remote") or {}).get("url")
        console.print(f"  [green]{binary.get('name', '?')}[/green] (from {url})")
    return 0


def show_cache(_args: argparse.Namespace, config: GetBinaryConfig) -> int:
    """Print every cache entry."""
    entries = FingerprintCache(config.cache_file).entries()
    if not entries:
        log(f"Cache {config.cache_file} is empty", "info")
        return 0

    table = Table(title=str(config.cache_file))
    table.add_column("URL", style="blue")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    table.add_column("Hash")
    for url, entry in sorted(entries.items()):
        table.add_row(url, entry.binary_path, str(entry.total_size), entry.content_hash[:12])
    console.print(table)
    return 0


def prune_cache(_args: argparse.Namespace, config: GetBinaryConfig) -> int:
    """Drop cache entries whose directory is gone."""
    removed = FingerprintCache(config.cache_file).prune()
    for url in removed:
        console.print(f"  [yellow]removed[/yellow] {url}")
    log(f"Pruned {len(removed)} cache entries", "success")
    return 0


def clear_cache(_args: argparse.Namespace, config: GetBinaryConfig) -> int:
    """Forget every download; files on disk are left alone."""
    FingerprintCache(config.cache_file).clear()
    log(f"Cleared {config.cache_file}", "success")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="getbinary - Fetch prebuilt binaries for this platform",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        help="Path to configuration file (default: ~/.getbinary/binaries.yaml)",
    )
    parser.add_argument(
        "--binaries-dir",
        type=str,
        help="Directory binaries are extracted into",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch binaries")
    fetch_parser.add_argument(
        "binaries",
        nargs="*",
        help="Binaries to fetch (all if not specified)",
    )
    fetch_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Download again even if the binary is already available",
    )
    fetch_parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not render download progress bars",
    )
    fetch_parser.set_defaults(func=fetch_binaries)

    # list command
    list_parser = subparsers.add_parser("list", help="List declared binaries")
    list_parser.set_defaults(func=list_binaries)

    # cache commands
    cache_parser = subparsers.add_parser("cache", help="Inspect the download cache")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command")
    cache_subparsers.add_parser("show", help="Show cache entries").set_defaults(func=show_cache)
    cache_subparsers.add_parser(
        "prune",
        help="Remove entries whose directory no longer exists",
    ).set_defaults(func=prune_cache)
    cache_subparsers.add_parser("clear", help="Remove all entries").set_defaults(func=clear_cache)

    # version command
    version_parser = subparsers.add_parser("version", help="Print version information")
    version_parser.set_defaults(
        func=lambda _, __: console.print(f"[yellow]getbinary[/] [bold]v{__version__}[/]") or 0,
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main function to parse arguments and execute commands."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        config = GetBinaryConfig.load_from_file(args.config_file)

        if args.binaries_dir:
            config.binaries_dir = Path(args.binaries_dir).expanduser()

        if hasattr(args, "func"):
            code = args.func(args, config)
        else:
            parser.print_help()
            code = 0

    except Exception as e:
        log(f"Error: {e!s}", "error")
        if args.verbose:
            console.print_exception()
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
