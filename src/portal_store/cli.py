"""Command-line interface for portal_store.

Subcommands:

- ``sync``    -- pull the shared subtree from the primary store.
- ``catalog`` -- print the reconciled catalog.
- ``compare`` -- compare the primary and local ledgers.
- ``status``  -- show connectivity and the last sync time.

Command output goes to stdout; log records go to stderr (and the log file
when one is configured).
"""

import argparse
import asyncio
import json
import logging
import sys

import yaml
from dotenv import load_dotenv

from . import __version__
from .catalog.reporter import catalog_to_json, format_catalog, format_comparison
from .config import load_config
from .config_loader import load_hierarchical_config
from .errors import PortalStoreError
from .logger import setup_logging
from .service import PortalStore
from .sync.models import SyncMode
from .sync.reporter import format_sync_report, format_sync_status, report_to_json

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portal-store",
        description="Catalog reconciliation and primary-to-local sync for the knowledge portal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Pull changed files from the primary store
  portal-store --primary /mnt/portal sync

  # Overwrite the local copy of the shared subtree
  portal-store sync --force

  # Show the reconciled catalog as JSON
  portal-store catalog --json

Configuration is read from PORTAL_STORE_CONFIG, ./.portal_store/config.yml
and ~/.config/portal_store/config.yml, then .env and environment variables.
        """,
    )
    parser.add_argument(
        "--primary",
        help="Primary store root (takes precedence over PORTAL_PRIMARY_ROOT and config files)",
    )
    parser.add_argument(
        "--local",
        help="Local store root (takes precedence over PORTAL_LOCAL_ROOT and config files)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append log records to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"portal-store version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Pull the shared subtree from the primary store")
    sync.add_argument(
        "--force",
        action="store_true",
        help="Copy every file instead of only missing or newer ones",
    )
    sync.add_argument("--json", action="store_true", help="Print the report as JSON")

    catalog = sub.add_parser("catalog", help="Print the reconciled catalog")
    catalog.add_argument("--json", action="store_true", help="Print items as JSON")

    compare = sub.add_parser("compare", help="Compare primary and local ledgers")
    compare.add_argument("--json", action="store_true", help="Print counts as JSON")

    status = sub.add_parser("status", help="Show sync status")
    status.add_argument("--json", action="store_true", help="Print status as JSON")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _dispatch(store: PortalStore, args: argparse.Namespace) -> int:
    if args.command == "sync":
        mode = SyncMode.FORCE if args.force else SyncMode.SMART
        report = await store.synchronize(mode)
        if args.json:
            _print_json(report_to_json(report))
        else:
            print(format_sync_report(report))
        return 0 if report.success else 1

    if args.command == "catalog":
        items = await store.reconcile_catalog()
        if args.json:
            _print_json(catalog_to_json(items))
        else:
            print(format_catalog(items))
        return 0

    if args.command == "compare":
        comparison = await store.compare()
        if args.json:
            _print_json(comparison.summary())
        else:
            print(format_comparison(comparison))
        return 0

    status = await store.sync_status()
    if args.json:
        _print_json(status.model_dump())
    else:
        print(format_sync_status(status))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    args = build_parser().parse_args(argv)

    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()
    try:
        raw = load_hierarchical_config()
        config = load_config(primary_root=args.primary, local_root=args.local, raw=raw)
    except (ValueError, OSError, yaml.YAMLError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        level=config.logging.level,
    )

    store = PortalStore(config)
    try:
        return asyncio.run(_dispatch(store, args))
    except PortalStoreError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
