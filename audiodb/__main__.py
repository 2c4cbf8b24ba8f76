"""
audiodb - Entry Point

Run with: python -m audiodb
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from audiodb import __version__
from audiodb.config import AudioDbConfig, load_config
from audiodb.core.library import AudioLibrary
from audiodb.core.library_db import LibraryDb


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="audiodb",
        description="Scan audio files into a normalized SQLite metadata store",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="TOML config file (default: packaged defaults)",
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Database path (overrides [database].path)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Scan folders and store their audio metadata")
    scan.add_argument("roots", type=Path, nargs="+", help="Folders to scan")

    commands.add_parser("stats", help="Print row counts of the library tables")

    return parser.parse_args(argv)


async def run_scan(config: AudioDbConfig, db_path: str, roots: list[Path]) -> int:
    db = LibraryDb(db_path, config=config.database)
    await db.open()
    try:
        library = AudioLibrary(
            db=db,
            scan_settings=config.scan,
            dedupe_unknown_artist_albums=config.database.dedupe_unknown_artist_albums,
        )
        await library.initialize()
        summary = await library.scan(roots)
    finally:
        await db.close()
    return 1 if summary.errors and not summary.added_tracks else 0


async def run_stats(config: AudioDbConfig, db_path: str) -> int:
    db = LibraryDb(db_path, config=config.database)
    await db.open()
    try:
        await db.ensure_schema()
        counts = await db.stats()
    finally:
        await db.close()

    for table, count in counts.items():
        print(f"{table:<16} {count}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
        db_path = args.db or config.database.path
        if args.command == "scan":
            logger.info("Scanning %d folder(s) into %s", len(args.roots), db_path)
            return asyncio.run(run_scan(config, db_path, args.roots))
        return asyncio.run(run_stats(config, db_path))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
