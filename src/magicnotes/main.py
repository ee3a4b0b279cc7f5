#!/usr/bin/env python
"""Main entry point for the MagicNotes MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from magicnotes.config import config
from magicnotes.models.db_models import init_db
from magicnotes.observability import configure_logging
from magicnotes.server.mcp_server import MagicNotesMcpServer
from magicnotes.storage.sqlite_store import SqliteKeyValueStore


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="MagicNotes MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("MAGICNOTES_DATABASE_PATH")
    )
    parser.add_argument(
        "--autosave-delay",
        help="Seconds of inactivity before an edited note is saved",
        type=float,
        default=None
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("MAGICNOTES_LOG_DIR")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("MAGICNOTES_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.autosave_delay is not None:
        if args.autosave_delay <= 0:
            raise ValueError("--autosave-delay must be > 0")
        config.autosave_delay = args.autosave_delay


def main(argv=None):
    """Run the MagicNotes MCP server."""
    args = parse_args(argv)
    update_config(args)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=args.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting MagicNotes MCP server")
        server = MagicNotesMcpServer(port=SqliteKeyValueStore(engine=engine))
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
