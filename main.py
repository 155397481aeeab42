# =============================================================================
# main.py - CLI entry point
# =============================================================================

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from core.errors import ScimSyncError
from core.runner import run_scim_sync, check_connections
from core.sync import format_statistics
from utils.config import Config, SOURCE_CSV, SOURCE_LDAP
from utils.csv_utils import write_sync_report


def setup_logging(level: str = "INFO") -> str:
    """Setup logging configuration with both console and file output"""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_dir / f"scim_sync_{timestamp}.log"

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # Statistics go to stdout, so console logging uses stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Console: {level.upper()}, File: DEBUG")
    logger.info(f"Log file: {log_filename}")

    return str(log_filename)


def handle_sync(args, config) -> int:
    """Run a sync and print the statistics"""
    logger = logging.getLogger(__name__)

    stat = run_scim_sync(
        config,
        source_type=args.source,
        verbose=True if args.verbose else None,
        destructive=args.destructive,
        update_users=True if args.update_users else None,
    )
    sys.stdout.write(format_statistics(stat))

    if args.report:
        write_sync_report(stat, args.report)

    if stat.has_failures:
        logger.warning("Sync completed with failures or skipped operations")
    return 0


def handle_test_connection(args, config) -> int:
    logger = logging.getLogger(__name__)
    if check_connections(config, source_type=args.source):
        logger.info("Identity source and SCIM endpoint are reachable")
        return 0
    logger.error("Connection test failed")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Directory to SCIM sync")
    subparsers = parser.add_subparsers(dest='command', help='Command')

    sync_parser = subparsers.add_parser('sync', help='Reconcile the SCIM target with the directory')
    sync_parser.add_argument('--verbose', action='store_true',
                             help='Report skipped operations as failures')
    sync_parser.add_argument('--destructive', type=int,
                             help='Deletion policy: -1 safe mode, 0 partial, 1 full')
    sync_parser.add_argument('--update-users', action='store_true',
                             help='Create, update and delete SCIM users')
    sync_parser.add_argument('--report', help='Write the sync outcome to a CSV file')

    subparsers.add_parser('test-connection', help='Check the directory and SCIM endpoint')

    # Global arguments
    parser.add_argument('--source', choices=[SOURCE_LDAP, SOURCE_CSV],
                        help='Identity source (default from SCIM_SOURCE)')
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser


def main(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)
    config = Config()

    handlers = {
        'sync': handle_sync,
        'test-connection': handle_test_connection,
    }

    try:
        return handlers[args.command](args, config)
    except ScimSyncError as e:
        logger.error(f"Sync failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
