#!/usr/bin/env python3
"""
Command-line interface for running a document generation worker.
"""

import argparse
import logging
import sys

from . import configure_logging
from ..config import Config
from ..exceptions import DocgenError
from ..queue.worker import DocumentWorker


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Document Generation Worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Process the queue every 60 seconds using ./config.yaml
  docgen-worker

  # Drain the queue once and exit (for cron or another scheduler)
  docgen-worker --once

  # Run with a custom config file, instance id and interval
  docgen-worker --config /etc/docgen.yaml --instance-id docgen-prod-01 --interval 30

Environment Variables:
  DOCGEN_CONFIG_PATH: Path to configuration file (default: ./config.yaml)
        """
    )

    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file (overrides DOCGEN_CONFIG_PATH)"
    )

    parser.add_argument(
        "--instance-id",
        help="Worker instance id (default: processing.instance_id or the host name)"
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single processing cycle and exit"
    )
    mode.add_argument(
        "--interval", "-i",
        type=float,
        help="Seconds between processing cycles (default: processing.interval)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: logging.level or INFO)"
    )

    parser.add_argument(
        "--log-file",
        help="Log to file instead of stderr"
    )

    return parser


def main(argv=None):
    """Main entry point for the document worker."""
    args = build_parser().parse_args(argv)

    try:
        config = Config(args.config)
    except DocgenError as e:
        configure_logging("ERROR")
        logging.getLogger(__name__).error(f"Cannot load configuration: {e}")
        return 1

    configure_logging(args.log_level or config.get_log_level(), args.log_file or config.get_log_file())
    logger = logging.getLogger(__name__)

    try:
        logger.info("Starting document generation worker")
        logger.info(f"Config file: {config.config_path}")

        worker = DocumentWorker(config, args.instance_id)
        stats = worker.start(once=args.once, interval=args.interval)

        logger.info(f"Worker {worker.instance_id} stopped")
        logger.info(f"  Cycles: {stats['cycles']} ({stats['failed_cycles']} failed)")
        logger.info(f"  Items processed: {stats['items_processed']}")
        logger.info(f"  Items failed: {stats['items_failed']}")

        if stats.get('start_time') and stats.get('end_time'):
            runtime = stats['end_time'] - stats['start_time']
            logger.info(f"  Runtime: {runtime:.1f} seconds")

        return 0

    except KeyboardInterrupt:
        logger.info("Worker shutdown requested by user")
        return 1

    except DocgenError as e:
        logger.error(f"Worker failed: {str(e)}")
        logger.debug("Exception details:", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
