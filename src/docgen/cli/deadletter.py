#!/usr/bin/env python3
"""
CLI interface for managing exhausted (dead letter) queue items.
"""

import argparse
import json
import sys
from datetime import datetime
from typing import List, Optional

from . import configure_logging
from ..config import Config
from ..exceptions import DocgenError, ItemNotFoundError
from ..queue.dead_letter import DeadLetterQueue
from ..queue.models import QueueItem


def format_timestamp(timestamp: Optional[datetime]) -> str:
    """Format timestamp for display."""
    if not timestamp:
        return "N/A"
    return timestamp.strftime("%Y-%m-%d %H:%M:%S")


def _shorten(text: Optional[str], width: int) -> str:
    text = text or ""
    return (text[:width - 3] + "...") if len(text) > width else text


def display_dead_letter_items(items: List[QueueItem], show_details: bool = False):
    """Display dead letter items in a formatted table."""
    if not items:
        print("No items in dead letter queue")
        return

    print(f"\nDEAD LETTER QUEUE ({len(items)} items)")
    print("=" * 100)

    if show_details:
        for i, item in enumerate(items, 1):
            print(f"\n[{i}] {item.insurance_ref} - {item.document_type.name}")
            print(f"    Item ID: {item.id}")
            print(f"    File Key: {item.insurance_file_key}")
            print(f"    Client: {item.client_id}")
            print(f"    Requested By: {item.user or 'N/A'}")
            print(f"    Created At: {format_timestamp(item.created_at)}")
            print(f"    Failed At: {format_timestamp(item.failed_at)}")
            print(f"    Attempts: {item.attempts}")
            print(f"    Error: {item.failure_reason}")
    else:
        print(f"{'Item ID':<10} {'Reference':<18} {'Type':<24} {'File Key':<10} "
              f"{'Failed At':<19} {'Tries':<5} {'Error':<30}")
        print("-" * 120)

        for item in items:
            print(f"{item.id:<10} {_shorten(item.insurance_ref, 18):<18} "
                  f"{item.document_type.name:<24} {item.insurance_file_key:<10} "
                  f"{format_timestamp(item.failed_at):<19} {item.attempts:<5} "
                  f"{_shorten(item.failure_reason, 30):<30}")


def _confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    response = input(f"{prompt} (y/N): ")
    return response.lower() in ['y', 'yes']


def cmd_list(dlq: DeadLetterQueue, args) -> int:
    items = dlq.list_items(limit=args.limit)
    display_dead_letter_items(items, args.details)

    if len(items) == args.limit:
        print(f"\nShowing first {args.limit} items. Use --limit to see more.")
    return 0


def cmd_retry(dlq: DeadLetterQueue, args) -> int:
    try:
        if dlq.retry(args.item_id):
            print(f"Moved item {args.item_id} back to the queue")
            return 0
    except ItemNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1

    print(f"Item {args.item_id} is not in the dead letter queue", file=sys.stderr)
    return 1


def cmd_retry_all(dlq: DeadLetterQueue, args) -> int:
    items = dlq.list_items(limit=args.limit)
    if not items:
        print("No dead letter items to retry")
        return 0

    if not _confirm(f"Retry {len(items)} failed documents?", args.yes):
        print("Operation cancelled")
        return 1

    retried = dlq.retry_all(limit=args.limit)
    print(f"Moved {retried}/{len(items)} items back to the queue")
    return 0


def cmd_purge(dlq: DeadLetterQueue, args) -> int:
    if not _confirm(f"Permanently delete dead letter items older than "
                    f"{args.older_than_days} days?", args.yes):
        print("Operation cancelled")
        return 1

    purged = dlq.purge(older_than_days=args.older_than_days)
    print(f"Purged {purged} dead letter items")
    return 0


def cmd_stats(dlq: DeadLetterQueue, args) -> int:
    print(json.dumps(dlq.statistics(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage document requests that exhausted their retries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List dead letter items with details
  docgen-deadletter list --details

  # Retry one item
  docgen-deadletter retry 12345

  # Purge items older than 30 days without prompting
  docgen-deadletter purge --older-than-days 30 --yes
        """
    )

    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--log-level', '-l', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: WARNING)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    list_parser = subparsers.add_parser('list', help='List dead letter items')
    list_parser.add_argument('--limit', type=int, default=50,
                             help='Maximum number of items to display (default: 50)')
    list_parser.add_argument('--details', action='store_true',
                             help='Show detailed information for each item')

    retry_parser = subparsers.add_parser('retry', help='Retry one item')
    retry_parser.add_argument('item_id', type=int, help='Queue item id')

    retry_all_parser = subparsers.add_parser('retry-all', help='Retry every dead letter item')
    retry_all_parser.add_argument('--limit', type=int, default=1000,
                                  help='Maximum number of items to retry (default: 1000)')
    retry_all_parser.add_argument('--yes', '-y', action='store_true', help='Do not prompt')

    purge_parser = subparsers.add_parser('purge', help='Delete old dead letter items')
    purge_parser.add_argument('--older-than-days', type=int, default=30,
                              help='Age threshold in days (default: 30)')
    purge_parser.add_argument('--yes', '-y', action='store_true', help='Do not prompt')

    subparsers.add_parser('stats', help='Show dead letter statistics')

    return parser


def main(argv=None):
    """Main CLI entry point for dead letter queue management."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(args.log_level)

    commands = {
        'list': cmd_list,
        'retry': cmd_retry,
        'retry-all': cmd_retry_all,
        'purge': cmd_purge,
        'stats': cmd_stats
    }

    store = None
    try:
        config = Config(args.config)
        store = config.get_queue_store()
        return commands[args.command](DeadLetterQueue(store), args)

    except DocgenError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    finally:
        if store is not None:
            store.close()


if __name__ == '__main__':
    sys.exit(main())
