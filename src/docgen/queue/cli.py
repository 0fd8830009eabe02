"""
Command-line interface for managing the document generation queue.
"""

import argparse
import json
import logging
import sys

from ..cli import configure_logging
from ..config import Config
from ..exceptions import DocgenError
from ..storage.base import QueueStore
from .models import MAX_ATTEMPTS, DocumentType
from .work_queue import DocumentQueue

logger = logging.getLogger(__name__)


def _open_store(args) -> QueueStore:
    config = Config(args.config)
    return config.get_queue_store()


def _require_schema(store: QueueStore) -> bool:
    if not store.schema_exists():
        logger.error("Queue schema not initialized. Run 'init-schema' first.")
        return False
    return True


def cmd_init_schema(args):
    """Initialize the queue schema."""
    store = _open_store(args)
    try:
        if store.schema_exists() and not args.force:
            logger.info("Schema already exists. Use --force to recreate.")
            return 1

        store.initialize(force=args.force)
        logger.info("Schema initialized successfully")
        return 0
    finally:
        store.close()


def cmd_enqueue(args):
    """Add a document request to the queue."""
    store = _open_store(args)
    try:
        if not _require_schema(store):
            return 1

        queue = DocumentQueue(store)
        result = queue.enqueue(
            insurance_ref=args.insurance_ref,
            insurance_file_key=args.file_key,
            insurance_folder_key=args.folder_key,
            insurance_file_type_code=args.file_type_code,
            client_id=args.client_id,
            document_type=args.document_type,
            submitting_user=args.user
        )

        if not result:
            print(f"Failed to queue document: {result.error}", file=sys.stderr)
            return 1

        print(f"Queued {args.document_type} for {args.insurance_ref} (item {result.item_id})")
        return 0
    finally:
        store.close()


def cmd_status(args):
    """Show queue status, overall or for one business file."""
    store = _open_store(args)
    try:
        if not _require_schema(store):
            return 1

        if args.file_key is None:
            stats = store.queue_statistics(MAX_ATTEMPTS)
            print("\nQueue Status")
            print("=" * 40)
            for key in ('total', 'pending', 'claimed', 'handed_off', 'generated', 'exhausted'):
                print(f"  {key.replace('_', ' ').title()}: {stats.get(key, 0)}")
            return 0

        queue = DocumentQueue(store)
        print(f"File {args.file_key}: pending work = {queue.has_pending_work(args.file_key)}")
        if args.document_type:
            generated = queue.is_generated(args.file_key, args.document_type)
            print(f"File {args.file_key}: {args.document_type} generated = {generated}")
        return 0
    finally:
        store.close()


def cmd_release_owner(args):
    """Release items pinned to a worker instance that no longer runs."""
    store = _open_store(args)
    try:
        if not _require_schema(store):
            return 1

        released = store.release_owner(args.instance_id)
        logger.warning(f"Released {released} item(s) owned by {args.instance_id}")
        print(f"Released {released} item(s) owned by {args.instance_id}")
        return 0
    finally:
        store.close()


def cmd_show(args):
    """Print one queue item as JSON."""
    store = _open_store(args)
    try:
        if not _require_schema(store):
            return 1

        item = store.get_item(args.item_id)
        if item is None:
            print(f"Queue item {args.item_id} not found", file=sys.stderr)
            return 1

        print(json.dumps(item.to_dict(), indent=2))
        return 0
    finally:
        store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Document Generation Queue Management")
    parser.add_argument('--config', '-c', default=None,
                        help='Configuration file path (default: $DOCGEN_CONFIG_PATH or ./config.yaml)')
    parser.add_argument('--log-level', '-l', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # init-schema command
    init_parser = subparsers.add_parser('init-schema', help='Initialize queue schema')
    init_parser.add_argument('--force', action='store_true',
                             help='Drop and recreate schema')

    # enqueue command
    enqueue_parser = subparsers.add_parser('enqueue', help='Add a document request')
    enqueue_parser.add_argument('insurance_ref', help='Insurance reference, e.g. MOT1234567')
    enqueue_parser.add_argument('document_type',
                                help=f"Document type ({', '.join(t.name for t in DocumentType)})")
    enqueue_parser.add_argument('--file-key', type=int, required=True, help='Insurance file key')
    enqueue_parser.add_argument('--folder-key', type=int, default=0, help='Insurance folder key')
    enqueue_parser.add_argument('--file-type-code', default='', help='Insurance file type code')
    enqueue_parser.add_argument('--client-id', type=int, default=0, help='Client id')
    enqueue_parser.add_argument('--user', help='Submitting user')

    # status command
    status_parser = subparsers.add_parser('status', help='Show queue status')
    status_parser.add_argument('file_key', type=int, nargs='?', help='Business file key')
    status_parser.add_argument('--document-type', help='Also check whether this type was generated')

    # release-owner command
    release_parser = subparsers.add_parser('release-owner',
                                           help='Unpin items claimed by a dead instance')
    release_parser.add_argument('instance_id', help='Instance id to release')

    # show command
    show_parser = subparsers.add_parser('show', help='Show a queue item')
    show_parser.add_argument('item_id', type=int, help='Queue item id')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(args.log_level)

    # Execute command
    commands = {
        'init-schema': cmd_init_schema,
        'enqueue': cmd_enqueue,
        'status': cmd_status,
        'release-owner': cmd_release_owner,
        'show': cmd_show
    }

    try:
        return commands[args.command](args)
    except (DocgenError, ValueError) as e:
        logger.error(f"Command failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
