"""
Storage backends for the document generation queue.

The SQLite backend is the default; PostgreSQL is selected with
``storage.backend: postgresql`` in the configuration file.
"""

from .base import QueueStore, SQLQueueStore
from .sqlite import SQLiteQueueStore
from .postgres import PostgreSQLQueueStore

__all__ = ['QueueStore', 'SQLQueueStore', 'SQLiteQueueStore', 'PostgreSQLQueueStore']
