"""
Configuration loading for the document generation queue.

Configuration is read from a YAML file. String values may reference
environment variables as ``${NAME}`` or ``${NAME:-default}``; a ``.env`` file
in the working directory is loaded first so such references can be kept out
of the YAML file.
"""

import copy
import logging
import os
import re
import socket
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError
from .generation.base import DocumentGenerator
from .generation.factory import create_generator
from .queue.models import GENERATION_ERROR_OUTPUT
from .storage.base import QueueStore

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "DOCGEN_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "./config.yaml"

_ENV_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}')

DEFAULT_CONFIG: Dict[str, Any] = {
    'storage': {
        'backend': 'sqlite',
        'path': 'docgen_queue.db',
        'busy_timeout': 30
    },
    'processing': {
        'batch_size': 5,
        'instance_id': None,
        'interval': 60
    },
    'generation': {
        'class': 'template_directory',
        'options': {},
        'error_output': GENERATION_ERROR_OUTPUT
    },
    'logging': {
        'level': 'INFO',
        'file': None
    }
}


def _expand_env(value: Any) -> Any:
    """Recursively substitute ``${VAR}`` references in string values."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) if m.group(2) is not None else ""),
            value
        )
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


class Config:
    """Loaded configuration with accessors for the queue components."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Load configuration.

        Args:
            config_path: YAML file; falls back to ``$DOCGEN_CONFIG_PATH`` and
                         then ``./config.yaml``. A missing file yields defaults.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        load_dotenv(find_dotenv(usecwd=True))

        self.config_path = config_path or os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)
        self.config = _merge(DEFAULT_CONFIG, self._load_file(self.config_path))

    @staticmethod
    def _load_file(path: str) -> Dict[str, Any]:
        config_file = Path(path)
        if not config_file.exists():
            logger.info(f"Config file {path} not found, using defaults")
            return {}

        try:
            with open(config_file, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        logger.debug(f"Loaded configuration from {path}")
        return _expand_env(loaded)

    def get_queue_store(self) -> QueueStore:
        """
        Create the queue store named by the ``storage`` section.

        Raises:
            ConfigurationError: If the backend is unknown
        """
        storage = self.config['storage']
        backend = str(storage.get('backend', 'sqlite')).lower()

        if backend == 'sqlite':
            from .storage.sqlite import SQLiteQueueStore
            return SQLiteQueueStore(storage.get('path', 'docgen_queue.db'),
                                    float(storage.get('busy_timeout', 30)))

        if backend in ('postgresql', 'postgres'):
            from .storage.postgres import PostgreSQLQueueStore
            conn_params = {
                key: storage[key]
                for key in ('host', 'port', 'database', 'user', 'password')
                if storage.get(key) not in (None, "")
            }
            return PostgreSQLQueueStore(conn_params)

        raise ConfigurationError(f"Unsupported storage backend: {backend}")

    def get_batch_size(self) -> int:
        batch_size = int(self.config['processing'].get('batch_size', 5))
        if batch_size < 1:
            raise ConfigurationError(f"processing.batch_size must be at least 1, got {batch_size}")
        return batch_size

    def get_instance_id(self) -> str:
        return self.config['processing'].get('instance_id') or socket.gethostname()

    def get_interval(self) -> float:
        return float(self.config['processing'].get('interval', 60))

    def get_generator(self) -> DocumentGenerator:
        return create_generator(self.config['generation'])

    def get_error_output(self) -> str:
        return self.config['generation'].get('error_output') or GENERATION_ERROR_OUTPUT

    def get_log_level(self) -> str:
        return str(self.config['logging'].get('level') or 'INFO').upper()

    def get_log_file(self) -> Optional[str]:
        return self.config['logging'].get('file')
