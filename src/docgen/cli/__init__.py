"""
Command-line entry points.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging for a command-line run."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_file:
        logging.basicConfig(
            level=log_level,
            format=LOG_FORMAT,
            filename=log_file,
            filemode='a'
        )
    else:
        logging.basicConfig(
            level=log_level,
            format=LOG_FORMAT
        )
