"""
Deglet - Logging

One JSON-line logger shared by every module. Level comes from the
DEGLET_LOG_LEVEL environment variable (default WARNING).

Never log passwords, phrases, keys or plaintext.
"""

import json
import logging
import os
import sys
import time

LOG_LEVEL_ENV = "DEGLET_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"
ROOT_NAME = "deglet"


def _formatter() -> logging.Formatter:
    formatter = logging.Formatter(
        fmt=json.dumps({
            "ts": "%(asctime)s",
            "level": "%(levelname)s",
            "name": "%(name)s",
            "msg": "%(message)s"
        }),
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime  # UTC timestamps
    return formatter


def get_logger(name: str = ROOT_NAME, level=None, to_file=None) -> logging.Logger:
    """
    Return a logger under the ``deglet`` namespace with JSON output.

    Handlers live on the shared ``deglet`` logger. Its level is read from the
    environment once, when they are installed; an explicit ``level`` only
    applies to the returned logger.
    """
    if not name.startswith(ROOT_NAME):
        name = ROOT_NAME + "." + name
    logger = logging.getLogger(name)
    root = logging.getLogger(ROOT_NAME)

    if not root.handlers:
        root.setLevel(os.environ.get(LOG_LEVEL_ENV, DEFAULT_LEVEL).upper())
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_formatter())
        root.addHandler(handler)

    if level is not None:
        logger.setLevel(level)

    if to_file:
        path = os.path.abspath(to_file)
        if not any(getattr(h, "baseFilename", None) == path for h in root.handlers):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(_formatter())
            root.addHandler(file_handler)

    return logger
