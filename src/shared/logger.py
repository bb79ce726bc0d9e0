"""Logging setup."""

from __future__ import annotations

import logging
import sys

# chatty client libraries stay at WARNING unless we are debugging
_NOISY = ("httpx", "httpcore", "botocore", "boto3", "urllib3")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with the compact pipeline format.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    if numeric > logging.DEBUG:
        for name in _NOISY:
            logging.getLogger(name).setLevel(logging.WARNING)
