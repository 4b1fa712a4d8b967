"""Logging setup shared by the API process and the decay worker."""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route all loggers to stdout with a timestamped format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    # redis-py logs every reconnect at DEBUG; keep it quiet unless asked
    if level.upper() != "DEBUG":
        logging.getLogger("redis").setLevel(logging.WARNING)
