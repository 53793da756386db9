"""Logging configuration for the dailytasks server."""

import logging
import sys
from typing import Union


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Install one stderr handler on the root logger.

    Safe to call more than once: previously installed handlers are replaced.
    """
    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    logging.captureWarnings(True)
