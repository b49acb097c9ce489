"""Logging setup shared by the CLI and the scheduler."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATEFMT = "%H:%M:%S"


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once.

    Defaults to INFO and a terse format that reads well on a terminal and in
    container logs. Pass ``force=True`` to reconfigure (tests, ``--verbose``).
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, force=force)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
