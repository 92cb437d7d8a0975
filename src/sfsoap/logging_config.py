"""Logging setup for the CLI.

The SOAP transport writes envelope traces to the ``sfsoap.wire`` logger,
which stays closed unless tracing is asked for.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"

WIRE_LOGGER = "sfsoap.wire"

# requests' connection pool logs every new connection at DEBUG
_NOISY_LOGGERS = ("urllib3.connectionpool", "urllib3.connection")


def _raise_floor(names: Iterable[str], floor: int) -> None:
    for name in names:
        lg = logging.getLogger(name)
        if lg.level == logging.NOTSET or lg.level < floor:
            lg.setLevel(floor)


def set_wire_tracing(enabled: bool) -> None:
    logging.getLogger(WIRE_LOGGER).setLevel(logging.DEBUG if enabled else logging.WARNING)


def configure_logging(level: Optional[int], *, wire: bool = False) -> int:
    """Set the root log level, installing a stderr handler on first use.

    ``wire`` implies DEBUG and opens the envelope trace logger. Returns the
    level that was applied.
    """
    if wire:
        effective = logging.DEBUG
    else:
        effective = level if level is not None else logging.WARNING

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    root.setLevel(effective)

    set_wire_tracing(wire)
    _raise_floor(_NOISY_LOGGERS, logging.WARNING)
    return effective
