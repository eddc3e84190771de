from __future__ import annotations

import logging
import sys

LOGGER_NAME = "timesheet_merger"
LOG_FORMAT = "%(levelname)s: %(message)s"


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Build the logger handed to the reader, client, merger and archive step.

    Handlers are replaced on every call so the stream is the current
    ``sys.stdout`` (matters under CliRunner, which swaps it per invocation).
    """

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    log = logging.getLogger(LOGGER_NAME)
    for h in list(log.handlers):
        log.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(handler)
    log.setLevel(level)
    log.propagate = False
    return log
