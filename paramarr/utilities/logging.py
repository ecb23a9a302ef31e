"""Logging setup.

Logs go to stderr so stdout stays free for command output.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Chatty third-party loggers
_QUIET_LOGGERS = ("httpx", "httpcore", "botocore", "urllib3")


def setup_logging(level: str | int = "INFO") -> None:
    """Configure the root logger once, replacing any previous handler."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_paramarr", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._paramarr = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
