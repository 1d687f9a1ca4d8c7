"""Logging configuration for ark-cli.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the ARK_LOG_LEVEL environment variable.
The default is WARNING so that log lines never interleave with the report
printed on stdout.
"""

import logging
import os
import sys


def configure_logging() -> None:
    """Configure logging for the arkcli package.

    Call this once at application startup. Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger("arkcli")

    if root_logger.handlers:
        return

    level_name = os.environ.get("ARK_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    formatter = logging.Formatter(fmt="[%(levelname)s] %(name)s: %(message)s")
    handler.setFormatter(formatter)

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Only let errors through when quiet mode is enabled."""
    root_logger = logging.getLogger("arkcli")
    if quiet:
        root_logger.setLevel(logging.ERROR)
        for handler in root_logger.handlers:
            handler.setLevel(logging.ERROR)
