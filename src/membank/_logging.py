"""Logging configuration for membank.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the MEMBANK_LOG_LEVEL environment variable
(DEBUG, INFO, WARNING, ERROR). Logs go to stderr so they never mix with MCP
stdio traffic or CLI JSON output.
"""

import logging
import os
import sys


def configure_logging() -> None:
    """Configure logging for the membank package.

    Call this once at application startup (cli.py or server.py).
    Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger("membank")

    if root_logger.handlers:
        return

    level_name = os.environ.get("MEMBANK_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Avoid duplicate messages through the root logger
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Only show errors from the membank logger (used by `mb --quiet`)."""
    root_logger = logging.getLogger("membank")
    level = logging.ERROR if quiet else logging.INFO
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)
