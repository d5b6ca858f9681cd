"""structlog configuration.

Log events go to stderr: stdout carries command output for the CLI and the
protocol stream for the MCP server.
"""

import logging
import sys

import structlog


def configure_logging(level: int = logging.WARNING) -> None:
    """Route structlog and stdlib logging to stderr at ``level``."""
    logging.basicConfig(level=level, stream=sys.stderr)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
