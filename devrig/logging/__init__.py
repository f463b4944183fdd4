"""Logging helpers for the devrig CLI."""

import logging
import sys

from devrig.logging.formatters import StreamFormatter, StreamRoutingFilter

QUIET_LOGGERS = ("boto3", "botocore", "urllib3", "paramiko")


def configure_logging(level: int = logging.INFO) -> None:
    """Install stdout and stderr handlers on the root logger.

    Parameters
    ----------
    level : int
        Root logger level (default: INFO)
    """
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(StreamFormatter("%(message)s"))
    stdout_handler.addFilter(StreamRoutingFilter("stdout"))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(StreamFormatter("%(message)s"))
    stderr_handler.addFilter(StreamRoutingFilter("stderr"))

    logging.basicConfig(
        level=level,
        handlers=[stdout_handler, stderr_handler],
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["StreamFormatter", "StreamRoutingFilter", "configure_logging"]
