"""Loguru sink configuration for the CLI."""

import sys

from loguru import logger


def configure_logging(verbose: bool = False) -> None:
    """Route diagnostic logs to stderr.

    Args:
        verbose: Show debug traces (commands run, plan, rendered files)
                 instead of warnings only
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format="<dim>{time:HH:mm:ss}</dim> <level>{level: <7}</level> {message}",
    )
