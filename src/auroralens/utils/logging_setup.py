"""
Logging configuration helpers.

auroralens logs through loguru. Every record carries the identifier of the
instance under evaluation in ``extra["instance"]`` ("-" outside an
evaluation), so concurrent evaluations stay distinguishable on one sink.
"""

import sys

from loguru import logger

NO_INSTANCE = "-"


def configure_logging(level: str = "INFO", show_time: bool = False, sink=sys.stderr):
    """
    Configure loguru output for auroralens.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
        show_time: Whether to show timestamps. Default: False
        sink: Any loguru sink. Default: stderr

    Example:
        ```python
        from auroralens.utils import configure_logging

        configure_logging(level="INFO")
        # INFO     | db-writer | Classified 212 metrics
        ```
    """
    logger.remove()
    logger.configure(extra={"instance": NO_INSTANCE})

    format_str = "<level>{level: <8}</level> | <cyan>{extra[instance]}</cyan> | {message}"
    if show_time:
        format_str = "<green>{time:HH:mm:ss}</green> | " + format_str

    logger.add(sink, format=format_str, level=level, colorize=sink is sys.stderr)


def instance_context(identifier: str):
    """Tag every record logged inside the block (and tasks it spawns) with ``identifier``."""
    return logger.contextualize(instance=identifier)
