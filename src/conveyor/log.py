"""Logging setup for the command-line entry point."""

import logging
import sys

from conveyor.config import Settings, settings as default_settings


def setup_logging(level: str | None = None, config: Settings | None = None) -> None:
    """Configure the root logger once for a CLI invocation.

    Args:
        level: Overrides the configured log level (e.g. "DEBUG")
        config: Settings to read the level and format from
    """
    config = config or default_settings
    resolved = (level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=config.log_format,
        stream=sys.stderr,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
