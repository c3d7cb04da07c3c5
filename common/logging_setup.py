"""
common.logging_setup

Set up standard logging for the project.
"""
import logging
from typing import Union


def resolve_level(level: Union[int, str]) -> int:
    """Accept an int level or a name such as 'debug' or 'INFO'."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def setup_logging(level: Union[int, str] = logging.INFO):
    logging.basicConfig(
        level=resolve_level(level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    # urllib3 is chatty at debug level
    logging.getLogger("urllib3").setLevel(logging.WARNING)
