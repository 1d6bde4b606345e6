"""
Logging setup for the database layer.

Every module logs to a child of the "profit_taker_db" logger. By default the
package only carries a NullHandler; applications that want its output call
setup_logging() or setup_logging_from_settings() once at startup:

    from profit_taker_db.lib import ensure_schema_current, setup_logging_from_settings

    setup_logging_from_settings()
    db = ensure_schema_current()

LOG_CATEGORIES narrows the output to parts of the package, e.g.
"profit_taker_db.lib.migrations" shows the runner but not connection churn.
"""

import logging
import sys
from typing import IO, Optional, Union

PACKAGE_LOGGER = "profit_taker_db"

# Handler installed by the last setup_logging() call
_installed_handler: Optional[logging.Handler] = None


class CategoryFilter(logging.Filter):
    """Pass records whose logger is one of the categories or below it"""

    def __init__(self, categories: list[str]):
        super().__init__()
        self.categories = [cat.strip().rstrip(".") for cat in categories if cat.strip()]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.categories:
            return True

        # "profit_taker_db.lib.migrations" must not match "profit_taker_db.lib.migrations_old"
        return any(
            record.name == cat or record.name.startswith(cat + ".")
            for cat in self.categories
        )


def _resolve_level(log_level: Union[str, int]) -> int:
    if isinstance(log_level, int):
        return log_level
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level!r}")
    return level


def setup_logging(
    log_level: Union[str, int] = "INFO",
    log_categories: Optional[list[str]] = None,
    stream: Optional[IO[str]] = None
) -> logging.Handler:
    """
    Send the package's log records to a stream.

    Only the "profit_taker_db" logger is configured, so the host
    application's root logger is left alone. Calling this again replaces
    the handler installed by the previous call.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL) or number
        log_categories: Logger names to show, e.g. "profit_taker_db.lib.migrations" (empty = all)
        stream: Output stream (defaults to stdout)

    Returns:
        The installed handler

    Raises:
        ValueError: If log_level is not a known level name
    """
    global _installed_handler

    level = _resolve_level(log_level)
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    if _installed_handler is not None:
        package_logger.removeHandler(_installed_handler)
        _installed_handler.close()

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    category_filter = CategoryFilter(log_categories or [])
    if category_filter.categories:
        handler.addFilter(category_filter)

    package_logger.setLevel(level)
    package_logger.addHandler(handler)
    package_logger.propagate = False
    _installed_handler = handler
    return handler


def setup_logging_from_settings() -> logging.Handler:
    """Configure logging from the LOG_LEVEL and LOG_CATEGORIES settings."""
    from profit_taker_db.config import get_settings

    settings = get_settings()
    return setup_logging(settings.log_level, settings.log_categories)
