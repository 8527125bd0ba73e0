"""
Central logging configuration for icsfeed_lite.

Keeps per-line parser skips at DEBUG so production logs stay readable while
still surfacing per-event and per-rule problems at WARNING. Every record is
stamped with the id of the feed being expanded so logs from concurrent
expansions can be told apart.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional

from colorlog import ColoredFormatter

# Feed currently being expanded; contextvars keep it correct across
# asyncio tasks and worker threads started with asyncio.to_thread
feed_id_var: ContextVar[str] = ContextVar("feed_id", default="")

NO_FEED_ID = "no-feed"

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s [%(feed_id)s] %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

PACKAGE_LOGGERS = [
    "icsfeed_lite",
    "icsfeed_lite.lite_parser",
    "icsfeed_lite.lite_event_grouper",
    "icsfeed_lite.lite_rrule_expander",
    "icsfeed_lite.lite_event_merger",
    "icsfeed_lite.lite_materializer",
    "icsfeed_lite.pipeline",
    "icsfeed_lite.worker_pool",
]


def get_feed_id() -> str:
    """Get the id of the feed currently being expanded.

    Returns:
        Current feed id, or "no-feed" outside of any feed context
    """
    return feed_id_var.get() or NO_FEED_ID


@contextmanager
def feed_context(feed_id: str) -> Iterator[str]:
    """Tag all log records emitted inside the block with ``feed_id``.

    Example:
        >>> with feed_context("team-calendar"):
        ...     expand_feed(ics_text, window)
    """
    token = feed_id_var.set(feed_id)
    try:
        yield feed_id
    finally:
        feed_id_var.reset(token)


class FeedContextFilter(logging.Filter):
    """Add the current feed id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add feed id to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        record.feed_id = get_feed_id()
        return True


def build_console_handler(level: int = logging.INFO) -> logging.Handler:
    """Create a colorized stderr handler carrying the feed id filter."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    handler.addFilter(FeedContextFilter())
    return handler


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for icsfeed_lite.

    Args:
        debug_mode: Whether to enable debug logging for icsfeed_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        ICSFEED_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        ICSFEED_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("ICSFEED_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("ICSFEED_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler(root_level))
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, FeedContextFilter) for f in existing_handler.filters):
                existing_handler.addFilter(FeedContextFilter())

    # icalendar is chatty about vendor quirks we already handle
    logging.getLogger("icalendar").setLevel(logging.WARNING)

    package_level = logging.DEBUG if final_debug else logging.INFO
    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).setLevel(package_level)

    if final_debug:
        root_logger.info("Debug logging enabled for icsfeed_lite modules")
    else:
        root_logger.debug("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for name in ("icsfeed_lite", "icsfeed_lite.lite_parser", "icalendar"):
        status[name] = logging.getLevelName(logging.getLogger(name).level)
    return status
