"""Command-line entry for icsfeed_lite.

Expands a local ICS file and prints the resulting events as a JSON array.
Useful for checking how a vendor feed will be materialized before syncing it.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from dateutil.parser import isoparse

from .config_loader import load_config
from .lite_logging import configure_lite_logging, feed_context
from .lite_models import ExpansionWindow
from .pipeline import default_window, expand_feed_with_stats, preview_feed

logger = logging.getLogger(__name__)


def _iso_datetime(value: str) -> datetime:
    """argparse type for ISO-8601 date-times."""
    try:
        return isoparse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 date-time: {value!r}") from e


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for icsfeed_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="icsfeed_lite",
        description="Expand an ICS feed into concrete event occurrences",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m icsfeed_lite calendar.ics                          # Default window (30 days back, 366 ahead)
  python -m icsfeed_lite calendar.ics --from 2024-01-01T00:00:00Z --to 2024-12-31T23:59:59Z
  python -m icsfeed_lite calendar.ics --preview                # First events of the preview window
        """,
    )

    parser.add_argument("file", type=Path, help="Path to a local .ics file")
    parser.add_argument(
        "--from",
        dest="window_from",
        type=_iso_datetime,
        metavar="ISO",
        help="Window start (default: start of day, window_past_days ago)",
    )
    parser.add_argument(
        "--to",
        dest="window_to",
        type=_iso_datetime,
        metavar="ISO",
        help="Window end (default: end of day, window_future_days ahead)",
    )
    parser.add_argument("--config", type=Path, metavar="PATH", help="YAML or JSON config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Print the sorted preview listing instead of the full expansion",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the icsfeed_lite CLI.

    Returns:
        Process exit code
    """
    parser = _create_parser()
    args = parser.parse_args(argv)

    configure_lite_logging(debug_mode=args.debug)

    try:
        config = load_config(args.config)
    except ValueError as e:
        parser.error(str(e))

    try:
        content = args.file.read_bytes()
    except OSError as e:
        logger.error("Cannot read %s: %s", args.file, e)
        return 1

    with feed_context(args.file.name):
        if args.preview:
            events = preview_feed(content, config=config)
        else:
            window = default_window(config=config)
            try:
                window = ExpansionWindow(
                    start=args.window_from or window.start,
                    end=args.window_to or window.end,
                )
            except ValueError as e:
                parser.error(str(e))
            result = expand_feed_with_stats(content, window, config)
            events = result.events
            logger.info(
                "%d events from %d VEVENTs (%d groups, %d invalid RRULEs, %d failed groups)",
                len(events),
                result.vevent_count,
                result.group_count,
                result.invalid_rrules,
                result.failed_groups,
            )

    json.dump([event.to_dict() for event in events], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
