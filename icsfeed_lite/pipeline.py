"""Feed expansion entry points - icsfeed_lite.

Wires the stages together: parse -> group -> recurrence evaluation ->
EXDATE filtering -> override merge -> window bounding -> materialization.
Each call owns all of its intermediate state, so calls are safe to run in
parallel across feeds.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional, Union

from .config_loader import Config
from .lite_datetime_utils import LiteDateTimeParser
from .lite_event_grouper import LiteEventGrouper
from .lite_event_merger import LiteEventMerger
from .lite_materializer import LiteMaterializer
from .lite_models import EventGroup, ExpansionResult, ExpansionWindow, OutputEvent
from .lite_parser import LiteICSParser
from .lite_rrule_expander import (
    LiteRRuleExpander,
    LiteRRuleParseError,
    RecurrenceRule,
    parse_rrule,
)
from .timezone_utils import UTC, now_utc

logger = logging.getLogger(__name__)

IcsInput = Union[str, bytes, None]


class _GroupExpander:
    """Runs the per-group stages for one feed with shared dedup state."""

    def __init__(self, config: Config, window: ExpansionWindow, result: ExpansionResult):
        self.config = config
        self.window = window
        self.result = result
        self.expander = LiteRRuleExpander(config.max_occurrences_per_rule)
        self.merger = LiteEventMerger()
        self.materializer = LiteMaterializer(
            max_title_length=config.max_title_length,
            default_event_duration=config.default_event_duration,
        )
        self.seen_keys: set[str] = set()

    def expand(self, group: EventGroup, datetime_parser: LiteDateTimeParser) -> list[OutputEvent]:
        master = group.master
        if master is None:
            return []
        if master.dtstart is None:
            self.result.skipped_no_dtstart += 1
            logger.warning("Skipping event UID %s without a usable DTSTART", group.uid)
            return []

        rule = self._parse_rule(group, datetime_parser)
        candidates = self.expander.iter_candidates(
            master.dtstart, rule, self.window.end, window_start=self.window.start
        )
        candidates = self.merger.filter_exdates(candidates, master.exdates)
        occurrences = self.merger.apply_overrides(candidates, group)
        return self.materializer.materialize_all(occurrences, self.window, self.seen_keys)

    def _parse_rule(
        self, group: EventGroup, datetime_parser: LiteDateTimeParser
    ) -> Optional[RecurrenceRule]:
        master = group.master
        if master is None or master.rrule is None or master.dtstart is None:
            return None
        try:
            return parse_rrule(master.rrule, master.dtstart, datetime_parser)
        except LiteRRuleParseError as e:
            self.result.invalid_rrules += 1
            logger.warning(
                "Invalid RRULE for UID %s, treating as single occurrence: %s", group.uid, e
            )
            return None


def expand_feed_with_stats(
    ics_text: IcsInput, window: ExpansionWindow, config: Optional[Config] = None
) -> ExpansionResult:
    """Expand one feed into OutputEvents and report what was skipped.

    Args:
        ics_text: Raw ICS feed (str or UTF-8 bytes)
        window: Inclusive window occurrences are bounded to
        config: Engine configuration (defaults when omitted)

    Returns:
        ExpansionResult with events in output order and diagnostic counters
    """
    cfg = config or Config()
    document = LiteICSParser(cfg.default_timezone).parse(ics_text)
    groups, stats = LiteEventGrouper().group(document)

    result = ExpansionResult(
        calendar_name=document.calendar_name,
        vevent_count=len(document.events),
        group_count=len(groups),
        skipped_lines=document.skipped_lines,
        dropped_blocks=document.dropped_blocks,
        skipped_no_uid=stats.skipped_no_uid,
        orphan_overrides=stats.orphan_overrides,
        duplicate_masters=stats.duplicate_masters,
    )

    group_expander = _GroupExpander(cfg, window, result)

    for group in groups:
        try:
            result.events.extend(group_expander.expand(group, document.datetime_parser))
        except Exception:
            result.failed_groups += 1
            logger.exception("Failed to expand event group UID %s, skipping", group.uid)

    logger.debug(
        "Expanded %d VEVENTs in %d groups into %d events (window %s - %s)",
        result.vevent_count,
        result.group_count,
        len(result.events),
        window.start.isoformat(),
        window.end.isoformat(),
    )
    return result


def expand_feed(
    ics_text: IcsInput, window: ExpansionWindow, config: Optional[Config] = None
) -> list[OutputEvent]:
    """Expand one feed into the OutputEvents whose start lies in the window."""
    return expand_feed_with_stats(ics_text, window, config).events


def _window_around(now: datetime, past_days: int, future_days: int) -> ExpansionWindow:
    today = now.astimezone(UTC).date()
    start = datetime.combine(today - timedelta(days=past_days), time.min, tzinfo=UTC)
    end = datetime.combine(today + timedelta(days=future_days), time.max, tzinfo=UTC)
    return ExpansionWindow(start=start, end=end)


def default_window(now: Optional[datetime] = None, config: Optional[Config] = None) -> ExpansionWindow:
    """Build the standard sync window around ``now``.

    Args:
        now: Reference instant (defaults to the current UTC time)
        config: Supplies window_past_days / window_future_days

    Returns:
        Window from the start of the day ``window_past_days`` ago to the end of
        the day ``window_future_days`` ahead, in UTC
    """
    cfg = config or Config()
    return _window_around(now or now_utc(), cfg.window_past_days, cfg.window_future_days)


def preview_feed(
    ics_text: IcsInput,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    config: Optional[Config] = None,
) -> list[OutputEvent]:
    """Return the first events of a feed for a quick look before syncing.

    Args:
        ics_text: Raw ICS feed
        limit: Maximum number of events (defaults to config.preview_limit)
        now: Reference instant for the preview window
        config: Engine configuration

    Returns:
        Events in the preview window sorted by start, truncated to ``limit``
    """
    cfg = config or Config()
    window = _window_around(now or now_utc(), cfg.preview_past_days, cfg.preview_future_days)
    events = expand_feed(ics_text, window, cfg)
    # start_at is fixed-width UTC, so string order is chronological
    events.sort(key=lambda event: event.start_at)
    return events[: limit if limit is not None else cfg.preview_limit]
