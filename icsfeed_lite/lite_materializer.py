"""Window bounding and OutputEvent materialization - icsfeed_lite."""

import logging
from collections.abc import Iterable, Iterator
from datetime import timedelta
from typing import Optional

from .lite_datetime_utils import format_instant
from .lite_models import ExpansionWindow, LiteOutputStatus, Occurrence, OutputEvent

logger = logging.getLogger(__name__)

MAX_EVENT_TITLE_LENGTH = 200
DEFAULT_EVENT_DURATION = timedelta(hours=1)
ALL_DAY_DURATION = timedelta(hours=24)


def sanitize_title(summary: Optional[str], max_length: int = MAX_EVENT_TITLE_LENGTH) -> str:
    """Collapse whitespace and cap the length of a SUMMARY value.

    Args:
        summary: Raw SUMMARY text, possibly None
        max_length: Maximum title length

    Returns:
        Clean title, or an empty string when SUMMARY is absent
    """
    if not summary:
        return ""
    title = " ".join(summary.split())
    if len(title) > max_length:
        title = title[:max_length].rstrip()
    return title


def map_status(status: Optional[str]) -> LiteOutputStatus:
    """Map an ICS STATUS value to the output status."""
    if status and status.strip().upper() == "CANCELLED":
        return LiteOutputStatus.CANCELLED
    return LiteOutputStatus.CONFIRMED


class LiteMaterializer:
    """Clips occurrences to the window and converts them to OutputEvents."""

    def __init__(
        self,
        max_title_length: int = MAX_EVENT_TITLE_LENGTH,
        default_event_duration: timedelta = DEFAULT_EVENT_DURATION,
    ) -> None:
        self.max_title_length = max_title_length
        self.default_event_duration = default_event_duration

    def bound(
        self, occurrences: Iterable[Occurrence], window: ExpansionWindow
    ) -> Iterator[Occurrence]:
        """Keep occurrences whose final start instant lies in the window."""
        for occurrence in occurrences:
            if window.contains(occurrence.start_at):
                yield occurrence

    def materialize(self, occurrence: Occurrence) -> OutputEvent:
        """Convert one occurrence into an OutputEvent.

        Override fields fall back to the master when the override omits them,
        so a cancelled series stays cancelled unless an override sets its own
        STATUS.
        """
        source, master = occurrence.source, occurrence.master
        start = occurrence.start_at

        if occurrence.is_all_day:
            end = start + ALL_DAY_DURATION
        elif occurrence.end_at is None or occurrence.end_at < start:
            end = start + self.default_event_duration
        else:
            end = occurrence.end_at

        start_at = format_instant(start)
        uid = master.uid or ""

        return OutputEvent(
            title=sanitize_title(_first(source.summary, master.summary), self.max_title_length),
            start_at=start_at,
            end_at=format_instant(end),
            status=map_status(_first(source.status, master.status)),
            external_uid=uid,
            instance_key=f"{uid}|{start_at}",
            all_day=occurrence.is_all_day,
            location=_first(source.location, master.location),
            description=_first(source.description, master.description),
            recurrence_id=format_instant(occurrence.candidate_at) if occurrence.overridden else None,
        )

    def materialize_all(
        self,
        occurrences: Iterable[Occurrence],
        window: ExpansionWindow,
        seen_keys: Optional[set[str]] = None,
    ) -> list[OutputEvent]:
        """Bound, convert and de-duplicate occurrences by instance key (first wins)."""
        seen = seen_keys if seen_keys is not None else set()
        events: list[OutputEvent] = []
        for occurrence in self.bound(occurrences, window):
            event = self.materialize(occurrence)
            if event.instance_key in seen:
                logger.debug("Dropping duplicate instance %s", event.instance_key)
                continue
            seen.add(event.instance_key)
            events.append(event)
        return events


def _first(preferred: Optional[str], fallback: Optional[str]) -> Optional[str]:
    return preferred if preferred is not None else fallback
