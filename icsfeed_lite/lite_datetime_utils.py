"""DateTime parsing utilities for ICS feed processing - icsfeed_lite.

Every DTSTART/DTEND/EXDATE/RECURRENCE-ID value is normalized to an absolute
UTC instant at parse time, so downstream matching never compares the text a
vendor happened to write.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Mapping, Optional

from .timezone_utils import UTC, resolve_tzid

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})?(Z)?$", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class LiteDateTimeParseError(ValueError):
    """Raised when an ICS date or date-time value cannot be parsed."""


@dataclass(frozen=True)
class IcsDateTime:
    """A parsed DATE or DATE-TIME value.

    Attributes:
        instant: Absolute instant (tz-aware, UTC)
        is_all_day: True for VALUE=DATE values
        local: Naive wall-clock time as written in the feed
        tz: Zone the wall-clock time is interpreted in (UTC for all-day values)
    """

    instant: datetime
    is_all_day: bool
    local: datetime
    tz: tzinfo

    def at_local(self, local: datetime) -> "IcsDateTime":
        """Return a value with the same zone and kind at another wall-clock time."""
        return IcsDateTime(
            instant=to_instant(local, self.tz),
            is_all_day=self.is_all_day,
            local=local,
            tz=self.tz,
        )


def to_instant(local: datetime, tz: tzinfo) -> datetime:
    """Attach a zone to a naive wall-clock time and convert it to UTC.

    Raises:
        LiteDateTimeParseError: If the UTC instant falls outside datetime's range
    """
    try:
        return local.replace(tzinfo=tz).astimezone(UTC)
    except OverflowError as e:
        raise LiteDateTimeParseError(f"Date-time {local.isoformat()} out of range: {e}") from e


def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware (UTC if originally naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def format_instant(dt: datetime) -> str:
    """Format an instant as an ISO-8601 UTC string, e.g. ``2024-01-01T10:00:00Z``."""
    return ensure_timezone_aware(dt).astimezone(UTC).replace(microsecond=0).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )


def _param(params: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    if not params:
        return None
    value = params.get(name)
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return str(value) if value is not None else None


class LiteDateTimeParser:
    """Parser for iCalendar date and date-time values with timezone handling."""

    def __init__(self, default_timezone: Optional[str] = None):
        """Initialize datetime parser.

        Args:
            default_timezone: Zone for floating (no TZID, no Z) date-times.
                Falls back to UTC when unset or unknown.
        """
        self.default_timezone = default_timezone
        self._default_tz = resolve_tzid(default_timezone) or UTC
        if default_timezone and self._default_tz is UTC and default_timezone.upper() != "UTC":
            logger.warning("Unknown default timezone %r, floating times use UTC", default_timezone)

    def parse_value(self, value: str, params: Optional[Mapping[str, Any]] = None) -> IcsDateTime:
        """Parse a single DATE or DATE-TIME value.

        Args:
            value: Raw property value, e.g. "20240101T100000Z" or "20240101"
            params: Property parameters (TZID, VALUE)

        Returns:
            Parsed IcsDateTime

        Raises:
            LiteDateTimeParseError: If the value is not a recognizable date or date-time
        """
        text = (value or "").strip()
        if not text:
            raise LiteDateTimeParseError("Empty date-time value")

        value_type = (_param(params, "VALUE") or "").upper()
        if value_type == "DATE" or _DATE_RE.match(text) or _ISO_DATE_RE.match(text):
            return self._parse_date(text)

        match = _DATETIME_RE.match(text)
        if match:
            year, month, day, hour, minute, second, zulu = match.groups()
            try:
                local = datetime(
                    int(year), int(month), int(day), int(hour), int(minute), int(second or 0)
                )
            except ValueError as e:
                raise LiteDateTimeParseError(f"Invalid date-time {text!r}: {e}") from e
            tz = UTC if zulu else self._zone_for(_param(params, "TZID"))
            return IcsDateTime(instant=to_instant(local, tz), is_all_day=False, local=local, tz=tz)

        return self._parse_iso(text, params)

    def parse_value_list(
        self, value: str, params: Optional[Mapping[str, Any]] = None
    ) -> list[IcsDateTime]:
        """Parse a comma-separated list of values (EXDATE style).

        Malformed items are skipped with a warning rather than failing the list.
        """
        parsed: list[IcsDateTime] = []
        for item in (value or "").split(","):
            item = item.strip()
            if not item:
                continue
            try:
                parsed.append(self.parse_value(item, params))
            except LiteDateTimeParseError as e:
                logger.warning("Skipping malformed date value %r: %s", item, e)
        return parsed

    def parse_until(self, value: str, anchor: IcsDateTime) -> datetime:
        """Parse an RRULE UNTIL value into an inclusive upper-bound instant.

        A floating UNTIL is read in the zone of DTSTART. A date-only UNTIL
        against a timed DTSTART includes every occurrence on that date.

        Raises:
            LiteDateTimeParseError: If the value cannot be parsed
        """
        text = (value or "").strip()
        if _DATE_RE.match(text) or _ISO_DATE_RE.match(text):
            until_date = self._parse_date(text).local
            if anchor.is_all_day:
                return to_instant(until_date, UTC)
            try:
                next_day = until_date + timedelta(days=1)
            except OverflowError as e:
                raise LiteDateTimeParseError(f"UNTIL {text!r} out of range") from e
            return to_instant(next_day, anchor.tz) - timedelta(microseconds=1)

        match = _DATETIME_RE.match(text)
        if match and not match.group(7):
            local = self.parse_value(text).local
            return to_instant(local, anchor.tz)
        return self.parse_value(text).instant

    def _zone_for(self, tzid: Optional[str]) -> tzinfo:
        if not tzid:
            return self._default_tz
        tz = resolve_tzid(tzid)
        if tz is None:
            logger.warning("Unknown TZID %r, using %s", tzid, self._default_tz)
            return self._default_tz
        return tz

    def _parse_date(self, text: str) -> IcsDateTime:
        digits = text.replace("-", "")[:8]
        match = _DATE_RE.match(digits)
        if not match:
            raise LiteDateTimeParseError(f"Invalid date {text!r}")
        try:
            day = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError as e:
            raise LiteDateTimeParseError(f"Invalid date {text!r}: {e}") from e
        # All-day values are anchored at midnight UTC so the same calendar
        # date always maps to the same instant
        local = datetime.combine(day, time.min)
        return IcsDateTime(instant=to_instant(local, UTC), is_all_day=True, local=local, tz=UTC)

    def _parse_iso(self, text: str, params: Optional[Mapping[str, Any]]) -> IcsDateTime:
        # Some vendors emit ISO-8601 instead of the basic format
        try:
            parsed = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
        except ValueError as e:
            raise LiteDateTimeParseError(f"Unrecognized date-time {text!r}") from e

        if parsed.tzinfo is None:
            tz = self._zone_for(_param(params, "TZID"))
            local = parsed
        else:
            tz = parsed.tzinfo
            local = parsed.replace(tzinfo=None)
        return IcsDateTime(instant=to_instant(local, tz), is_all_day=False, local=local, tz=tz)
