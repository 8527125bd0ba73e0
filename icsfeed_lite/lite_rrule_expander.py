"""RRULE evaluation for icsfeed_lite.

Each FREQ value is a ``Frequency`` variant with its own ``FrequencyRule``
that builds a ``dateutil.rrule.rrule`` over DTSTART's wall clock. Expansion
is a lazy generator bounded first by COUNT/UNTIL and then by the window end,
so unbounded rules always terminate.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from dateutil.rrule import (
    DAILY,
    FR,
    MO,
    MONTHLY,
    SA,
    SU,
    TH,
    TU,
    WE,
    WEEKLY,
    YEARLY,
    rrule,
    weekday,
)

from .lite_datetime_utils import IcsDateTime, LiteDateTimeParseError, LiteDateTimeParser
from .lite_models import Candidate

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES_PER_RULE = 5000

_WEEKDAYS = {"MO": MO, "TU": TU, "WE": WE, "TH": TH, "FR": FR, "SA": SA, "SU": SU}
_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")


class LiteRRuleExpansionError(Exception):
    """Base exception for RRULE expansion errors."""


class LiteRRuleParseError(LiteRRuleExpansionError):
    """Error parsing RRULE string."""


class Frequency(str, Enum):
    """Supported FREQ values."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class ByDay:
    """One BYDAY entry: weekday (0=Monday) with an optional ordinal like 2 or -1."""

    weekday: int
    ordinal: Optional[int] = None


@dataclass(frozen=True)
class RecurrenceRule:
    """Parsed RRULE."""

    freq: Frequency
    interval: int = 1
    count: Optional[int] = None
    until: Optional[datetime] = None
    by_day: tuple[ByDay, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_month: tuple[int, ...] = ()
    week_start: int = 0


def _parse_int(key: str, value: str, high: int, allow_negative: bool = False) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise LiteRRuleParseError(f"{key} is not an integer: {value!r}") from e
    magnitude = abs(number) if allow_negative else number
    if not 1 <= magnitude <= high:
        raise LiteRRuleParseError(f"{key} out of range: {value!r}")
    return number


def _parse_by_day(value: str) -> tuple[ByDay, ...]:
    entries = []
    for token in value.split(","):
        match = _BYDAY_RE.match(token.strip().upper())
        if not match:
            raise LiteRRuleParseError(f"Invalid BYDAY entry: {token!r}")
        ordinal = int(match.group(1)) if match.group(1) else None
        if ordinal == 0:
            raise LiteRRuleParseError(f"Invalid BYDAY ordinal: {token!r}")
        entries.append(ByDay(weekday=_WEEKDAYS[match.group(2)].weekday, ordinal=ordinal))
    return tuple(entries)


def parse_rrule(
    rrule_string: str, anchor: IcsDateTime, datetime_parser: LiteDateTimeParser
) -> RecurrenceRule:
    """Parse an RRULE value.

    Args:
        rrule_string: RRULE value, e.g. "FREQ=WEEKLY;COUNT=4" (an "RRULE:" prefix is tolerated)
        anchor: Parsed DTSTART, used to interpret floating or date-only UNTIL
        datetime_parser: Parser for the UNTIL value

    Returns:
        RecurrenceRule

    Raises:
        LiteRRuleParseError: If FREQ is missing or unsupported, or a part is malformed
    """
    text = (rrule_string or "").strip()
    if text.upper().startswith("RRULE:"):
        text = text[6:]
    if not text:
        raise LiteRRuleParseError("Empty RRULE string")

    parts: dict[str, str] = {}
    for part in text.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise LiteRRuleParseError(f"Malformed RRULE part: {part!r}")
        key, value = part.split("=", 1)
        parts[key.strip().upper()] = value.strip()

    try:
        freq = Frequency(parts.get("FREQ", "").upper())
    except ValueError as e:
        raise LiteRRuleParseError(f"Unsupported or missing FREQ in {rrule_string!r}") from e

    until = None
    if "UNTIL" in parts:
        try:
            until = datetime_parser.parse_until(parts["UNTIL"], anchor)
        except LiteDateTimeParseError as e:
            raise LiteRRuleParseError(f"Invalid UNTIL: {parts['UNTIL']!r}") from e

    week_start = 0
    if "WKST" in parts:
        code = parts["WKST"].upper()
        if code not in _WEEKDAYS:
            raise LiteRRuleParseError(f"Invalid WKST: {parts['WKST']!r}")
        week_start = _WEEKDAYS[code].weekday

    ignored = set(parts) - {
        "FREQ", "INTERVAL", "COUNT", "UNTIL", "BYDAY", "BYMONTHDAY", "BYMONTH", "WKST"
    }
    if ignored:
        logger.debug("Ignoring unsupported RRULE parts %s in %r", sorted(ignored), rrule_string)

    return RecurrenceRule(
        freq=freq,
        interval=_parse_int("INTERVAL", parts["INTERVAL"], 10000) if "INTERVAL" in parts else 1,
        count=_parse_int("COUNT", parts["COUNT"], 1_000_000) if "COUNT" in parts else None,
        until=until,
        by_day=_parse_by_day(parts["BYDAY"]) if parts.get("BYDAY") else (),
        by_month_day=tuple(
            _parse_int("BYMONTHDAY", v, 31, allow_negative=True)
            for v in parts.get("BYMONTHDAY", "").split(",")
            if v
        ),
        by_month=tuple(
            _parse_int("BYMONTH", v, 12) for v in parts.get("BYMONTH", "").split(",") if v
        ),
        week_start=week_start,
    )


# Frequency rules: one per Frequency variant


def _weekday_for(entry: ByDay) -> weekday:
    return (MO, TU, WE, TH, FR, SA, SU)[entry.weekday](entry.ordinal)


class FrequencyRule:
    """Builds the dateutil rule for one FREQ and walks its wall-clock occurrences."""

    freq: ClassVar[int]

    def build(self, anchor: datetime, rule: RecurrenceRule) -> rrule:
        """Build an unbounded rule anchored at the naive wall-clock DTSTART.

        COUNT and UNTIL are left to the caller, which applies them against
        DTSTART-inclusive counts and absolute instants.
        """
        return rrule(
            self.freq,
            dtstart=anchor,
            interval=rule.interval,
            wkst=rule.week_start,
            byweekday=[_weekday_for(entry) for entry in rule.by_day] or None,
            bymonthday=list(rule.by_month_day) or None,
            bymonth=list(rule.by_month) or None,
        )

    def occurrences(self, anchor: datetime, rule: RecurrenceRule) -> Iterator[datetime]:
        """Yield naive local occurrences in ascending order, carrying DTSTART's time of day."""
        return iter(self.build(anchor, rule))


class DailyRule(FrequencyRule):
    """Every INTERVAL days; BYDAY, BYMONTH and BYMONTHDAY filter the days."""

    freq = DAILY


class WeeklyRule(FrequencyRule):
    """Every INTERVAL weeks starting on WKST; without BYDAY, DTSTART's weekday.

    BYDAY ordinals are ignored inside a week.
    """

    freq = WEEKLY


class MonthlyRule(FrequencyRule):
    """Every INTERVAL months; without BYMONTHDAY or BYDAY, DTSTART's day.

    Months lacking that day (e.g. the 31st) are skipped, never clamped.
    """

    freq = MONTHLY


class YearlyRule(FrequencyRule):
    """Every INTERVAL years; without qualifiers, DTSTART's month and day.

    A Feb 29 anchor only recurs in leap years. BYDAY without BYMONTH spans
    the whole year, so "20MO" is the 20th Monday of the year.
    """

    freq = YEARLY


FREQUENCY_RULES: dict[Frequency, FrequencyRule] = {
    Frequency.DAILY: DailyRule(),
    Frequency.WEEKLY: WeeklyRule(),
    Frequency.MONTHLY: MonthlyRule(),
    Frequency.YEARLY: YearlyRule(),
}


class LiteRRuleExpander:
    """Expands a master's DTSTART and optional RRULE into ordered candidates."""

    def __init__(self, max_occurrences_per_rule: int = DEFAULT_MAX_OCCURRENCES_PER_RULE):
        """Initialize expander.

        Args:
            max_occurrences_per_rule: Hard cap on candidates per series that
                start at or after the window start
        """
        self.max_occurrences = max_occurrences_per_rule

    def iter_candidates(
        self,
        dtstart: IcsDateTime,
        rule: Optional[RecurrenceRule],
        window_end: datetime,
        window_start: Optional[datetime] = None,
    ) -> Iterator[Candidate]:
        """Lazily generate candidates in ascending order.

        DTSTART is always the first candidate and counts toward COUNT.
        Generation stops at the first of: COUNT reached, UNTIL passed, the
        window end passed, or the occurrence cap reached. Candidates before
        ``window_start`` are still generated (an override may move them into
        the window) but do not count toward the cap, so a long-running series
        still reaches the window.

        Args:
            dtstart: Master DTSTART
            rule: Parsed RRULE, or None for a single occurrence
            window_end: Upper bound of the expansion window
            window_start: Lower bound of the expansion window; when omitted
                every candidate counts toward the cap

        Yields:
            Candidate occurrences
        """
        yield Candidate(start=dtstart)
        if rule is None:
            return

        emitted = 1
        if rule.count is not None and emitted >= rule.count:
            return
        in_window = 1 if window_start is None or dtstart.instant >= window_start else 0

        try:
            for local in FREQUENCY_RULES[rule.freq].occurrences(dtstart.local, rule):
                if local <= dtstart.local:
                    continue
                candidate = dtstart.at_local(local)
                if rule.until is not None and candidate.instant > rule.until:
                    return
                if candidate.instant > window_end:
                    return

                yield Candidate(start=candidate)
                emitted += 1
                if rule.count is not None and emitted >= rule.count:
                    return
                if window_start is None or candidate.instant >= window_start:
                    in_window += 1
                    if in_window >= self.max_occurrences:
                        logger.warning(
                            "RRULE expansion limited to %d occurrences (freq=%s)",
                            self.max_occurrences,
                            rule.freq.value,
                        )
                        return
        except (ValueError, OverflowError) as e:
            # Wall-clock conversion ran past datetime's supported range
            logger.debug("Stopping RRULE expansion at calendar limit: %s", e)
