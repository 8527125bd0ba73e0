"""Data models for ICS feed expansion - icsfeed_lite.

Caller-facing models (window, output records, results) are pydantic models;
the transient records built and discarded inside a single expansion call are
plain dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .lite_datetime_utils import IcsDateTime, LiteDateTimeParser, ensure_timezone_aware


class LiteOutputStatus(str, Enum):
    """Status values emitted for materialized occurrences."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ExpansionWindow(BaseModel):
    """Inclusive ``[from, to]`` instant range occurrences are bounded to."""

    start: datetime = Field(..., alias="from", description="Window start (inclusive)")
    end: datetime = Field(..., alias="to", description="Window end (inclusive)")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_timezone_aware(value)

    @model_validator(mode="after")
    def _ordered(self) -> "ExpansionWindow":
        if self.start > self.end:
            raise ValueError("window start must not be after window end")
        return self

    def contains(self, instant: datetime) -> bool:
        """Check whether an instant lies inside the window (both ends inclusive)."""
        return self.start <= instant <= self.end


class OutputEvent(BaseModel):
    """One materialized occurrence, ready for the schedule store."""

    title: str = Field(default="", description="Event title from SUMMARY")
    start_at: str = Field(..., description="Start instant, ISO-8601 UTC")
    end_at: str = Field(..., description="End instant, ISO-8601 UTC")
    status: LiteOutputStatus = Field(default=LiteOutputStatus.CONFIRMED)

    external_uid: str = Field(..., description="UID of the source series")
    instance_key: str = Field(..., description="Stable key: '<uid>|<start_at>'")
    all_day: bool = Field(default=False)
    location: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    recurrence_id: Optional[str] = Field(
        default=None, description="Original instant of an overridden occurrence"
    )

    model_config = ConfigDict(use_enum_values=True)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready mapping consumed by persistence."""
        return self.model_dump(mode="json")


class ExpansionResult(BaseModel):
    """Result of expanding one feed, with counters for diagnostics."""

    events: list[OutputEvent] = Field(default_factory=list)
    calendar_name: Optional[str] = None

    # Parse statistics
    vevent_count: int = 0
    group_count: int = 0
    skipped_lines: int = 0
    dropped_blocks: int = 0

    # Semantic skips
    skipped_no_uid: int = 0
    skipped_no_dtstart: int = 0
    orphan_overrides: int = 0
    duplicate_masters: int = 0
    invalid_rrules: int = 0
    failed_groups: int = 0


# Transient pipeline records


@dataclass
class VeventRaw:
    """Typed property record for one VEVENT block.

    Properties the expansion depends on have named fields; everything else
    lands in ``extra`` keyed by upper-cased property name.
    """

    uid: Optional[str] = None
    dtstart: Optional[IcsDateTime] = None
    dtend: Optional[IcsDateTime] = None
    duration: Optional[timedelta] = None
    rrule: Optional[str] = None
    exdates: list[IcsDateTime] = field(default_factory=list)
    recurrence_id: Optional[IcsDateTime] = None
    has_recurrence_id: bool = False
    summary: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    extra: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_cancelled(self) -> bool:
        return (self.status or "").upper() == "CANCELLED"


@dataclass
class CalendarDocument:
    """Parsed top-level container: ordered VEVENT blocks plus calendar metadata."""

    events: list[VeventRaw] = field(default_factory=list)
    calendar_name: Optional[str] = None
    default_timezone: Optional[str] = None
    prodid: Optional[str] = None
    version: Optional[str] = None
    skipped_lines: int = 0
    dropped_blocks: int = 0
    # Parser resolved against X-WR-TIMEZONE, reused for RRULE UNTIL values
    datetime_parser: LiteDateTimeParser = field(default_factory=LiteDateTimeParser)


@dataclass
class EventGroup:
    """All VEVENTs sharing one UID: a master plus overrides keyed by instant."""

    uid: str
    master: Optional[VeventRaw] = None
    overrides: dict[datetime, VeventRaw] = field(default_factory=dict)


@dataclass(frozen=True)
class Candidate:
    """An occurrence produced by the recurrence evaluator, before exceptions."""

    start: IcsDateTime

    @property
    def start_at(self) -> datetime:
        return self.start.instant

    @property
    def is_all_day(self) -> bool:
        return self.start.is_all_day


@dataclass
class Occurrence:
    """A candidate after override merge, ready for window bounding."""

    source: VeventRaw
    master: VeventRaw
    start_at: datetime
    end_at: Optional[datetime]
    is_all_day: bool
    candidate_at: datetime
    overridden: bool = False
