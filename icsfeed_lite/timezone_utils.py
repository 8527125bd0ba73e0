"""Timezone resolution and clock utilities for icsfeed_lite."""

from __future__ import annotations

import datetime
import functools
import logging
import os
import zoneinfo
from typing import ClassVar

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc


class TimezoneResolver:
    """Resolves TZID parameter values from third-party feeds to tzinfo objects."""

    # Windows timezone names to IANA identifier mapping
    # Outlook/Exchange feeds emit these instead of IANA names
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "US Eastern Standard Time": "America/Indianapolis",
        "Alaskan Standard Time": "America/Anchorage",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "Arizona Standard Time": "America/Phoenix",
        "Atlantic Standard Time": "America/Halifax",
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "Romance Standard Time": "Europe/Paris",
        "Central European Standard Time": "Europe/Warsaw",
        "Central Europe Standard Time": "Europe/Budapest",
        "W. Europe Standard Time": "Europe/Berlin",
        "E. Europe Standard Time": "Europe/Chisinau",
        "FLE Standard Time": "Europe/Kiev",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "India Standard Time": "Asia/Kolkata",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "New Zealand Standard Time": "Pacific/Auckland",
        "UTC": "UTC",
    }

    # Abbreviations occasionally used as TZID values by small vendors
    TZ_ABBREV_MAP: ClassVar[dict[str, str]] = {
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "MST": "America/Denver",
        "MDT": "America/Denver",
        "CST": "America/Chicago",
        "CDT": "America/Chicago",
        "EST": "America/New_York",
        "EDT": "America/New_York",
    }

    UTC_ALIASES: ClassVar[frozenset[str]] = frozenset(
        {"UTC", "GMT", "Z", "ETC/UTC", "ETC/GMT", "UNIVERSAL", "ZULU"}
    )

    def resolve(self, tzid: str | None) -> datetime.tzinfo | None:
        """Resolve a TZID value to a tzinfo.

        Handles IANA names, Windows names, common abbreviations and the
        ``/vendor.example/2005_1/America/New_York`` prefix style some
        generators emit.

        Args:
            tzid: Raw TZID parameter value

        Returns:
            tzinfo instance, or None if the name is unknown
        """
        if not tzid:
            return None
        name = tzid.strip().strip('"').strip()
        if not name:
            return None
        if name.upper() in self.UTC_ALIASES:
            return UTC

        for candidate in self._candidate_names(name):
            tz = _load_zone(candidate)
            if tz is not None:
                return tz

        logger.debug("Unknown TZID %r", tzid)
        return None

    def _candidate_names(self, name: str) -> list[str]:
        candidates = []
        mapped = self.WINDOWS_TZ_MAP.get(name) or self.TZ_ABBREV_MAP.get(name.upper())
        if mapped:
            candidates.append(mapped)
        candidates.append(name)
        # "/mozilla.org/20050126_1/America/New_York" -> "America/New_York"
        parts = [p for p in name.split("/") if p]
        if len(parts) > 2:
            candidates.append("/".join(parts[-2:]))
            candidates.append("/".join(parts[-3:]))
        return candidates


@functools.lru_cache(maxsize=256)
def _load_zone(name: str) -> datetime.tzinfo | None:
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        return None


_resolver = TimezoneResolver()


def resolve_tzid(tzid: str | None) -> datetime.tzinfo | None:
    """Resolve a TZID value (convenience function)."""
    return _resolver.resolve(tzid)


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert Windows timezone name to IANA timezone identifier.

    Args:
        windows_tz: Windows timezone name (e.g., "Mountain Standard Time")

    Returns:
        IANA timezone identifier (e.g., "America/Denver") or None if not found
    """
    return _resolver.WINDOWS_TZ_MAP.get(windows_tz)


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the ICSFEED_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-10-27T08:20:00-07:00").
    """
    test_time = os.environ.get("ICSFEED_TEST_TIME")
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(UTC)
            return dt.replace(tzinfo=UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse ICSFEED_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now(UTC)
