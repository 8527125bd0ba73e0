"""Fault-tolerant iCalendar tokenizer - icsfeed_lite.

Splits raw feed text into VEVENT blocks and turns each block into a typed
``VeventRaw`` record. Feed quality is outside our control, so parsing never
raises: a malformed line is skipped, and a VEVENT whose terminator is missing
is dropped as a whole.
"""

import logging
import re
from typing import Any, Optional, Union

from icalendar.parser import Contentline
from icalendar.prop import vDuration

from .lite_datetime_utils import LiteDateTimeParseError, LiteDateTimeParser
from .lite_models import CalendarDocument, VeventRaw

logger = logging.getLogger(__name__)

MAX_ICS_SIZE_WARNING = 10 * 1024 * 1024  # 10MB warning threshold

_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")
_TEXT_UNESCAPE_RE = re.compile(r"\\([\\;,nN])")

# Parsed content line: (NAME, params, value)
ContentLine = tuple[str, Any, str]


def unfold_lines(content: str) -> list[str]:
    """Split ICS text into logical lines, joining RFC 5545 folded continuations."""
    lines: list[str] = []
    for physical in _LINE_BREAK_RE.split(content):
        if physical[:1] in (" ", "\t") and lines:
            lines[-1] += physical[1:]
        else:
            lines.append(physical)
    return lines


def unescape_text(value: str) -> str:
    """Undo RFC 5545 TEXT escaping of newlines, commas, semicolons and backslashes."""

    def _replace(match: "re.Match[str]") -> str:
        char = match.group(1)
        return "\n" if char in "nN" else char

    return _TEXT_UNESCAPE_RE.sub(_replace, value)


def split_content_line(line: str) -> Optional[ContentLine]:
    """Split one logical line into (NAME, params, value).

    Returns:
        Parsed parts, or None if the line is malformed
    """
    try:
        name, params, value = Contentline(line).parts()
    except ValueError as e:
        logger.debug("Skipping malformed content line %r: %s", line[:80], e)
        return None
    return str(name).upper(), params, str(value)


def _pop_through(stack: list[str], component: str) -> None:
    """Pop components off the stack down to and including ``component``."""
    while stack:
        if stack.pop() == component:
            return


class LiteICSParser:
    """Tokenizes ICS text into a CalendarDocument of VEVENT records."""

    CALENDAR_PROPERTIES = ("X-WR-TIMEZONE", "X-WR-CALNAME", "PRODID", "VERSION")

    def __init__(self, default_timezone: Optional[str] = None) -> None:
        """Initialize ICS parser.

        Args:
            default_timezone: Zone for floating date-times when the feed does
                not declare X-WR-TIMEZONE
        """
        self.default_timezone = default_timezone

    def parse(self, content: Union[str, bytes, None]) -> CalendarDocument:
        """Parse raw ICS content.

        Args:
            content: ICS text (bytes are decoded as UTF-8 with replacement)

        Returns:
            CalendarDocument with every VEVENT that could be tokenized
        """
        document = CalendarDocument()
        text = self._decode(content)
        if not text.strip():
            return document

        blocks, calendar_props = self._split_blocks(text, document)

        document.calendar_name = calendar_props.get("X-WR-CALNAME")
        document.default_timezone = calendar_props.get("X-WR-TIMEZONE")
        document.prodid = calendar_props.get("PRODID")
        document.version = calendar_props.get("VERSION")

        document.datetime_parser = LiteDateTimeParser(
            document.default_timezone or self.default_timezone
        )
        for block in blocks:
            document.events.append(self._build_vevent(block, document.datetime_parser))

        logger.debug(
            "Parsed %d VEVENT blocks (%d lines skipped, %d blocks dropped)",
            len(document.events),
            document.skipped_lines,
            document.dropped_blocks,
        )
        return document

    def _decode(self, content: Union[str, bytes, None]) -> str:
        if content is None:
            return ""
        if isinstance(content, bytes):
            if len(content) > MAX_ICS_SIZE_WARNING:
                logger.warning(
                    "Large ICS content detected: %d bytes (threshold: %d)",
                    len(content),
                    MAX_ICS_SIZE_WARNING,
                )
            content = content.decode("utf-8", errors="replace")
        return content.lstrip("\ufeff")

    def _split_blocks(
        self, text: str, document: CalendarDocument
    ) -> tuple[list[list[ContentLine]], dict[str, str]]:
        """Walk logical lines and collect the content lines of each VEVENT.

        Returns:
            Tuple of (vevent_blocks, calendar_properties)
        """
        blocks: list[list[ContentLine]] = []
        calendar_props: dict[str, str] = {}
        stack: list[str] = []
        current: Optional[list[ContentLine]] = None

        for line in unfold_lines(text):
            if not line.strip():
                continue
            upper = line.upper()

            if upper.startswith("BEGIN:"):
                component = line[6:].strip().upper()
                if component == "VEVENT":
                    if current is not None:
                        logger.warning("VEVENT missing END:VEVENT before next BEGIN:VEVENT, dropping")
                        document.dropped_blocks += 1
                        _pop_through(stack, "VEVENT")
                    current = []
                stack.append(component)
                continue

            if upper.startswith("END:"):
                component = line[4:].strip().upper()
                if component not in stack:
                    document.skipped_lines += 1
                    continue
                if component == "VEVENT" and current is not None:
                    _pop_through(stack, "VEVENT")
                    blocks.append(current)
                    current = None
                    continue
                _pop_through(stack, component)
                if current is not None and "VEVENT" not in stack:
                    logger.warning("VEVENT closed by END:%s without END:VEVENT, dropping", component)
                    document.dropped_blocks += 1
                    current = None
                continue

            top = stack[-1] if stack else None
            if current is not None and top != "VEVENT":
                # Property of a nested component such as VALARM
                continue
            if current is None and top != "VCALENDAR":
                continue

            parts = split_content_line(line)
            if parts is None:
                document.skipped_lines += 1
                continue

            if current is not None:
                current.append(parts)
            elif parts[0] in self.CALENDAR_PROPERTIES and parts[0] not in calendar_props:
                calendar_props[parts[0]] = unescape_text(parts[2]).strip()

        if current is not None:
            logger.warning("VEVENT missing END:VEVENT at end of feed, dropping")
            document.dropped_blocks += 1

        return blocks, calendar_props

    def _build_vevent(
        self, lines: list[ContentLine], datetime_parser: LiteDateTimeParser
    ) -> VeventRaw:
        """Turn the content lines of one VEVENT into a VeventRaw record."""
        event = VeventRaw()

        for name, params, value in lines:
            if name == "UID":
                if event.uid is None and value.strip():
                    event.uid = value.strip()
            elif name in ("DTSTART", "DTEND", "RECURRENCE-ID"):
                self._set_datetime(event, name, value, params, datetime_parser)
            elif name == "EXDATE":
                event.exdates.extend(datetime_parser.parse_value_list(value, params))
            elif name == "RRULE":
                if event.rrule is None:
                    event.rrule = value.strip()
                else:
                    logger.debug("Ignoring additional RRULE %r", value)
            elif name == "DURATION":
                self._set_duration(event, value)
            elif name == "SUMMARY":
                event.summary = unescape_text(value)
            elif name == "STATUS":
                event.status = value.strip().upper()
            elif name == "LOCATION":
                event.location = unescape_text(value)
            elif name == "DESCRIPTION":
                event.description = unescape_text(value)
            else:
                event.extra.setdefault(name, []).append(value)

        return event

    def _set_datetime(
        self,
        event: VeventRaw,
        name: str,
        value: str,
        params: Any,
        datetime_parser: LiteDateTimeParser,
    ) -> None:
        if name == "RECURRENCE-ID":
            event.has_recurrence_id = True
        try:
            parsed = datetime_parser.parse_value(value, params)
        except LiteDateTimeParseError as e:
            logger.warning("Event %s has unparseable %s %r: %s", event.uid, name, value, e)
            return

        if name == "DTSTART":
            event.dtstart = parsed
        elif name == "DTEND":
            event.dtend = parsed
        else:
            event.recurrence_id = parsed

    def _set_duration(self, event: VeventRaw, value: str) -> None:
        try:
            event.duration = vDuration.from_ical(value.strip())
        except ValueError as e:
            logger.warning("Event %s has unparseable DURATION %r: %s", event.uid, value, e)
