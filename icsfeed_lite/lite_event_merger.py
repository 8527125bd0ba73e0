"""EXDATE filtering and RECURRENCE-ID override merging - icsfeed_lite.

Both steps match candidates by absolute instant. The parser has already
normalized EXDATE and RECURRENCE-ID values to UTC instants, so two values
written with different TZID/VALUE forms still match when they name the same
moment.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta
from typing import Optional

from .lite_datetime_utils import IcsDateTime
from .lite_models import Candidate, EventGroup, Occurrence, VeventRaw

logger = logging.getLogger(__name__)


def event_duration(event: VeventRaw) -> Optional[timedelta]:
    """Duration of a VEVENT from DTEND or DURATION, if it declares one."""
    if event.dtstart is not None and event.dtend is not None:
        return event.dtend.instant - event.dtstart.instant
    return event.duration


class LiteEventMerger:
    """Applies EXDATE exceptions and RECURRENCE-ID overrides to candidates."""

    def filter_exdates(
        self, candidates: Iterable[Candidate], exdates: list[IcsDateTime]
    ) -> Iterator[Candidate]:
        """Drop candidates whose instant equals an EXDATE instant.

        Args:
            candidates: Candidates in generation order
            exdates: Parsed EXDATE values of the master

        Yields:
            Surviving candidates, order preserved
        """
        excluded = {exdate.instant for exdate in exdates}
        if not excluded:
            yield from candidates
            return

        removed = 0
        for candidate in candidates:
            if candidate.start_at in excluded:
                removed += 1
                continue
            yield candidate

        if removed:
            logger.debug("EXDATE removed %d occurrence(s)", removed)

    def apply_overrides(
        self, candidates: Iterable[Candidate], group: EventGroup
    ) -> Iterator[Occurrence]:
        """Patch candidates from the override sharing their instant.

        An override never creates an occurrence of its own. It only replaces
        the displayed fields of the candidate it names, which keeps its
        position in generation order even when it moves the time.

        Args:
            candidates: Candidates that survived EXDATE filtering
            group: Event group holding the master and its overrides

        Yields:
            Occurrence records
        """
        master = group.master
        if master is None:
            return
        master_duration = event_duration(master)

        for candidate in candidates:
            override = group.overrides.get(candidate.start_at)
            if override is None:
                yield Occurrence(
                    source=master,
                    master=master,
                    start_at=candidate.start_at,
                    end_at=(
                        candidate.start_at + master_duration if master_duration is not None else None
                    ),
                    is_all_day=candidate.is_all_day,
                    candidate_at=candidate.start_at,
                )
                continue

            yield self._merge_override(candidate, override, master, master_duration)

    def _merge_override(
        self,
        candidate: Candidate,
        override: VeventRaw,
        master: VeventRaw,
        master_duration: Optional[timedelta],
    ) -> Occurrence:
        start: datetime = candidate.start_at
        is_all_day = candidate.is_all_day
        if override.dtstart is not None:
            start = override.dtstart.instant
            is_all_day = override.dtstart.is_all_day

        end: Optional[datetime]
        if override.dtend is not None:
            end = override.dtend.instant
        elif override.duration is not None:
            end = start + override.duration
        elif master_duration is not None:
            end = start + master_duration
        else:
            end = None

        if start != candidate.start_at:
            logger.debug(
                "RECURRENCE-ID override for UID %s moves %s to %s",
                master.uid,
                candidate.start_at.isoformat(),
                start.isoformat(),
            )

        return Occurrence(
            source=override,
            master=master,
            start_at=start,
            end_at=end,
            is_all_day=is_all_day,
            candidate_at=candidate.start_at,
            overridden=True,
        )
