"""Groups parsed VEVENTs into recurring series - icsfeed_lite.

All VEVENTs sharing a UID form one group: the member without RECURRENCE-ID
is the master and the others are overrides keyed by the absolute instant
their RECURRENCE-ID names.
"""

import logging
from dataclasses import dataclass

from .lite_models import CalendarDocument, EventGroup

logger = logging.getLogger(__name__)


@dataclass
class GroupingStats:
    """Counters for VEVENTs the grouper had to discard."""

    skipped_no_uid: int = 0
    duplicate_masters: int = 0
    orphan_overrides: int = 0
    invalid_recurrence_ids: int = 0
    duplicate_overrides: int = 0


class LiteEventGrouper:
    """Builds EventGroups from a CalendarDocument."""

    def group(self, document: CalendarDocument) -> tuple[list[EventGroup], GroupingStats]:
        """Group VEVENTs by UID.

        A feed may supply two masters for one UID; the first encountered wins
        and later ones are ignored. Overrides without a master are dropped so
        they never materialize standalone.

        Args:
            document: Parsed calendar document

        Returns:
            Tuple of (groups in first-appearance order, stats)
        """
        stats = GroupingStats()
        groups: dict[str, EventGroup] = {}

        for event in document.events:
            if not event.uid:
                stats.skipped_no_uid += 1
                logger.debug("Skipping VEVENT without UID (summary=%r)", event.summary)
                continue

            group = groups.get(event.uid)
            if group is None:
                group = EventGroup(uid=event.uid)
                groups[event.uid] = group

            if not event.has_recurrence_id:
                if group.master is None:
                    group.master = event
                else:
                    stats.duplicate_masters += 1
                    logger.warning("Duplicate master VEVENT for UID %s ignored", event.uid)
                continue

            if event.recurrence_id is None:
                stats.invalid_recurrence_ids += 1
                logger.warning("Override for UID %s has unparseable RECURRENCE-ID, dropping", event.uid)
                continue

            key = event.recurrence_id.instant
            if key in group.overrides:
                stats.duplicate_overrides += 1
                logger.debug("Duplicate override for UID %s at %s ignored", event.uid, key)
                continue
            group.overrides[key] = event

        result: list[EventGroup] = []
        for group in groups.values():
            if group.master is None:
                stats.orphan_overrides += len(group.overrides)
                logger.debug(
                    "Dropping %d override(s) for UID %s with no master",
                    len(group.overrides),
                    group.uid,
                )
                continue
            result.append(group)

        return result, stats
