"""Builder for the merged, classified and capped calendar event list."""
import dataclasses
import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Union

from processor.config import BuildConfig
from processor.models import (
    BuildResult,
    BuildState,
    CalendarEvent,
    CalendarSnapshot,
    EnrichedEvent,
)
from processor.timeutil import (
    ONE_DAY,
    end_of_local_day,
    next_local_midnight,
    now_ms,
    start_of_local_day,
)

logger = logging.getLogger(__name__)

PRIVATE_CLASS = 'PRIVATE'


class EventListBuilder:
    """Builds the display-ready event list from per-source raw events."""

    def __init__(self, config: BuildConfig):
        """
        Initialize the builder.

        Args:
            config: Global build options
        """
        self.config = config

    def build(
        self,
        events_by_source: Mapping[str, Iterable[Mapping[str, Any]]],
        now: Optional[int] = None
    ) -> List[EnrichedEvent]:
        """
        Merge, filter, deduplicate, classify and order events.

        Args:
            events_by_source: Source identifier -> raw event records
            now: Current instant in epoch milliseconds (default: clock)

        Returns:
            Events sorted by start date, at most maximum_entries long
        """
        now = now_ms() if now is None else now
        today = start_of_local_day(now)
        horizon = now + self.config.maximum_number_of_days * ONE_DAY

        events: List[EnrichedEvent] = []
        total = 0

        for source_id, records in events_by_source.items():
            for record in records or ():
                total += 1
                try:
                    accepted = self._process_record(record, source_id, events, now, today, horizon)
                except (ValueError, TypeError, OverflowError, OSError) as e:
                    logger.warning(
                        f"Skipping malformed event from {source_id}: {e}"
                    )
                    continue
                events.extend(accepted)

        # Stable, so equal start dates keep encounter order
        events.sort(key=lambda event: event.start_date)
        result = events[:max(self.config.maximum_entries, 0)]

        logger.info(
            f"Built event list with {len(result)} events from {total} records "
            f"across {len(events_by_source)} sources"
        )
        return result

    def build_result(self, snapshot: CalendarSnapshot, now: Optional[int] = None) -> BuildResult:
        """
        Build the event list for a snapshot and derive its display state.

        An ingestion error suppresses the list entirely. A snapshot that has
        received nothing yet is LOADING, not EMPTY.

        Args:
            snapshot: Store snapshot
            now: Current instant in epoch milliseconds

        Returns:
            BuildResult
        """
        if snapshot.error:
            return BuildResult(state=BuildState.ERROR, events=[], error=snapshot.error)

        events = self.build(snapshot.events_by_source, now=now)
        if events:
            return BuildResult(state=BuildState.READY, events=events)
        if not snapshot.loaded:
            return BuildResult(state=BuildState.LOADING, events=[])
        return BuildResult(state=BuildState.EMPTY, events=[])

    @staticmethod
    def contains_event(
        events: List[EnrichedEvent],
        event: Union[CalendarEvent, EnrichedEvent]
    ) -> bool:
        """Check whether an event with the same title and start is accepted."""
        for accepted in events:
            if accepted.title == event.title and accepted.start_date == event.start_date:
                return True
        return False

    def _process_record(
        self,
        record: Mapping[str, Any],
        source_id: str,
        accepted: List[EnrichedEvent],
        now: int,
        today: int,
        horizon: int
    ) -> List[EnrichedEvent]:
        """
        Turn one raw record into zero or more output events.

        Args:
            record: Raw wire record
            source_id: Source identifier
            accepted: Events accepted so far in this build
            now: Current instant
            today: Local midnight of the current day
            horizon: Latest admissible end for sliced fragments

        Returns:
            Events to append

        Raises:
            ValueError: If the record is malformed
        """
        event = CalendarEvent.from_record(record)

        if self.config.hide_private and event.event_class == PRIVATE_CLASS:
            return []
        if self.config.hide_ongoing and event.start_date < now:
            return []
        if self.contains_event(accepted, event):
            logger.debug(f"Dropping duplicate event '{event.title}' from {source_id}")
            return []

        enriched = EnrichedEvent.from_event(event, source_id)
        self._classify(enriched, today)

        day_count = self.day_count(enriched)
        if self.config.slice_multi_day_events and day_count > 1:
            fragments = self._slice(enriched, day_count, today)
            # Fragments carry a "(k/N)" suffix, so they are checked on their own
            return [
                fragment for fragment in fragments
                if self._within_window(fragment, now, horizon)
                and not self.contains_event(accepted, fragment)
            ]

        if self.config.uniform_horizon and not self._within_window(enriched, now, horizon):
            return []
        return [enriched]

    @staticmethod
    def day_count(event: EnrichedEvent) -> int:
        """
        Count the local days an event touches.

        An event ending exactly at midnight does not touch the next day.
        """
        overflow = event.end_date - 1 - end_of_local_day(event.start_date)
        return math.ceil(overflow / ONE_DAY) + 1

    @staticmethod
    def _classify(event: EnrichedEvent, today: int) -> None:
        start = event.start_date
        event.today = today <= start < today + ONE_DAY
        event.day_before_yesterday = today - 2 * ONE_DAY <= start < today - ONE_DAY
        event.yesterday = today - ONE_DAY <= start < today
        event.tomorrow = (
            not event.today and today + ONE_DAY <= start < today + 2 * ONE_DAY
        )
        event.day_after_tomorrow = (
            not event.tomorrow and today + 2 * ONE_DAY <= start < today + 3 * ONE_DAY
        )

    @staticmethod
    def _reclassify_fragment(fragment: EnrichedEvent, today: int, keep_today: bool = False) -> None:
        start = fragment.start_date
        is_today = today <= start < today + ONE_DAY
        fragment.today = (fragment.today and keep_today) or is_today
        fragment.tomorrow = (
            not fragment.today and today + ONE_DAY <= start < today + 2 * ONE_DAY
        )

    def _slice(self, event: EnrichedEvent, day_count: int, today: int) -> List[EnrichedEvent]:
        """
        Split a multi-day event at local midnights.

        Fragments re-derive today/tomorrow; the remaining bucket flags are
        inherited from the whole event.

        Args:
            event: Classified multi-day event
            day_count: Number of local days spanned
            today: Local midnight of the current day

        Returns:
            Fragments tiling [start_date, end_date), titled "(k/N)"
        """
        fragments = []
        title = event.title
        current_start = event.start_date
        midnight = next_local_midnight(event.start_date)
        count = 1

        while event.end_date > midnight:
            fragment = dataclasses.replace(
                event,
                title=f"{title} ({count}/{day_count})",
                start_date=current_start,
                end_date=midnight,
                extra=dict(event.extra)
            )
            self._reclassify_fragment(fragment, today)
            fragments.append(fragment)

            current_start = midnight
            count += 1
            midnight = next_local_midnight(midnight)

        # Last day keeps a today flag set on the whole event
        last = dataclasses.replace(
            event,
            title=f"{title} ({count}/{day_count})",
            start_date=current_start,
            extra=dict(event.extra)
        )
        self._reclassify_fragment(last, today, keep_today=True)
        fragments.append(last)

        return fragments

    @staticmethod
    def _within_window(event: EnrichedEvent, now: int, horizon: int) -> bool:
        return now < event.end_date <= horizon
