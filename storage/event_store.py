"""Process-wide store for the per-source raw event map."""
import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from processor.config import BuildConfig
from processor.models import CalendarSnapshot

logger = logging.getLogger(__name__)


class InMemoryEventStore:
    """
    Holds the latest raw events of every configured source.

    Every write installs a new snapshot; snapshots handed out earlier are
    never modified.
    """

    def __init__(self, config: BuildConfig):
        self.known_sources = {source.url for source in config.calendars}
        self._snapshot = CalendarSnapshot(events_by_source=MappingProxyType({}))

    def snapshot(self) -> CalendarSnapshot:
        return self._snapshot

    def replace_source(self, source_id: str, records: Iterable[Mapping[str, Any]]) -> bool:
        """
        Replace all raw events of a source.

        Args:
            source_id: Source identifier
            records: Raw event records, replacing any previous list

        Returns:
            True if stored, False if the source is not configured
        """
        if source_id not in self.known_sources:
            logger.warning(f"Ignoring events for unconfigured source: {source_id}")
            return False

        events_by_source = dict(self._snapshot.events_by_source)
        events_by_source[source_id] = tuple(records)
        self._snapshot = CalendarSnapshot(
            events_by_source=MappingProxyType(events_by_source),
            loaded=True,
            error=None
        )
        logger.info(
            f"Stored {len(events_by_source[source_id])} events for {source_id}"
        )
        return True

    def record_error(self, error_type: Optional[str]) -> None:
        """
        Record an ingestion failure; kept until fresh data arrives.

        Args:
            error_type: Error identifier reported by the ingestion service
        """
        error = error_type or 'UNKNOWN_ERROR'
        self._snapshot = CalendarSnapshot(
            events_by_source=self._snapshot.events_by_source,
            loaded=True,
            error=error
        )
        logger.error(f"Calendar ingestion error recorded: {error}")
