"""Data models for calendar event list construction."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Wire keys interpreted by the builder; everything else passes through.
_KNOWN_KEYS = (
    'title', 'startDate', 'endDate', 'fullDayEvent', 'recurringEvent',
    'class', 'firstYear',
)


def _parse_timestamp(value: Any, name: str) -> int:
    if value is None or isinstance(value, bool):
        raise ValueError(f"missing or invalid {name}: {value!r}")
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise ValueError(f"malformed {name}: {value!r}")


@dataclass
class CalendarEvent:
    """Raw event as delivered by the ingestion collaborator."""
    title: str
    start_date: int
    end_date: int
    full_day_event: bool = False
    recurring_event: bool = False
    event_class: Optional[str] = None
    first_year: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'CalendarEvent':
        """
        Parse a raw wire record.

        Args:
            record: Mapping with camelCase keys (startDate, endDate, ...)

        Returns:
            CalendarEvent

        Raises:
            ValueError: If the title or either timestamp is missing or
                malformed
        """
        if not isinstance(record, Mapping):
            raise ValueError(f"event record is not a mapping: {type(record).__name__}")

        title = record.get('title')
        if not isinstance(title, str):
            raise ValueError(f"missing or invalid title: {title!r}")

        first_year = record.get('firstYear')
        if first_year is not None:
            try:
                first_year = int(first_year)
            except (TypeError, ValueError):
                first_year = None

        return cls(
            title=title,
            start_date=_parse_timestamp(record.get('startDate'), 'startDate'),
            end_date=_parse_timestamp(record.get('endDate'), 'endDate'),
            full_day_event=record.get('fullDayEvent') is True,
            recurring_event=record.get('recurringEvent') is True,
            event_class=record.get('class'),
            first_year=first_year,
            extra={
                key: value for key, value in record.items()
                if key not in _KNOWN_KEYS
            }
        )


@dataclass
class EnrichedEvent:
    """Event ready for display: raw fields plus source and day buckets."""
    title: str
    start_date: int
    end_date: int
    source_id: str
    full_day_event: bool = False
    recurring_event: bool = False
    event_class: Optional[str] = None
    first_year: Optional[int] = None
    today: bool = False
    yesterday: bool = False
    day_before_yesterday: bool = False
    tomorrow: bool = False
    day_after_tomorrow: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: CalendarEvent, source_id: str) -> 'EnrichedEvent':
        return cls(
            title=event.title,
            start_date=event.start_date,
            end_date=event.end_date,
            source_id=source_id,
            full_day_event=event.full_day_event,
            recurring_event=event.recurring_event,
            event_class=event.event_class,
            first_year=event.first_year,
            extra=dict(event.extra)
        )

    def buckets(self) -> List[str]:
        """Names of the bucket flags set on this event."""
        flags = {
            'today': self.today,
            'yesterday': self.yesterday,
            'dayBeforeYesterday': self.day_before_yesterday,
            'tomorrow': self.tomorrow,
            'dayAfterTomorrow': self.day_after_tomorrow,
        }
        return [name for name, value in flags.items() if value]

    def to_dict(self) -> Dict[str, Any]:
        """
        Render the event in wire form.

        Returns:
            Dictionary with camelCase keys; extra source fields included
        """
        data = dict(self.extra)
        data.update({
            'title': self.title,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'fullDayEvent': self.full_day_event,
            'recurringEvent': self.recurring_event,
            'sourceId': self.source_id,
            'today': self.today,
            'yesterday': self.yesterday,
            'dayBeforeYesterday': self.day_before_yesterday,
            'tomorrow': self.tomorrow,
            'dayAfterTomorrow': self.day_after_tomorrow,
        })
        if self.event_class is not None:
            data['class'] = self.event_class
        if self.first_year is not None:
            data['firstYear'] = self.first_year
        return data


@dataclass(frozen=True)
class CalendarSnapshot:
    """Immutable view of the per-source raw event map."""
    events_by_source: Mapping[str, Tuple[Mapping[str, Any], ...]] = field(default_factory=dict)
    loaded: bool = False
    error: Optional[str] = None


class BuildState(str, Enum):
    """Display state of a build cycle."""
    LOADING = 'loading'
    EMPTY = 'empty'
    READY = 'ready'
    ERROR = 'error'


@dataclass
class BuildResult:
    """Result of a build cycle."""
    state: BuildState
    events: List[EnrichedEvent]
    error: Optional[str] = None
