"""Unit tests for EventListBuilder."""
import logging
from datetime import datetime

import pytest

from processor.config import BuildConfig
from processor.event_list_builder import EventListBuilder
from processor.models import BuildState, CalendarEvent, CalendarSnapshot, EnrichedEvent

SOURCE_A = 'http://example.com/a.ics'
SOURCE_B = 'http://example.com/b.ics'


def at(year, month, day, hour=0, minute=0):
    """Local wall-clock time as epoch milliseconds."""
    return int(datetime(year, month, day, hour, minute).timestamp() * 1000)


NOW = at(2024, 1, 15, 12, 0)


def record(title, start, end, **fields):
    data = {'title': title, 'startDate': start, 'endDate': end}
    data.update(fields)
    return data


@pytest.fixture
def builder():
    return EventListBuilder(BuildConfig(maximum_entries=10))


class TestVisibilityAndDedup:
    """Filtering and deduplication."""

    def test_standup_today(self, builder):
        """Test a short event today is classified as today only."""
        events = builder.build({
            SOURCE_A: [record('Standup', at(2024, 1, 15, 9), at(2024, 1, 15, 9, 30))]
        }, now=NOW)

        assert len(events) == 1
        event = events[0]
        assert event.title == 'Standup'
        assert event.source_id == SOURCE_A
        assert event.today is True
        assert event.buckets() == ['today']

    def test_hide_ongoing_excludes_started_event(self):
        """Test that an event which already started is dropped."""
        builder = EventListBuilder(BuildConfig(hide_ongoing=True))

        events = builder.build({
            SOURCE_A: [
                record('Running', NOW - 3600 * 1000, NOW + 3600 * 1000),
                record('Later', NOW + 3600 * 1000, NOW + 7200 * 1000),
            ]
        }, now=NOW)

        assert [event.title for event in events] == ['Later']

    def test_ongoing_event_kept_by_default(self, builder):
        """Test that ongoing events are listed unless hidden."""
        events = builder.build({
            SOURCE_A: [record('Running', NOW - 3600 * 1000, NOW + 3600 * 1000)]
        }, now=NOW)

        assert len(events) == 1

    def test_hide_private(self):
        """Test that PRIVATE events are dropped only when hidePrivate is set."""
        records = {
            SOURCE_A: [
                record('Secret', at(2024, 1, 16, 9), at(2024, 1, 16, 10), **{'class': 'PRIVATE'}),
                record('Open', at(2024, 1, 16, 11), at(2024, 1, 16, 12), **{'class': 'PUBLIC'}),
            ]
        }

        hidden = EventListBuilder(BuildConfig(hide_private=True)).build(records, now=NOW)
        shown = EventListBuilder(BuildConfig(hide_private=False)).build(records, now=NOW)

        assert [event.title for event in hidden] == ['Open']
        assert [event.title for event in shown] == ['Secret', 'Open']

    def test_duplicate_across_sources(self, builder):
        """Test that identical title and start from two sources appear once."""
        start = at(2024, 1, 16, 9)
        events = builder.build({
            SOURCE_A: [record('Holiday', start, start + 3600 * 1000)],
            SOURCE_B: [record('Holiday', str(start), start + 7200 * 1000)],
        }, now=NOW)

        assert len(events) == 1
        assert events[0].source_id == SOURCE_A

    def test_same_title_different_start_kept(self, builder):
        """Test that dedup keys on both title and start."""
        events = builder.build({
            SOURCE_A: [
                record('Gym', at(2024, 1, 16, 9), at(2024, 1, 16, 10)),
                record('Gym', at(2024, 1, 17, 9), at(2024, 1, 17, 10)),
            ]
        }, now=NOW)

        assert len(events) == 2

    def test_contains_event(self, builder):
        """Test the dedup predicate directly."""
        events = builder.build({
            SOURCE_A: [record('Gym', at(2024, 1, 16, 9), at(2024, 1, 16, 10))]
        }, now=NOW)

        same = CalendarEvent(title='Gym', start_date=at(2024, 1, 16, 9), end_date=0)
        other = CalendarEvent(title='Gym', start_date=at(2024, 1, 16, 8), end_date=0)

        assert EventListBuilder.contains_event(events, same) is True
        assert EventListBuilder.contains_event(events, other) is False


class TestMalformedRecords:
    """Upstream data defects are skipped, not fatal."""

    def test_malformed_records_skipped(self, builder, caplog):
        """Test that records without usable timestamps are excluded."""
        good = record('Good', at(2024, 1, 16, 9), at(2024, 1, 16, 10))

        with caplog.at_level(logging.WARNING, logger='processor.event_list_builder'):
            events = builder.build({
                SOURCE_A: [
                    {'title': 'No start', 'endDate': at(2024, 1, 16, 10)},
                    record('Bad end', at(2024, 1, 16, 9), 'soon'),
                    record(None, at(2024, 1, 16, 9), at(2024, 1, 16, 10)),
                    'not a record',
                    good,
                ]
            }, now=NOW)

        assert [event.title for event in events] == ['Good']
        warnings = [r.message for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 4

    def test_extra_fields_pass_through(self, builder):
        """Test that unknown source fields survive enrichment."""
        events = builder.build({
            SOURCE_A: [record('Lunch', at(2024, 1, 16, 12), at(2024, 1, 16, 13),
                              location='Cafe', firstYear=2020)]
        }, now=NOW)

        data = events[0].to_dict()
        assert data['location'] == 'Cafe'
        assert data['firstYear'] == 2020
        assert data['sourceId'] == SOURCE_A
        assert data['tomorrow'] is True


class TestBuckets:
    """Relative-day classification."""

    @pytest.mark.parametrize('start, expected', [
        (at(2024, 1, 13, 10), ['dayBeforeYesterday']),
        (at(2024, 1, 14, 10), ['yesterday']),
        (at(2024, 1, 15, 0), ['today']),
        (at(2024, 1, 15, 23, 59), ['today']),
        (at(2024, 1, 16, 0), ['tomorrow']),
        (at(2024, 1, 17, 10), ['dayAfterTomorrow']),
        (at(2024, 1, 18, 0), []),
        (at(2024, 1, 12, 23), []),
    ])
    def test_bucket_for_start(self, builder, start, expected):
        """Test the bucket flag set for each relative day."""
        events = builder.build({
            SOURCE_A: [record('Event', start, start + 1800 * 1000)]
        }, now=NOW)

        assert events[0].buckets() == expected

    def test_buckets_mutually_exclusive(self, builder):
        """Test that unsliced events never carry more than one bucket."""
        records = [
            record(f'Event {hour}', at(2024, 1, 12) + hour * 3600 * 1000,
                   at(2024, 1, 12) + (hour + 1) * 3600 * 1000)
            for hour in range(0, 24 * 8)
        ]
        builder = EventListBuilder(BuildConfig(maximum_entries=1000))

        events = builder.build({SOURCE_A: records}, now=NOW)

        assert len(events) == len(records)
        assert all(len(event.buckets()) <= 1 for event in events)


class TestOrderingAndCap:
    """Sort order, stability and cap."""

    def test_sorted_by_start(self, builder):
        """Test that events from all sources are merged in start order."""
        events = builder.build({
            SOURCE_A: [
                record('Third', at(2024, 1, 18, 9), at(2024, 1, 18, 10)),
                record('First', at(2024, 1, 16, 9), at(2024, 1, 16, 10)),
            ],
            SOURCE_B: [record('Second', at(2024, 1, 17, 9), at(2024, 1, 17, 10))],
        }, now=NOW)

        assert [event.title for event in events] == ['First', 'Second', 'Third']
        starts = [event.start_date for event in events]
        assert starts == sorted(starts)

    def test_ties_keep_encounter_order(self, builder):
        """Test that equal starts keep the order they were encountered in."""
        start = at(2024, 1, 16, 9)
        events = builder.build({
            SOURCE_A: [record('A', start, start + 1000), record('B', start, start + 1000)],
            SOURCE_B: [record('C', start, start + 1000)],
        }, now=NOW)

        assert [event.title for event in events] == ['A', 'B', 'C']

    def test_cap(self):
        """Test that the list is truncated to maximum_entries after sorting."""
        builder = EventListBuilder(BuildConfig(maximum_entries=10))
        records = [
            record(f'Event {day}', at(2024, 1, 16 + day, 9), at(2024, 1, 16 + day, 10))
            for day in reversed(range(15))
        ]

        events = builder.build({SOURCE_A: records[:8], SOURCE_B: records[8:]}, now=NOW)

        assert len(events) == 10
        assert events[0].title == 'Event 0'
        assert events[-1].title == 'Event 9'

    def test_negative_cap_yields_nothing(self):
        builder = EventListBuilder(BuildConfig(maximum_entries=-1))

        events = builder.build({
            SOURCE_A: [record('Soon', at(2024, 1, 16, 9), at(2024, 1, 16, 10))]
        }, now=NOW)

        assert events == []

    def test_idempotent(self, builder):
        """Test that identical inputs and now yield identical output."""
        records = {
            SOURCE_A: [record('A', at(2024, 1, 16, 9), at(2024, 1, 18, 10))],
            SOURCE_B: [record('B', at(2024, 1, 15, 9), at(2024, 1, 15, 10))],
        }

        assert builder.build(records, now=NOW) == builder.build(records, now=NOW)

    def test_input_not_mutated(self, builder):
        """Test that raw records are left untouched."""
        raw = record('Trip', at(2024, 1, 16, 10), at(2024, 1, 18, 12))
        original = dict(raw)
        sliced = EventListBuilder(BuildConfig(slice_multi_day_events=True))

        sliced.build({SOURCE_A: [raw]}, now=NOW)

        assert raw == original


class TestSlicing:
    """Multi-day slicing at local midnight."""

    @pytest.fixture
    def slicer(self):
        return EventListBuilder(BuildConfig(slice_multi_day_events=True, maximum_entries=20))

    def test_three_day_event(self, slicer):
        """Test that a three-day event tiles into three fragments."""
        start = at(2024, 1, 16, 10)
        end = at(2024, 1, 18, 12)

        events = slicer.build({SOURCE_A: [record('Trip', start, end)]}, now=NOW)

        assert [event.title for event in events] == ['Trip (1/3)', 'Trip (2/3)', 'Trip (3/3)']
        assert events[0].start_date == start
        assert events[0].end_date == at(2024, 1, 17)
        assert events[1].start_date == at(2024, 1, 17)
        assert events[1].end_date == at(2024, 1, 18)
        assert events[2].start_date == at(2024, 1, 18)
        assert events[2].end_date == end
        for current, following in zip(events, events[1:]):
            assert current.end_date == following.start_date

    def test_fragment_buckets(self, slicer):
        """Test that fragments re-derive today and tomorrow."""
        events = slicer.build({
            SOURCE_A: [record('Trip', at(2024, 1, 16, 10), at(2024, 1, 18, 12))]
        }, now=NOW)

        assert events[0].tomorrow is True
        assert events[1].buckets() == []
        assert events[2].buckets() == []

    def test_sliced_duplicate_across_sources(self, slicer):
        """Test that the same multi-day event from two sources is sliced once."""
        trip = record('Trip', at(2024, 1, 16, 10), at(2024, 1, 18, 12))

        events = slicer.build({SOURCE_A: [trip], SOURCE_B: [dict(trip)]}, now=NOW)

        keys = [(event.title, event.start_date) for event in events]
        assert len(keys) == len(set(keys))
        assert [event.title for event in events] == ['Trip (1/3)', 'Trip (2/3)', 'Trip (3/3)']
        assert {event.source_id for event in events} == {SOURCE_A}

    def test_slicing_disabled(self, builder):
        """Test that multi-day events stay whole when slicing is off."""
        events = builder.build({
            SOURCE_A: [record('Trip', at(2024, 1, 16, 10), at(2024, 1, 18, 12))]
        }, now=NOW)

        assert len(events) == 1
        assert events[0].title == 'Trip'

    def test_full_day_event_ending_at_midnight_not_sliced(self, slicer):
        """Test that an event ending exactly at midnight spans one day."""
        events = slicer.build({
            SOURCE_A: [record('Holiday', at(2024, 1, 16), at(2024, 1, 17), fullDayEvent=True)]
        }, now=NOW)

        assert len(events) == 1
        assert events[0].title == 'Holiday'
        assert events[0].full_day_event is True

    def test_past_fragments_dropped(self, slicer):
        """Test that fragments ending before now are dropped."""
        events = slicer.build({
            SOURCE_A: [record('Conference', at(2024, 1, 14, 10), at(2024, 1, 16, 10))]
        }, now=NOW)

        assert [event.title for event in events] == ['Conference (2/3)', 'Conference (3/3)']
        assert events[0].today is True
        # Flags other than today/tomorrow come from the whole event
        assert events[0].yesterday is True
        assert events[1].tomorrow is True

    def test_last_fragment_keeps_today(self, slicer):
        """Test that the last fragment keeps a today flag of the whole event."""
        events = slicer.build({
            SOURCE_A: [record('Night shift', at(2024, 1, 15, 22), at(2024, 1, 16, 6))]
        }, now=NOW)

        assert [event.title for event in events] == ['Night shift (1/2)', 'Night shift (2/2)']
        assert events[0].today is True
        assert events[1].today is True
        assert events[1].tomorrow is False

    def test_horizon_applies_to_fragments_only(self):
        """Test that only sliced fragments are bounded by the horizon."""
        builder = EventListBuilder(BuildConfig(
            slice_multi_day_events=True, maximum_number_of_days=2
        ))

        events = builder.build({
            SOURCE_A: [
                record('Far trip', at(2024, 1, 20, 10), at(2024, 1, 22, 10)),
                record('Far meeting', at(2024, 1, 25, 10), at(2024, 1, 25, 11)),
            ]
        }, now=NOW)

        assert [event.title for event in events] == ['Far meeting']

    def test_uniform_horizon(self):
        """Test that the horizon can be enforced for whole events too."""
        builder = EventListBuilder(BuildConfig(
            maximum_number_of_days=2, uniform_horizon=True
        ))

        events = builder.build({
            SOURCE_A: [
                record('Soon', at(2024, 1, 16, 10), at(2024, 1, 16, 11)),
                record('Far meeting', at(2024, 1, 25, 10), at(2024, 1, 25, 11)),
                record('Over', at(2024, 1, 15, 8), at(2024, 1, 15, 9)),
            ]
        }, now=NOW)

        assert [event.title for event in events] == ['Soon']

    def test_day_count(self):
        """Test counting the local days an event touches."""

        def span(start, end):
            return EventListBuilder.day_count(
                EnrichedEvent(title='x', start_date=start, end_date=end, source_id=SOURCE_A)
            )

        assert span(at(2024, 1, 16, 9), at(2024, 1, 16, 10)) == 1
        assert span(at(2024, 1, 16), at(2024, 1, 17)) == 1
        assert span(at(2024, 1, 16, 23), at(2024, 1, 17, 1)) == 2
        assert span(at(2024, 1, 16), at(2024, 1, 19)) == 3


class TestBuildResult:
    """Display state derived from a snapshot."""

    def test_loading_before_any_data(self, builder):
        """Test that no data yet is distinct from an empty list."""
        result = builder.build_result(CalendarSnapshot(), now=NOW)

        assert result.state == BuildState.LOADING
        assert result.events == []

    def test_empty_after_load(self, builder):
        """Test that a loaded snapshot with no events is EMPTY."""
        result = builder.build_result(
            CalendarSnapshot(events_by_source={SOURCE_A: ()}, loaded=True), now=NOW
        )

        assert result.state == BuildState.EMPTY

    def test_ready(self, builder):
        """Test that events produce a READY result."""
        snapshot = CalendarSnapshot(
            events_by_source={SOURCE_A: (record('A', at(2024, 1, 16, 9), at(2024, 1, 16, 10)),)},
            loaded=True
        )

        result = builder.build_result(snapshot, now=NOW)

        assert result.state == BuildState.READY
        assert len(result.events) == 1

    def test_error_suppresses_events(self, builder):
        """Test that an ingestion error hides the list entirely."""
        snapshot = CalendarSnapshot(
            events_by_source={SOURCE_A: (record('A', at(2024, 1, 16, 9), at(2024, 1, 16, 10)),)},
            loaded=True,
            error='FETCH_FAILED'
        )

        result = builder.build_result(snapshot, now=NOW)

        assert result.state == BuildState.ERROR
        assert result.events == []
        assert result.error == 'FETCH_FAILED'
