"""Tests for dayline/timeline.py"""

import random
from datetime import timedelta

import pytest

from dayline.timeline import (
    EventStatus,
    assign_columns,
    calculate_total_columns,
    event_position,
    events_overlap,
    get_event_status,
    prepare_timeline,
)
from tests.conftest import at, make_event


def three_meetings():
    return [
        make_event("a", at(9), at(10)),
        make_event("b", at(9, 30), at(10, 30)),
        make_event("c", at(10), at(11)),
    ]


def max_clique(events) -> int:
    """Largest number of events in progress at one instant."""
    points = []
    for e in events:
        points.append((e.start_time, 1))
        points.append((e.end_time, -1))
    # Ends sort before starts at the same instant: touching is not overlapping
    points.sort(key=lambda p: (p[0], p[1]))
    best = current = 0
    for _, delta in points:
        current += delta
        best = max(best, current)
    return best


# ─────────────────────────────────────────────────────────────────────────────
# Overlap Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestEventsOverlap:
    def test_overlapping(self):
        a, b, _ = three_meetings()
        assert events_overlap(a, b) is True
        assert events_overlap(b, a) is True

    def test_touching_does_not_overlap(self):
        a, _, c = three_meetings()
        assert events_overlap(a, c) is False
        assert events_overlap(c, a) is False

    def test_contained(self):
        outer = make_event("outer", at(8), at(12))
        inner = make_event("inner", at(9), at(10))
        assert events_overlap(outer, inner) is True


# ─────────────────────────────────────────────────────────────────────────────
# Column Assignment Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAssignColumns:
    """Tests for assign_columns and calculate_total_columns."""

    def test_three_meetings(self):
        events = three_meetings()

        columns = assign_columns(events)
        totals = calculate_total_columns(events, columns)

        assert columns == [0, 1, 0]
        # c overlaps b, which sits in column 1
        assert totals == [2, 2, 2]

    def test_aligned_with_input_order(self):
        a, b, c = three_meetings()

        assert assign_columns([c, b, a]) == [0, 1, 0]

    def test_equal_starts_keep_input_order(self):
        first = make_event("first", at(9), at(10))
        second = make_event("second", at(9), at(10))

        assert assign_columns([first, second]) == [0, 1]
        assert assign_columns([second, first]) == [0, 1]

    def test_disjoint_events_share_column(self):
        events = [make_event(str(h), at(h), at(h + 1)) for h in range(8, 12)]

        columns = assign_columns(events)

        assert columns == [0, 0, 0, 0]
        assert calculate_total_columns(events, columns) == [1, 1, 1, 1]

    def test_empty(self):
        assert assign_columns([]) == []
        assert calculate_total_columns([], []) == []

    @pytest.mark.parametrize("seed", range(20))
    def test_columns_used_equal_clique_size(self, seed):
        rng = random.Random(seed)
        events = []
        for i in range(12):
            start = at(8) + timedelta(minutes=15 * rng.randint(0, 32))
            events.append(make_event(f"e{i}", start, start + timedelta(minutes=15 * rng.randint(1, 8))))

        columns = assign_columns(events)

        assert len(set(columns)) == max_clique(events)
        for i, a in enumerate(events):
            for j, b in enumerate(events):
                if i != j and events_overlap(a, b):
                    assert columns[i] != columns[j]


# ─────────────────────────────────────────────────────────────────────────────
# Status Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestStatus:
    """Tests for get_event_status and next-event selection."""

    def test_boundaries(self):
        event = make_event(start=at(9), end=at(10))

        assert get_event_status(event, at(8, 59)) is EventStatus.FUTURE
        assert get_event_status(event, at(9)) is EventStatus.CURRENT
        assert get_event_status(event, at(10)) is EventStatus.PAST

    def test_three_meetings_at_quarter_to_ten(self):
        timeline = prepare_timeline(three_meetings(), at(9, 45))

        statuses = [t.status for t in timeline.timed_events]
        assert statuses == [EventStatus.CURRENT, EventStatus.CURRENT, EventStatus.NEXT]
        assert timeline.next_event.event.id == "c"

    def test_only_earliest_future_is_next(self):
        events = [
            make_event("later", at(15), at(16)),
            make_event("soon", at(11), at(12)),
            make_event("done", at(7), at(8)),
        ]

        statuses = {t.event.id: t.status for t in prepare_timeline(events, at(9)).timed_events}

        assert statuses == {"later": EventStatus.FUTURE, "soon": EventStatus.NEXT, "done": EventStatus.PAST}

    def test_no_future_events(self):
        timeline = prepare_timeline([make_event(start=at(7), end=at(8))], at(9))

        assert timeline.next_event is None


# ─────────────────────────────────────────────────────────────────────────────
# Prepared Timeline Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestPrepareTimeline:
    def test_all_day_events_split_out(self):
        holiday = make_event("holiday", at(0), at(0, day=27), all_day=True)
        meeting = make_event("meeting", at(9), at(10))

        timeline = prepare_timeline([holiday, meeting], at(12))

        assert [t.event.id for t in timeline.all_day_events] == ["holiday"]
        assert [t.event.id for t in timeline.timed_events] == ["meeting"]
        all_day = timeline.all_day_events[0]
        assert (all_day.column, all_day.total_columns, all_day.status) == (0, 1, EventStatus.CURRENT)

    def test_all_day_never_next(self):
        tomorrow = make_event("tomorrow", at(0, day=27), at(0, day=28), all_day=True)

        timeline = prepare_timeline([tomorrow], at(12))

        assert timeline.all_day_events[0].status is EventStatus.FUTURE
        assert timeline.next_event is None

    def test_zero_length_event(self):
        reminder = make_event("reminder", at(9), at(9))
        meeting = make_event("meeting", at(9), at(10))

        timeline = prepare_timeline([reminder, meeting], at(8))

        # Zero-length events overlap nothing
        assert [(t.column, t.total_columns) for t in timeline.timed_events] == [(0, 1), (0, 1)]

    def test_deterministic(self):
        events = three_meetings()

        assert prepare_timeline(events, at(9, 45)) == prepare_timeline(events, at(9, 45))

    def test_to_dict(self):
        data = prepare_timeline(three_meetings(), at(9, 45)).to_dict()

        assert data["allDayEvents"] == []
        second = data["timedEvents"][1]
        assert second["id"] == "b"
        assert second["column"] == 1
        assert second["totalColumns"] == 2
        assert second["status"] == "current"


class TestEventPosition:
    """Tests for event_position."""

    def test_inside_day(self):
        position = event_position(at(6), at(12), at(0), at(0, day=27))

        assert position.top == pytest.approx(25.0)
        assert position.height == pytest.approx(25.0)

    def test_clipped_to_day(self):
        position = event_position(at(22, day=25), at(6), at(0), at(0, day=27))

        assert position.top == 0.0
        assert position.height == pytest.approx(25.0)

    def test_outside_day(self):
        position = event_position(at(1, day=27), at(2, day=27), at(0), at(0, day=27))

        assert (position.top, position.height) == (0.0, 0.0)
