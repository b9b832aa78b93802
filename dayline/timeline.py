"""
Tool: Timeline Layout
Purpose: Lay out a day's events as side-by-side columns with a time status

Pure functions, deterministic given (events, now):
1. Split all-day from timed events
2. Greedy interval coloring assigns each timed event the lowest free column
3. Each event reserves 1 + the highest column among the events it overlaps
4. Status is past / current / future; the earliest future timed event is next

Two events overlap iff a.start < b.end and b.start < a.end, so events that
only touch (one ends as the other starts) share a column.

Usage:
    from dayline.timeline import prepare_timeline

    timeline = prepare_timeline(events, now)
    for item in timeline.timed_events:
        print(item.event.title, item.column, item.total_columns, item.status)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from dayline.models import Event


class EventStatus(str, Enum):
    PAST = "past"
    CURRENT = "current"
    NEXT = "next"
    FUTURE = "future"


@dataclass(frozen=True)
class TimelineEvent:
    """An event with its computed layout; never persisted."""

    event: Event
    column: int
    total_columns: int
    status: EventStatus

    def to_dict(self) -> dict[str, Any]:
        d = self.event.to_dict()
        d.update(column=self.column, totalColumns=self.total_columns, status=self.status.value)
        return d


@dataclass(frozen=True)
class PreparedTimeline:
    all_day_events: list[TimelineEvent]
    timed_events: list[TimelineEvent]

    @property
    def next_event(self) -> TimelineEvent | None:
        return next((t for t in self.timed_events if t.status is EventStatus.NEXT), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allDayEvents": [t.to_dict() for t in self.all_day_events],
            "timedEvents": [t.to_dict() for t in self.timed_events],
        }


@dataclass(frozen=True)
class EventPosition:
    """Vertical placement within a day, as percentages of its height."""

    top: float
    height: float


def events_overlap(a: Event, b: Event) -> bool:
    return a.start_time < b.end_time and b.start_time < a.end_time


def _start_order(events: Sequence[Event]) -> list[int]:
    # sorted() is stable, so equal starts keep their input order
    return sorted(range(len(events)), key=lambda i: events[i].start_time)


def assign_columns(events: Sequence[Event]) -> list[int]:
    """
    Column index for each event, aligned with the input order.

    Uses as many columns as the largest set of mutually overlapping events.
    """
    columns = [0] * len(events)
    column_ends: list[datetime] = []

    for i in _start_order(events):
        event = events[i]
        for col, end in enumerate(column_ends):
            if end <= event.start_time:
                column_ends[col] = event.end_time
                columns[i] = col
                break
        else:
            columns[i] = len(column_ends)
            column_ends.append(event.end_time)

    return columns


def calculate_total_columns(events: Sequence[Event], columns: Sequence[int]) -> list[int]:
    """1 + the highest column among the events overlapping each event (itself included)."""
    totals = []
    for i, event in enumerate(events):
        highest = columns[i]
        for j, other in enumerate(events):
            if i != j and events_overlap(event, other):
                highest = max(highest, columns[j])
        totals.append(highest + 1)
    return totals


def get_event_status(event: Event, now: datetime) -> EventStatus:
    """past, current or future; ``next`` is decided across events in prepare_timeline."""
    if event.end_time <= now:
        return EventStatus.PAST
    if event.start_time <= now < event.end_time:
        return EventStatus.CURRENT
    return EventStatus.FUTURE


def prepare_timeline(events: Sequence[Event], now: datetime) -> PreparedTimeline:
    """Render-ready layout of ``events`` relative to ``now``."""
    all_day = [e for e in events if e.all_day]
    timed = [e for e in events if not e.all_day]

    columns = assign_columns(timed)
    totals = calculate_total_columns(timed, columns)
    statuses = [get_event_status(e, now) for e in timed]

    for i in _start_order(timed):
        if statuses[i] is EventStatus.FUTURE:
            statuses[i] = EventStatus.NEXT
            break

    return PreparedTimeline(
        all_day_events=[TimelineEvent(e, 0, 1, get_event_status(e, now)) for e in all_day],
        timed_events=[TimelineEvent(e, columns[i], totals[i], statuses[i]) for i, e in enumerate(timed)],
    )


def event_position(start: datetime, end: datetime, day_start: datetime, day_end: datetime) -> EventPosition:
    """Top and height percentages of an event clipped to [day_start, day_end]."""
    day_seconds = (day_end - day_start).total_seconds()
    if day_seconds <= 0:
        return EventPosition(0.0, 0.0)

    clipped_start = max(start, day_start)
    clipped_end = min(end, day_end)
    if clipped_start >= clipped_end:
        return EventPosition(0.0, 0.0)

    top = (clipped_start - day_start).total_seconds() / day_seconds * 100
    height = (clipped_end - clipped_start).total_seconds() / day_seconds * 100
    return EventPosition(top, height)
