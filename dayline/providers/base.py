"""
Tool: Calendar Provider Base
Purpose: Common interface for calendar sources

Both operations return a Result rather than raising, so one broken calendar
can be reported without stopping the others.

Usage:
    from dayline.providers.google_calendar import GoogleCalendarProvider

    provider = GoogleCalendarProvider("me@example.com", token_manager)
    result = await provider.get_events("primary", time_range)
"""

from abc import ABC, abstractmethod

from dayline.errors import Result
from dayline.models import Event, ProviderCalendar, TimeRange


class CalendarProvider(ABC):
    """
    Read-only calendar source.

    Events returned by get_events carry the provider's calendar id; callers
    that cache them under a configured source id rewrite it.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name ('google' or 'ical')."""
        pass

    @abstractmethod
    async def list_calendars(self) -> Result[list[ProviderCalendar]]:
        """Calendars visible through this provider."""
        pass

    @abstractmethod
    async def get_events(self, calendar_id: str, time_range: TimeRange) -> Result[list[Event]]:
        """
        Events of one calendar that intersect ``time_range``.

        Recurring series are expanded into individual occurrences.
        """
        pass
