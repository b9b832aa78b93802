# Calendar Providers
# Uniform read access to OAuth-connected calendars and iCal feeds

"""
Provider implementations.

Components:
- base.py - CalendarProvider interface
- google_calendar.py - Google Calendar API (OAuth)
- ical_feed.py - Public iCal/ICS feeds
"""

from dayline.providers.base import CalendarProvider
from dayline.providers.google_calendar import GoogleCalendarProvider
from dayline.providers.ical_feed import ICalFeedProvider, probe_feed

__all__ = ["CalendarProvider", "GoogleCalendarProvider", "ICalFeedProvider", "probe_feed"]
