#!/usr/bin/env python3
"""
Dayline Command Line Interface

Main entry point for the `dayline` command.

Usage:
    dayline sync                          # Sync every enabled calendar
    dayline events --range week --json    # Merged events as JSON
    dayline timeline                      # Today's timeline with columns
    dayline add-feed URL --name Holidays  # Register an iCal feed
    dayline remove CALENDAR_ID            # Remove a calendar
    dayline remove-account EMAIL          # Revoke an account and its calendars
    dayline serve --port 8080             # Start the HTTP API
    dayline --version                     # Show version
"""

import argparse
import asyncio
import json
import sys
from zoneinfo import ZoneInfo

from dayline import __version__
from dayline.errors import ConfigError, StartupError
from dayline.logging_config import setup_logging


def _services():
    from dayline.api.main import build_services

    try:
        return build_services()
    except StartupError as e:
        print(f"Error: {e.error.user_message} {e.error.message}", file=sys.stderr)
        return None


def _read_events(services, view: str):
    if view == "week":
        return asyncio.run(services.sync.get_events_for_week())
    return asyncio.run(services.sync.get_events_for_today())


def _print_errors(errors) -> None:
    for error in errors:
        where = error.calendar_id or error.account or "-"
        print(f"  ! {where}: {error.message}", file=sys.stderr)


def cmd_sync(args):
    """Handle sync subcommand."""
    services = _services()
    if services is None:
        return 1

    summary = asyncio.run(services.sync.sync_all())
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print(f"Synced {summary.success_count}/{summary.total_count} calendars")
        for failed in summary.error_calendars:
            print(f"  ! {failed.name} ({failed.calendar_id}): {failed.error.message}")
        for account in summary.reauth_accounts:
            print(f"  Reconnect {account} to keep syncing")
    return 0 if not summary.error_calendars else 1


def cmd_events(args):
    """Handle events subcommand."""
    services = _services()
    if services is None:
        return 1

    result = _read_events(services, args.range)
    if not result.success:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    read = result.value
    if args.json:
        print(json.dumps(read.to_dict(), indent=2))
        return 0

    tz = ZoneInfo(services.settings.timezone)
    for event in read.events:
        if event.all_day:
            when = f"{event.start_time.astimezone(tz):%a %d}  all day    "
        else:
            when = f"{event.start_time.astimezone(tz):%a %d %H:%M}-{event.end_time.astimezone(tz):%H:%M}"
        print(f"{when}  {event.title}  [{event.source.calendar_name}]")
    if read.partial:
        _print_errors(read.errors)
    return 0


def cmd_timeline(args):
    """Handle timeline subcommand."""
    from dayline.models import utc_now
    from dayline.timeline import prepare_timeline

    services = _services()
    if services is None:
        return 1

    result = _read_events(services, args.range)
    if not result.success:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    timeline = prepare_timeline(result.value.events, utc_now())
    if args.json:
        print(json.dumps(timeline.to_dict(), indent=2))
        return 0

    tz = ZoneInfo(services.settings.timezone)
    for item in timeline.all_day_events:
        print(f"  all day      {item.status.value:<8} {item.event.title}")
    for item in sorted(timeline.timed_events, key=lambda t: t.event.start_time):
        start = item.event.start_time.astimezone(tz)
        end = item.event.end_time.astimezone(tz)
        lane = f"{item.column + 1}/{item.total_columns}"
        print(f"  {start:%H:%M}-{end:%H:%M} {item.status.value:<8} {lane:<5} {item.event.title}")
    return 0


def cmd_add_feed(args):
    """Handle add-feed subcommand."""
    from dayline.calendars import add_feed_calendar

    services = _services()
    if services is None:
        return 1

    result = asyncio.run(
        add_feed_calendar(
            args.url,
            args.name,
            config_path=services.settings.config_path,
            timeout=services.settings.request_timeout_seconds,
        )
    )
    if not result.success:
        print(f"Error: {result.error.user_message} ({result.error.message})", file=sys.stderr)
        return 1

    print(f"Added {result.value.name} as {result.value.id}")
    return 0


def cmd_remove(args):
    """Handle remove subcommand."""
    from dayline.calendars import remove_calendar

    services = _services()
    if services is None:
        return 1

    result = remove_calendar(args.calendar_id, services.repository, services.settings.config_path)
    if not result.success:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    print(f"Removed {result.value.name} ({result.value.id})")
    return 0


def cmd_remove_account(args):
    """Handle remove-account subcommand."""
    from dayline.calendars import remove_account

    services = _services()
    if services is None:
        return 1

    result = asyncio.run(
        remove_account(args.account, services.token_manager, services.repository, services.settings.config_path)
    )
    if not result.success:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    print(f"Revoked {args.account}; removed {len(result.value)} calendar(s)")
    for calendar_id in result.value:
        print(f"  - {calendar_id}")
    return 0


def cmd_serve(args):
    """Handle serve subcommand."""
    import uvicorn

    host = args.host or "127.0.0.1"
    port = args.port or 8080

    print(f"Starting Dayline at http://{host}:{port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(
        "dayline.api.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="dayline",
        description="Dayline - every calendar on one timeline",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version and exit")
    parser.add_argument("--log-level", default=None, help="Log level (default: DAYLINE_LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Sync subcommand
    sync_parser = subparsers.add_parser("sync", help="Sync every enabled calendar")
    sync_parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    sync_parser.set_defaults(func=cmd_sync)

    # Events subcommand
    events_parser = subparsers.add_parser("events", help="List merged events")
    events_parser.add_argument("--range", choices=["today", "week"], default="today")
    events_parser.add_argument("--json", action="store_true", help="Print events as JSON")
    events_parser.set_defaults(func=cmd_events)

    # Timeline subcommand
    timeline_parser = subparsers.add_parser("timeline", help="Show the laid-out timeline")
    timeline_parser.add_argument("--range", choices=["today", "week"], default="today")
    timeline_parser.add_argument("--json", action="store_true", help="Print the layout as JSON")
    timeline_parser.set_defaults(func=cmd_timeline)

    # Add-feed subcommand
    feed_parser = subparsers.add_parser("add-feed", help="Register an iCal feed URL")
    feed_parser.add_argument("url", help="http:// or https:// iCal URL")
    feed_parser.add_argument("--name", default=None, help="Display name (default: the feed's own name)")
    feed_parser.set_defaults(func=cmd_add_feed)

    # Remove subcommand
    remove_parser = subparsers.add_parser("remove", help="Remove a calendar and its cached events")
    remove_parser.add_argument("calendar_id", help="Configured calendar id")
    remove_parser.set_defaults(func=cmd_remove)

    # Remove-account subcommand
    account_parser = subparsers.add_parser("remove-account", help="Revoke a Google account and remove its calendars")
    account_parser.add_argument("account", help="Google account email")
    account_parser.set_defaults(func=cmd_remove_account)

    # Serve subcommand
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Host to bind (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: 8080)")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    if args.version:
        print(f"Dayline version {__version__}")
        return

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.log_level)

    try:
        result = args.func(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        result = 1
    if result:
        sys.exit(result)


if __name__ == "__main__":
    main()
