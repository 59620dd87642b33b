#!/usr/bin/env python3
"""
Athan console app
Prints today's prayer times for the saved location, then keeps running:
  - announces each prayer as it begins
  - desktop reminder 15 minutes before each prayer
  - recomputes the schedule after midnight
"""

import argparse
import logging
import threading

from athan import notifier
from athan.location import get_location
from athan.prayer_times import Prayer, seconds_until
from athan.schedule import ScheduleEngine, ScheduleEvent, ScheduleRefreshFailed
from athan.settings import SettingsStore

logger = logging.getLogger("athan")


def _fmt_countdown(seconds: int) -> str:
    """Format seconds into HH:MM:SS countdown string."""
    if seconds < 0:
        return "00:00:00"
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def _print_times(engine: ScheduleEngine) -> None:
    times = engine.today_times
    print(f"{engine.settings.location.name}  {times.date:%A %d %B %Y}")
    for prayer in Prayer:
        marker = ">" if prayer is engine.current_prayer else " "
        print(f" {marker} {prayer.display_name:<8} {times.local(prayer):%H:%M}")
    upcoming = engine.guaranteed_next_prayer()
    secs = seconds_until(engine.guaranteed_next_prayer_time())
    print(f"   {upcoming.display_name} in {_fmt_countdown(secs)}")


def _on_event(event, engine, payload):
    if event is ScheduleEvent.TIMES_CHANGED:
        _print_times(engine)
    elif event is ScheduleEvent.PRAYER_CHANGED and engine.today_times is not None:
        print(f"{engine.today_times.local(payload):%H:%M}  {payload.display_name}")
    elif event is ScheduleEvent.REFRESH_FAILED:
        print(f"Could not update prayer times: {payload}")


def refresh_location(engine, force=False) -> bool:
    """Re-detect the location when asked to, or when the saved location tracks the device."""
    if not (force or engine.settings.location.use_current_location):
        return False
    location = get_location()
    if location is None:
        print("Location lookup failed; keeping the saved location.")
        return False
    try:
        return engine.update_location(location)
    except ScheduleRefreshFailed as exc:
        logger.error("Cannot compute prayer times for %s: %s", location.name, exc)
        return False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Show prayer times and notify at each prayer.")
    parser.add_argument("--locate", action="store_true",
                        help="detect the current location from the IP address before starting")
    parser.add_argument("--settings", metavar="PATH",
                        help="settings file (default: ~/.athan/settings.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = SettingsStore(args.settings)
    engine = ScheduleEngine(store)
    try:
        engine.refresh()
    except ScheduleRefreshFailed as exc:
        logger.error("Cannot compute prayer times: %s", exc)
        return 1
    engine.subscribe(_on_event)
    _print_times(engine)
    notifier.attach(engine)

    refresh_location(engine, force=args.locate)

    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        engine.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
