"""Desktop notifications for prayer times."""

import logging

from plyer import notification as plyer_notification

from athan.schedule import REMINDER_LEAD, ScheduleEvent

logger = logging.getLogger(__name__)

APP_NAME = "Athan"
APP_ICON = ""  # Path to icon file; empty = default

REMINDER_MINUTES = int(REMINDER_LEAD.total_seconds() // 60)


def _send_plyer(title: str, message: str, timeout: int = 10) -> None:
    """Send a desktop notification via plyer (cross-platform)."""
    kwargs = dict(
        app_name=APP_NAME,
        title=title,
        message=message,
        timeout=timeout,
    )
    if APP_ICON:
        kwargs["app_icon"] = APP_ICON
    try:
        plyer_notification.notify(**kwargs)
    except (NotImplementedError, OSError, ImportError) as exc:
        # No notification backend on this system (headless, missing dbus, ...)
        logger.warning("Desktop notification failed: %s", exc)


def notify_reminder(prayer_display_name: str, minutes: int = REMINDER_MINUTES, callback=None) -> None:
    """
    Send a desktop notification N minutes before prayer time.
    Optionally calls callback(title, message).
    """
    title = f"{prayer_display_name} in {minutes} minutes"
    message = f"{prayer_display_name} prayer starts in {minutes} minutes."
    _send_plyer(title, message, timeout=15)
    if callback:
        callback(title, message)


def notify_prayer_time(prayer_display_name: str, callback=None) -> None:
    """
    Send a desktop notification when prayer time arrives.
    Optionally calls callback(title, message).
    """
    title = f"Time for {prayer_display_name}"
    message = f"It is now time for {prayer_display_name} prayer."
    _send_plyer(title, message, timeout=30)
    if callback:
        callback(title, message)


def attach(engine, callback=None):
    """
    Subscribe desktop notifications to a ScheduleEngine.

    The first prayer the engine settles on is not announced; only later
    transitions are. Returns the unsubscribe callable from ``engine.subscribe``.
    """
    last = [engine.current_prayer]

    def _listener(event, _engine, payload):
        if event is ScheduleEvent.REMINDER:
            notify_reminder(payload.prayer.display_name, callback=callback)
        elif event is ScheduleEvent.PRAYER_CHANGED:
            previous, last[0] = last[0], payload
            if previous is not None:
                notify_prayer_time(payload.display_name, callback=callback)

    return engine.subscribe(_listener)
