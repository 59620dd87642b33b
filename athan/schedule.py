"""Keeps today's and tomorrow's prayer times current and arms forward timers."""

import contextlib
import datetime
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import pytz

from athan.prayer_times import (
    Prayer,
    PrayerTimes,
    SolverError,
    SolverInputInvalid,
    compute,
)
from athan.settings import DEFAULT_LOCATION, LocationSettings, Settings

logger = logging.getLogger(__name__)

REMINDER_LEAD = datetime.timedelta(minutes=15)
# Fire just after midnight so "today" is already the new day when refreshing.
ROLLOVER_MARGIN = datetime.timedelta(seconds=1)
POLL_INTERVAL = 0.05
POLL_TIMEOUT = 5.0


class ScheduleError(RuntimeError):
    """Base class for schedule engine failures."""


class ScheduleRefreshFailed(ScheduleError):
    """Prayer times could not be computed, even for the default location."""


class ScheduleNotReady(ScheduleError):
    """The engine has not completed its first refresh."""


class ScheduleState(Enum):
    UNINITIALIZED = "uninitialized"
    # today and tomorrow are always committed together
    HAS_TODAY_AND_TOMORROW = "has_today_and_tomorrow"


class ScheduleEvent(Enum):
    TIMES_CHANGED = "times_changed"
    PRAYER_CHANGED = "prayer_changed"
    REMINDER = "reminder"
    REFRESH_FAILED = "refresh_failed"


@dataclass(frozen=True)
class UpcomingPrayer:
    prayer: Prayer
    time: datetime.datetime


Listener = Callable[[ScheduleEvent, "ScheduleEngine", object], None]


class Clock:
    def now(self) -> datetime.datetime:  # pragma: no cover - interface only
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime.datetime:
        return datetime.datetime.now(pytz.utc)


class ScheduleEngine:
    """
    Owns the session state behind the prayer display.

    All mutation goes through one re-entrant lock. Timer callbacks and the
    boundary-confirmation worker run on their own threads and take the lock
    before committing anything. Every armed timer carries the generation it
    was armed in; cancelling bumps the generation so late firings are ignored.
    Events raised while the lock is held are queued and delivered to
    listeners only after the outermost holder releases it.
    """

    def __init__(
        self,
        store,
        clock: Optional[Clock] = None,
        solver=compute,
        timer_factory=threading.Timer,
        poll_interval: float = POLL_INTERVAL,
        poll_timeout: float = POLL_TIMEOUT,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._solver = solver
        self._timer_factory = timer_factory
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout

        self._lock = threading.RLock()
        self._depth = 0
        self._pending: list = []
        self._listeners: List[Listener] = []
        self._timers: list = []
        self._generation = 0
        self._closed = False

        self._settings: Optional[Settings] = None
        self._today: Optional[PrayerTimes] = None
        self._tomorrow: Optional[PrayerTimes] = None
        self._current_prayer: Optional[Prayer] = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def settings(self) -> Optional[Settings]:
        return self._settings

    @property
    def today_times(self) -> Optional[PrayerTimes]:
        return self._today

    @property
    def tomorrow_times(self) -> Optional[PrayerTimes]:
        return self._tomorrow

    @property
    def current_prayer(self) -> Optional[Prayer]:
        return self._current_prayer

    @property
    def state(self) -> ScheduleState:
        if self._today is None:
            return ScheduleState.UNINITIALIZED
        return ScheduleState.HAS_TODAY_AND_TOMORROW

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(event, engine, payload)``; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @contextlib.contextmanager
    def _locked(self):
        self._lock.acquire()
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            pending = []
            if self._depth == 0:
                pending, self._pending = self._pending, []
            self._lock.release()
            for event, payload in pending:
                self._dispatch(event, payload)

    def _emit(self, event: ScheduleEvent, payload=None) -> None:
        self._pending.append((event, payload))

    def _dispatch(self, event: ScheduleEvent, payload) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, self, payload)
            except Exception:
                logger.exception("Schedule listener %r failed on %s", listener, event.name)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    def _compute_days(self, settings: Settings, now: datetime.datetime) -> Tuple[PrayerTimes, PrayerTimes]:
        location = settings.location
        try:
            tz = pytz.timezone(location.timezone)
        except pytz.UnknownTimeZoneError as exc:
            raise SolverInputInvalid(f"Unknown time zone: {location.timezone}") from exc
        params = settings.calculation_parameters()
        day = now.astimezone(tz).date()
        today = self._solver(location.coordinate, day, tz, params)
        tomorrow = self._solver(location.coordinate, day + datetime.timedelta(days=1), tz, params)
        return today, tomorrow

    def refresh(self, settings: Optional[Settings] = None) -> PrayerTimes:
        """
        Recompute today's and tomorrow's times and re-arm all timers.

        Reads the settings store unless ``settings`` is given. If the
        location cannot be solved it is replaced by DEFAULT_LOCATION (and
        persisted) and the computation retried once. Raises
        ScheduleRefreshFailed if that also fails; committed state is left
        untouched in that case.
        """
        with self._locked():
            if settings is None:
                settings = self._store.read()
            now = self._clock.now()
            try:
                today, tomorrow = self._compute_days(settings, now)
            except SolverError as exc:
                logger.warning("Cannot compute prayer times for %s (%s); falling back to %s",
                               settings.location.name, exc, DEFAULT_LOCATION.name)
                settings = settings.with_location(DEFAULT_LOCATION)
                try:
                    today, tomorrow = self._compute_days(settings, now)
                except SolverError as retry_exc:
                    raise ScheduleRefreshFailed(
                        f"Prayer times unavailable even for {DEFAULT_LOCATION.name}") from retry_exc
                self._store.write(settings)

            self._commit(settings, today, tomorrow, now)
            self.arm_timers(now)
            return today

    def _commit(self, settings, today, tomorrow, now) -> None:
        times_changed = today != self._today or tomorrow != self._tomorrow
        self._settings = settings
        self._today = today
        self._tomorrow = tomorrow
        if times_changed:
            logger.info("Prayer times for %s at %s: %s", today.date, settings.location.name,
                        today.as_local_strings())
            self._emit(ScheduleEvent.TIMES_CHANGED, today)
        self._set_current_prayer(today.current_prayer(now) or Prayer.ISHA)

    def _set_current_prayer(self, prayer: Prayer) -> None:
        if prayer is self._current_prayer:
            return
        logger.info("Current prayer: %s -> %s",
                    self._current_prayer.value if self._current_prayer else None, prayer.value)
        self._current_prayer = prayer
        self._emit(ScheduleEvent.PRAYER_CHANGED, prayer)

    def update_settings(self, settings: Settings) -> PrayerTimes:
        """Replace the settings, persisting them once they have been solved."""
        with self._locked():
            self.cancel_timers()
            try:
                today = self.refresh(settings)
            except ScheduleRefreshFailed:
                if self.state is not ScheduleState.UNINITIALIZED:
                    self.arm_timers()
                raise
            if self._settings == settings:
                self._store.write(settings)
            return today

    def update_location(self, location: LocationSettings) -> bool:
        """
        Adopt a newly detected location.

        Ignored when it is the same place (to 1/100 degree) unless it brings
        a real place name that differs from the stored one. Returns True if
        the settings were replaced.
        """
        with self._locked():
            settings = self._settings or self._store.read()
            current = settings.location
            renamed = location.has_place_name and location.name != current.name
            if current.same_place(location) and not renamed:
                return False
            logger.info("Location changed: %s -> %s", current.name, location.name)
            self.update_settings(settings.with_location(location))
            return True

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    def cancel_timers(self) -> None:
        with self._locked():
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
            self._generation += 1

    def _start_timer(self, delay: datetime.timedelta, callback, generation: int) -> None:
        # A trigger already in the past fires immediately.
        seconds = max(0.0, delay.total_seconds())
        timer = self._timer_factory(seconds, callback, args=(generation,))
        timer.daemon = True
        timer.start()
        self._timers.append(timer)

    def _next_local_midnight(self, now: datetime.datetime) -> datetime.datetime:
        tz = self._today.timezone
        next_day = now.astimezone(tz).date() + datetime.timedelta(days=1)
        midnight = tz.localize(datetime.datetime.combine(next_day, datetime.time.min))
        return midnight.astimezone(pytz.utc)

    def arm_timers(self, now: Optional[datetime.datetime] = None) -> None:
        """Cancel armed timers, then arm the boundary, reminder and rollover triggers."""
        with self._locked():
            self._require_ready()
            if self._closed:
                return
            self.cancel_timers()
            now = now or self._clock.now()
            generation = self._generation

            boundary = self.guaranteed_next_prayer_time(now)
            self._start_timer(boundary - now, self._on_boundary, generation)

            reminder = boundary - REMINDER_LEAD
            if reminder > now:
                self._start_timer(reminder - now, self._on_reminder, generation)

            rollover = self._next_local_midnight(now) + ROLLOVER_MARGIN
            self._start_timer(rollover - now, self._on_new_day, generation)
            logger.debug("Armed %d timers; next boundary at %s", len(self._timers), boundary)

    def _is_live(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _on_boundary(self, generation: int) -> None:
        with self._locked():
            if not self._is_live(generation):
                return
        self.on_boundary_fired(generation)

    def on_boundary_fired(self, generation: Optional[int] = None) -> threading.Thread:
        """
        Confirm a prayer transition on a worker thread.

        Timers may fire a little before the true boundary, so when the next
        boundary is still less than ``poll_timeout`` away the worker polls
        until the current prayer actually changes (or the timeout passes)
        before committing.
        """
        with self._locked():
            self._require_ready()
            if generation is None:
                generation = self._generation
            now = self._clock.now()
            today = self._today
            sample = today.current_prayer(now)
            remaining = (self.guaranteed_next_prayer_time(now) - now).total_seconds()
        worker = threading.Thread(
            target=self._confirm_boundary,
            args=(generation, today, sample, remaining),
            name="athan-boundary",
            daemon=True,
        )
        worker.start()
        return worker

    def _confirm_boundary(self, generation, today, sample, remaining) -> None:
        if 0 < remaining < self._poll_timeout:
            deadline = time.monotonic() + self._poll_timeout
            while today.current_prayer(self._clock.now()) == sample:
                if time.monotonic() >= deadline:
                    logger.warning("Prayer change not observed within %.1fs; committing best known value",
                                   self._poll_timeout)
                    break
                time.sleep(self._poll_interval)
        with self._locked():
            if not self._is_live(generation):
                return
            now = self._clock.now()
            self._set_current_prayer(self._today.current_prayer(now) or Prayer.ISHA)
            self.arm_timers(now)

    def _on_reminder(self, generation: int) -> None:
        with self._locked():
            if not self._is_live(generation):
                return
            upcoming = self._upcoming(self._clock.now())
            logger.info("%s in %d minutes", upcoming.prayer.display_name,
                        REMINDER_LEAD.total_seconds() // 60)
            self._emit(ScheduleEvent.REMINDER, upcoming)

    def _on_new_day(self, generation: int) -> None:
        with self._locked():
            if not self._is_live(generation):
                return
            try:
                self.refresh()
            except ScheduleRefreshFailed as exc:
                logger.exception("Day rollover refresh failed")
                self._emit(ScheduleEvent.REFRESH_FAILED, exc)
                self.arm_timers()

    def shutdown(self) -> None:
        with self._locked():
            self.cancel_timers()
            self._closed = True

    # ------------------------------------------------------------------
    # Derived times
    # ------------------------------------------------------------------
    def _require_ready(self) -> None:
        if self._today is None or self._tomorrow is None:
            raise ScheduleNotReady("refresh() has not completed yet")

    def _upcoming(self, now: datetime.datetime) -> UpcomingPrayer:
        current = self._today.current_prayer(now)
        if current is Prayer.ISHA:
            return UpcomingPrayer(Prayer.FAJR, self._tomorrow.fajr)
        if current is None:
            return UpcomingPrayer(Prayer.FAJR, self._today.fajr)
        following = current.next()
        return UpcomingPrayer(following, self._today.time(following))

    def guaranteed_next_prayer(self, now: Optional[datetime.datetime] = None) -> Prayer:
        with self._locked():
            self._require_ready()
            return self._upcoming(now or self._clock.now()).prayer

    def guaranteed_next_prayer_time(self, now: Optional[datetime.datetime] = None) -> datetime.datetime:
        """Next boundary, reading tomorrow's Fajr once Isha has begun."""
        with self._locked():
            self._require_ready()
            return self._upcoming(now or self._clock.now()).time

    def guaranteed_current_prayer_time(self, now: Optional[datetime.datetime] = None) -> datetime.datetime:
        """Start of the current window; before Fajr, today's Isha shifted back a day."""
        with self._locked():
            self._require_ready()
            now = now or self._clock.now()
            current = self._today.current_prayer(now)
            if current is None:
                return self._today.isha - datetime.timedelta(days=1)
            return self._today.time(current)
