"""Compute the daily prayer times for a place and date."""

import datetime
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import pytz

from athan.astronomy import SolarTime
from athan.calculation import CalculationParameters, Rounding


class SolverError(ValueError):
    """Raised when prayer times cannot be computed for the given inputs."""


class SolverInputInvalid(SolverError):
    """Coordinate, date or time zone is malformed."""


class SolverNoSolution(SolverError):
    """The sun never rises, sets or reaches the Asr altitude on that date."""


class Prayer(Enum):
    FAJR = "fajr"
    SUNRISE = "sunrise"
    DHUHR = "dhuhr"
    ASR = "asr"
    MAGHRIB = "maghrib"
    ISHA = "isha"

    def next(self) -> "Prayer":
        members = list(Prayer)
        return members[(members.index(self) + 1) % len(members)]

    def previous(self) -> "Prayer":
        members = list(Prayer)
        return members[(members.index(self) - 1) % len(members)]

    @property
    def display_name(self) -> str:
        return PRAYER_DISPLAY[self]


PRAYER_NAMES = [p.value for p in Prayer]
PRAYER_DISPLAY = {
    Prayer.FAJR: "Fajr",
    Prayer.SUNRISE: "Sunrise",
    Prayer.DHUHR: "Dhuhr",
    Prayer.ASR: "Asr",
    Prayer.MAGHRIB: "Maghrib",
    Prayer.ISHA: "Isha",
}


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        return (math.isfinite(self.latitude) and math.isfinite(self.longitude)
                and -90.0 <= self.latitude <= 90.0
                and -180.0 <= self.longitude <= 180.0)


class PrayerTimes:
    """The six ordered instants of one calendar day at one place.

    Instants are timezone-aware UTC datetimes. Instances are never updated;
    a change of place, date or parameters produces a new instance.
    """

    __slots__ = ("coordinate", "date", "timezone", "parameters", "_times")

    def __init__(self, coordinate: Coordinate, date: datetime.date, timezone,
                 parameters: CalculationParameters, times: Dict[Prayer, datetime.datetime]):
        ordered = [times[p] for p in Prayer]
        if any(a >= b for a, b in zip(ordered, ordered[1:])):
            raise SolverNoSolution(f"Prayer times for {date} are not strictly increasing")
        object.__setattr__(self, "coordinate", coordinate)
        object.__setattr__(self, "date", date)
        object.__setattr__(self, "timezone", timezone)
        object.__setattr__(self, "parameters", parameters)
        object.__setattr__(self, "_times", dict(times))

    def __setattr__(self, name, value):
        raise AttributeError("PrayerTimes is immutable")

    def __eq__(self, other):
        if not isinstance(other, PrayerTimes):
            return NotImplemented
        return (self.coordinate == other.coordinate and self.date == other.date
                and self.parameters == other.parameters and self._times == other._times)

    def __hash__(self):
        return hash((self.coordinate, self.date, tuple(self._times[p] for p in Prayer)))

    def __repr__(self):
        times = ", ".join(f"{p.value}={self.local(p):%H:%M}" for p in Prayer)
        return f"PrayerTimes({self.date}, {times})"

    @property
    def fajr(self) -> datetime.datetime:
        return self._times[Prayer.FAJR]

    @property
    def sunrise(self) -> datetime.datetime:
        return self._times[Prayer.SUNRISE]

    @property
    def dhuhr(self) -> datetime.datetime:
        return self._times[Prayer.DHUHR]

    @property
    def asr(self) -> datetime.datetime:
        return self._times[Prayer.ASR]

    @property
    def maghrib(self) -> datetime.datetime:
        return self._times[Prayer.MAGHRIB]

    @property
    def isha(self) -> datetime.datetime:
        return self._times[Prayer.ISHA]

    def time(self, prayer: Prayer) -> datetime.datetime:
        return self._times[prayer]

    def local(self, prayer: Prayer) -> datetime.datetime:
        return self._times[prayer].astimezone(self.timezone)

    def current_prayer(self, at: datetime.datetime) -> Optional[Prayer]:
        """The last prayer whose time is at or before ``at``; None before Fajr."""
        current = None
        for prayer in Prayer:
            if self._times[prayer] <= at:
                current = prayer
        return current

    def next_prayer(self, after: datetime.datetime) -> Optional[Prayer]:
        """The first prayer strictly after ``after``; None once Isha has begun."""
        for prayer in Prayer:
            if self._times[prayer] > after:
                return prayer
        return None

    def as_local_strings(self) -> Dict[str, str]:
        return {p.value: self.local(p).strftime("%H:%M") for p in Prayer}


def _resolve_timezone(tz):
    if isinstance(tz, str):
        try:
            return pytz.timezone(tz)
        except pytz.UnknownTimeZoneError as exc:
            raise SolverInputInvalid(f"Unknown time zone: {tz}") from exc
    if tz is None:
        raise SolverInputInvalid("Time zone is required")
    return tz


def _to_instant(day: datetime.date, hours: float) -> Optional[datetime.datetime]:
    if not math.isfinite(hours):
        return None
    midnight = datetime.datetime(day.year, day.month, day.day, tzinfo=pytz.utc)
    return midnight + datetime.timedelta(seconds=math.floor(hours * 3600))


def _round_minute(instant: datetime.datetime, rounding: Rounding) -> datetime.datetime:
    seconds = instant.second
    base = instant.replace(second=0, microsecond=0)
    if rounding is Rounding.NEAREST:
        return base + datetime.timedelta(minutes=1) if seconds >= 30 else base
    if rounding is Rounding.UP:
        return base + datetime.timedelta(minutes=1) if seconds > 0 else base
    return instant


def compute(coordinate: Coordinate, date: datetime.date, timezone,
            parameters: CalculationParameters) -> PrayerTimes:
    """Solve the six prayer instants for ``date`` at ``coordinate``.

    ``timezone`` is a pytz time zone or its name; it decides which local
    calendar day ``date`` denotes for display and is stored on the result.
    Missing Fajr/Isha solutions near the poles are replaced by the
    high-latitude rule; only malformed input or a day without sunrise,
    sunset or Asr raises SolverError.
    """
    if not isinstance(coordinate, Coordinate) or not coordinate.is_valid():
        raise SolverInputInvalid(f"Invalid coordinate: {coordinate!r}")
    if not isinstance(date, datetime.date):
        raise SolverInputInvalid(f"Invalid date: {date!r}")
    tz = _resolve_timezone(timezone)
    lat, lon = coordinate.latitude, coordinate.longitude
    if isinstance(date, datetime.datetime):
        date = date.date()
    tomorrow = date + datetime.timedelta(days=1)

    solar = SolarTime(date.year, date.month, date.day, lat, lon)
    tomorrow_solar = SolarTime(tomorrow.year, tomorrow.month, tomorrow.day, lat, lon)

    dhuhr = _to_instant(date, solar.transit)
    sunrise = _to_instant(date, solar.sunrise)
    sunset = _to_instant(date, solar.sunset)
    tomorrow_sunrise = _to_instant(tomorrow, tomorrow_solar.sunrise)
    asr = _to_instant(date, solar.afternoon(parameters.madhab.shadow_length))
    if None in (dhuhr, sunrise, sunset, tomorrow_sunrise, asr):
        raise SolverNoSolution(f"No sunrise, sunset or Asr at {coordinate} on {date}")

    night = tomorrow_sunrise - sunset
    fajr_portion, isha_portion = parameters.night_portions()

    fajr = _to_instant(date, solar.hour_angle(-parameters.fajr_angle, after_transit=False))
    safe_fajr = sunrise - night * fajr_portion
    if fajr is None or fajr < safe_fajr:
        fajr = safe_fajr

    if parameters.isha_interval > 0:
        isha = sunset + datetime.timedelta(minutes=parameters.isha_interval)
    else:
        isha = _to_instant(date, solar.hour_angle(-parameters.isha_angle, after_transit=True))
        safe_isha = sunset + night * isha_portion
        if isha is None or isha > safe_isha:
            isha = safe_isha

    raw = {
        Prayer.FAJR: fajr,
        Prayer.SUNRISE: sunrise,
        Prayer.DHUHR: dhuhr,
        Prayer.ASR: asr,
        Prayer.MAGHRIB: sunset,
        Prayer.ISHA: isha,
    }
    adjustments = parameters.total_adjustments()
    ramadan_minutes = parameters.ramadan_offset(date)

    def finalize(prayer, instant):
        minutes = adjustments.minutes(prayer.value)
        if prayer is Prayer.ISHA:
            minutes += ramadan_minutes
        return _round_minute(instant + datetime.timedelta(minutes=minutes), parameters.rounding)

    times = {prayer: finalize(prayer, instant) for prayer, instant in raw.items()}

    # The Maghrib angle only applies when it still lands strictly between
    # sunset and Isha once both are adjusted and rounded.
    if parameters.maghrib_angle is not None:
        angle_maghrib = _to_instant(
            date, solar.hour_angle(-parameters.maghrib_angle, after_transit=True))
        if angle_maghrib is not None and angle_maghrib > sunset:
            candidate = finalize(Prayer.MAGHRIB, angle_maghrib)
            if candidate < times[Prayer.ISHA]:
                times[Prayer.MAGHRIB] = candidate
    return PrayerTimes(coordinate, date, tz, parameters, times)


def seconds_until(target_dt: datetime.datetime, now: datetime.datetime = None) -> int:
    """Return seconds from now until target_dt (can be negative if past)."""
    if now is None:
        now = datetime.datetime.now(target_dt.tzinfo)
    delta = target_dt - now
    return int(delta.total_seconds())
