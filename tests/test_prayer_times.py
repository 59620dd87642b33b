"""Tests for the prayer_times module."""

import datetime
import itertools
import math
import unittest

import pytz

from athan.astronomy import SolarTime
from athan.calculation import (
    Adjustments,
    CalculationMethod,
    CalculationParameters,
    HighLatitudeRule,
    Madhab,
)
from athan.prayer_times import (
    PRAYER_NAMES,
    Coordinate,
    Prayer,
    PrayerTimes,
    SolverInputInvalid,
    SolverNoSolution,
    compute,
    seconds_until,
)

MECCA = Coordinate(21.4225, 39.8262)
RALEIGH = Coordinate(35.7750, -78.6336)
REYKJAVIK = Coordinate(64.1466, -21.9426)
TEHRAN = Coordinate(35.6892, 51.3890)

UMM_AL_QURA = CalculationParameters(method=CalculationMethod.UMM_AL_QURA)


def _local_minutes(dt: datetime.datetime, tz) -> float:
    local = dt.astimezone(tz)
    return local.hour * 60 + local.minute + local.second / 60.0


class TestPrayer(unittest.TestCase):
    def test_cycle(self):
        self.assertIs(Prayer.ISHA.next(), Prayer.FAJR)
        self.assertIs(Prayer.FAJR.previous(), Prayer.ISHA)
        self.assertIs(Prayer.DHUHR.next(), Prayer.ASR)
        self.assertIs(Prayer.ASR.previous(), Prayer.DHUHR)

    def test_next_walks_all_six_back_to_start(self):
        seen = []
        prayer = Prayer.FAJR
        for _ in range(6):
            seen.append(prayer)
            prayer = prayer.next()
        self.assertIs(prayer, Prayer.FAJR)
        self.assertEqual(seen, list(Prayer))

    def test_next_and_previous_are_inverses(self):
        for prayer in Prayer:
            self.assertIs(prayer.next().previous(), prayer)
            self.assertIs(prayer.previous().next(), prayer)

    def test_names(self):
        self.assertEqual(PRAYER_NAMES, ["fajr", "sunrise", "dhuhr", "asr", "maghrib", "isha"])
        self.assertEqual(Prayer.MAGHRIB.display_name, "Maghrib")


class TestReferenceTimes(unittest.TestCase):
    def assertLocalTime(self, instant, tz, hour, minute):
        expected = hour * 60 + minute
        self.assertAlmostEqual(_local_minutes(instant, tz), expected, delta=1,
                               msg=f"{instant.astimezone(tz):%H:%M} != {hour:02d}:{minute:02d}")

    def test_mecca_umm_al_qura(self):
        tz = pytz.timezone("Asia/Riyadh")
        times = compute(MECCA, datetime.date(2023, 1, 15), tz, UMM_AL_QURA)
        self.assertLocalTime(times.fajr, tz, 5, 41)
        self.assertLocalTime(times.sunrise, tz, 7, 1)
        self.assertLocalTime(times.dhuhr, tz, 12, 30)
        self.assertLocalTime(times.asr, tz, 15, 38)
        self.assertLocalTime(times.maghrib, tz, 17, 59)
        self.assertLocalTime(times.isha, tz, 19, 29)

    def test_raleigh_north_america_hanafi(self):
        tz = pytz.timezone("America/New_York")
        params = CalculationParameters(method=CalculationMethod.NORTH_AMERICA, madhab=Madhab.HANAFI)
        times = compute(RALEIGH, datetime.date(2015, 7, 12), "America/New_York", params)
        self.assertLocalTime(times.fajr, tz, 4, 42)
        self.assertLocalTime(times.sunrise, tz, 6, 8)
        self.assertLocalTime(times.dhuhr, tz, 13, 21)
        self.assertLocalTime(times.asr, tz, 18, 22)
        self.assertLocalTime(times.maghrib, tz, 20, 32)
        self.assertLocalTime(times.isha, tz, 21, 57)

    def test_times_are_whole_minutes_in_utc(self):
        times = compute(RALEIGH, datetime.date(2015, 7, 12), "America/New_York", CalculationParameters())
        for prayer in Prayer:
            instant = times.time(prayer)
            self.assertEqual(instant.utcoffset(), datetime.timedelta(0))
            self.assertEqual(instant.second, 0)
            self.assertEqual(instant.microsecond, 0)

    def test_idempotent(self):
        first = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh", UMM_AL_QURA)
        second = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh", UMM_AL_QURA)
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))


class TestMethodRules(unittest.TestCase):
    def test_interval_isha(self):
        times = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh", UMM_AL_QURA)
        self.assertEqual(times.isha - times.maghrib, datetime.timedelta(minutes=90))

    def test_ramadan_extends_umm_al_qura_isha(self):
        times = compute(MECCA, datetime.date(2023, 4, 5), "Asia/Riyadh", UMM_AL_QURA)
        self.assertEqual(times.isha - times.maghrib, datetime.timedelta(minutes=120))
        plain = compute(MECCA, datetime.date(2023, 4, 5), "Asia/Riyadh",
                        UMM_AL_QURA.with_changes(ramadan_isha_minutes=0))
        self.assertEqual(times.isha - plain.isha, datetime.timedelta(minutes=30))
        self.assertEqual(times.fajr, plain.fajr)

    def test_ramadan_ignored_for_other_methods(self):
        params = CalculationParameters(method=CalculationMethod.QATAR)
        times = compute(MECCA, datetime.date(2023, 4, 5), "Asia/Riyadh", params)
        self.assertEqual(times.isha - times.maghrib, datetime.timedelta(minutes=90))

    def test_user_adjustments(self):
        base = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh", UMM_AL_QURA)
        adjusted = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh",
                           UMM_AL_QURA.with_changes(adjustments=Adjustments(fajr=5, asr=-3)))
        self.assertEqual(adjusted.fajr - base.fajr, datetime.timedelta(minutes=5))
        self.assertEqual(base.asr - adjusted.asr, datetime.timedelta(minutes=3))
        self.assertEqual(adjusted.dhuhr, base.dhuhr)

    def test_hanafi_asr_is_later(self):
        shafi = compute(RALEIGH, datetime.date(2015, 7, 12), "America/New_York", CalculationParameters())
        hanafi = compute(RALEIGH, datetime.date(2015, 7, 12), "America/New_York",
                         CalculationParameters(madhab=Madhab.HANAFI))
        self.assertGreater(hanafi.asr, shafi.asr)
        self.assertEqual(hanafi.dhuhr, shafi.dhuhr)

    def test_tehran_maghrib_after_sunset(self):
        day = datetime.date(2023, 3, 1)
        sunset = compute(TEHRAN, day, "Asia/Tehran", CalculationParameters()).maghrib
        tehran = compute(TEHRAN, day, "Asia/Tehran",
                         CalculationParameters(method=CalculationMethod.TEHRAN)).maghrib
        self.assertGreater(tehran - sunset, datetime.timedelta(minutes=10))
        self.assertLess(tehran - sunset, datetime.timedelta(minutes=30))

    def test_every_method_solves_mecca(self):
        for method in CalculationMethod:
            with self.subTest(method=method.value):
                times = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh",
                                CalculationParameters(method=method))
                self.assertLess(times.fajr, times.sunrise)
                self.assertLess(times.maghrib, times.isha)

    def test_tehran_maghrib_never_reaches_capped_isha(self):
        cases = [
            (Coordinate(60.0, 39.0), datetime.date(2023, 7, 15), HighLatitudeRule.SEVENTH_OF_THE_NIGHT),
            (Coordinate(65.0, 39.0), datetime.date(2023, 5, 15), HighLatitudeRule.TWILIGHT_ANGLE),
        ]
        for coordinate, day, rule in cases:
            with self.subTest(latitude=coordinate.latitude, rule=rule.value):
                params = CalculationParameters(method=CalculationMethod.TEHRAN, high_latitude_rule=rule)
                times = compute(coordinate, day, "UTC", params)
                sunset = compute(coordinate, day, "UTC", params.with_changes(
                    method=CalculationMethod.MUSLIM_WORLD_LEAGUE)).maghrib
                self.assertLess(times.maghrib, times.isha)
                self.assertGreaterEqual(times.maghrib, sunset)


class TestHighLatitude(unittest.TestCase):
    day = datetime.date(2023, 6, 21)

    def test_middle_of_the_night(self):
        times = compute(REYKJAVIK, self.day, "Atlantic/Reykjavik", CalculationParameters())
        before_sunrise = times.sunrise - times.fajr
        after_sunset = times.isha - times.maghrib
        self.assertGreater(before_sunrise, datetime.timedelta(0))
        self.assertLess(abs(before_sunrise - after_sunset), datetime.timedelta(minutes=3))

    def test_seventh_of_the_night_is_shorter(self):
        middle = compute(REYKJAVIK, self.day, "Atlantic/Reykjavik", CalculationParameters())
        seventh = compute(REYKJAVIK, self.day, "Atlantic/Reykjavik", CalculationParameters(
            high_latitude_rule=HighLatitudeRule.SEVENTH_OF_THE_NIGHT))
        self.assertGreater(seventh.fajr, middle.fajr)
        self.assertLess(seventh.isha, middle.isha)
        self.assertLess(seventh.fajr, seventh.sunrise)

    def test_polar_day_has_no_solution(self):
        with self.assertRaises(SolverNoSolution):
            compute(Coordinate(78.2232, 15.6267), self.day, "Arctic/Longyearbyen",
                    CalculationParameters())


class TestOrdering(unittest.TestCase):
    latitudes = (-65, -55, -45, -30, -15, 0, 15, 30, 45, 55, 60, 65)
    longitude = 39.0

    def test_times_strictly_increase_everywhere(self):
        combos = itertools.product(CalculationMethod, HighLatitudeRule, Madhab)
        for method, rule, madhab in combos:
            params = CalculationParameters(method=method, madhab=madhab, high_latitude_rule=rule)
            for latitude in self.latitudes:
                coordinate = Coordinate(latitude, self.longitude)
                for month in range(1, 13):
                    day = datetime.date(2023, month, 15)
                    with self.subTest(method=method.value, rule=rule.value, madhab=madhab.value,
                                      latitude=latitude, month=month):
                        try:
                            times = compute(coordinate, day, "UTC", params)
                        except SolverNoSolution:
                            solar = SolarTime(day.year, day.month, day.day, latitude, self.longitude)
                            self.assertTrue(math.isnan(solar.sunrise) or math.isnan(solar.sunset))
                            continue
                        ordered = [times.time(p) for p in Prayer]
                        self.assertEqual(ordered, sorted(set(ordered)))


class TestInvalidInput(unittest.TestCase):
    def test_latitude_out_of_range(self):
        with self.assertRaises(SolverInputInvalid):
            compute(Coordinate(91.0, 0.0), datetime.date(2023, 1, 15), "UTC", CalculationParameters())

    def test_nan_coordinate(self):
        with self.assertRaises(SolverInputInvalid):
            compute(Coordinate(float("nan"), 0.0), datetime.date(2023, 1, 15), "UTC",
                    CalculationParameters())

    def test_unknown_timezone(self):
        with self.assertRaises(SolverInputInvalid):
            compute(MECCA, datetime.date(2023, 1, 15), "Asia/Atlantis", UMM_AL_QURA)

    def test_solver_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            compute(MECCA, "2023-01-15", "Asia/Riyadh", UMM_AL_QURA)


class TestPrayerTimes(unittest.TestCase):
    def setUp(self):
        self.times = compute(MECCA, datetime.date(2023, 1, 15), "Asia/Riyadh", UMM_AL_QURA)

    def test_current_prayer(self):
        self.assertIsNone(self.times.current_prayer(self.times.fajr - datetime.timedelta(seconds=1)))
        self.assertIs(self.times.current_prayer(self.times.fajr), Prayer.FAJR)
        self.assertIs(self.times.current_prayer(self.times.asr + datetime.timedelta(minutes=5)), Prayer.ASR)
        self.assertIs(self.times.current_prayer(self.times.isha + datetime.timedelta(hours=3)), Prayer.ISHA)

    def test_next_prayer(self):
        self.assertIs(self.times.next_prayer(self.times.fajr - datetime.timedelta(hours=1)), Prayer.FAJR)
        self.assertIs(self.times.next_prayer(self.times.fajr), Prayer.SUNRISE)
        self.assertIs(self.times.next_prayer(self.times.maghrib), Prayer.ISHA)
        self.assertIsNone(self.times.next_prayer(self.times.isha))

    def test_local_strings(self):
        strings = self.times.as_local_strings()
        self.assertEqual(list(strings), PRAYER_NAMES)
        self.assertEqual(strings["isha"], self.times.local(Prayer.ISHA).strftime("%H:%M"))

    def test_immutable(self):
        with self.assertRaises(AttributeError):
            self.times.date = datetime.date(2023, 1, 16)

    def test_rejects_unordered_times(self):
        base = datetime.datetime(2023, 1, 15, 3, 0, tzinfo=pytz.utc)
        times = {p: base + datetime.timedelta(hours=i) for i, p in enumerate(Prayer)}
        times[Prayer.ASR] = times[Prayer.DHUHR]
        with self.assertRaises(SolverNoSolution):
            PrayerTimes(MECCA, datetime.date(2023, 1, 15), pytz.utc, UMM_AL_QURA, times)


class TestSecondsUntil(unittest.TestCase):
    def test_future(self):
        now = datetime.datetime(2023, 1, 15, 12, 0, tzinfo=pytz.utc)
        self.assertEqual(seconds_until(now + datetime.timedelta(minutes=90), now), 5400)

    def test_past_is_negative(self):
        now = datetime.datetime(2023, 1, 15, 12, 0, tzinfo=pytz.utc)
        self.assertEqual(seconds_until(now - datetime.timedelta(seconds=30), now), -30)


if __name__ == "__main__":
    unittest.main()
