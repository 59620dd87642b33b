"""Solar position and rise/transit/set solving.

Formulas follow Jean Meeus, "Astronomical Algorithms" (2nd ed.). All angles
are in degrees unless a name says otherwise; times returned by SolarTime are
fractional hours after UTC midnight of the calendar date (they may be
negative or exceed 24 for far-off longitudes).
"""

import math
from dataclasses import dataclass

# Sun's upper limb on the horizon: 34' refraction + 16' semi-diameter.
SOLAR_ALTITUDE = -50.0 / 60.0


def unwind_angle(angle: float) -> float:
    """Normalize an angle to [0, 360)."""
    return normalize(angle, 360.0)


def normalize(value: float, scale: float) -> float:
    return value - scale * math.floor(value / scale)


def quadrant_shift(angle: float) -> float:
    """Bring an angle into [-180, 180]."""
    if -180.0 <= angle <= 180.0:
        return angle
    turns = angle / 360.0
    rounded = math.floor(abs(turns) + 0.5) * (1 if turns >= 0 else -1)
    return angle - 360.0 * rounded


def _sin(d):
    return math.sin(math.radians(d))


def _cos(d):
    return math.cos(math.radians(d))


def julian_day(year: int, month: int, day: int, hours: float = 0.0) -> float:
    y = year if month > 2 else year - 1
    m = month if month > 2 else month + 12
    d = day + hours / 24.0
    a = int(y / 100)
    b = 2 - a + int(a / 4)
    i0 = int(365.25 * (y + 4716))
    i1 = int(30.6001 * (m + 1))
    return i0 + i1 + d + b - 1524.5


def julian_century(jd: float) -> float:
    return (jd - 2451545.0) / 36525.0


def mean_solar_longitude(t):
    return unwind_angle(280.4664567 + 36000.76983 * t + 0.0003032 * t ** 2)


def mean_lunar_longitude(t):
    return unwind_angle(218.3165 + 481267.8813 * t)


def ascending_lunar_node_longitude(t):
    return unwind_angle(125.04452 - 1934.136261 * t + 0.0020708 * t ** 2 + t ** 3 / 450000.0)


def mean_solar_anomaly(t):
    return unwind_angle(357.52911 + 35999.05029 * t - 0.0001537 * t ** 2)


def solar_equation_of_the_center(t, m):
    term1 = (1.914602 - 0.004817 * t - 0.000014 * t ** 2) * _sin(m)
    term2 = (0.019993 - 0.000101 * t) * _sin(2 * m)
    term3 = 0.000289 * _sin(3 * m)
    return term1 + term2 + term3


def apparent_solar_longitude(t, l0):
    longitude = l0 + solar_equation_of_the_center(t, mean_solar_anomaly(t))
    omega = 125.04 - 1934.136 * t
    return unwind_angle(longitude - 0.00569 - 0.00478 * _sin(omega))


def mean_obliquity_of_the_ecliptic(t):
    return 23.439291 - 0.013004167 * t - 0.0000001639 * t ** 2 + 0.0000005036 * t ** 3


def apparent_obliquity_of_the_ecliptic(t, epsilon0):
    omega = 125.04 - 1934.136 * t
    return epsilon0 + 0.00256 * _cos(omega)


def mean_sidereal_time(t):
    jd = t * 36525.0 + 2451545.0
    theta = (280.46061837 + 360.98564736629 * (jd - 2451545.0)
             + 0.000387933 * t ** 2 - t ** 3 / 38710000.0)
    return unwind_angle(theta)


def nutation_in_longitude(l0, lp, omega):
    return ((-17.2 / 3600.0) * _sin(omega)
            - (1.32 / 3600.0) * _sin(2 * l0)
            - (0.23 / 3600.0) * _sin(2 * lp)
            + (0.21 / 3600.0) * _sin(2 * omega))


def nutation_in_obliquity(l0, lp, omega):
    return ((9.2 / 3600.0) * _cos(omega)
            + (0.57 / 3600.0) * _cos(2 * l0)
            + (0.10 / 3600.0) * _cos(2 * lp)
            - (0.09 / 3600.0) * _cos(2 * omega))


def altitude_of_celestial_body(latitude, declination, local_hour_angle):
    value = (_sin(latitude) * _sin(declination)
             + _cos(latitude) * _cos(declination) * _cos(local_hour_angle))
    return math.degrees(math.asin(value))


def interpolate(y2, y1, y3, n):
    """Three-point interpolation (Meeus 3.3); y1, y2, y3 are yesterday, today, tomorrow."""
    a = y2 - y1
    b = y3 - y2
    c = b - a
    return y2 + (n / 2.0) * (a + b + n * c)


def interpolate_angles(y2, y1, y3, n):
    a = unwind_angle(y2 - y1)
    b = unwind_angle(y3 - y2)
    c = b - a
    return y2 + (n / 2.0) * (a + b + n * c)


@dataclass(frozen=True)
class SolarCoordinates:
    declination: float
    right_ascension: float
    apparent_sidereal_time: float

    @classmethod
    def at(cls, jd: float) -> "SolarCoordinates":
        t = julian_century(jd)
        l0 = mean_solar_longitude(t)
        lp = mean_lunar_longitude(t)
        omega = ascending_lunar_node_longitude(t)
        lam = math.radians(apparent_solar_longitude(t, l0))
        theta0 = mean_sidereal_time(t)
        d_psi = nutation_in_longitude(l0, lp, omega)
        d_epsilon = nutation_in_obliquity(l0, lp, omega)
        epsilon0 = mean_obliquity_of_the_ecliptic(t)
        epsilon_app = math.radians(apparent_obliquity_of_the_ecliptic(t, epsilon0))

        declination = math.degrees(math.asin(math.sin(epsilon_app) * math.sin(lam)))
        right_ascension = unwind_angle(math.degrees(
            math.atan2(math.cos(epsilon_app) * math.sin(lam), math.cos(lam))))
        apparent_sidereal_time = theta0 + d_psi * _cos(epsilon0 + d_epsilon)
        return cls(declination, right_ascension, apparent_sidereal_time)


def approximate_transit(longitude, sidereal_time, right_ascension):
    lw = -longitude
    return normalize((right_ascension + lw - sidereal_time) / 360.0, 1.0)


def corrected_transit(m0, longitude, sidereal_time, right_ascension,
                      previous_right_ascension, next_right_ascension):
    lw = -longitude
    theta = unwind_angle(sidereal_time + 360.985647 * m0)
    alpha = unwind_angle(interpolate_angles(
        right_ascension, previous_right_ascension, next_right_ascension, m0))
    h = quadrant_shift(theta - lw - alpha)
    dm = h / -360.0
    return (m0 + dm) * 24.0


def corrected_hour_angle(m0, h0, latitude, longitude, after_transit, sidereal_time,
                         right_ascension, previous_right_ascension, next_right_ascension,
                         declination, previous_declination, next_declination):
    """Hour at which the sun crosses altitude h0, or NaN when it never does."""
    lw = -longitude
    term1 = _sin(h0) - _sin(latitude) * _sin(declination)
    term2 = _cos(latitude) * _cos(declination)
    ratio = term1 / term2
    if not -1.0 <= ratio <= 1.0:
        return float("nan")
    big_h0 = math.degrees(math.acos(ratio))
    m = m0 + big_h0 / 360.0 if after_transit else m0 - big_h0 / 360.0
    theta = unwind_angle(sidereal_time + 360.985647 * m)
    alpha = unwind_angle(interpolate_angles(
        right_ascension, previous_right_ascension, next_right_ascension, m))
    delta = interpolate(declination, previous_declination, next_declination, m)
    h = theta - lw - alpha
    altitude = altitude_of_celestial_body(latitude, delta, h)
    term3 = altitude - h0
    term4 = 360.0 * _cos(delta) * _cos(latitude) * _sin(h)
    dm = term3 / term4
    return (m + dm) * 24.0


class SolarTime:
    """Transit, sunrise and sunset for one UTC calendar date at one place."""

    def __init__(self, year: int, month: int, day: int, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        jd = julian_day(year, month, day)
        self.solar = SolarCoordinates.at(jd)
        self.prev_solar = SolarCoordinates.at(jd - 1)
        self.next_solar = SolarCoordinates.at(jd + 1)

        self.approx_transit = approximate_transit(
            longitude, self.solar.apparent_sidereal_time, self.solar.right_ascension)
        self.transit = corrected_transit(
            self.approx_transit, longitude, self.solar.apparent_sidereal_time,
            self.solar.right_ascension, self.prev_solar.right_ascension,
            self.next_solar.right_ascension)
        self.sunrise = self.hour_angle(SOLAR_ALTITUDE, after_transit=False)
        self.sunset = self.hour_angle(SOLAR_ALTITUDE, after_transit=True)

    def hour_angle(self, angle: float, after_transit: bool) -> float:
        return corrected_hour_angle(
            self.approx_transit, angle, self.latitude, self.longitude, after_transit,
            self.solar.apparent_sidereal_time, self.solar.right_ascension,
            self.prev_solar.right_ascension, self.next_solar.right_ascension,
            self.solar.declination, self.prev_solar.declination,
            self.next_solar.declination)

    def afternoon(self, shadow_length: float) -> float:
        """Hour at which an object's shadow is ``shadow_length`` times its height plus its noon shadow."""
        tangent = abs(self.latitude - self.solar.declination)
        inverse = shadow_length + math.tan(math.radians(tangent))
        angle = math.degrees(math.atan(1.0 / inverse))
        return self.hour_angle(angle, after_transit=True)
