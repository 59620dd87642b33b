"""Calculation methods and the parameter bundle handed to the solver."""

import datetime
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional

from hijri_converter import Gregorian

logger = logging.getLogger(__name__)

RAMADAN_MONTH = 9
RAMADAN_ISHA_MINUTES = 30

ADJUSTMENT_KEYS = ("fajr", "sunrise", "dhuhr", "asr", "maghrib", "isha")


class Madhab(Enum):
    SHAFI = "shafi"
    HANAFI = "hanafi"

    @property
    def shadow_length(self) -> int:
        return 2 if self is Madhab.HANAFI else 1


class HighLatitudeRule(Enum):
    MIDDLE_OF_THE_NIGHT = "middle_of_the_night"
    SEVENTH_OF_THE_NIGHT = "seventh_of_the_night"
    TWILIGHT_ANGLE = "twilight_angle"


class Rounding(Enum):
    NEAREST = "nearest"
    UP = "up"
    NONE = "none"


@dataclass(frozen=True)
class Adjustments:
    """Minute offsets per prayer; negative values move a time earlier."""

    fajr: int = 0
    sunrise: int = 0
    dhuhr: int = 0
    asr: int = 0
    maghrib: int = 0
    isha: int = 0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, int]]) -> "Adjustments":
        if not data:
            return cls()
        unknown = set(data) - set(ADJUSTMENT_KEYS)
        if unknown:
            raise ValueError(f"Unknown adjustment keys: {sorted(unknown)}")
        return cls(**{k: int(v) for k, v in data.items()})

    def to_dict(self) -> dict:
        return {k: getattr(self, k) for k in ADJUSTMENT_KEYS}

    def minutes(self, key: str) -> int:
        return getattr(self, key)

    def __add__(self, other: "Adjustments") -> "Adjustments":
        return Adjustments(**{k: self.minutes(k) + other.minutes(k) for k in ADJUSTMENT_KEYS})


@dataclass(frozen=True)
class MethodParams:
    fajr_angle: float
    isha_angle: float = 0.0
    isha_interval: int = 0
    maghrib_angle: Optional[float] = None
    adjustments: Adjustments = field(default_factory=Adjustments)
    rounding: Rounding = Rounding.NEAREST
    high_latitude_rule: HighLatitudeRule = HighLatitudeRule.MIDDLE_OF_THE_NIGHT


_DHUHR_PLUS_ONE = Adjustments(dhuhr=1)


class CalculationMethod(Enum):
    MUSLIM_WORLD_LEAGUE = "muslim_world_league"
    EGYPTIAN = "egyptian"
    KARACHI = "karachi"
    UMM_AL_QURA = "umm_al_qura"
    DUBAI = "dubai"
    NORTH_AMERICA = "north_america"
    KUWAIT = "kuwait"
    QATAR = "qatar"
    SINGAPORE = "singapore"
    TEHRAN = "tehran"
    TURKEY = "turkey"

    @property
    def params(self) -> MethodParams:
        return _METHOD_PARAMS[self]


_METHOD_PARAMS = {
    CalculationMethod.MUSLIM_WORLD_LEAGUE: MethodParams(18, 17, adjustments=_DHUHR_PLUS_ONE),
    CalculationMethod.EGYPTIAN: MethodParams(19.5, 17.5, adjustments=_DHUHR_PLUS_ONE),
    CalculationMethod.KARACHI: MethodParams(18, 18, adjustments=_DHUHR_PLUS_ONE),
    CalculationMethod.UMM_AL_QURA: MethodParams(18.5, isha_interval=90),
    CalculationMethod.DUBAI: MethodParams(
        18.2, 18.2, adjustments=Adjustments(sunrise=-3, dhuhr=3, asr=3, maghrib=3)),
    CalculationMethod.NORTH_AMERICA: MethodParams(15, 15, adjustments=_DHUHR_PLUS_ONE),
    CalculationMethod.KUWAIT: MethodParams(18, 17.5),
    CalculationMethod.QATAR: MethodParams(18, isha_interval=90),
    CalculationMethod.SINGAPORE: MethodParams(
        20, 18, adjustments=_DHUHR_PLUS_ONE, rounding=Rounding.UP),
    CalculationMethod.TEHRAN: MethodParams(17.7, 14, maghrib_angle=4.5),
    CalculationMethod.TURKEY: MethodParams(
        18, 17, adjustments=Adjustments(sunrise=-7, dhuhr=5, asr=4, maghrib=7)),
}


@dataclass(frozen=True)
class CalculationParameters:
    """Everything the solver needs besides place and date.

    Built fresh for every calculation from the user's settings; use
    ``with_changes`` to derive a variant instead of mutating.
    """

    method: CalculationMethod = CalculationMethod.MUSLIM_WORLD_LEAGUE
    madhab: Madhab = Madhab.SHAFI
    high_latitude_rule: Optional[HighLatitudeRule] = None
    adjustments: Adjustments = field(default_factory=Adjustments)
    ramadan_isha_minutes: int = RAMADAN_ISHA_MINUTES

    @property
    def fajr_angle(self) -> float:
        return self.method.params.fajr_angle

    @property
    def isha_angle(self) -> float:
        return self.method.params.isha_angle

    @property
    def isha_interval(self) -> int:
        return self.method.params.isha_interval

    @property
    def maghrib_angle(self) -> Optional[float]:
        return self.method.params.maghrib_angle

    @property
    def rounding(self) -> Rounding:
        return self.method.params.rounding

    @property
    def effective_high_latitude_rule(self) -> HighLatitudeRule:
        return self.high_latitude_rule or self.method.params.high_latitude_rule

    def night_portions(self):
        """(fajr, isha) fractions of the night used to cap twilight times."""
        rule = self.effective_high_latitude_rule
        if rule is HighLatitudeRule.SEVENTH_OF_THE_NIGHT:
            return 1 / 7, 1 / 7
        if rule is HighLatitudeRule.TWILIGHT_ANGLE:
            return self.fajr_angle / 60, self.isha_angle / 60
        return 1 / 2, 1 / 2

    def total_adjustments(self) -> Adjustments:
        return self.adjustments + self.method.params.adjustments

    def ramadan_offset(self, day: datetime.date) -> int:
        """Extra Isha minutes for ``day``.

        Looks at the following day so that the night before the first fast
        (first taraweeh) is already adjusted.
        """
        if self.method is not CalculationMethod.UMM_AL_QURA or not self.ramadan_isha_minutes:
            return 0
        if is_ramadan(day + datetime.timedelta(days=1)):
            return self.ramadan_isha_minutes
        return 0

    def with_changes(self, **changes) -> "CalculationParameters":
        return replace(self, **changes)


def hijri_month(day: datetime.date) -> Optional[int]:
    """Umm al-Qura month number for a Gregorian date, None outside the supported range."""
    try:
        return Gregorian(day.year, day.month, day.day).to_hijri().month
    except OverflowError:
        logger.debug("No Umm al-Qura month for %s: outside supported range", day)
        return None


def is_ramadan(day: datetime.date) -> bool:
    return hijri_month(day) == RAMADAN_MONTH
