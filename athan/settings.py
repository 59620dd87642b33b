"""Persisted user settings: location, calculation method and adjustments."""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Optional

import pytz

from athan.calculation import (
    Adjustments,
    CalculationMethod,
    CalculationParameters,
    HighLatitudeRule,
    Madhab,
)
from athan.prayer_times import Coordinate

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".athan")
CONFIG_FILE = os.path.join(CONFIG_DIR, "settings.json")


@dataclass(frozen=True)
class LocationSettings:
    name: str
    coordinate: Coordinate
    timezone: str
    use_current_location: bool = False

    @property
    def has_place_name(self) -> bool:
        """False for labels that are only formatted coordinates."""
        return not self.name.endswith("°")

    def same_place(self, other: "LocationSettings") -> bool:
        """True when both coordinates agree to 1/100 of a degree."""
        return (int(self.coordinate.latitude * 100) == int(other.coordinate.latitude * 100)
                and int(self.coordinate.longitude * 100) == int(other.coordinate.longitude * 100))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "timezone": self.timezone,
            "use_current_location": self.use_current_location,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationSettings":
        coordinate = Coordinate(float(data["lat"]), float(data["lon"]))
        if not coordinate.is_valid():
            raise ValueError(f"Coordinate out of range: {coordinate}")
        timezone = data["timezone"]
        if timezone not in pytz.all_timezones_set:
            raise ValueError(f"Unknown time zone: {timezone}")
        return cls(
            name=str(data["name"]),
            coordinate=coordinate,
            timezone=timezone,
            use_current_location=bool(data.get("use_current_location", False)),
        )


DEFAULT_LOCATION = LocationSettings(
    name="Cupertino, CA",
    coordinate=Coordinate(37.3230, -122.0322),
    timezone="America/Los_Angeles",
)


@dataclass(frozen=True)
class PrayerSettings:
    method: CalculationMethod = CalculationMethod.MUSLIM_WORLD_LEAGUE
    madhab: Madhab = Madhab.SHAFI
    high_latitude_rule: Optional[HighLatitudeRule] = None
    adjustments: Adjustments = field(default_factory=Adjustments)

    def to_dict(self) -> dict:
        return {
            "method": self.method.value,
            "madhab": self.madhab.value,
            "high_latitude_rule": self.high_latitude_rule.value if self.high_latitude_rule else None,
            "adjustments": self.adjustments.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PrayerSettings":
        rule = data.get("high_latitude_rule")
        return cls(
            method=CalculationMethod(data.get("method", CalculationMethod.MUSLIM_WORLD_LEAGUE.value)),
            madhab=Madhab(data.get("madhab", Madhab.SHAFI.value)),
            high_latitude_rule=HighLatitudeRule(rule) if rule else None,
            adjustments=Adjustments.from_mapping(data.get("adjustments")),
        )


@dataclass(frozen=True)
class Settings:
    location: LocationSettings = DEFAULT_LOCATION
    prayer: PrayerSettings = field(default_factory=PrayerSettings)

    def calculation_parameters(self) -> CalculationParameters:
        return CalculationParameters(
            method=self.prayer.method,
            madhab=self.prayer.madhab,
            high_latitude_rule=self.prayer.high_latitude_rule,
            adjustments=self.prayer.adjustments,
        )

    def with_location(self, location: LocationSettings) -> "Settings":
        return replace(self, location=location)

    def to_dict(self) -> dict:
        return {"location": self.location.to_dict(), "prayer": self.prayer.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        return cls(
            location=LocationSettings.from_dict(data["location"]),
            prayer=PrayerSettings.from_dict(data.get("prayer", {})),
        )


class SettingsStore:
    """JSON file holding one Settings record."""

    def __init__(self, path: str = None):
        self.path = path or CONFIG_FILE

    def load(self) -> Optional[Settings]:
        """Load previously saved settings, or return None."""
        if not os.path.isfile(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Settings.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
        return None

    def read(self) -> Settings:
        return self.load() or Settings()

    def write(self, settings: Settings) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        logger.debug("Saved settings to %s", self.path)

    def clear(self) -> None:
        """Remove the saved settings file."""
        if os.path.isfile(self.path):
            os.remove(self.path)
