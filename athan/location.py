"""Current location detection using IP geolocation."""

import logging
from typing import Optional

import requests

from athan.settings import LocationSettings

logger = logging.getLogger(__name__)

IPAPI_URL = "http://ip-api.com/json/"


def _short_name(data: dict) -> str:
    city = data.get("city")
    region = data.get("regionName")
    country = data.get("countryCode") or data.get("country")
    if city and region:
        return f"{city}, {region}"
    if city and country:
        return f"{city}, {country}"
    return f"{float(data['lat']):.2f}°, {float(data['lon']):.2f}°"


def get_location(timeout: int = 5) -> Optional[LocationSettings]:
    """
    Detect current location via IP geolocation.

    Returns a LocationSettings flagged as the current location, or None when
    the lookup fails so the caller can keep its stored location.
    """
    try:
        resp = requests.get(
            IPAPI_URL,
            params={"fields": "city,regionName,country,countryCode,lat,lon,timezone,status,message"},
            timeout=timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Location lookup failed: %s", exc)
        return None

    if data.get("status") != "success":
        logger.warning("Location lookup rejected: %s", data.get("message", "unknown error"))
        return None
    try:
        return LocationSettings.from_dict({
            "name": _short_name(data),
            "lat": data["lat"],
            "lon": data["lon"],
            "timezone": data["timezone"],
            "use_current_location": True,
        })
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Location lookup returned unusable data: %s", exc)
        return None

