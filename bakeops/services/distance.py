import logging
import math
from typing import NamedTuple, Optional, Protocol

import httpx

from bakeops.config import settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8
METERS_PER_MILE = 1609.344
# straight-line travel time estimate
ESTIMATED_MPH = 30.0


class LatLng(NamedTuple):
    lat: float
    lng: float


class DistanceResult(NamedTuple):
    miles: float
    minutes: Optional[float]
    is_estimate: bool


class DistanceProvider(Protocol):
    def distance(self, origin: LatLng, dest: LatLng) -> DistanceResult: ...


def haversine_miles(origin: LatLng, dest: LatLng) -> float:
    lat1, lng1 = math.radians(origin[0]), math.radians(origin[1])
    lat2, lng2 = math.radians(dest[0]), math.radians(dest[1])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


class HaversineDistanceProvider:
    """Straight-line distance; always an estimate."""

    def distance(self, origin: LatLng, dest: LatLng) -> DistanceResult:
        miles = haversine_miles(origin, dest)
        return DistanceResult(miles=miles, minutes=miles / ESTIMATED_MPH * 60, is_estimate=True)


class GoogleDistanceMatrixProvider:
    """Driving distance from a Distance Matrix compatible endpoint.

    Any transport error, non-2xx status or unexpected payload falls back to
    the straight-line estimate; callers never see the failure.
    """

    def __init__(self, api_key: str, url: str | None = None, timeout: float | None = None,
                 client: httpx.Client | None = None):
        self.api_key = api_key
        self.url = url or settings.DISTANCE_API_URL
        self.timeout = timeout or settings.DISTANCE_TIMEOUT_S
        # an injected client belongs to the caller; otherwise each lookup opens and closes its own
        self.client = client
        self.fallback = HaversineDistanceProvider()

    def distance(self, origin: LatLng, dest: LatLng) -> DistanceResult:
        params = {
            "origins": f"{origin[0]},{origin[1]}",
            "destinations": f"{dest[0]},{dest[1]}",
            "units": "imperial",
            "key": self.api_key,
        }
        try:
            if self.client is not None:
                r = self.client.get(self.url, params=params)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    r = client.get(self.url, params=params)
            r.raise_for_status()
            element = r.json()["rows"][0]["elements"][0]
            if element.get("status") != "OK":
                raise ValueError(f"element status {element.get('status')}")
            miles = float(element["distance"]["value"]) / METERS_PER_MILE
            minutes = float(element["duration"]["value"]) / 60
            return DistanceResult(miles=miles, minutes=minutes, is_estimate=False)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("distance lookup failed, using straight-line estimate: %s", e)
            return self.fallback.distance(origin, dest)


def default_provider() -> DistanceProvider:
    if settings.DISTANCE_API_KEY:
        return GoogleDistanceMatrixProvider(settings.DISTANCE_API_KEY)
    return HaversineDistanceProvider()
