"""
Travel-time sources used by the route estimator.
"""

import logging
import math
from typing import Dict, Mapping, Optional, Protocol, Tuple

import requests

from ..domain.exceptions import RouteEstimationError

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class TravelTimeSource(Protocol):
    """Anything that can estimate driving minutes between two addresses."""

    def minutes_between(self, origin: str, destination: str) -> int:
        """Return the travel time in whole minutes."""


def _same_place(origin: str, destination: str) -> bool:
    return origin.strip().lower() == destination.strip().lower()


class FixedTravelTime:
    """Assumes every trip between two different addresses takes the same time."""

    def __init__(self, minutes: int = 30):
        self.minutes = minutes

    def minutes_between(self, origin: str, destination: str) -> int:
        if _same_place(origin, destination):
            return 0
        return self.minutes


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class StraightLineTravelTime:
    """
    Estimates travel from straight-line distance at an average speed.

    Coordinates come from a lookup table of known addresses; trips involving
    an unknown address use the fallback source.
    """

    def __init__(
        self,
        locations: Mapping[str, Tuple[float, float]],
        average_speed_kmh: float = 40.0,
        fallback: Optional[TravelTimeSource] = None,
    ):
        self.locations = {address.strip().lower(): coords for address, coords in locations.items()}
        self.average_speed_kmh = average_speed_kmh
        self.fallback = fallback or FixedTravelTime()

    def minutes_between(self, origin: str, destination: str) -> int:
        start = self.locations.get(origin.strip().lower())
        end = self.locations.get(destination.strip().lower())

        if start is None or end is None:
            return self.fallback.minutes_between(origin, destination)

        distance = haversine_km(start[0], start[1], end[0], end[1])
        return math.ceil(distance / self.average_speed_kmh * 60)


class DistanceMatrixTravelTime:
    """
    Driving times from the Google Distance Matrix API.

    Results are cached per (origin, destination) pair for the lifetime of
    the instance.
    """

    ENDPOINT = "https://maps.googleapis.com/maps/api/distancematrix/json"

    def __init__(self, api_key: str, timeout: int = 10):
        self.api_key = api_key
        self.timeout = timeout
        self._cache: Dict[Tuple[str, str], int] = {}

    def minutes_between(self, origin: str, destination: str) -> int:
        """
        Raises:
            RouteEstimationError: If the API call fails or returns no route
        """
        if _same_place(origin, destination):
            return 0

        key = (origin, destination)
        if key not in self._cache:
            self._cache[key] = self._fetch_minutes(origin, destination)
        return self._cache[key]

    def _fetch_minutes(self, origin: str, destination: str) -> int:
        params = {
            "origins": origin,
            "destinations": destination,
            "mode": "driving",
            "key": self.api_key,
        }

        try:
            response = requests.get(self.ENDPOINT, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise RouteEstimationError(f"Distance Matrix request failed: {exc}") from exc

        if data.get("status") != "OK":
            raise RouteEstimationError(
                f"Distance Matrix returned {data.get('status')}: {data.get('error_message', '')}"
            )

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError) as exc:
            raise RouteEstimationError("Distance Matrix response had no route element") from exc

        if element.get("status") != "OK":
            raise RouteEstimationError(
                f"No driving route from '{origin}' to '{destination}': {element.get('status')}"
            )

        seconds = element["duration"]["value"]
        logger.debug("Travel %s -> %s: %ss", origin, destination, seconds)
        return math.ceil(seconds / 60)
