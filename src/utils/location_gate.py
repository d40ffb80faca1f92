import time
from typing import Tuple

from models.models import Coordinate

# roughly 200 metres at the equator
SIGNIFICANT_CHANGE_DEGREES = 0.0018
MIN_REFRESH_INTERVAL_SECONDS = 60.0


class LocationChangeGate:
    """Call-site throttle deciding when a location update warrants discovery.

    A changed search radius always warrants a new request, since results
    fetched for a wider radius may fall outside a narrower one.
    """

    def __init__(
        self,
        threshold_degrees: float = SIGNIFICANT_CHANGE_DEGREES,
        min_interval_seconds: float = MIN_REFRESH_INTERVAL_SECONDS,
    ):
        self.threshold_degrees = threshold_degrees
        self.min_interval_seconds = min_interval_seconds
        self._last: Tuple[float, float, float] | None = None
        self._last_radius_km: float | None = None

    def is_significant_change(self, coordinate: Coordinate) -> bool:
        if self._last is None:
            return True
        last_lat, last_lng, _ = self._last
        return (
            abs(last_lat - coordinate.latitude) > self.threshold_degrees
            or abs(last_lng - coordinate.longitude) > self.threshold_degrees
        )

    def should_fetch(
        self,
        coordinate: Coordinate,
        now: float | None = None,
        radius_km: float | None = None,
    ) -> bool:
        now = time.time() if now is None else now
        if self._last is None:
            return True
        if radius_km is not None and radius_km != self._last_radius_km:
            return True
        if self.is_significant_change(coordinate):
            return True
        return (now - self._last[2]) > self.min_interval_seconds

    def mark_fetched(
        self,
        coordinate: Coordinate,
        now: float | None = None,
        radius_km: float | None = None,
    ):
        now = time.time() if now is None else now
        self._last = (coordinate.latitude, coordinate.longitude, now)
        self._last_radius_km = radius_km

    def reset(self):
        self._last = None
        self._last_radius_km = None
