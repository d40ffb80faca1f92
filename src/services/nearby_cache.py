import logging
from datetime import datetime, timedelta
from typing import List

from pydantic import ValidationError

from clients.device_storage import DeviceStorage
from models.models import ChatGroupSummary, Coordinate, NearbyCacheEntry, utc_now
from utils.constants import StorageKeys
from utils.geo import haversine_km

logger = logging.getLogger(__name__)


class NearbyGroupsCache:
    """Last real discovery result, kept on the device for up to `ttl_hours`."""

    def __init__(self, storage: DeviceStorage, ttl_hours: float = 24):
        self.storage = storage
        self.ttl = timedelta(hours=ttl_hours)

    def save(
        self,
        origin: Coordinate,
        groups: List[ChatGroupSummary],
        now: datetime | None = None,
    ) -> NearbyCacheEntry | None:
        if any(g.is_sample for g in groups):
            logger.info("Not caching degraded nearby result")
            return None
        now = now or utc_now()
        entry = NearbyCacheEntry(
            origin=origin, groups=groups, cached_at=now, expires_at=now + self.ttl
        )
        self.storage.set(
            StorageKeys.NEARBY_GROUPS_CACHE.value, entry.model_dump(mode="json")
        )
        return entry

    def load(self, now: datetime | None = None) -> NearbyCacheEntry | None:
        raw = self.storage.get(StorageKeys.NEARBY_GROUPS_CACHE.value)
        if not raw:
            return None
        try:
            entry = NearbyCacheEntry.model_validate(raw)
        except ValidationError as e:
            logger.warning("Discarding malformed nearby cache: %s", e)
            return None
        if (now or utc_now()) >= entry.expires_at:
            logger.info("Nearby cache expired at %s", entry.expires_at.isoformat())
            return None
        return entry

    def groups_near(
        self,
        origin: Coordinate,
        radius_km: float,
        now: datetime | None = None,
    ) -> List[ChatGroupSummary] | None:
        """Cached groups re-measured from `origin` and filtered to `radius_km`.

        None when there is no usable cache entry.
        """
        entry = self.load(now)
        if entry is None:
            return None
        nearby = []
        for group in entry.groups:
            distance = haversine_km(
                origin.latitude,
                origin.longitude,
                group.coordinate.latitude,
                group.coordinate.longitude,
            )
            if distance <= radius_km:
                nearby.append(group.model_copy(update={"distance_km": distance}))
        nearby.sort(key=lambda g: g.distance_km)
        return nearby

    def clear(self):
        self.storage.remove(StorageKeys.NEARBY_GROUPS_CACHE.value)
