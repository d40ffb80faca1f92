from datetime import timedelta

from models.models import ChatGroupSummary, Coordinate
from services.nearby_cache import NearbyGroupsCache
from test_data import BASE_TIME, NEARBY_POINT, ORIGIN, group_row
from utils.constants import StorageKeys


def origin():
    return Coordinate(latitude=ORIGIN[0], longitude=ORIGIN[1])


def groups():
    return [ChatGroupSummary.from_row(group_row("g1", *NEARBY_POINT))]


def test_save_then_load_within_ttl(storage):
    cache = NearbyGroupsCache(storage, ttl_hours=24)
    cache.save(origin(), groups(), now=BASE_TIME)
    entry = cache.load(now=BASE_TIME + timedelta(hours=23))
    assert entry is not None
    assert [g.id for g in entry.groups] == ["g1"]
    assert entry.origin == origin()


def test_load_after_expiry_returns_none(storage):
    cache = NearbyGroupsCache(storage, ttl_hours=24)
    cache.save(origin(), groups(), now=BASE_TIME)
    assert cache.load(now=BASE_TIME + timedelta(hours=24)) is None


def test_sample_groups_are_not_cached(storage):
    cache = NearbyGroupsCache(storage)
    sample = groups()[0].model_copy(update={"is_sample": True})
    assert cache.save(origin(), [sample], now=BASE_TIME) is None
    assert cache.load(now=BASE_TIME) is None


def test_malformed_cache_is_ignored(storage):
    storage.set(StorageKeys.NEARBY_GROUPS_CACHE.value, {"origin": "nowhere"})
    assert NearbyGroupsCache(storage).load(now=BASE_TIME) is None


def test_clear(storage):
    cache = NearbyGroupsCache(storage)
    cache.save(origin(), groups(), now=BASE_TIME)
    cache.clear()
    assert cache.load(now=BASE_TIME) is None


def test_groups_near_remeasures_from_new_origin(storage):
    cache = NearbyGroupsCache(storage)
    cached = [
        ChatGroupSummary.from_row(group_row("near", *NEARBY_POINT)),
        ChatGroupSummary.from_row(group_row("mid", -33.89, 151.10)),
    ]
    cache.save(origin(), cached, now=BASE_TIME)

    moved = Coordinate(latitude=NEARBY_POINT[0], longitude=NEARBY_POINT[1])
    later = BASE_TIME + timedelta(hours=1)
    groups = cache.groups_near(moved, 1.0, now=later)
    assert [g.id for g in groups] == ["near"]
    assert groups[0].distance_km < 0.01

    wider = cache.groups_near(moved, 5.0, now=later)
    assert [g.id for g in wider] == ["near", "mid"]


def test_groups_near_without_cache(storage):
    assert NearbyGroupsCache(storage).groups_near(origin(), 5.0, now=BASE_TIME) is None
