from datetime import timedelta
from types import SimpleNamespace

import pytest
from pymongo import ReturnDocument

from ecoevents.repos.mongo import MONGO_EARTH_RADIUS_M, RECENT, MongoRepo
from ecoevents.services.geo import KM_PER_DEGREE, NearbyQuery
from tests.conftest import BLR, T0

pytestmark = pytest.mark.anyio


class FakeCursor:
    def __init__(self, docs):
        self.docs = list(docs)
        self.sorted_by = None
        self.skipped = 0
        self.limited = None

    def sort(self, keys):
        self.sorted_by = keys
        return self

    def skip(self, n):
        self.skipped = n
        return self

    def limit(self, n):
        self.limited = n
        return self

    def __aiter__(self):
        self._it = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._it)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Records the filters it receives and answers with canned documents."""

    def __init__(self, docs=(), total=0):
        self.docs = list(docs)
        self.total = total
        self.finds = []
        self.counts = []
        self.cursors = []
        self.updates = []

    def find(self, query, projection=None):
        self.finds.append(query)
        cur = FakeCursor(self.docs)
        self.cursors.append(cur)
        return cur

    async def count_documents(self, query):
        self.counts.append(query)
        return self.total

    async def find_one_and_update(self, query, update, return_document=None):
        self.updates.append((query, update, return_document))
        return None

    async def update_one(self, query, update):
        self.updates.append((query, update, None))
        return SimpleNamespace(modified_count=0)


def _donation(did, km):
    lat = BLR[0] + km / KM_PER_DEGREE
    return {"_id": did, "status": "available", "created_at": T0,
            "location": {"lat": lat, "lng": BLR[1]}}


def _repo(donations):
    db = SimpleNamespace(donations=donations, users=FakeCollection(), products=FakeCollection(),
                         events=FakeCollection(), name="test")
    return MongoRepo(db)


async def test_distance_sort_uses_the_same_cap_as_the_count():
    col = FakeCollection(docs=[_donation("in", 9.9), _donation("edge", 10.05)], total=1)
    repo = _repo(col)
    q = NearbyQuery.build(latitude=BLR[0], longitude=BLR[1], radius=10, sort="distance")

    page = await repo.find_donations(q, status="available")

    (counted,) = col.counts
    (found,) = col.finds
    angle = counted["geo"]["$geoWithin"]["$centerSphere"][1]
    max_m = found["geo"]["$near"]["$maxDistance"]
    assert max_m / MONGO_EARTH_RADIUS_M == pytest.approx(angle)
    assert found["geo"]["$near"]["$geometry"] == {"type": "Point", "coordinates": [BLR[1], BLR[0]]}
    assert found["status"] == "available"
    # anything the server returns past the radius is dropped
    assert [d["_id"] for d, _ in page.items] == ["in"]
    assert page.total == 1

async def test_recent_listing_with_center_pages_within_the_cap():
    col = FakeCollection(docs=[_donation("a", 2)], total=21)
    repo = _repo(col)
    q = NearbyQuery.build(latitude=BLR[0], longitude=BLR[1], radius=10, page=2, limit=20)

    page = await repo.find_donations(q, status="available", category="food")

    (found,) = col.finds
    assert found == col.counts[0]
    assert found["category"] == "food"
    cur = col.cursors[0]
    assert (cur.sorted_by, cur.skipped, cur.limited) == (RECENT, 20, 20)
    assert page.items[0][1] == pytest.approx(2.0)
    assert page.total == 21

async def test_listing_without_center_has_no_geo_filter():
    col = FakeCollection(docs=[_donation("a", 2)], total=1)
    page = await _repo(col).find_donations(NearbyQuery.build(), status="expired")

    assert col.finds == [{"status": "expired"}]
    assert page.items[0][1] is None

async def test_conditional_writes_key_on_status_and_donation_id():
    col = FakeCollection()
    repo = _repo(col)
    now = T0 + timedelta(hours=1)

    assert await repo.transition_donation("d1", "available", {"status": "requested"}, not_expired_at=now) is None
    query, update, ret = col.updates[0]
    assert query == {"_id": "d1", "status": "available", "expiry_date": {"$gt": now}}
    assert update == {"$set": {"status": "requested"}, "$inc": {"version": 1}}
    assert ret == ReturnDocument.AFTER

    assert await repo.award_points("v1", "d1", 10, now) is False
    query, update, _ = repo.db.users.updates[0]
    assert query == {"_id": "v1", "scored_donations": {"$ne": "d1"}}
    assert update["$inc"] == {"donation_score": 10}
    assert update["$addToSet"] == {"scored_donations": "d1"}
