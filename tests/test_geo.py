import random
from datetime import timedelta

import pytest

from ecoevents.core.errors import ValidationError
from ecoevents.services.geo import (
    KM_PER_DEGREE, Coordinate, GeoGridIndex, NearbyQuery, display_km, distance_km, find_nearby,
)
from tests.conftest import BLR, T0

CENTER = Coordinate(lat=BLR[0], lng=BLR[1])

def _north_of(center: Coordinate, km: float) -> Coordinate:
    return Coordinate(lat=center.lat + km / KM_PER_DEGREE, lng=center.lng)

def _entity(eid, point, minutes=0, **extra):
    doc = {"_id": eid, "location": point.to_location(), "created_at": T0 + timedelta(minutes=minutes)}
    doc.update(extra)
    return doc


# ------------------------------------------------------------------ distance
def test_distance_identical_points_is_zero():
    assert distance_km(CENTER, CENTER) == 0.0

def test_distance_is_symmetric():
    rnd = random.Random(7)
    for _ in range(200):
        a = Coordinate(lat=rnd.uniform(-90, 90), lng=rnd.uniform(-180, 180))
        b = Coordinate(lat=rnd.uniform(-90, 90), lng=rnd.uniform(-180, 180))
        assert distance_km(a, b) == pytest.approx(distance_km(b, a), abs=1e-9)
        assert distance_km(a, b) >= 0

def test_distance_antipodal_points():
    a = Coordinate(lat=10, lng=20)
    b = Coordinate(lat=-10, lng=-160)
    assert distance_km(a, b) == pytest.approx(20015.0, abs=1.0)

def test_distance_known_pair():
    # Bengaluru -> Chennai, roughly 290 km in a straight line
    chennai = Coordinate(lat=13.0827, lng=80.2707)
    assert 280 < distance_km(CENTER, chennai) < 300

def test_display_rounds_to_one_decimal():
    assert display_km(4.96) == 5.0
    assert display_km(12.345) == 12.3
    assert display_km(None) is None

def test_coordinate_out_of_range_is_validation_error():
    with pytest.raises(ValidationError) as ei:
        Coordinate.of(91, 0)
    assert ei.value.field == "latitude"
    with pytest.raises(ValidationError) as ei:
        Coordinate.of(0, 181)
    assert ei.value.field == "longitude"


# ------------------------------------------------------------------ planner
def test_find_nearby_keeps_only_entities_inside_radius():
    near = _entity("near", _north_of(CENTER, 5))
    far = _entity("far", _north_of(CENTER, 15))
    page = find_nearby(CENTER, 10, lambda d: True, [near, far])

    assert [d["_id"] for d, _ in page.items] == ["near"]
    assert display_km(page.items[0][1]) == 5.0
    assert page.total == 1

def test_find_nearby_without_center_returns_all_newest_first():
    docs = [_entity(f"e{i}", _north_of(CENTER, i * 100), minutes=i) for i in range(4)]
    page = find_nearby(None, 10, lambda d: True, docs)

    assert [d["_id"] for d, _ in page.items] == ["e3", "e2", "e1", "e0"]
    assert all(km is None for _, km in page.items)

def test_find_nearby_orders_by_recency_not_distance():
    older_close = _entity("close", _north_of(CENTER, 1), minutes=0)
    newer_far = _entity("far", _north_of(CENTER, 8), minutes=5)
    page = find_nearby(CENTER, 10, lambda d: True, [older_close, newer_far])
    assert [d["_id"] for d, _ in page.items] == ["far", "close"]

    page = find_nearby(CENTER, 10, lambda d: True, [older_close, newer_far], sort="distance")
    assert [d["_id"] for d, _ in page.items] == ["close", "far"]

def test_find_nearby_applies_filter_and_skips_unlocated():
    docs = [
        _entity("food", _north_of(CENTER, 2), category="food"),
        _entity("decor", _north_of(CENTER, 2), category="decor"),
        {"_id": "nowhere", "created_at": T0, "category": "food"},
    ]
    page = find_nearby(CENTER, 10, lambda d: d["category"] == "food", docs)
    assert [d["_id"] for d, _ in page.items] == ["food"]

def test_find_nearby_paginates_and_counts_full_set():
    docs = [_entity(f"e{i:02d}", _north_of(CENTER, 1), minutes=i) for i in range(25)]
    page = find_nearby(CENTER, 10, lambda d: True, docs, page=2, limit=10)

    assert page.total == 25
    assert [d["_id"] for d, _ in page.items] == [f"e{i:02d}" for i in range(14, 4, -1)]
    last = find_nearby(CENTER, 10, lambda d: True, docs, page=3, limit=10)
    assert len(last.items) == 5

@pytest.mark.parametrize("radius,page,limit,field", [
    (0, 1, 20, "radius"),
    (1001, 1, 20, "radius"),
    (50, 0, 20, "page"),
    (50, 1, 0, "limit"),
    (50, 1, 51, "limit"),
])
def test_find_nearby_rejects_out_of_range_window(radius, page, limit, field):
    with pytest.raises(ValidationError) as ei:
        find_nearby(CENTER, radius, lambda d: True, [], page=page, limit=limit)
    assert ei.value.field == field

def test_every_result_is_within_radius():
    rnd = random.Random(42)
    docs = [
        _entity(i, Coordinate(lat=CENTER.lat + rnd.uniform(-1, 1), lng=CENTER.lng + rnd.uniform(-1, 1)))
        for i in range(300)
    ]
    page = find_nearby(CENTER, 40, lambda d: True, docs, limit=50)
    for d, km in page.items:
        assert distance_km(CENTER, Coordinate.from_doc(d)) <= 40
        assert km <= 40


# ------------------------------------------------------------------ query params
def test_nearby_query_defaults():
    q = NearbyQuery.build()
    assert q.center is None
    assert (q.radius, q.page, q.limit, q.sort) == (50, 1, 20, "recent")

def test_nearby_query_needs_both_coordinates():
    with pytest.raises(ValidationError):
        NearbyQuery.build(latitude=12.97)

def test_nearby_query_never_clamps():
    with pytest.raises(ValidationError) as ei:
        NearbyQuery.build(limit=100)
    assert ei.value.field == "limit"
    with pytest.raises(ValidationError) as ei:
        NearbyQuery.build(latitude=12.9, longitude=77.5, radius=5000)
    assert ei.value.field == "radius"

def test_nearby_query_distance_sort_requires_center():
    with pytest.raises(ValidationError):
        NearbyQuery.build(sort="distance")


# ------------------------------------------------------------------ grid index
def test_grid_candidates_cover_every_hit():
    rnd = random.Random(3)
    index = GeoGridIndex(cell_deg=0.5)
    points = {}
    for i in range(2000):
        p = Coordinate(lat=rnd.uniform(-89, 89), lng=rnd.uniform(-180, 180))
        points[i] = p
        index.insert(i, p)

    for center in [CENTER, Coordinate(lat=0, lng=179.9), Coordinate(lat=88.5, lng=10),
                   Coordinate(lat=-60, lng=-179.5)]:
        for radius in (10, 150, 900):
            expected = {k for k, p in points.items() if distance_km(center, p) <= radius}
            assert expected <= index.candidates(center, radius)

def test_grid_only_visits_nearby_buckets():
    index = GeoGridIndex(cell_deg=0.5)
    index.insert("blr", CENTER)
    index.insert("delhi", Coordinate(lat=28.61, lng=77.21))
    assert index.candidates(CENTER, 20) == {"blr"}

def test_grid_reinsert_and_remove():
    index = GeoGridIndex(cell_deg=0.5)
    index.insert("x", CENTER)
    index.insert("x", Coordinate(lat=28.61, lng=77.21))
    assert len(index) == 1
    assert index.candidates(CENTER, 20) == set()
    index.remove("x")
    assert len(index) == 0
