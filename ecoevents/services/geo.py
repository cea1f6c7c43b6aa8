"""Distance calculation and point-radius proximity search."""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timezone
from math import atan2, cos, radians, sin, sqrt
from typing import Any, Callable, Dict, Hashable, Iterable, List, Literal, NamedTuple, Optional, Set, Tuple

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ecoevents.core.config import settings
from ecoevents.core.errors import ValidationError

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 2 * math.pi * EARTH_RADIUS_KM / 360.0

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @classmethod
    def of(cls, lat: Any, lng: Any) -> "Coordinate":
        """Build a coordinate, reporting bad input as a ValidationError."""
        try:
            return cls(lat=lat, lng=lng)
        except pydantic.ValidationError as ex:
            err = ex.errors()[0]
            field = "latitude" if err["loc"] and err["loc"][0] == "lat" else "longitude"
            raise ValidationError(f"Valid {field} required", field=field)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> Optional["Coordinate"]:
        loc = doc.get("location") or {}
        if loc.get("lat") is None or loc.get("lng") is None:
            return None
        return cls(lat=loc["lat"], lng=loc["lng"])

    def to_location(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    def to_geojson(self) -> Dict[str, Any]:
        return {"type": "Point", "coordinates": [self.lng, self.lat]}


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------
def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle (haversine) distance in kilometres."""
    dlat = radians(b.lat - a.lat)
    dlng = radians(b.lng - a.lng)
    h = sin(dlat / 2) ** 2 + cos(radians(a.lat)) * cos(radians(b.lat)) * sin(dlng / 2) ** 2
    # float error can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * atan2(sqrt(h), sqrt(1 - h))

def display_km(d: Optional[float]) -> Optional[float]:
    if d is None:
        return None
    return round(d, 1)

def km_to_radians(km: float) -> float:
    return km / EARTH_RADIUS_KM


# ---------------------------------------------------------------------------
# Query parameters
# ---------------------------------------------------------------------------
SortKey = Literal["recent", "distance"]


class NearbyQuery(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius: float = Field(settings.default_radius_km, ge=settings.min_radius_km, le=settings.max_radius_km)
    page: int = Field(1, ge=1)
    limit: int = Field(settings.default_page_size, ge=1, le=settings.max_page_size)
    sort: SortKey = "recent"

    @model_validator(mode="after")
    def both_or_neither(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be supplied together")
        if self.sort == "distance" and self.latitude is None:
            raise ValueError("distance sort requires latitude and longitude")
        return self

    @classmethod
    def build(cls, **params: Any) -> "NearbyQuery":
        """Validate raw query params; never clamps out-of-range values."""
        params = {k: v for k, v in params.items() if v is not None}
        try:
            return cls(**params)
        except pydantic.ValidationError as ex:
            err = ex.errors()[0]
            field = str(err["loc"][0]) if err["loc"] else None
            raise ValidationError("Validation failed", field=field, reason=err["msg"])

    @property
    def center(self) -> Optional[Coordinate]:
        if self.latitude is None:
            return None
        return Coordinate(lat=self.latitude, lng=self.longitude)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class NearbyPage(NamedTuple):
    items: List[Tuple[Dict[str, Any], Optional[float]]]
    total: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# In-memory spatial index
# ---------------------------------------------------------------------------
class GeoGridIndex:
    """
    Fixed-size lat/lng bucket index. A radius query only visits the buckets
    overlapping the circle's bounding box, so cost depends on local density
    rather than on the total number of entries.
    """

    def __init__(self, cell_deg: float = 0.5):
        if cell_deg <= 0:
            raise ValueError("cell_deg must be positive")
        self.cell_deg = cell_deg
        self.n_rows = int(math.ceil(180.0 / cell_deg))
        self.n_cols = int(math.ceil(360.0 / cell_deg))
        self._cells: Dict[Tuple[int, int], Set[Hashable]] = defaultdict(set)
        self._where: Dict[Hashable, Tuple[int, int]] = {}

    def __len__(self) -> int:
        return len(self._where)

    def _row(self, lat: float) -> int:
        return min(self.n_rows - 1, max(0, int((lat + 90.0) // self.cell_deg)))

    def _col(self, lng: float) -> int:
        return int((lng + 180.0) // self.cell_deg) % self.n_cols

    def _cell(self, point: Coordinate) -> Tuple[int, int]:
        return self._row(point.lat), self._col(point.lng)

    def insert(self, key: Hashable, point: Coordinate) -> None:
        self.remove(key)
        cell = self._cell(point)
        self._cells[cell].add(key)
        self._where[key] = cell

    def remove(self, key: Hashable) -> None:
        cell = self._where.pop(key, None)
        if cell is None:
            return
        bucket = self._cells.get(cell)
        if bucket is not None:
            bucket.discard(key)
            if not bucket:
                del self._cells[cell]

    def candidates(self, center: Coordinate, radius_km: float) -> Set[Hashable]:
        """Keys whose bucket overlaps the query circle's bounding box (superset of hits)."""
        dlat = radius_km / KM_PER_DEGREE
        lat_lo, lat_hi = center.lat - dlat, center.lat + dlat
        rows = range(self._row(max(-90.0, lat_lo)), self._row(min(90.0, lat_hi)) + 1)

        # widest longitude span of a spherical cap, see Matuschek's bounding box
        ang = radius_km / EARTH_RADIUS_KM
        cos_lat = cos(radians(center.lat))
        if lat_lo <= -90.0 or lat_hi >= 90.0 or sin(ang) >= cos_lat:
            cols = range(self.n_cols)
        else:
            dlng = math.degrees(math.asin(sin(ang) / cos_lat))
            if dlng >= 180.0:
                cols = range(self.n_cols)
            else:
                first = self._col(center.lng - dlng)
                span = int(math.ceil(2 * dlng / self.cell_deg)) + 1
                cols = [(first + i) % self.n_cols for i in range(min(span, self.n_cols))]

        found: Set[Hashable] = set()
        for r in rows:
            for c in cols:
                bucket = self._cells.get((r, c))
                if bucket:
                    found.update(bucket)
        return found


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------
def _recency_key(doc: Dict[str, Any]):
    return (doc.get("created_at") or _EPOCH, str(doc.get("_id", "")))

def annotate_distances(center: Optional[Coordinate], docs: Iterable[Dict[str, Any]]
                       ) -> List[Tuple[Dict[str, Any], Optional[float]]]:
    """Attach the (unrounded) distance from `center`; None when no center or location."""
    out = []
    for d in docs:
        point = Coordinate.from_doc(d) if center is not None else None
        out.append((d, distance_km(center, point) if point is not None else None))
    return out

def validate_window(radius_km: float, page: int, limit: int) -> None:
    if not (settings.min_radius_km <= radius_km <= settings.max_radius_km):
        raise ValidationError(
            f"radius must be between {settings.min_radius_km:g} and {settings.max_radius_km:g} km",
            field="radius",
        )
    if page < 1:
        raise ValidationError("page must be >= 1", field="page")
    if not (1 <= limit <= settings.max_page_size):
        raise ValidationError(f"limit must be between 1 and {settings.max_page_size}", field="limit")

def find_nearby(
    center: Optional[Coordinate],
    radius_km: float,
    candidate_filter: Callable[[Dict[str, Any]], bool],
    entities: Iterable[Dict[str, Any]],
    page: int = 1,
    limit: int = 20,
    sort: SortKey = "recent",
) -> NearbyPage:
    """
    Point-radius search over `entities`.

    Without a center every entity passing `candidate_filter` is returned, newest
    first, with no distance. With a center only entities within `radius_km`
    (unrounded haversine) are kept and each carries its distance; ordering is
    still newest first unless `sort="distance"`.
    """
    validate_window(radius_km, page, limit)
    if sort not in ("recent", "distance"):
        raise ValidationError("sort must be 'recent' or 'distance'", field="sort")
    if sort == "distance" and center is None:
        raise ValidationError("distance sort requires latitude and longitude", field="sort")

    matched = [d for d in entities if candidate_filter(d)]
    hits = annotate_distances(center, matched)
    if center is not None:
        hits = [(d, km) for d, km in hits if km is not None and km <= radius_km]

    hits.sort(key=lambda h: _recency_key(h[0]), reverse=True)
    if sort == "distance":
        # stable: equal distances stay newest first
        hits.sort(key=lambda h: h[1])

    skip = (page - 1) * limit
    return NearbyPage(items=hits[skip:skip + limit], total=len(hits), page=page, limit=limit)
