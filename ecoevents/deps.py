# ecoevents/deps.py
from functools import lru_cache
from typing import Optional

from fastapi import Query

from ecoevents.core.config import settings
from ecoevents.services.geo import NearbyQuery
from ecoevents.services.marketplace import Marketplace

@lru_cache(maxsize=1)
def get_repo():
    if settings.use_mongo:
        from ecoevents.core.db import get_db
        from ecoevents.repos.mongo import MongoRepo
        return MongoRepo(get_db())
    from ecoevents.repos.inmemory import InMemoryRepo
    return InMemoryRepo()

def get_marketplace() -> Marketplace:
    return Marketplace(get_repo())

def nearby_query(
    latitude: Optional[float] = Query(None),
    longitude: Optional[float] = Query(None),
    radius: Optional[float] = Query(None, description="km, default 50"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    sort: Optional[str] = Query(None, description="recent | distance"),
) -> NearbyQuery:
    # out-of-range values are rejected, never clamped
    return NearbyQuery.build(latitude=latitude, longitude=longitude, radius=radius,
                             page=page, limit=limit, sort=sort)
