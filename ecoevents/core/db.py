# ecoevents/core/db.py
from functools import lru_cache

from motor.motor_asyncio import AsyncIOMotorClient

from ecoevents.core.config import settings

@lru_cache
def get_client() -> AsyncIOMotorClient:
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)

def get_db():
    return get_client()[settings.mongo_db]
