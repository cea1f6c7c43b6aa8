# ecoevents/repos/mongo.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, GEOSPHERE, ReturnDocument

from ecoevents.services.geo import NearbyPage, NearbyQuery, annotate_distances, km_to_radians

logger = logging.getLogger(__name__)

def oid() -> str:
    return str(ObjectId())

RECENT = [("created_at", DESCENDING), ("_id", DESCENDING)]

# radius MongoDB uses to turn $near meters into an angle
MONGO_EARTH_RADIUS_M = 6378100.0


class MongoRepo:
    """Motor-backed store. Geo lookups go through the 2dsphere index on `geo`."""

    def __init__(self, db):
        self.db = db

    async def ensure_indexes(self):
        async def ensure_index(col, keys, name: str, **kwargs):
            existing = [ix["name"] async for ix in col.list_indexes()]
            if name in existing:
                return
            await col.create_index(keys, name=name, **kwargs)

        db = self.db
        await ensure_index(db.donations, [("geo", GEOSPHERE)], "geo_2dsphere")
        await ensure_index(db.donations, [("status", ASCENDING), ("created_at", DESCENDING)], "status_created")
        await ensure_index(db.donations, [("vendor_id", ASCENDING)], "vendor_1")
        await ensure_index(db.donations, [("requested_by", ASCENDING)], "requested_by_1")
        await ensure_index(db.donations, [("expiry_date", ASCENDING)], "expiry_1")
        await ensure_index(db.products, [("geo", GEOSPHERE)], "geo_2dsphere")
        await ensure_index(db.products, [("category", ASCENDING)], "category_1")
        await ensure_index(db.products, [("vendor_id", ASCENDING)], "vendor_1")
        await ensure_index(db.users, [("geo", GEOSPHERE)], "geo_2dsphere", sparse=True)
        await ensure_index(db.users, [("roles", ASCENDING), ("donation_score", DESCENDING)], "roles_score")
        await ensure_index(db.events, [("created_at", ASCENDING)], "created_at_1")
        logger.info("mongo indexes ensured on %s", db.name)

    # -------------------------------------------------- geo search
    async def _search(self, col, q: NearbyQuery, query: Dict[str, Any]) -> NearbyPage:
        center = q.center
        if center is None:
            total = await col.count_documents(query)
            cur = col.find(query).sort(RECENT).skip(q.skip).limit(q.limit)
            docs = [d async for d in cur]
            return NearbyPage(items=annotate_distances(None, docs), total=total, page=q.page, limit=q.limit)

        angle = km_to_radians(q.radius)
        within = {**query, "geo": {"$geoWithin": {
            "$centerSphere": [[center.lng, center.lat], angle],
        }}}
        total = await col.count_documents(within)
        if q.sort == "distance":
            # $near takes meters on the server's sphere; same cap as $centerSphere
            near = {**query, "geo": {"$near": {
                "$geometry": center.to_geojson(),
                "$maxDistance": angle * MONGO_EARTH_RADIUS_M,
            }}}
            cur = col.find(near).skip(q.skip).limit(q.limit)
        else:
            cur = col.find(within).sort(RECENT).skip(q.skip).limit(q.limit)
        docs = [d async for d in cur]
        hits = [(d, km) for d, km in annotate_distances(center, docs) if km is not None and km <= q.radius]
        return NearbyPage(items=hits, total=total, page=q.page, limit=q.limit)

    # -------------------------------------------------- users
    async def insert_user(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        doc.setdefault("donation_score", 0)
        doc.setdefault("scored_donations", [])
        await self.db.users.insert_one(doc)
        return doc

    async def get_user(self, user_id: str) -> Optional[dict]:
        return await self.db.users.find_one({"_id": user_id})

    async def get_users(self, user_ids: List[str]) -> Dict[str, dict]:
        ids = list(set(user_ids))
        return {u["_id"]: u async for u in self.db.users.find({"_id": {"$in": ids}})}

    async def find_users(self, role: str, q: NearbyQuery) -> NearbyPage:
        return await self._search(self.db.users, q, {"roles": role, "is_active": True})

    async def award_points(self, vendor_id: str, donation_id: str, points: int, now: datetime) -> bool:
        res = await self.db.users.update_one(
            {"_id": vendor_id, "scored_donations": {"$ne": donation_id}},
            {
                "$inc": {"donation_score": points},
                "$addToSet": {"scored_donations": donation_id},
                "$set": {"updated_at": now},
            },
        )
        return res.modified_count == 1

    async def top_vendors(self, since: Optional[datetime], skip: int, limit: int) -> Tuple[List[dict], int]:
        query: Dict[str, Any] = {"roles": "vendor", "is_active": True, "donation_score": {"$gt": 0}}
        if since is not None:
            query["updated_at"] = {"$gte": since}
        total = await self.db.users.count_documents(query)
        cur = (self.db.users.find(query)
               .sort([("donation_score", DESCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)])
               .skip(skip).limit(limit))
        return [u async for u in cur], total

    # -------------------------------------------------- donations
    async def insert_donation(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        await self.db.donations.insert_one(doc)
        return doc

    async def get_donation(self, donation_id: str) -> Optional[dict]:
        return await self.db.donations.find_one({"_id": donation_id})

    async def transition_donation(self, donation_id: str, expected_status: str, changes: dict,
                                  not_expired_at: Optional[datetime] = None) -> Optional[dict]:
        query: Dict[str, Any] = {"_id": donation_id, "status": expected_status}
        if not_expired_at is not None:
            query["expiry_date"] = {"$gt": not_expired_at}
        return await self.db.donations.find_one_and_update(
            query,
            {"$set": changes, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )

    async def delete_donation(self, donation_id: str, expected_status: str) -> bool:
        res = await self.db.donations.delete_one({"_id": donation_id, "status": expected_status})
        return res.deleted_count == 1

    async def find_donations(self, q: NearbyQuery, status: str, category: Optional[str] = None) -> NearbyPage:
        query: Dict[str, Any] = {"status": status}
        if category:
            query["category"] = category
        return await self._search(self.db.donations, q, query)

    async def list_donations(self, **eq) -> List[dict]:
        return [d async for d in self.db.donations.find(eq).sort(RECENT)]

    async def overdue_donation_ids(self, now: datetime) -> List[str]:
        cur = self.db.donations.find({"status": "available", "expiry_date": {"$lt": now}}, {"_id": 1})
        return [d["_id"] async for d in cur]

    async def count_donations(self, **eq) -> int:
        return await self.db.donations.count_documents(eq)

    # -------------------------------------------------- products
    async def insert_product(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        await self.db.products.insert_one(doc)
        return doc

    async def get_product(self, product_id: str) -> Optional[dict]:
        return await self.db.products.find_one({"_id": product_id})

    async def update_product(self, product_id: str, changes: dict) -> Optional[dict]:
        return await self.db.products.find_one_and_update(
            {"_id": product_id}, {"$set": changes}, return_document=ReturnDocument.AFTER,
        )

    async def increment_product(self, product_id: str, field: str) -> Optional[dict]:
        return await self.db.products.find_one_and_update(
            {"_id": product_id}, {"$inc": {field: 1}}, return_document=ReturnDocument.AFTER,
        )

    async def delete_product(self, product_id: str) -> bool:
        res = await self.db.products.delete_one({"_id": product_id})
        return res.deleted_count == 1

    async def find_products(self, q: NearbyQuery, category: Optional[str] = None) -> NearbyPage:
        query: Dict[str, Any] = {"is_available": True, "eco_friendly": True}
        if category:
            query["category"] = category
        return await self._search(self.db.products, q, query)

    async def list_products(self, **eq) -> List[dict]:
        return [p async for p in self.db.products.find(eq).sort(RECENT)]

    async def count_products(self, **eq) -> int:
        return await self.db.products.count_documents(eq)

    # -------------------------------------------------- events
    async def insert_event(self, evt: dict) -> dict:
        evt = dict(evt)
        evt.setdefault("_id", oid())
        await self.db.events.insert_one(evt)
        return evt

    async def list_events(self, type_: Optional[str] = None) -> List[dict]:
        query = {"type": type_} if type_ else {}
        return [e async for e in self.db.events.find(query).sort("created_at", ASCENDING)]
