# ecoevents/repos/inmemory.py
import asyncio
import uuid
from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ecoevents.core.config import settings
from ecoevents.services.geo import Coordinate, GeoGridIndex, NearbyPage, NearbyQuery, find_nearby

def _id() -> str:
    return uuid.uuid4().hex

def _matches(doc: dict, eq: Dict[str, Any]) -> bool:
    for k, v in eq.items():
        if k == "roles":
            if v not in (doc.get("roles") or []):
                return False
        elif doc.get(k) != v:
            return False
    return True


class InMemoryRepo:
    """
    Process-local store with the same contract as MongoRepo. Every write runs
    under one asyncio lock, which gives the single-document atomicity the
    conditional updates rely on.
    """

    def __init__(self, cell_deg: Optional[float] = None):
        cell = cell_deg or settings.geo_cell_deg
        self.users: Dict[str, dict] = {}
        self.donations: Dict[str, dict] = {}
        self.products: Dict[str, dict] = {}
        self.events: List[dict] = []
        self._geo = {
            "users": GeoGridIndex(cell),
            "donations": GeoGridIndex(cell),
            "products": GeoGridIndex(cell),
        }
        self._lock = asyncio.Lock()

    # -------------------------------------------------- helpers
    def _index(self, name: str, doc: dict) -> None:
        point = Coordinate.from_doc(doc)
        if point is None:
            self._geo[name].remove(doc["_id"])
        else:
            self._geo[name].insert(doc["_id"], point)

    def _search(self, name: str, table: Dict[str, dict], q: NearbyQuery, eq: Dict[str, Any]) -> NearbyPage:
        center = q.center
        if center is None:
            pool = table.values()
        else:
            pool = (table[k] for k in self._geo[name].candidates(center, q.radius) if k in table)
        page = find_nearby(center, q.radius, lambda d: _matches(d, eq), pool,
                           page=q.page, limit=q.limit, sort=q.sort)
        return page._replace(items=[(deepcopy(d), km) for d, km in page.items])

    # -------------------------------------------------- users
    async def insert_user(self, doc: dict) -> dict:
        async with self._lock:
            doc = deepcopy(doc)
            doc.setdefault("_id", _id())
            doc.setdefault("donation_score", 0)
            doc.setdefault("scored_donations", [])
            self.users[doc["_id"]] = doc
            self._index("users", doc)
            return deepcopy(doc)

    async def get_user(self, user_id: str) -> Optional[dict]:
        doc = self.users.get(user_id)
        return deepcopy(doc) if doc else None

    async def get_users(self, user_ids: List[str]) -> Dict[str, dict]:
        return {uid: deepcopy(self.users[uid]) for uid in set(user_ids) if uid in self.users}

    async def find_users(self, role: str, q: NearbyQuery) -> NearbyPage:
        return self._search("users", self.users, q, {"roles": role, "is_active": True})

    async def award_points(self, vendor_id: str, donation_id: str, points: int, now: datetime) -> bool:
        async with self._lock:
            user = self.users.get(vendor_id)
            if user is None or donation_id in user.setdefault("scored_donations", []):
                return False
            user["donation_score"] = user.get("donation_score", 0) + points
            user["scored_donations"].append(donation_id)
            user["updated_at"] = now
            return True

    async def top_vendors(self, since: Optional[datetime], skip: int, limit: int) -> Tuple[List[dict], int]:
        rows = [
            u for u in self.users.values()
            if "vendor" in (u.get("roles") or [])
            and u.get("is_active")
            and (u.get("donation_score") or 0) > 0
            and (since is None or (u.get("updated_at") and u["updated_at"] >= since))
        ]
        # score desc, then oldest account first
        rows.sort(key=lambda u: (-(u.get("donation_score") or 0), u["created_at"], u["_id"]))
        return [deepcopy(u) for u in rows[skip:skip + limit]], len(rows)

    # -------------------------------------------------- donations
    async def insert_donation(self, doc: dict) -> dict:
        async with self._lock:
            doc = deepcopy(doc)
            doc.setdefault("_id", _id())
            self.donations[doc["_id"]] = doc
            self._index("donations", doc)
            return deepcopy(doc)

    async def get_donation(self, donation_id: str) -> Optional[dict]:
        doc = self.donations.get(donation_id)
        return deepcopy(doc) if doc else None

    async def transition_donation(self, donation_id: str, expected_status: str, changes: dict,
                                  not_expired_at: Optional[datetime] = None) -> Optional[dict]:
        """Apply `changes` only if the stored status is still `expected_status`."""
        async with self._lock:
            doc = self.donations.get(donation_id)
            if doc is None or doc.get("status") != expected_status:
                return None
            if not_expired_at is not None and not doc["expiry_date"] > not_expired_at:
                return None
            doc.update(deepcopy(changes))
            doc["version"] = doc.get("version", 0) + 1
            self._index("donations", doc)
            return deepcopy(doc)

    async def delete_donation(self, donation_id: str, expected_status: str) -> bool:
        async with self._lock:
            doc = self.donations.get(donation_id)
            if doc is None or doc.get("status") != expected_status:
                return False
            del self.donations[donation_id]
            self._geo["donations"].remove(donation_id)
            return True

    async def find_donations(self, q: NearbyQuery, status: str, category: Optional[str] = None) -> NearbyPage:
        eq = {"status": status}
        if category:
            eq["category"] = category
        return self._search("donations", self.donations, q, eq)

    async def list_donations(self, **eq) -> List[dict]:
        rows = [d for d in self.donations.values() if _matches(d, eq)]
        rows.sort(key=lambda d: (d["created_at"], d["_id"]), reverse=True)
        return [deepcopy(d) for d in rows]

    async def overdue_donation_ids(self, now: datetime) -> List[str]:
        return [d["_id"] for d in self.donations.values()
                if d.get("status") == "available" and now > d["expiry_date"]]

    async def count_donations(self, **eq) -> int:
        return sum(1 for d in self.donations.values() if _matches(d, eq))

    # -------------------------------------------------- products
    async def insert_product(self, doc: dict) -> dict:
        async with self._lock:
            doc = deepcopy(doc)
            doc.setdefault("_id", _id())
            self.products[doc["_id"]] = doc
            self._index("products", doc)
            return deepcopy(doc)

    async def get_product(self, product_id: str) -> Optional[dict]:
        doc = self.products.get(product_id)
        return deepcopy(doc) if doc else None

    async def update_product(self, product_id: str, changes: dict) -> Optional[dict]:
        async with self._lock:
            doc = self.products.get(product_id)
            if doc is None:
                return None
            doc.update(deepcopy(changes))
            self._index("products", doc)
            return deepcopy(doc)

    async def increment_product(self, product_id: str, field: str) -> Optional[dict]:
        async with self._lock:
            doc = self.products.get(product_id)
            if doc is None:
                return None
            doc[field] = doc.get(field, 0) + 1
            return deepcopy(doc)

    async def delete_product(self, product_id: str) -> bool:
        async with self._lock:
            if self.products.pop(product_id, None) is None:
                return False
            self._geo["products"].remove(product_id)
            return True

    async def find_products(self, q: NearbyQuery, category: Optional[str] = None) -> NearbyPage:
        eq: Dict[str, Any] = {"is_available": True, "eco_friendly": True}
        if category:
            eq["category"] = category
        return self._search("products", self.products, q, eq)

    async def list_products(self, **eq) -> List[dict]:
        rows = [p for p in self.products.values() if _matches(p, eq)]
        rows.sort(key=lambda p: (p["created_at"], p["_id"]), reverse=True)
        return [deepcopy(p) for p in rows]

    async def count_products(self, **eq) -> int:
        return sum(1 for p in self.products.values() if _matches(p, eq))

    # -------------------------------------------------- events
    async def insert_event(self, evt: dict) -> dict:
        evt = deepcopy(evt)
        evt.setdefault("_id", _id())
        self.events.append(evt)
        return evt

    async def list_events(self, type_: Optional[str] = None) -> List[dict]:
        return [deepcopy(e) for e in self.events if type_ is None or e["type"] == type_]
