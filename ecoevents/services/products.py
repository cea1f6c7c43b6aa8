# ecoevents/services/products.py
import logging
from typing import List, Optional

from ecoevents.core.clock import Clock, later_than, utcnow
from ecoevents.core.errors import AuthorizationError, NotFoundError, ValidationError
from ecoevents.core.security import Caller
from ecoevents.models.schemas import ProductIn, ProductUpdate
from ecoevents.services.geo import Coordinate, NearbyPage, NearbyQuery

logger = logging.getLogger(__name__)

_EDITABLE = ("name", "description", "category", "price", "address", "tags", "is_available", "contact_visible")


class ProductService:
    """Vendor listings: plain CRUD plus an availability toggle, no lifecycle."""

    def __init__(self, repo, clock: Clock = utcnow):
        self.repo = repo
        self.clock = clock

    async def _fetch(self, product_id: str) -> dict:
        doc = await self.repo.get_product(product_id)
        if not doc:
            raise NotFoundError("Product not found", product_id=product_id)
        return doc

    async def _owned(self, product_id: str, caller: Caller) -> dict:
        doc = await self._fetch(product_id)
        if not caller.has_role("vendor") or doc["vendor_id"] != caller.user_id:
            raise AuthorizationError("Access denied")
        return doc

    async def create(self, caller: Caller, body: ProductIn) -> dict:
        if not caller.has_role("vendor"):
            raise AuthorizationError("Only vendor accounts can list products", required_role="vendor")
        point = Coordinate.of(body.latitude, body.longitude)
        now = self.clock()
        doc = {
            "vendor_id": caller.user_id,
            "name": body.name,
            "description": body.description,
            "category": body.category,
            "price": float(body.price),
            "images": list(body.images),
            "tags": list(body.tags),
            "address": body.address,
            "location": point.to_location(),
            "geo": point.to_geojson(),
            "is_available": True,
            "eco_friendly": True,
            "contact_visible": body.contact_visible,
            "view_count": 0,
            "inquiry_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        saved = await self.repo.insert_product(doc)
        logger.info("product %s listed by vendor %s", saved["_id"], caller.user_id)
        return saved

    async def update(self, product_id: str, caller: Caller, body: ProductUpdate) -> dict:
        doc = await self._owned(product_id, caller)
        supplied = body.model_dump(exclude_unset=True, exclude_none=True)
        changes = {k: supplied[k] for k in _EDITABLE if k in supplied}
        if ("latitude" in supplied) != ("longitude" in supplied):
            raise ValidationError("latitude and longitude must be supplied together",
                                  field="latitude" if "latitude" not in supplied else "longitude")
        if "latitude" in supplied:
            point = Coordinate.of(supplied["latitude"], supplied["longitude"])
            changes["location"] = point.to_location()
            changes["geo"] = point.to_geojson()
        changes["updated_at"] = later_than(doc.get("updated_at"), self.clock())

        updated = await self.repo.update_product(product_id, changes)
        if updated is None:
            raise NotFoundError("Product not found", product_id=product_id)
        return updated

    async def delete(self, product_id: str, caller: Caller) -> None:
        await self._owned(product_id, caller)
        if not await self.repo.delete_product(product_id):
            raise NotFoundError("Product not found", product_id=product_id)
        logger.info("product %s deleted", product_id)

    async def view(self, product_id: str) -> dict:
        """Fetch for display; counts the view."""
        doc = await self.repo.increment_product(product_id, "view_count")
        if doc is None:
            raise NotFoundError("Product not found", product_id=product_id)
        return doc

    async def inquire(self, product_id: str, caller: Caller) -> dict:
        if not caller.has_role("customer"):
            raise AuthorizationError("Only customer accounts can contact vendors", required_role="customer")
        doc = await self.repo.increment_product(product_id, "inquiry_count")
        if doc is None:
            raise NotFoundError("Product not found", product_id=product_id)
        return doc

    async def search(self, q: NearbyQuery, category: Optional[str] = None) -> NearbyPage:
        return await self.repo.find_products(q, category=category)

    async def vendor_products(self, vendor_id: str) -> List[dict]:
        return await self.repo.list_products(vendor_id=vendor_id)
