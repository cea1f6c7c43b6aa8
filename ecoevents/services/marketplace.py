# ecoevents/services/marketplace.py
import math
from typing import Dict, List, Optional

from ecoevents.core.clock import Clock, utcnow
from ecoevents.core.errors import AuthorizationError, NotFoundError
from ecoevents.core.security import Caller
from ecoevents.models.schemas import (
    CompleteIn, ContactCard, DonationDetailOut, DonationIn, DonationOut, DonationPage,
    DonationUpdate, LeaderboardEntry, LeaderboardPage, Pagination, ProductIn, ProductOut,
    ProductPage, ProductUpdate, UserIn, UserOut, UserPage, UserStats, VendorContact, VendorSummary,
)
from ecoevents.services import leaderboard as board
from ecoevents.services.donations import DonationService
from ecoevents.services.geo import Coordinate, NearbyPage, NearbyQuery, display_km
from ecoevents.services.products import ProductService


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total,
                      total_pages=math.ceil(total / limit) if total else 0)

def vendor_summary(user: dict) -> VendorSummary:
    return VendorSummary(
        id=user["_id"],
        name=user.get("name", ""),
        address=user.get("address"),
        location=user.get("location"),
        donation_score=int(user.get("donation_score") or 0),
    )

def contact_card(user: Optional[dict]) -> Optional[ContactCard]:
    if not user:
        return None
    return ContactCard(id=user["_id"], name=user.get("name", ""), email=user.get("email"),
                       phone=user.get("phone"), address=user.get("address"))

def public_profile(user: dict, distance: Optional[float] = None) -> UserOut:
    return UserOut(
        id=user["_id"],
        name=user.get("name", ""),
        roles=user.get("roles") or [],
        phone=user.get("phone"),
        address=user.get("address"),
        location=user.get("location"),
        donation_score=int(user.get("donation_score") or 0),
        created_at=user.get("created_at"),
        distance=display_km(distance),
    )

def _record(doc: dict) -> dict:
    out = {k: v for k, v in doc.items() if k not in ("_id", "geo", "version")}
    out["id"] = doc["_id"]
    return out


class Marketplace:
    """Boundary used by the HTTP layer: runs the services and shapes their results."""

    def __init__(self, repo, clock: Clock = utcnow):
        self.repo = repo
        self.clock = clock
        self.donations = DonationService(repo, clock=clock)
        self.products = ProductService(repo, clock=clock)

    async def _vendors(self, docs: List[dict]) -> Dict[str, dict]:
        return await self.repo.get_users([d["vendor_id"] for d in docs])

    def _donation_out(self, doc: dict, vendors: Dict[str, dict], distance: Optional[float] = None) -> DonationOut:
        vendor = vendors.get(doc["vendor_id"])
        return DonationOut(**_record(doc), vendor=vendor_summary(vendor) if vendor else None,
                           distance=display_km(distance))

    def _product_out(self, doc: dict, vendors: Dict[str, dict], distance: Optional[float] = None) -> ProductOut:
        vendor = vendors.get(doc["vendor_id"])
        return ProductOut(**_record(doc), vendor=vendor_summary(vendor) if vendor else None,
                          distance=display_km(distance))

    async def _one(self, doc: dict) -> DonationOut:
        return self._donation_out(doc, await self._vendors([doc]))

    # ------------------------------------------------------------ users
    async def register_user(self, body: UserIn) -> UserOut:
        """Mirror a profile handed over by the auth service."""
        now = self.clock()
        doc = {
            "name": body.name,
            "email": body.email,
            "phone": body.phone,
            "roles": list(body.roles),
            "address": body.address,
            "is_active": body.is_active,
            "donation_score": 0,
            "scored_donations": [],
            "created_at": now,
            "updated_at": now,
        }
        if body.id:
            doc["_id"] = body.id
        if body.latitude is not None and body.longitude is not None:
            point = Coordinate.of(body.latitude, body.longitude)
            doc["location"] = point.to_location()
            doc["geo"] = point.to_geojson()
        return public_profile(await self.repo.insert_user(doc))

    async def get_user(self, user_id: str) -> UserOut:
        user = await self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found", user_id=user_id)
        return public_profile(user)

    async def nearby_users(self, role: str, q: NearbyQuery) -> UserPage:
        found: NearbyPage = await self.repo.find_users(role, q)
        return UserPage(users=[public_profile(u, km) for u, km in found.items],
                        pagination=_pagination(found.page, found.limit, found.total))

    async def leaderboard(self, period: str, page: int, limit: int) -> LeaderboardPage:
        res = await board.leaderboard(self.repo, period, page, limit, clock=self.clock)
        return LeaderboardPage(
            leaderboard=[LeaderboardEntry(rank=e.rank, score=e.score, vendor=vendor_summary(e.vendor))
                         for e in res.entries],
            pagination=_pagination(res.page, res.limit, res.total),
            period=res.period,
        )

    async def user_stats(self, user_id: str, viewer: Caller) -> UserStats:
        return UserStats(**await board.user_stats(self.repo, user_id, viewer))

    # ------------------------------------------------------------ donations
    async def list_donations(self, q: NearbyQuery, status: str = "available",
                             category: Optional[str] = None) -> DonationPage:
        found = await self.donations.search(q, status=status, category=category)
        vendors = await self._vendors([d for d, _ in found.items])
        return DonationPage(
            donations=[self._donation_out(d, vendors, km) for d, km in found.items],
            pagination=_pagination(found.page, found.limit, found.total),
        )

    async def get_donation(self, donation_id: str) -> DonationDetailOut:
        doc = await self.donations.get(donation_id)
        people = await self.repo.get_users([doc["vendor_id"]] + ([doc["requested_by"]] if doc.get("requested_by") else []))
        vendor = people.get(doc["vendor_id"])
        return DonationDetailOut(
            **_record(doc),
            vendor=vendor_summary(vendor) if vendor else None,
            vendor_contact=contact_card(vendor),
            requester=contact_card(people.get(doc.get("requested_by"))),
        )

    async def my_donations(self, caller: Caller) -> List[DonationOut]:
        if not caller.has_role("vendor"):
            raise AuthorizationError("Only vendor accounts have donations", required_role="vendor")
        docs = await self.donations.vendor_donations(caller.user_id)
        vendors = await self._vendors(docs)
        return [self._donation_out(d, vendors) for d in docs]

    async def my_requests(self, caller: Caller) -> List[DonationOut]:
        if not caller.has_role("ngo"):
            raise AuthorizationError("Only ngo accounts have requests", required_role="ngo")
        docs = await self.donations.ngo_requests(caller.user_id)
        vendors = await self._vendors(docs)
        return [self._donation_out(d, vendors) for d in docs]

    async def create_donation(self, caller: Caller, body: DonationIn) -> DonationOut:
        return await self._one(await self.donations.create(caller, body))

    async def update_donation(self, donation_id: str, caller: Caller, body: DonationUpdate) -> DonationOut:
        return await self._one(await self.donations.update(donation_id, caller, body))

    async def delete_donation(self, donation_id: str, caller: Caller) -> None:
        await self.donations.delete(donation_id, caller)

    async def request_donation(self, donation_id: str, caller: Caller) -> DonationOut:
        return await self._one(await self.donations.request(donation_id, caller))

    async def confirm_donation(self, donation_id: str, caller: Caller) -> DonationOut:
        return await self._one(await self.donations.confirm(donation_id, caller))

    async def complete_donation(self, donation_id: str, caller: Caller,
                                body: Optional[CompleteIn] = None) -> DonationOut:
        notes = body.impact_notes if body else ""
        return await self._one(await self.donations.complete(donation_id, caller, notes))

    async def expire_overdue(self) -> List[str]:
        return await self.donations.expire_overdue()

    # ------------------------------------------------------------ products
    async def list_products(self, q: NearbyQuery, category: Optional[str] = None) -> ProductPage:
        found = await self.products.search(q, category=category)
        vendors = await self._vendors([p for p, _ in found.items])
        return ProductPage(
            products=[self._product_out(p, vendors, km) for p, km in found.items],
            pagination=_pagination(found.page, found.limit, found.total),
        )

    async def get_product(self, product_id: str) -> ProductOut:
        doc = await self.products.view(product_id)
        return self._product_out(doc, await self._vendors([doc]))

    async def my_products(self, caller: Caller) -> List[ProductOut]:
        if not caller.has_role("vendor"):
            raise AuthorizationError("Only vendor accounts have products", required_role="vendor")
        docs = await self.products.vendor_products(caller.user_id)
        vendors = await self._vendors(docs)
        return [self._product_out(p, vendors) for p in docs]

    async def create_product(self, caller: Caller, body: ProductIn) -> ProductOut:
        doc = await self.products.create(caller, body)
        return self._product_out(doc, await self._vendors([doc]))

    async def update_product(self, product_id: str, caller: Caller, body: ProductUpdate) -> ProductOut:
        doc = await self.products.update(product_id, caller, body)
        return self._product_out(doc, await self._vendors([doc]))

    async def delete_product(self, product_id: str, caller: Caller) -> None:
        await self.products.delete(product_id, caller)

    async def contact_vendor(self, product_id: str, caller: Caller) -> VendorContact:
        doc = await self.products.inquire(product_id, caller)
        vendor = await self.repo.get_user(doc["vendor_id"])
        if not vendor:
            raise NotFoundError("Vendor not found", vendor_id=doc["vendor_id"])
        return VendorContact(**contact_card(vendor).model_dump(),
                             donation_score=int(vendor.get("donation_score") or 0))
