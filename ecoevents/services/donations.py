# ecoevents/services/donations.py
import logging
from typing import List, NoReturn, Optional

from ecoevents.core.clock import Clock, later_than, utcnow
from ecoevents.core.config import settings
from ecoevents.core.errors import AuthorizationError, ConflictError, ExpiredError, NotFoundError, ValidationError
from ecoevents.core.events import emit_event
from ecoevents.core.security import Caller
from ecoevents.core.states import check_actor, check_transition
from ecoevents.models.schemas import DonationIn, DonationUpdate
from ecoevents.services.geo import Coordinate, NearbyPage, NearbyQuery

logger = logging.getLogger(__name__)

# which timestamp a lifecycle stamp must follow
_PREVIOUS_STAMP = {
    "requested_at": "created_at",
    "confirmed_at": "requested_at",
    "completed_at": "confirmed_at",
    "expired_at": "created_at",
}

# vendor-editable content fields
_CONTENT_FIELDS = ("title", "description", "category", "quantity", "address", "pickup_instructions")


class DonationService:
    """
    Donation lifecycle. Every transition is one conditional write keyed on the
    expected current status, so concurrent callers cannot both win.
    """

    def __init__(self, repo, clock: Clock = utcnow, points: Optional[int] = None):
        self.repo = repo
        self.clock = clock
        self.points = settings.donation_points if points is None else points

    # ---------------------------------------------------------------- helpers
    def _stamp(self, doc: dict, field: str):
        return later_than(doc.get(_PREVIOUS_STAMP[field]), self.clock())

    async def _fetch(self, donation_id: str) -> dict:
        doc = await self.repo.get_donation(donation_id)
        if not doc:
            raise NotFoundError("Donation not found", donation_id=donation_id)
        return doc

    async def _load(self, donation_id: str) -> dict:
        """Fetch and apply lazy expiry."""
        doc = await self._fetch(donation_id)
        if doc["status"] == "available" and self.clock() > doc["expiry_date"]:
            doc = await self._expire(doc) or await self._fetch(donation_id)
        return doc

    async def _expire(self, doc: dict) -> Optional[dict]:
        stamp = self._stamp(doc, "expired_at")
        updated = await self.repo.transition_donation(
            doc["_id"], "available", {"status": "expired", "expired_at": stamp, "updated_at": stamp},
        )
        if updated is not None:
            logger.info("donation %s expired (expiry %s)", doc["_id"], doc["expiry_date"].isoformat())
            await emit_event(self.repo, "donation.expired", {"donation_id": doc["_id"]},
                             recipients=[doc["vendor_id"]])
        return updated

    async def _lost_race(self, donation_id: str, action: str, caller: Optional[Caller]) -> NoReturn:
        """The conditional write matched nothing: report why."""
        fresh = await self._fetch(donation_id)
        logger.warning("donation %s: %s lost to a concurrent write (now %s)",
                       donation_id, action, fresh["status"])
        if fresh["status"] == "expired":
            raise ExpiredError(donation_id=donation_id)
        check_transition(fresh, action, caller.user_id if caller else None, caller.roles if caller else None)
        if action == "request":
            # status still available, so the expiry guard rejected it
            await self._expire(fresh)
            raise ExpiredError(donation_id=donation_id)
        raise ConflictError("Donation changed concurrently, reload and retry",
                            current_status=fresh["status"])

    def _future_expiry(self, expiry):
        if expiry <= self.clock():
            raise ValidationError("Expiry date must be in the future", field="expiry_date")
        return expiry

    # ---------------------------------------------------------------- reads
    async def get(self, donation_id: str) -> dict:
        return await self._load(donation_id)

    async def expire_overdue(self) -> List[str]:
        """Sweep: expire every available donation whose expiry has passed."""
        expired = []
        for did in await self.repo.overdue_donation_ids(self.clock()):
            doc = await self.repo.get_donation(did)
            if doc and await self._expire(doc):
                expired.append(did)
        if expired:
            logger.info("expired %d overdue donations", len(expired))
        return expired

    async def search(self, q: NearbyQuery, status: str = "available",
                     category: Optional[str] = None) -> NearbyPage:
        # overdue donations count as expired under every status filter
        await self.expire_overdue()
        return await self.repo.find_donations(q, status=status, category=category)

    async def vendor_donations(self, vendor_id: str) -> List[dict]:
        await self.expire_overdue()
        return await self.repo.list_donations(vendor_id=vendor_id)

    async def ngo_requests(self, ngo_id: str) -> List[dict]:
        return await self.repo.list_donations(requested_by=ngo_id)

    # ---------------------------------------------------------------- writes
    async def create(self, caller: Caller, body: DonationIn) -> dict:
        if not caller.has_role("vendor"):
            raise AuthorizationError("Only vendor accounts can create donations", required_role="vendor")
        self._future_expiry(body.expiry_date)
        point = Coordinate.of(body.latitude, body.longitude)
        now = self.clock()
        doc = {
            "vendor_id": caller.user_id,
            "title": body.title,
            "description": body.description,
            "category": body.category,
            "quantity": body.quantity,
            "images": list(body.images),
            "address": body.address,
            "location": point.to_location(),
            "geo": point.to_geojson(),
            "expiry_date": body.expiry_date,
            "pickup_instructions": body.pickup_instructions,
            "impact_notes": "",
            "status": "available",
            "requested_by": None,
            "requested_at": None,
            "confirmed_at": None,
            "completed_at": None,
            "expired_at": None,
            "points_awarded": 0,
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }
        saved = await self.repo.insert_donation(doc)
        logger.info("donation %s created by vendor %s", saved["_id"], caller.user_id)
        return saved

    async def update(self, donation_id: str, caller: Caller, body: DonationUpdate) -> dict:
        doc = await self._load(donation_id)
        check_transition(doc, "update", caller.user_id, caller.roles)

        supplied = body.model_dump(exclude_unset=True, exclude_none=True)
        changes = {k: supplied[k] for k in _CONTENT_FIELDS if k in supplied}
        if ("latitude" in supplied) != ("longitude" in supplied):
            raise ValidationError("latitude and longitude must be supplied together",
                                  field="latitude" if "latitude" not in supplied else "longitude")
        if "latitude" in supplied:
            point = Coordinate.of(supplied["latitude"], supplied["longitude"])
            changes["location"] = point.to_location()
            changes["geo"] = point.to_geojson()
        if "expiry_date" in supplied:
            changes["expiry_date"] = self._future_expiry(supplied["expiry_date"])
        changes["updated_at"] = later_than(doc.get("updated_at"), self.clock())

        updated = await self.repo.transition_donation(donation_id, "available", changes)
        if updated is None:
            await self._lost_race(donation_id, "update", caller)
        logger.info("donation %s updated: %s", donation_id, sorted(changes))
        return updated

    async def delete(self, donation_id: str, caller: Caller) -> None:
        doc = await self._load(donation_id)
        check_transition(doc, "delete", caller.user_id, caller.roles)
        if not await self.repo.delete_donation(donation_id, "available"):
            await self._lost_race(donation_id, "delete", caller)
        logger.info("donation %s deleted by vendor %s", donation_id, caller.user_id)

    async def request(self, donation_id: str, caller: Caller) -> dict:
        doc = await self._load(donation_id)
        check_actor(doc, "request", caller.user_id, caller.roles)
        if doc["status"] == "expired":
            raise ExpiredError(donation_id=donation_id)
        check_transition(doc, "request", caller.user_id, caller.roles)

        stamp = self._stamp(doc, "requested_at")
        if stamp >= doc["expiry_date"]:
            await self._expire(doc)
            raise ExpiredError(donation_id=donation_id)

        updated = await self.repo.transition_donation(
            donation_id, "available",
            {"status": "requested", "requested_by": caller.user_id,
             "requested_at": stamp, "updated_at": stamp},
            not_expired_at=stamp,
        )
        if updated is None:
            await self._lost_race(donation_id, "request", caller)
        logger.info("donation %s requested by ngo %s", donation_id, caller.user_id)
        await emit_event(self.repo, "donation.requested",
                         {"donation_id": donation_id, "ngo_id": caller.user_id},
                         recipients=[updated["vendor_id"]])
        return updated

    async def confirm(self, donation_id: str, caller: Caller) -> dict:
        doc = await self._load(donation_id)
        check_transition(doc, "confirm", caller.user_id, caller.roles)
        stamp = self._stamp(doc, "confirmed_at")
        updated = await self.repo.transition_donation(
            donation_id, "requested",
            {"status": "confirmed", "confirmed_at": stamp, "updated_at": stamp},
        )
        if updated is None:
            await self._lost_race(donation_id, "confirm", caller)
        logger.info("donation %s confirmed", donation_id)
        await emit_event(self.repo, "donation.confirmed", {"donation_id": donation_id},
                         recipients=[updated["requested_by"]])
        return updated

    async def complete(self, donation_id: str, caller: Caller, impact_notes: str = "") -> dict:
        doc = await self._load(donation_id)
        if doc["status"] == "completed" and doc["vendor_id"] == caller.user_id:
            # stale retry: make sure the first attempt's award landed, then refuse
            await self._award(doc)
        check_transition(doc, "complete", caller.user_id, caller.roles)

        stamp = self._stamp(doc, "completed_at")
        updated = await self.repo.transition_donation(
            donation_id, "confirmed",
            {"status": "completed", "completed_at": stamp, "updated_at": stamp,
             "points_awarded": self.points, "impact_notes": impact_notes or ""},
        )
        if updated is None:
            fresh = await self._fetch(donation_id)
            if fresh["status"] == "completed":
                await self._award(fresh)
            await self._lost_race(donation_id, "complete", caller)
        await self._award(updated)
        await emit_event(self.repo, "donation.completed",
                         {"donation_id": donation_id, "points": updated["points_awarded"]},
                         recipients=[updated["requested_by"], updated["vendor_id"]])
        return updated

    async def _award(self, doc: dict) -> bool:
        """Credit the vendor once per donation; safe to repeat."""
        points = doc.get("points_awarded") or 0
        if points <= 0:
            return False
        awarded = await self.repo.award_points(doc["vendor_id"], doc["_id"], points,
                                               later_than(doc.get("completed_at"), self.clock()))
        if awarded:
            logger.info("vendor %s awarded %d points for donation %s", doc["vendor_id"], points, doc["_id"])
        return awarded
