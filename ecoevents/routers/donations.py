# ecoevents/routers/donations.py
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ecoevents.core.security import Caller, get_current_user, require_role
from ecoevents.deps import get_marketplace, nearby_query
from ecoevents.models.schemas import (
    Category, CompleteIn, DonationDetailOut, DonationIn, DonationOut, DonationPage,
    DonationStatus, DonationUpdate,
)
from ecoevents.services.geo import NearbyQuery
from ecoevents.services.marketplace import Marketplace

router = APIRouter(prefix="/api/donations", tags=["donations"])

@router.get("", response_model=DonationPage)
async def list_donations(
    q: NearbyQuery = Depends(nearby_query),
    category: Optional[Category] = Query(None),
    status_q: DonationStatus = Query("available", alias="status"),
    market: Marketplace = Depends(get_marketplace),
):
    return await market.list_donations(q, status=status_q, category=category)

@router.get("/vendor/my-donations", response_model=List[DonationOut])
async def my_donations(user: Caller = Depends(require_role("vendor")),
                       market: Marketplace = Depends(get_marketplace)):
    return await market.my_donations(user)

@router.get("/ngo/my-requests", response_model=List[DonationOut])
async def my_requests(user: Caller = Depends(require_role("ngo")),
                      market: Marketplace = Depends(get_marketplace)):
    return await market.my_requests(user)

@router.get("/{donation_id}", response_model=DonationDetailOut)
async def get_donation(donation_id: str, market: Marketplace = Depends(get_marketplace)):
    return await market.get_donation(donation_id)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_donation(body: DonationIn, user: Caller = Depends(get_current_user),
                          market: Marketplace = Depends(get_marketplace)):
    donation = await market.create_donation(user, body)
    return {"message": "Donation created successfully", "donation": donation}

@router.put("/{donation_id}")
async def update_donation(donation_id: str, body: DonationUpdate,
                          user: Caller = Depends(get_current_user),
                          market: Marketplace = Depends(get_marketplace)):
    donation = await market.update_donation(donation_id, user, body)
    return {"message": "Donation updated successfully", "donation": donation}

@router.delete("/{donation_id}")
async def delete_donation(donation_id: str, user: Caller = Depends(get_current_user),
                          market: Marketplace = Depends(get_marketplace)):
    await market.delete_donation(donation_id, user)
    return {"message": "Donation deleted successfully"}

# ---------- Lifecycle ----------
@router.post("/{donation_id}/request")
async def request_donation(donation_id: str, user: Caller = Depends(get_current_user),
                           market: Marketplace = Depends(get_marketplace)):
    donation = await market.request_donation(donation_id, user)
    return {"message": "Donation requested successfully", "donation": donation}

@router.post("/{donation_id}/confirm")
async def confirm_donation(donation_id: str, user: Caller = Depends(get_current_user),
                           market: Marketplace = Depends(get_marketplace)):
    donation = await market.confirm_donation(donation_id, user)
    return {"message": "Donation confirmed successfully", "donation": donation}

@router.post("/{donation_id}/complete")
async def complete_donation(donation_id: str,
                            body: Optional[CompleteIn] = Body(None),
                            user: Caller = Depends(get_current_user),
                            market: Marketplace = Depends(get_marketplace)):
    donation = await market.complete_donation(donation_id, user, body)
    return {"message": "Donation completed successfully", "donation": donation}
