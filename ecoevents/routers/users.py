# ecoevents/routers/users.py
from fastapi import APIRouter, Depends, Query

from ecoevents.core.security import Caller, get_current_user
from ecoevents.deps import get_marketplace, nearby_query
from ecoevents.models.schemas import LeaderboardPage, Period, UserOut, UserPage, UserStats
from ecoevents.services.geo import NearbyQuery
from ecoevents.services.marketplace import Marketplace

router = APIRouter(prefix="/api/users", tags=["users"])

@router.get("/vendors/nearby", response_model=UserPage)
async def nearby_vendors(q: NearbyQuery = Depends(nearby_query),
                         market: Marketplace = Depends(get_marketplace)):
    return await market.nearby_users("vendor", q)

@router.get("/ngos/nearby", response_model=UserPage)
async def nearby_ngos(q: NearbyQuery = Depends(nearby_query),
                      market: Marketplace = Depends(get_marketplace)):
    return await market.nearby_users("ngo", q)

@router.get("/leaderboard", response_model=LeaderboardPage)
async def leaderboard(
    period: Period = Query("all"),
    page: int = Query(1),
    limit: int = Query(20),
    market: Marketplace = Depends(get_marketplace),
):
    return await market.leaderboard(period, page, limit)

@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: str, market: Marketplace = Depends(get_marketplace)):
    return await market.get_user(user_id)

@router.get("/{user_id}/stats", response_model=UserStats)
async def user_stats(user_id: str, user: Caller = Depends(get_current_user),
                     market: Marketplace = Depends(get_marketplace)):
    return await market.user_stats(user_id, user)
