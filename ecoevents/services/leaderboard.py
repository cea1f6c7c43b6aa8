# ecoevents/services/leaderboard.py
import calendar
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from ecoevents.core.clock import Clock, utcnow
from ecoevents.core.config import settings
from ecoevents.core.errors import AuthorizationError, NotFoundError, ValidationError
from ecoevents.core.security import Caller

PERIODS = ("all", "monthly", "weekly")


class Ranked(NamedTuple):
    rank: int
    score: int
    vendor: dict


class Leaderboard(NamedTuple):
    entries: List[Ranked]
    total: int
    page: int
    limit: int
    period: str


def one_month_before(now: datetime) -> datetime:
    year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)

def window_start(period: str, now: datetime) -> Optional[datetime]:
    if period == "monthly":
        return one_month_before(now)
    if period == "weekly":
        return now - timedelta(days=7)
    return None

async def leaderboard(repo, period: str = "all", page: int = 1, limit: int = 20,
                      clock: Clock = utcnow) -> Leaderboard:
    """
    Active vendors with a positive score, highest score first; older accounts
    win ties. Ranks continue across pages: (page - 1) * limit + index + 1.
    """
    if period not in PERIODS:
        raise ValidationError(f"period must be one of {', '.join(PERIODS)}", field="period")
    if page < 1:
        raise ValidationError("page must be >= 1", field="page")
    if not (1 <= limit <= settings.max_page_size):
        raise ValidationError(f"limit must be between 1 and {settings.max_page_size}", field="limit")

    skip = (page - 1) * limit
    vendors, total = await repo.top_vendors(window_start(period, clock()), skip, limit)
    entries = [
        Ranked(rank=skip + i + 1, score=int(v.get("donation_score") or 0), vendor=v)
        for i, v in enumerate(vendors)
    ]
    return Leaderboard(entries=entries, total=total, page=page, limit=limit, period=period)

def _rate(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole > 0 else 0

async def user_stats(repo, user_id: str, viewer: Caller) -> dict:
    user = await repo.get_user(user_id)
    if not user:
        raise NotFoundError("User not found", user_id=user_id)
    roles = user.get("roles") or []
    if viewer.user_id != user_id and "vendor" not in roles:
        raise AuthorizationError("Access denied")

    stats = {
        "donation_score": int(user.get("donation_score") or 0),
        "roles": roles,
        "member_since": user.get("created_at"),
    }
    if "vendor" in roles:
        total = await repo.count_donations(vendor_id=user_id)
        completed = await repo.count_donations(vendor_id=user_id, status="completed")
        stats["vendor_stats"] = {
            "total_products": await repo.count_products(vendor_id=user_id),
            "total_donations": total,
            "completed_donations": completed,
            "completion_rate": _rate(completed, total),
        }
    if "ngo" in roles:
        requested = await repo.count_donations(requested_by=user_id)
        completed = await repo.count_donations(requested_by=user_id, status="completed")
        stats["ngo_stats"] = {
            "requested_donations": requested,
            "completed_donations": completed,
            "success_rate": _rate(completed, requested),
        }
    return stats
