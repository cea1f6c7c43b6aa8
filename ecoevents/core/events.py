# ecoevents/core/events.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DONATION_EVENTS = {
    "donation.requested",
    "donation.confirmed",
    "donation.completed",
    "donation.expired",
}

async def emit_event(repo, type_: str, data: Dict[str, Any],
                     recipients: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Record a donation lifecycle event in the outbox; the realtime relay fans it
    out to the users listed in `recipients` (their personal rooms).
    """
    if type_ not in DONATION_EVENTS:
        raise ValueError(f"Unknown event type: {type_}")
    evt = {
        "type": type_,
        "data": data,
        "recipients": [r for r in (recipients or []) if r],
        "delivered": False,
        "created_at": datetime.now(timezone.utc),
    }
    await repo.insert_event(evt)
    logger.info("event %s for %s", type_, evt["recipients"])
    return evt
