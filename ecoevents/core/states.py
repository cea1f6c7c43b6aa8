# ecoevents/core/states.py
from typing import NamedTuple, Optional

from ecoevents.core.errors import AuthorizationError, ConflictError

DONATION_STATES = ["available", "requested", "confirmed", "completed", "expired"]
TERMINAL_STATES = {"completed", "expired"}

# requested_by is set exactly in these states
CLAIMED_STATES = {"requested", "confirmed", "completed"}


class Actor(NamedTuple):
    role: Optional[str]          # None: system action
    owner_only: bool


class Transition(NamedTuple):
    target: Optional[str]        # None: status unchanged (update/delete)
    stamp: Optional[str]         # timestamp field set by the transition


ACTORS = {
    "request":  Actor("ngo", False),
    "confirm":  Actor("vendor", True),
    "complete": Actor("vendor", True),
    "update":   Actor("vendor", True),
    "delete":   Actor("vendor", True),
    "expire":   Actor(None, False),
}

TRANSITIONS = {
    ("available", "request"):  Transition("requested", "requested_at"),
    ("requested", "confirm"):  Transition("confirmed", "confirmed_at"),
    ("confirmed", "complete"): Transition("completed", "completed_at"),
    ("available", "expire"):   Transition("expired", "expired_at"),
    ("available", "update"):   Transition(None, None),
    ("available", "delete"):   Transition(None, None),
}

_REJECTIONS = {
    "request": "Donation is not available for request",
    "confirm": "Donation is not in requested status",
    "complete": "Donation is not in confirmed status",
    "update": "Donation can only be changed while available",
    "delete": "Donation can only be deleted while available",
    "expire": "Only available donations can expire",
}

def can_transition(src: str, action: str) -> bool:
    return (src, action) in TRANSITIONS

def check_actor(doc: dict, action: str, user_id: Optional[str], roles: Optional[list]) -> None:
    actor = ACTORS[action]
    if actor.role is not None and actor.role not in (roles or []):
        raise AuthorizationError(f"Only {actor.role} accounts can {action} donations",
                                 required_role=actor.role)
    if actor.owner_only and doc.get("vendor_id") != user_id:
        raise AuthorizationError("Access denied")

def check_transition(doc: dict, action: str, user_id: Optional[str] = None,
                     roles: Optional[list] = None) -> Transition:
    """
    Validate `action` against the donation's current status and the caller.
    Role and ownership are checked before status so a stranger never learns it.
    """
    if action not in ACTORS:
        raise ValueError(f"Unknown donation action: {action}")
    check_actor(doc, action, user_id, roles)

    src = doc.get("status")
    rule = TRANSITIONS.get((src, action))
    if rule is None:
        raise ConflictError(_REJECTIONS[action], current_status=src)
    return rule
