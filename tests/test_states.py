import pytest

from ecoevents.core.errors import AuthorizationError, ConflictError
from ecoevents.core.states import (
    ACTORS, DONATION_STATES, TERMINAL_STATES, TRANSITIONS, can_transition, check_transition,
)

def _doc(status, vendor_id="v1"):
    return {"_id": "d1", "status": status, "vendor_id": vendor_id}

def test_happy_path_targets():
    assert check_transition(_doc("available"), "request", "n1", ["ngo"]).target == "requested"
    assert check_transition(_doc("requested"), "confirm", "v1", ["vendor"]).target == "confirmed"
    rule = check_transition(_doc("confirmed"), "complete", "v1", ["vendor"])
    assert (rule.target, rule.stamp) == ("completed", "completed_at")
    assert check_transition(_doc("available"), "expire").target == "expired"

def test_terminal_states_have_no_exits():
    for (src, _action) in TRANSITIONS:
        assert src not in TERMINAL_STATES
    for state in TERMINAL_STATES:
        assert not any(can_transition(state, a) for a in ACTORS)

def test_every_target_is_a_known_state():
    for rule in TRANSITIONS.values():
        assert rule.target is None or rule.target in DONATION_STATES

@pytest.mark.parametrize("status,action", [
    ("requested", "request"),
    ("available", "confirm"),
    ("requested", "complete"),
    ("completed", "complete"),
    ("requested", "update"),
    ("confirmed", "delete"),
    ("expired", "request"),
])
def test_wrong_status_is_conflict(status, action):
    roles = ["ngo"] if action == "request" else ["vendor"]
    with pytest.raises(ConflictError) as ei:
        check_transition(_doc(status), action, "v1", roles)
    assert ei.value.current_status == status

def test_role_is_checked_before_status():
    # a customer must not learn that the donation was already taken
    with pytest.raises(AuthorizationError):
        check_transition(_doc("requested"), "request", "c1", ["customer"])

def test_vendor_actions_need_ownership():
    with pytest.raises(AuthorizationError):
        check_transition(_doc("requested"), "confirm", "v2", ["vendor"])
    with pytest.raises(AuthorizationError):
        check_transition(_doc("available"), "update", "n1", ["ngo"])

def test_request_needs_no_ownership():
    check_transition(_doc("available", vendor_id="someone-else"), "request", "n1", ["ngo"])

def test_unknown_action():
    with pytest.raises(ValueError):
        check_transition(_doc("available"), "teleport")
