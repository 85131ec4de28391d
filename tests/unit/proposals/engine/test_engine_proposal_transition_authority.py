from datetime import timedelta

import pytest

from src.core.proposals.authority import (
    SYSTEM_STATUSES,
    TERMINAL_STATUSES,
    TRANSITION_EDGES,
    apply_stamp,
    authorize_expiry,
    authorize_transition,
    can_decide,
    is_expiry_eligible,
    is_valid_transition,
)
from src.core.proposals.models import PROPOSAL_STATUSES
from src.core.proposals.visibility import ClinicRegionResolver
from src.infrastructure.proposals import InMemoryClinicDirectory
from tests.factories import (
    ADMIN,
    BASE_TIME,
    FIELD_USER_1,
    MANAGER,
    RM_NO_REGION,
    RM_REGION_1,
    RM_REGION_2,
    default_clinics,
    proposal_record,
    user,
)

ALL_ACTORS = [ADMIN, MANAGER, RM_REGION_1, RM_REGION_2, RM_NO_REGION, FIELD_USER_1]
NOW = BASE_TIME + timedelta(hours=2)
INVALID_PAIRS = [
    (current, requested)
    for current in PROPOSAL_STATUSES
    for requested in PROPOSAL_STATUSES
    if (current, requested) not in TRANSITION_EDGES
]


def _authorize(actor, record, requested):
    return authorize_transition(
        user=actor,
        proposal=record,
        requested=requested,
        region_of=ClinicRegionResolver(InMemoryClinicDirectory(default_clinics())),
        now=NOW,
    )


@pytest.mark.parametrize(("current", "requested"), INVALID_PAIRS)
def test_pairs_outside_the_graph_are_invalid_for_every_role(current, requested):
    record = proposal_record("pp_1", status=current, creator_id=FIELD_USER_1.id)

    for actor in ALL_ACTORS:
        decision = _authorize(actor, record, requested)
        assert decision.allowed is False
        assert decision.reason == "invalid_transition"
        assert decision.stamp is None


@pytest.mark.parametrize("requested", ["approved", "rejected"])
def test_decision_authority_by_role_and_region(requested):
    record = proposal_record("pp_1", clinic_id="clinic_1", creator_id=FIELD_USER_1.id)

    assert _authorize(ADMIN, record, requested).allowed
    assert _authorize(MANAGER, record, requested).allowed
    assert _authorize(RM_REGION_1, record, requested).allowed
    assert _authorize(RM_REGION_2, record, requested).reason == "forbidden"
    assert _authorize(RM_NO_REGION, record, requested).reason == "forbidden"
    assert _authorize(FIELD_USER_1, record, requested).reason == "forbidden"


def test_field_user_never_approves_own_proposal():
    record = proposal_record("pp_1", creator_id=FIELD_USER_1.id)

    decision = _authorize(FIELD_USER_1, record, "approved")

    assert decision.allowed is False
    assert decision.reason == "forbidden"


def test_regional_manager_cannot_decide_on_unresolvable_clinic():
    record = proposal_record("pp_1", clinic_id="clinic_missing")

    assert _authorize(RM_REGION_1, record, "approved").reason == "forbidden"
    assert _authorize(ADMIN, record, "approved").allowed


@pytest.mark.parametrize(
    "current,requested",
    [
        ("approved", "contract_received"),
        ("contract_received", "in_transfer"),
        ("in_transfer", "delivered"),
    ],
)
def test_fulfillment_steps_limited_to_admin_and_manager(current, requested):
    record = proposal_record("pp_1", status=current, clinic_id="clinic_1")

    assert _authorize(ADMIN, record, requested).allowed
    assert _authorize(MANAGER, record, requested).allowed
    for actor in (RM_REGION_1, FIELD_USER_1):
        assert _authorize(actor, record, requested).reason == "forbidden"


def test_actors_cannot_request_expiry():
    record = proposal_record("pp_1")

    for actor in ALL_ACTORS:
        assert _authorize(actor, record, "expired").reason == "forbidden"


def test_system_statuses_are_never_granted_to_actors():
    record = proposal_record("pp_1")

    for status in SYSTEM_STATUSES:
        for actor in ALL_ACTORS:
            decision = _authorize(actor, record, status)
            assert decision.allowed is False
            assert decision.stamp is None


@pytest.mark.parametrize("current", sorted(TERMINAL_STATUSES))
def test_terminal_statuses_have_no_outgoing_edges(current):
    assert not [edge for edge in TRANSITION_EDGES if edge[0] == current]
    for requested in PROPOSAL_STATUSES:
        assert is_valid_transition(current, requested) is False


def test_decision_stamp_records_actor_and_time():
    record = proposal_record("pp_1", clinic_id="clinic_1")

    decision = _authorize(RM_REGION_1, record, "rejected")
    updated = apply_stamp(record, decision.stamp)

    assert updated.status == "rejected"
    assert updated.decided_by == RM_REGION_1.id
    assert updated.decided_at == NOW
    assert updated.updated_at == NOW
    assert updated.version == record.version + 1


def test_fulfillment_stamp_leaves_decision_fields_untouched():
    decided_at = BASE_TIME + timedelta(minutes=5)
    record = proposal_record(
        "pp_1", status="approved", decided_by="usr_rm1", decided_at=decided_at
    )

    updated = apply_stamp(record, _authorize(ADMIN, record, "contract_received").stamp)

    assert updated.status == "contract_received"
    assert updated.decided_by == "usr_rm1"
    assert updated.decided_at == decided_at
    assert updated.updated_at == NOW


def test_expiry_stamp_clears_actor_and_records_time():
    record = proposal_record("pp_1")

    decision = authorize_expiry(proposal=record, now=NOW)
    updated = apply_stamp(record, decision.stamp)

    assert decision.allowed
    assert updated.status == "expired"
    assert updated.decided_by is None
    assert updated.decided_at == NOW


def test_expiry_is_invalid_outside_pending():
    decision = authorize_expiry(proposal=proposal_record("pp_1", status="approved"), now=NOW)

    assert decision.allowed is False
    assert decision.reason == "invalid_transition"


def test_expiry_eligibility_uses_retention_and_valid_until():
    retention = timedelta(days=30)
    fresh = proposal_record("pp_fresh", created_at=NOW - timedelta(days=29))
    stale = proposal_record("pp_stale", created_at=NOW - timedelta(days=30))
    lapsed = fresh.model_copy(update={"valid_until": (NOW - timedelta(days=1)).date()})
    due_today = fresh.model_copy(update={"valid_until": NOW.date()})
    decided = proposal_record("pp_done", status="approved", created_at=NOW - timedelta(days=90))

    assert not is_expiry_eligible(proposal=fresh, now=NOW, retention=retention)
    assert is_expiry_eligible(proposal=stale, now=NOW, retention=retention)
    assert is_expiry_eligible(proposal=lapsed, now=NOW, retention=retention)
    assert not is_expiry_eligible(proposal=due_today, now=NOW, retention=retention)
    assert not is_expiry_eligible(proposal=decided, now=NOW, retention=retention)


def test_can_decide_by_role():
    assert can_decide(ADMIN)
    assert can_decide(MANAGER)
    assert can_decide(RM_REGION_1)
    assert not can_decide(FIELD_USER_1)
    assert not can_decide(user("usr_x", "auditor"))
