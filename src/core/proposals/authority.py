from datetime import datetime, timedelta

from src.core.proposals.models import (
    ActingUser,
    ProposalRecord,
    ProposalStatus,
    TransitionDecision,
    TransitionStamp,
)
from src.core.proposals.visibility import FULL_VISIBILITY_ROLES, RegionLookup, in_actor_region

TRANSITION_EDGES: frozenset[tuple[ProposalStatus, ProposalStatus]] = frozenset(
    {
        ("pending", "approved"),
        ("pending", "rejected"),
        ("pending", "expired"),
        ("approved", "contract_received"),
        ("contract_received", "in_transfer"),
        ("in_transfer", "delivered"),
    }
)

TERMINAL_STATUSES: frozenset[ProposalStatus] = frozenset({"rejected", "expired", "delivered"})
DECISION_STATUSES: frozenset[ProposalStatus] = frozenset({"approved", "rejected"})
FULFILLMENT_STATUSES: frozenset[ProposalStatus] = frozenset(
    {"contract_received", "in_transfer", "delivered"}
)
SYSTEM_STATUSES: frozenset[ProposalStatus] = frozenset({"expired"})

DECISION_ROLES = frozenset({"admin", "manager", "regional_manager"})
FULFILLMENT_ROLES = FULL_VISIBILITY_ROLES


def is_valid_transition(current: ProposalStatus, requested: ProposalStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    return (current, requested) in TRANSITION_EDGES


def can_decide(user: ActingUser) -> bool:
    return user.role in DECISION_ROLES


def authorize_transition(
    *,
    user: ActingUser,
    proposal: ProposalRecord,
    requested: ProposalStatus,
    region_of: RegionLookup,
    now: datetime,
) -> TransitionDecision:
    if not is_valid_transition(proposal.status, requested):
        return TransitionDecision(allowed=False, reason="invalid_transition")

    if requested in SYSTEM_STATUSES:
        # Only reachable through authorize_expiry.
        return TransitionDecision(allowed=False, reason="forbidden")

    if requested in DECISION_STATUSES:
        if not _has_decision_authority(user=user, proposal=proposal, region_of=region_of):
            return TransitionDecision(allowed=False, reason="forbidden")
        return TransitionDecision(
            allowed=True,
            stamp=TransitionStamp(
                status=requested,
                updated_at=now,
                stamps_decision=True,
                decided_by=user.id,
                decided_at=now,
            ),
        )

    if requested in FULFILLMENT_STATUSES and user.role in FULFILLMENT_ROLES:
        return TransitionDecision(
            allowed=True,
            stamp=TransitionStamp(status=requested, updated_at=now, stamps_decision=False),
        )

    return TransitionDecision(allowed=False, reason="forbidden")


def authorize_expiry(*, proposal: ProposalRecord, now: datetime) -> TransitionDecision:
    if not is_valid_transition(proposal.status, "expired"):
        return TransitionDecision(allowed=False, reason="invalid_transition")
    return TransitionDecision(
        allowed=True,
        stamp=TransitionStamp(
            status="expired",
            updated_at=now,
            stamps_decision=True,
            decided_by=None,
            decided_at=now,
        ),
    )


def is_expiry_eligible(*, proposal: ProposalRecord, now: datetime, retention: timedelta) -> bool:
    if proposal.status != "pending":
        return False
    if proposal.created_at + retention <= now:
        return True
    return proposal.valid_until is not None and proposal.valid_until < now.date()


def apply_stamp(proposal: ProposalRecord, stamp: TransitionStamp) -> ProposalRecord:
    changes: dict = {
        "status": stamp.status,
        "updated_at": stamp.updated_at,
        "version": proposal.version + 1,
    }
    if stamp.stamps_decision:
        changes["decided_by"] = stamp.decided_by
        changes["decided_at"] = stamp.decided_at
    return proposal.model_copy(update=changes, deep=True)


def _has_decision_authority(
    *, user: ActingUser, proposal: ProposalRecord, region_of: RegionLookup
) -> bool:
    if user.role in FULL_VISIBILITY_ROLES:
        return True
    if user.role == "regional_manager":
        return in_actor_region(user, proposal, region_of)
    return False
