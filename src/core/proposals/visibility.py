"""Role and region scoping for proposal reads and writes.

Every read path (lists, single fetches, dashboards, approval queues) goes through
`visibility_predicate`, and bulk reads go through `find_visible_proposals` so that list
totals and dashboard totals are always computed from the same rows.
"""

from typing import Callable, Literal, Optional

from src.core.proposals.models import ActingUser, ProposalFilters, ProposalRecord
from src.core.proposals.repository import ClinicDirectory, ProposalPredicate, ProposalStore

VisibilityMode = Literal["ALL", "REGION", "CREATOR", "NONE"]
RegionLookup = Callable[[str], Optional[str]]

FULL_VISIBILITY_ROLES = frozenset({"admin", "manager"})
REGION_SCOPED_ROLES = frozenset({"regional_manager"})
CREATOR_SCOPED_ROLES = frozenset({"field_user"})


def visibility_mode(user: ActingUser) -> VisibilityMode:
    if user.role in FULL_VISIBILITY_ROLES:
        return "ALL"
    if user.role in REGION_SCOPED_ROLES:
        return "REGION" if user.region_id else "NONE"
    if user.role in CREATOR_SCOPED_ROLES:
        return "CREATOR"
    return "NONE"


class ClinicRegionResolver:
    """Memoizing `clinic_id -> region_id` lookup, scoped to one engine operation."""

    def __init__(self, directory: ClinicDirectory) -> None:
        self._directory = directory
        self._cache: dict[str, Optional[str]] = {}

    def __call__(self, clinic_id: str) -> Optional[str]:
        if clinic_id not in self._cache:
            self._cache[clinic_id] = self._directory.region_of(clinic_id=clinic_id)
        return self._cache[clinic_id]


def in_actor_region(user: ActingUser, proposal: ProposalRecord, region_of: RegionLookup) -> bool:
    if not user.region_id:
        return False
    clinic_region_id = region_of(proposal.clinic_id)
    if clinic_region_id is None:
        return False
    return clinic_region_id == user.region_id


def visibility_predicate(*, user: ActingUser, region_of: RegionLookup) -> ProposalPredicate:
    mode = visibility_mode(user)
    if mode == "ALL":
        return _visible_to_all
    if mode == "REGION":
        return lambda proposal: in_actor_region(user, proposal, region_of)
    if mode == "CREATOR":
        return lambda proposal: proposal.creator_id == user.id
    return _visible_to_none


def can_write(user: ActingUser, proposal: ProposalRecord) -> bool:
    if user.role in FULL_VISIBILITY_ROLES:
        return True
    return proposal.creator_id == user.id and visibility_mode(user) != "NONE"


def find_visible_proposals(
    *,
    store: ProposalStore,
    directory: ClinicDirectory,
    user: ActingUser,
    filters: ProposalFilters,
) -> list[ProposalRecord]:
    if visibility_mode(user) == "NONE":
        return []
    predicate = visibility_predicate(user=user, region_of=ClinicRegionResolver(directory))
    if filters.search and filters.search.strip():
        filters = filters.model_copy(
            update={"search_clinic_ids": directory.search_clinic_ids(search=filters.search.strip())}
        )
    return store.find(predicate=predicate, filters=filters)


def _visible_to_all(_proposal: ProposalRecord) -> bool:
    return True


def _visible_to_none(_proposal: ProposalRecord) -> bool:
    return False
