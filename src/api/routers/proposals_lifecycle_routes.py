from datetime import datetime
from typing import Annotated, Optional

from fastapi import Depends, Path, Query, status

from src.api.routers import proposals as shared
from src.api.routers.proposal_http_errors import raise_proposal_http_exception
from src.core.proposals import (
    ActingUser,
    ProposalCreateRequest,
    ProposalDetail,
    ProposalEditRequest,
    ProposalFilters,
    ProposalLifecycleError,
    ProposalLifecycleService,
    ProposalListResponse,
    ProposalTransitionRequest,
)
from src.core.proposals.models import ProposalStatus

ProposalIdPath = Annotated[
    str,
    Path(description="Proposal identifier.", examples=["pp_001"]),
]


@shared.router.post(
    "/proposals",
    response_model=ProposalDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create Proposal",
    description=(
        "Creates a pending proposal for an active clinic. The caller becomes the creator; "
        "invalid fields are reported together."
    ),
)
def create_proposal(
    payload: ProposalCreateRequest,
    user: ActingUser = Depends(shared.get_acting_user),
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalDetail:
    shared.assert_lifecycle_enabled()
    try:
        return service.create_proposal(user=user, payload=payload)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@shared.router.get(
    "/proposals",
    response_model=ProposalListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Proposals",
    description=(
        "Lists proposals visible to the caller, newest first, with optional filters and "
        "cursor pagination."
    ),
)
def list_proposals(
    status_filter: Annotated[
        Optional[ProposalStatus],
        Query(alias="status", description="Lifecycle status filter.", examples=["pending"]),
    ] = None,
    clinic_id: Annotated[
        Optional[str], Query(description="Clinic filter.", examples=["clinic_5"])
    ] = None,
    created_by: Annotated[
        Optional[str],
        Query(description="Creator actor id filter.", examples=["usr_field_01"]),
    ] = None,
    created_from: Annotated[
        Optional[datetime],
        Query(
            description="Created-at lower bound in UTC ISO8601.", examples=["2026-10-01T00:00:00Z"]
        ),
    ] = None,
    created_to: Annotated[
        Optional[datetime],
        Query(
            description="Created-at upper bound in UTC ISO8601.", examples=["2026-10-31T00:00:00Z"]
        ),
    ] = None,
    search: Annotated[
        Optional[str],
        Query(description="Case-insensitive match on id, clinic or notes.", examples=["demo"]),
    ] = None,
    limit: Annotated[
        Optional[int],
        Query(description="Page size.", ge=1, le=100, examples=[20]),
    ] = None,
    cursor: Annotated[
        Optional[str],
        Query(description="Opaque cursor from previous list response.", examples=["pp_123"]),
    ] = None,
    user: ActingUser = Depends(shared.get_acting_user),
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalListResponse:
    shared.assert_lifecycle_enabled()
    filters = ProposalFilters(
        status=status_filter,
        clinic_id=clinic_id,
        created_by=created_by,
        created_from=created_from,
        created_to=created_to,
        search=search,
    )
    try:
        return service.list_proposals(user=user, filters=filters, limit=limit, cursor=cursor)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@shared.router.get(
    "/proposals/{proposal_id}",
    response_model=ProposalDetail,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal",
    description="Returns one proposal. Proposals outside the caller's scope are reported as 404.",
)
def get_proposal(
    proposal_id: ProposalIdPath,
    user: ActingUser = Depends(shared.get_acting_user),
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalDetail:
    shared.assert_lifecycle_enabled()
    try:
        return service.get_proposal(user=user, proposal_id=proposal_id)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@shared.router.patch(
    "/proposals/{proposal_id}",
    response_model=ProposalDetail,
    status_code=status.HTTP_200_OK,
    summary="Edit Proposal",
    description=(
        "Edits monetary terms and notes of a pending proposal. Decided proposals are locked."
    ),
)
def edit_proposal(
    proposal_id: ProposalIdPath,
    payload: ProposalEditRequest,
    user: ActingUser = Depends(shared.get_acting_user),
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalDetail:
    shared.assert_lifecycle_enabled()
    try:
        return service.edit_proposal(user=user, proposal_id=proposal_id, payload=payload)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@shared.router.post(
    "/proposals/{proposal_id}/transitions",
    response_model=ProposalDetail,
    status_code=status.HTTP_200_OK,
    summary="Transition Proposal Status",
    description=(
        "Applies one lifecycle transition. Approve and reject stamp the deciding actor; "
        "fulfillment steps are limited to admins and managers."
    ),
)
def transition_proposal(
    proposal_id: ProposalIdPath,
    payload: ProposalTransitionRequest,
    user: ActingUser = Depends(shared.get_acting_user),
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalDetail:
    shared.assert_lifecycle_enabled()
    try:
        return service.transition(user=user, proposal_id=proposal_id, payload=payload)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
