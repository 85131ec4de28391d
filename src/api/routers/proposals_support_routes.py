from datetime import datetime
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query, status

from src.api.routers import proposals as shared
from src.api.routers import proposals_config
from src.api.routers.proposal_http_errors import HTTP_422_UNPROCESSABLE
from src.core.proposals import (
    ActingUser,
    ProposalAggregationReporter,
    ProposalApprovalQueueResponse,
    ProposalExpirySweepResult,
    ProposalLifecycleService,
    ProposalStatusTally,
)
from src.core.proposals.models import ProposalSupportabilityConfigResponse


@shared.router.get(
    "/proposals/dashboard/summary",
    response_model=ProposalStatusTally,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal Dashboard Summary",
    description=(
        "Counts visible proposals by status and sums approved amounts within an optional "
        "created-at window. Uses the same visibility scope as the proposal list."
    ),
)
def get_proposal_dashboard_summary(
    window_start: Annotated[
        Optional[datetime],
        Query(description="Inclusive created-at lower bound.", examples=["2026-10-01T00:00:00Z"]),
    ] = None,
    window_end: Annotated[
        Optional[datetime],
        Query(description="Inclusive created-at upper bound.", examples=["2026-10-31T23:59:59Z"]),
    ] = None,
    user: ActingUser = Depends(shared.get_acting_user),
    reporter: ProposalAggregationReporter = Depends(shared.get_proposal_aggregation_reporter),
) -> ProposalStatusTally:
    shared.assert_support_apis_enabled()
    try:
        return reporter.summarize(
            user=user,
            window_start=window_start,
            window_end=window_end,
        )
    except ValueError as exc:
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc


@shared.router.get(
    "/proposals/approval-queue",
    response_model=ProposalApprovalQueueResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal Approval Queue",
    description=(
        "Returns visible pending proposals, the most recent visible decisions, and whether the "
        "caller may approve or reject."
    ),
)
def get_proposal_approval_queue(
    recent_limit: Annotated[
        int,
        Query(description="Number of recent decisions to include.", ge=0, le=100, examples=[10]),
    ] = 10,
    user: ActingUser = Depends(shared.get_acting_user),
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalApprovalQueueResponse:
    shared.assert_support_apis_enabled()
    return service.get_approval_queue(user=user, recent_limit=recent_limit)


@shared.router.post(
    "/proposals/expiry-sweep",
    response_model=ProposalExpirySweepResult,
    status_code=status.HTTP_200_OK,
    summary="Run Proposal Expiry Sweep",
    description=(
        "System-only trigger that expires pending proposals past the retention window or their "
        "valid-until date. Disabled unless PROPOSAL_EXPIRY_SWEEP_API_ENABLED is set. The route "
        "carries no actor check, so when enabled it must only be reachable from behind an "
        "internal-only network boundary such as the scheduler's private network."
    ),
)
def run_proposal_expiry_sweep(
    service: ProposalLifecycleService = Depends(shared.get_proposal_lifecycle_service),
) -> ProposalExpirySweepResult:
    shared.assert_expiry_sweep_api_enabled()
    return service.run_expiry_sweep()


@shared.router.get(
    "/proposals/supportability/config",
    response_model=ProposalSupportabilityConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal Supportability Configuration",
    description=(
        "Returns proposal runtime configuration and backend initialization status "
        "for operational diagnostics without direct database access."
    ),
)
def get_proposal_supportability_config() -> ProposalSupportabilityConfigResponse:
    shared.assert_support_apis_enabled()
    backend_error: Optional[str] = None
    backend_ready = True
    try:
        proposals_config.build_store()
    except RuntimeError as exc:
        backend_ready = False
        backend_error = str(exc)

    return ProposalSupportabilityConfigResponse(
        store_backend=proposals_config.proposal_store_backend_name(),
        backend_ready=backend_ready,
        backend_init_error=backend_error,
        lifecycle_enabled=shared.env_flag("PROPOSAL_WORKFLOW_LIFECYCLE_ENABLED", True),
        support_apis_enabled=shared.env_flag("PROPOSAL_SUPPORT_APIS_ENABLED", True),
        expiry_sweep_api_enabled=shared.env_flag("PROPOSAL_EXPIRY_SWEEP_API_ENABLED", False),
        expiry_retention_days=proposals_config.proposal_expiry_retention().days,
        supported_currencies=sorted(proposals_config.proposal_supported_currencies()),
    )
