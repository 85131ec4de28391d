from typing import Annotated, NoReturn, Optional

from fastapi import APIRouter, Header, HTTPException, status

from src.api.routers import proposals_config
from src.api.routers.runtime_utils import (
    assert_feature_enabled,
    env_flag,
    normalize_backend_init_error,
)
from src.core.proposals import (
    ActingUser,
    Clock,
    ProposalAggregationReporter,
    ProposalLifecycleService,
    SystemClock,
)

router = APIRouter(tags=["Proposal Lifecycle"])

_CLOCK: Clock = SystemClock()
_SERVICE: Optional[ProposalLifecycleService] = None
_REPORTER: Optional[ProposalAggregationReporter] = None


def _build_runtime() -> tuple[ProposalLifecycleService, ProposalAggregationReporter]:
    global _SERVICE
    global _REPORTER
    if _SERVICE is None or _REPORTER is None:
        store = proposals_config.build_store()
        directory = proposals_config.build_clinic_directory()
        _SERVICE = ProposalLifecycleService(
            store=store,
            clinic_directory=directory,
            clock=_CLOCK,
            expiry_retention=proposals_config.proposal_expiry_retention(),
            supported_currencies=proposals_config.proposal_supported_currencies(),
        )
        _REPORTER = ProposalAggregationReporter(store=store, clinic_directory=directory)
    return _SERVICE, _REPORTER


def _raise_backend_unavailable(exc: RuntimeError) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=normalize_backend_init_error(
            detail=str(exc),
            known_details=proposals_config.BACKEND_INIT_ERRORS,
            fallback_detail="PROPOSAL_POSTGRES_CONNECTION_FAILED",
        ),
    ) from exc


def get_proposal_lifecycle_service() -> ProposalLifecycleService:
    try:
        service, _ = _build_runtime()
    except RuntimeError as exc:
        _raise_backend_unavailable(exc)
    return service


def get_proposal_aggregation_reporter() -> ProposalAggregationReporter:
    try:
        _, reporter = _build_runtime()
    except RuntimeError as exc:
        _raise_backend_unavailable(exc)
    return reporter


def reset_proposal_lifecycle_service_for_tests(clock: Optional[Clock] = None) -> None:
    global _CLOCK
    global _SERVICE
    global _REPORTER
    _CLOCK = clock or SystemClock()
    _SERVICE = None
    _REPORTER = None


def get_acting_user(
    actor_id: Annotated[
        Optional[str],
        Header(
            alias="X-Actor-Id",
            description="Actor identifier resolved by the upstream identity service.",
            examples=["usr_field_01"],
        ),
    ] = None,
    actor_role: Annotated[
        Optional[str],
        Header(
            alias="X-Actor-Role",
            description="Actor role: admin, manager, regional_manager or field_user.",
            examples=["regional_manager"],
        ),
    ] = None,
    actor_region_id: Annotated[
        Optional[str],
        Header(
            alias="X-Actor-Region-Id",
            description="Actor region, required for region-scoped roles.",
            examples=["region_2"],
        ),
    ] = None,
) -> ActingUser:
    if not actor_id or not actor_id.strip() or not actor_role or not actor_role.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="ACTING_USER_REQUIRED",
        )
    region_id = actor_region_id.strip() if actor_region_id else None
    return ActingUser(
        id=actor_id.strip(),
        role=actor_role.strip().lower(),
        region_id=region_id or None,
    )


def assert_lifecycle_enabled() -> None:
    assert_feature_enabled(
        name="PROPOSAL_WORKFLOW_LIFECYCLE_ENABLED",
        default=True,
        detail="PROPOSAL_WORKFLOW_LIFECYCLE_DISABLED",
    )


def assert_support_apis_enabled() -> None:
    assert_feature_enabled(
        name="PROPOSAL_SUPPORT_APIS_ENABLED",
        default=True,
        detail="PROPOSAL_SUPPORT_APIS_DISABLED",
    )


def assert_expiry_sweep_api_enabled() -> None:
    assert_feature_enabled(
        name="PROPOSAL_EXPIRY_SWEEP_API_ENABLED",
        default=False,
        detail="PROPOSAL_EXPIRY_SWEEP_API_DISABLED",
    )


__all__ = [
    "assert_expiry_sweep_api_enabled",
    "assert_lifecycle_enabled",
    "assert_support_apis_enabled",
    "env_flag",
    "get_acting_user",
    "get_proposal_aggregation_reporter",
    "get_proposal_lifecycle_service",
    "reset_proposal_lifecycle_service_for_tests",
    "router",
]

# Fixed-path routes must register before the `/proposals/{proposal_id}` routes.
from src.api.routers import proposals_support_routes as _support_routes  # noqa: E402,F401
from src.api.routers import proposals_lifecycle_routes as _lifecycle_routes  # noqa: E402,F401
