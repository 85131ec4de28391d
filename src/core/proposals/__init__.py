from src.core.proposals.clock import FixedClock, SystemClock, as_utc
from src.core.proposals.models import (
    ActingUser,
    ClinicRecord,
    ProposalApprovalQueueResponse,
    ProposalCreateRequest,
    ProposalDetail,
    ProposalEditRequest,
    ProposalExpirySweepResult,
    ProposalFilters,
    ProposalItem,
    ProposalListResponse,
    ProposalMonthlyCount,
    ProposalPaymentTerms,
    ProposalRecord,
    ProposalStatusTally,
    ProposalTransitionRequest,
    TransitionDecision,
)
from src.core.proposals.reporting import ProposalAggregationReporter
from src.core.proposals.repository import ClinicDirectory, Clock, ProposalStore
from src.core.proposals.service import (
    ProposalForbiddenError,
    ProposalLifecycleError,
    ProposalLifecycleService,
    ProposalLockedError,
    ProposalNotFoundError,
    ProposalStateConflictError,
    ProposalTransitionError,
    ProposalValidationError,
)

__all__ = [
    "ActingUser",
    "ClinicDirectory",
    "ClinicRecord",
    "Clock",
    "FixedClock",
    "ProposalAggregationReporter",
    "ProposalApprovalQueueResponse",
    "ProposalCreateRequest",
    "ProposalDetail",
    "ProposalEditRequest",
    "ProposalExpirySweepResult",
    "ProposalFilters",
    "ProposalForbiddenError",
    "ProposalItem",
    "ProposalLifecycleError",
    "ProposalLifecycleService",
    "ProposalListResponse",
    "ProposalLockedError",
    "ProposalMonthlyCount",
    "ProposalNotFoundError",
    "ProposalPaymentTerms",
    "ProposalRecord",
    "ProposalStateConflictError",
    "ProposalStatusTally",
    "ProposalStore",
    "ProposalTransitionError",
    "ProposalTransitionRequest",
    "ProposalValidationError",
    "SystemClock",
    "TransitionDecision",
    "as_utc",
]
