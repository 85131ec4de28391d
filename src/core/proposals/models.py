from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.proposals.clock import as_utc

ProposalStatus = Literal[
    "pending",
    "approved",
    "rejected",
    "expired",
    "contract_received",
    "in_transfer",
    "delivered",
]

ClinicStatus = Literal["active", "inactive"]
TransitionDenialReason = Literal["invalid_transition", "forbidden"]

PROPOSAL_STATUSES: tuple[ProposalStatus, ...] = (
    "pending",
    "approved",
    "rejected",
    "expired",
    "contract_received",
    "in_transfer",
    "delivered",
)


class ActingUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Resolved actor identifier.", examples=["usr_field_01"])
    role: str = Field(
        description=(
            "Organizational role. Recognized values are admin, manager, regional_manager "
            "and field_user; anything else is treated as having no visibility."
        ),
        examples=["regional_manager"],
    )
    region_id: Optional[str] = Field(
        default=None,
        description="Region the actor belongs to, when the role is region-scoped.",
        examples=["region_2"],
    )


class ClinicRecord(BaseModel):
    clinic_id: str = Field(description="Clinic identifier.", examples=["clinic_5"])
    name: Optional[str] = Field(
        default=None, description="Clinic display name.", examples=["Ankara Dental Clinic"]
    )
    region_id: Optional[str] = Field(
        default=None,
        description="Region the clinic belongs to; unassigned clinics are invisible to regions.",
        examples=["region_2"],
    )
    status: ClinicStatus = Field(default="active", description="Clinic status.")


class ProposalItem(BaseModel):
    product_id: str = Field(description="Product identifier.", examples=["prd_implant_01"])
    quantity: int = Field(description="Ordered quantity, at least 1.", examples=[2])
    unit_price: Decimal = Field(description="Unit price in proposal currency.", examples=["750"])
    excess_percentage: Decimal = Field(
        default=Decimal("0"),
        description="Markup applied over list price, 0-100.",
        examples=["5"],
    )


class ProposalPaymentTerms(BaseModel):
    payment_method: Optional[str] = Field(
        default=None, description="Payment method label.", examples=["bank_transfer"]
    )
    installment_count: int = Field(
        default=1, description="Number of installments, at least 1.", examples=[3]
    )
    down_payment_percentage: Decimal = Field(
        default=Decimal("0"), description="Down payment share, 0-100.", examples=["20"]
    )
    first_payment_date: Optional[date] = Field(
        default=None, description="Due date of the first installment.", examples=["2026-11-01"]
    )


class ProposalCreateRequest(BaseModel):
    clinic_id: str = Field(description="Target clinic identifier.", examples=["clinic_5"])
    total_amount: Decimal = Field(description="Proposal total, >= 0.", examples=["1500.00"])
    currency: str = Field(description="Supported ISO currency code.", examples=["TRY"])
    discount_percent: Decimal = Field(
        default=Decimal("0"), description="General discount, 0-100.", examples=["10"]
    )
    notes: Optional[str] = Field(
        default=None, description="Free-text notes.", examples=["Follow-up after demo visit."]
    )
    items: List[ProposalItem] = Field(default_factory=list, description="Line items.")
    payment_terms: Optional[ProposalPaymentTerms] = Field(
        default=None, description="Optional payment plan."
    )
    campaign_id: Optional[str] = Field(
        default=None, description="Campaign the pricing was taken from.", examples=["cmp_spring"]
    )
    valid_until: Optional[date] = Field(
        default=None,
        description="Date after which the pending proposal becomes expiry-eligible.",
        examples=["2026-12-31"],
    )


class ProposalEditRequest(BaseModel):
    total_amount: Optional[Decimal] = Field(default=None, examples=["1400.00"])
    currency: Optional[str] = Field(default=None, examples=["EUR"])
    discount_percent: Optional[Decimal] = Field(default=None, examples=["15"])
    notes: Optional[str] = Field(default=None, examples=["Revised after clinic feedback."])
    items: Optional[List[ProposalItem]] = Field(default=None)
    payment_terms: Optional[ProposalPaymentTerms] = Field(default=None)
    campaign_id: Optional[str] = Field(default=None)
    valid_until: Optional[date] = Field(default=None)
    expected_version: Optional[int] = Field(
        default=None,
        description="Optimistic concurrency check against the stored proposal version.",
        examples=[1],
    )


class ProposalTransitionRequest(BaseModel):
    requested_status: ProposalStatus = Field(
        description="Status the proposal should move to.", examples=["approved"]
    )
    expected_status: Optional[ProposalStatus] = Field(
        default=None,
        description="Optimistic concurrency check against the current status.",
        examples=["pending"],
    )
    decision_note: Optional[str] = Field(
        default=None,
        description=(
            "Note recorded with an approval or rejection; appended to the proposal notes. "
            "Not accepted on fulfillment steps."
        ),
        examples=["Approved with the autumn campaign pricing."],
    )


class ProposalFilters(BaseModel):
    status: Optional[ProposalStatus] = None
    clinic_id: Optional[str] = None
    created_by: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    search: Optional[str] = None
    search_clinic_ids: List[str] = Field(
        default_factory=list,
        description="Clinics whose name matches `search`; resolved from the clinic directory.",
    )

    @field_validator("created_from", "created_to")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class ProposalRecord(BaseModel):
    proposal_id: str = Field(description="Internal proposal identifier.", examples=["pp_001"])
    creator_id: str = Field(description="Internal creator actor id.", examples=["usr_field_01"])
    clinic_id: str = Field(description="Internal clinic identifier.", examples=["clinic_5"])
    status: ProposalStatus = Field(description="Internal lifecycle status.", examples=["pending"])
    total_amount: Decimal = Field(description="Internal total amount.", examples=["1500.00"])
    currency: str = Field(description="Internal currency code.", examples=["TRY"])
    discount_percent: Decimal = Field(
        default=Decimal("0"), description="Internal discount.", examples=["10"]
    )
    notes: Optional[str] = Field(default=None, description="Internal notes.")
    items: List[ProposalItem] = Field(default_factory=list, description="Internal line items.")
    payment_terms: Optional[ProposalPaymentTerms] = Field(
        default=None, description="Internal payment plan."
    )
    campaign_id: Optional[str] = Field(default=None, description="Internal campaign id.")
    valid_until: Optional[date] = Field(default=None, description="Internal validity date.")
    decided_by: Optional[str] = Field(default=None, description="Internal deciding actor id.")
    decided_at: Optional[datetime] = Field(default=None, description="Internal decision time.")
    created_at: datetime = Field(description="Internal creation timestamp.")
    updated_at: datetime = Field(description="Internal last-mutation timestamp.")
    version: int = Field(default=1, description="Internal optimistic concurrency version.")


class ProposalDetail(BaseModel):
    proposal_id: str = Field(description="Proposal identifier.", examples=["pp_001"])
    creator_id: str = Field(description="Actor that created the proposal.", examples=["usr_1"])
    clinic_id: str = Field(description="Clinic identifier.", examples=["clinic_5"])
    status: ProposalStatus = Field(description="Lifecycle status.", examples=["approved"])
    total_amount: Decimal = Field(description="Proposal total.", examples=["1500.00"])
    currency: str = Field(description="Currency code.", examples=["TRY"])
    discount_percent: Decimal = Field(description="General discount.", examples=["10"])
    notes: Optional[str] = Field(default=None, description="Free-text notes.")
    items: List[ProposalItem] = Field(default_factory=list, description="Line items.")
    payment_terms: Optional[ProposalPaymentTerms] = Field(default=None, description="Payment plan.")
    campaign_id: Optional[str] = Field(default=None, description="Campaign identifier.")
    valid_until: Optional[str] = Field(
        default=None, description="ISO date after which the proposal may expire."
    )
    decided_by: Optional[str] = Field(
        default=None, description="Actor of the latest approval/rejection.", examples=["usr_rm"]
    )
    decided_at: Optional[str] = Field(
        default=None,
        description="UTC ISO8601 timestamp of the latest decision or expiry.",
        examples=["2026-10-17T09:30:00+00:00"],
    )
    created_at: str = Field(
        description="UTC ISO8601 creation timestamp.", examples=["2026-10-17T09:00:00+00:00"]
    )
    updated_at: str = Field(
        description="UTC ISO8601 last-mutation timestamp.",
        examples=["2026-10-17T09:30:00+00:00"],
    )
    version: int = Field(description="Version for optimistic concurrency.", examples=[2])


class ProposalListResponse(BaseModel):
    items: List[ProposalDetail] = Field(
        default_factory=list, description="Visible proposals, newest first."
    )
    next_cursor: Optional[str] = Field(
        default=None,
        description="Opaque cursor for the next page when a limit was applied.",
        examples=["pp_001"],
    )


class TransitionStamp(BaseModel):
    status: ProposalStatus = Field(description="Status to set.", examples=["approved"])
    updated_at: datetime = Field(description="Mutation timestamp to set.")
    stamps_decision: bool = Field(
        description="Whether decided_by/decided_at are overwritten by this transition."
    )
    decided_by: Optional[str] = Field(default=None, description="Deciding actor, if stamped.")
    decided_at: Optional[datetime] = Field(default=None, description="Decision time, if stamped.")


class TransitionDecision(BaseModel):
    allowed: bool = Field(description="Whether the transition may be applied.")
    reason: Optional[TransitionDenialReason] = Field(
        default=None, description="Denial reason when not allowed."
    )
    stamp: Optional[TransitionStamp] = Field(
        default=None, description="Side-effect fields to write when allowed."
    )


class ProposalMonthlyCount(BaseModel):
    month: str = Field(description="Calendar month in UTC, YYYY-MM.", examples=["2026-10"])
    count: int = Field(description="Visible proposals created in the month.", examples=[4])


class ProposalStatusTally(BaseModel):
    window_start: Optional[str] = Field(default=None, description="Inclusive window start.")
    window_end: Optional[str] = Field(default=None, description="Inclusive window end.")
    pending: int = Field(default=0, examples=[3])
    approved: int = Field(default=0, examples=[4])
    rejected: int = Field(default=0, examples=[2])
    expired: int = Field(default=0, examples=[1])
    contract_received: int = Field(default=0, examples=[0])
    in_transfer: int = Field(default=0, examples=[0])
    delivered: int = Field(default=0, examples=[0])
    total_count: int = Field(default=0, examples=[10])
    approved_sum: Decimal = Field(
        default=Decimal("0"),
        description="Sum of total_amount over approved proposals, across currencies.",
        examples=["5200.00"],
    )
    approved_sum_by_currency: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Sum of total_amount over approved proposals per currency.",
        examples=[{"TRY": "5200.00"}],
    )
    monthly_counts: List[ProposalMonthlyCount] = Field(
        default_factory=list,
        description=(
            "Proposals created per calendar month, oldest first, with empty months included. "
            "Spans the window, or the created-at range of the rows on an open side."
        ),
    )


class ProposalApprovalQueueResponse(BaseModel):
    can_decide: bool = Field(description="Whether the actor's role may approve or reject.")
    pending: List[ProposalDetail] = Field(
        default_factory=list, description="Visible pending proposals, newest first."
    )
    recently_decided: List[ProposalDetail] = Field(
        default_factory=list,
        description="Most recent visible approved/rejected proposals.",
    )


class ProposalExpirySweepResult(BaseModel):
    swept_at: str = Field(description="UTC ISO8601 timestamp used as the sweep clock.")
    retention_days: int = Field(description="Retention window applied.", examples=[30])
    scanned_count: int = Field(description="Pending proposals inspected.", examples=[12])
    expired_ids: List[str] = Field(default_factory=list, description="Proposals expired now.")
    conflicted_ids: List[str] = Field(
        default_factory=list,
        description="Proposals skipped because they changed concurrently.",
    )


class ProposalSupportabilityConfigResponse(BaseModel):
    store_backend: str = Field(description="Configured store backend.", examples=["IN_MEMORY"])
    backend_ready: bool = Field(description="Whether the store initialized successfully.")
    backend_init_error: Optional[str] = Field(
        default=None,
        description="Initialization error code when the backend is not ready.",
        examples=["PROPOSAL_POSTGRES_DSN_REQUIRED"],
    )
    lifecycle_enabled: bool = Field(description="Lifecycle endpoints flag.")
    support_apis_enabled: bool = Field(description="Dashboard and queue endpoints flag.")
    expiry_sweep_api_enabled: bool = Field(description="Sweep trigger endpoint flag.")
    expiry_retention_days: int = Field(description="Retention window in days.", examples=[30])
    supported_currencies: List[str] = Field(
        description="Accepted currency codes.", examples=[["EUR", "TRY", "USD"]]
    )
