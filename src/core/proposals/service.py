import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from src.core.proposals.authority import (
    DECISION_STATUSES,
    apply_stamp,
    authorize_expiry,
    authorize_transition,
    can_decide,
    is_expiry_eligible,
)
from src.core.proposals.clock import as_utc
from src.core.proposals.models import (
    ActingUser,
    ProposalApprovalQueueResponse,
    ProposalCreateRequest,
    ProposalDetail,
    ProposalEditRequest,
    ProposalExpirySweepResult,
    ProposalFilters,
    ProposalItem,
    ProposalListResponse,
    ProposalPaymentTerms,
    ProposalRecord,
    ProposalTransitionRequest,
)
from src.core.proposals.repository import ClinicDirectory, Clock, ProposalStore
from src.core.proposals.visibility import (
    ClinicRegionResolver,
    can_write,
    find_visible_proposals,
    visibility_predicate,
)

DEFAULT_EXPIRY_RETENTION_DAYS = 30
DEFAULT_SUPPORTED_CURRENCIES = frozenset({"TRY", "USD", "EUR"})
DEFAULT_RECENT_DECISIONS_LIMIT = 10

# Edit fields that cannot be cleared back to null.
_REQUIRED_EDIT_FIELDS = frozenset({"total_amount", "currency", "discount_percent", "items"})
_DECISION_NOTE_LABELS = {"approved": "Approval note", "rejected": "Rejection note"}

logger = logging.getLogger(__name__)


class ProposalLifecycleError(Exception):
    pass


class ProposalNotFoundError(ProposalLifecycleError):
    pass


class ProposalValidationError(ProposalLifecycleError):
    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = list(fields)
        super().__init__(f"PROPOSAL_VALIDATION_FAILED: {','.join(self.fields)}")


class ProposalForbiddenError(ProposalLifecycleError):
    pass


class ProposalTransitionError(ProposalLifecycleError):
    pass


class ProposalLockedError(ProposalLifecycleError):
    pass


class ProposalStateConflictError(ProposalLifecycleError):
    pass


def _system_scope(_proposal: ProposalRecord) -> bool:
    return True


class ProposalLifecycleService:
    def __init__(
        self,
        *,
        store: ProposalStore,
        clinic_directory: ClinicDirectory,
        clock: Clock,
        expiry_retention: timedelta = timedelta(days=DEFAULT_EXPIRY_RETENTION_DAYS),
        supported_currencies: Iterable[str] = DEFAULT_SUPPORTED_CURRENCIES,
    ) -> None:
        self._store = store
        self._directory = clinic_directory
        self._clock = clock
        self._expiry_retention = expiry_retention
        self._supported_currencies = frozenset(code.upper() for code in supported_currencies)

    @property
    def expiry_retention(self) -> timedelta:
        return self._expiry_retention

    def list_proposals(
        self,
        *,
        user: ActingUser,
        filters: Optional[ProposalFilters] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ProposalListResponse:
        if limit is not None and limit < 1:
            raise ProposalValidationError(["limit"])
        rows = find_visible_proposals(
            store=self._store,
            directory=self._directory,
            user=user,
            filters=filters or ProposalFilters(),
        )
        if cursor:
            row_ids = [row.proposal_id for row in rows]
            if cursor not in row_ids:
                return ProposalListResponse(items=[], next_cursor=None)
            rows = rows[row_ids.index(cursor) + 1 :]
        next_cursor = None
        if limit is not None:
            if len(rows) > limit:
                next_cursor = rows[limit - 1].proposal_id
            rows = rows[:limit]
        return ProposalListResponse(
            items=[_to_detail(row) for row in rows], next_cursor=next_cursor
        )

    def get_proposal(self, *, user: ActingUser, proposal_id: str) -> ProposalDetail:
        proposal, _ = self._load_visible(user=user, proposal_id=proposal_id)
        return _to_detail(proposal)

    def create_proposal(
        self, *, user: ActingUser, payload: ProposalCreateRequest
    ) -> ProposalDetail:
        offending = self._validate_clinic(payload.clinic_id)
        offending.extend(
            self._validate_terms(
                total_amount=payload.total_amount,
                currency=payload.currency,
                discount_percent=payload.discount_percent,
                items=payload.items,
                payment_terms=payload.payment_terms,
            )
        )
        if offending:
            raise ProposalValidationError(offending)

        now = self._clock.now()
        proposal = ProposalRecord(
            proposal_id=f"pp_{uuid.uuid4().hex[:12]}",
            creator_id=user.id,
            clinic_id=payload.clinic_id,
            status="pending",
            total_amount=payload.total_amount,
            currency=payload.currency.strip().upper(),
            discount_percent=payload.discount_percent,
            notes=payload.notes,
            items=payload.items,
            payment_terms=payload.payment_terms,
            campaign_id=payload.campaign_id,
            valid_until=payload.valid_until,
            created_at=now,
            updated_at=now,
            version=1,
        )
        stored = self._store.insert(proposal)
        logger.info(
            "proposal.created",
            extra={
                "extra_fields": {
                    "proposal_id": stored.proposal_id,
                    "actor_id": user.id,
                    "clinic_id": stored.clinic_id,
                }
            },
        )
        return _to_detail(stored)

    def edit_proposal(
        self, *, user: ActingUser, proposal_id: str, payload: ProposalEditRequest
    ) -> ProposalDetail:
        proposal, _ = self._load_visible(user=user, proposal_id=proposal_id)
        if proposal.status != "pending":
            raise ProposalLockedError("PROPOSAL_LOCKED")
        if not can_write(user, proposal):
            raise ProposalForbiddenError("PROPOSAL_ACTION_FORBIDDEN")
        if payload.expected_version is not None and payload.expected_version != proposal.version:
            raise ProposalStateConflictError("STATE_CONFLICT: expected_version mismatch")

        changes = payload.model_dump(exclude_unset=True, exclude={"expected_version"})
        cleared = sorted(
            key for key in changes if key in _REQUIRED_EDIT_FIELDS and changes[key] is None
        )
        if cleared:
            raise ProposalValidationError(cleared)
        patched = proposal.model_copy(
            update={
                **{key: getattr(payload, key) for key in changes},
                "updated_at": self._clock.now(),
                "version": proposal.version + 1,
            },
            deep=True,
        )
        offending = self._validate_terms(
            total_amount=patched.total_amount,
            currency=patched.currency,
            discount_percent=patched.discount_percent,
            items=patched.items,
            payment_terms=patched.payment_terms,
        )
        if offending:
            raise ProposalValidationError(offending)
        patched.currency = patched.currency.strip().upper()

        stored = self._store.conditional_update(
            proposal_id=proposal.proposal_id,
            expected_version=proposal.version,
            proposal=patched,
        )
        if stored is None:
            raise ProposalStateConflictError("STATE_CONFLICT: proposal changed concurrently")
        logger.info(
            "proposal.edited",
            extra={
                "extra_fields": {
                    "proposal_id": stored.proposal_id,
                    "actor_id": user.id,
                    "fields": sorted(changes),
                }
            },
        )
        return _to_detail(stored)

    def transition(
        self, *, user: ActingUser, proposal_id: str, payload: ProposalTransitionRequest
    ) -> ProposalDetail:
        proposal, region_of = self._load_visible(user=user, proposal_id=proposal_id)
        if payload.expected_status is not None and payload.expected_status != proposal.status:
            raise ProposalStateConflictError("STATE_CONFLICT: expected_status mismatch")

        decision = authorize_transition(
            user=user,
            proposal=proposal,
            requested=payload.requested_status,
            region_of=region_of,
            now=self._clock.now(),
        )
        if not decision.allowed or decision.stamp is None:
            logger.info(
                "proposal.transition_denied",
                extra={
                    "extra_fields": {
                        "proposal_id": proposal.proposal_id,
                        "actor_id": user.id,
                        "actor_role": user.role,
                        "from_status": proposal.status,
                        "to_status": payload.requested_status,
                        "reason": decision.reason,
                    }
                },
            )
            if decision.reason == "invalid_transition":
                raise ProposalTransitionError("INVALID_TRANSITION")
            raise ProposalForbiddenError("PROPOSAL_ACTION_FORBIDDEN")

        note = (payload.decision_note or "").strip()
        if note and decision.stamp.status not in DECISION_STATUSES:
            raise ProposalValidationError(["decision_note"])
        updated = apply_stamp(proposal, decision.stamp)
        if note:
            updated.notes = _append_decision_note(updated.notes, decision.stamp.status, note)

        stored = self._store.conditional_update(
            proposal_id=proposal.proposal_id,
            expected_version=proposal.version,
            proposal=updated,
        )
        if stored is None:
            raise ProposalStateConflictError("STATE_CONFLICT: proposal changed concurrently")
        logger.info(
            "proposal.transitioned",
            extra={
                "extra_fields": {
                    "proposal_id": stored.proposal_id,
                    "actor_id": user.id,
                    "from_status": proposal.status,
                    "to_status": stored.status,
                }
            },
        )
        return _to_detail(stored)

    def run_expiry_sweep(self, *, now: Optional[datetime] = None) -> ProposalExpirySweepResult:
        swept_at = as_utc(now) or self._clock.now()
        candidates = self._store.find(
            predicate=_system_scope, filters=ProposalFilters(status="pending")
        )
        expired_ids: list[str] = []
        conflicted_ids: list[str] = []
        for proposal in candidates:
            if not is_expiry_eligible(
                proposal=proposal, now=swept_at, retention=self._expiry_retention
            ):
                continue
            decision = authorize_expiry(proposal=proposal, now=swept_at)
            if not decision.allowed or decision.stamp is None:
                continue
            stored = self._store.conditional_update(
                proposal_id=proposal.proposal_id,
                expected_version=proposal.version,
                proposal=apply_stamp(proposal, decision.stamp),
            )
            if stored is None:
                conflicted_ids.append(proposal.proposal_id)
                logger.warning(
                    "proposal.expiry_sweep.conflict",
                    extra={"extra_fields": {"proposal_id": proposal.proposal_id}},
                )
                continue
            expired_ids.append(stored.proposal_id)

        result = ProposalExpirySweepResult(
            swept_at=swept_at.isoformat(),
            retention_days=self._expiry_retention.days,
            scanned_count=len(candidates),
            expired_ids=expired_ids,
            conflicted_ids=conflicted_ids,
        )
        logger.info(
            "proposal.expiry_sweep.completed",
            extra={
                "extra_fields": {
                    "scanned_count": result.scanned_count,
                    "expired_count": len(expired_ids),
                    "conflicted_count": len(conflicted_ids),
                }
            },
        )
        return result

    def get_approval_queue(
        self, *, user: ActingUser, recent_limit: int = DEFAULT_RECENT_DECISIONS_LIMIT
    ) -> ProposalApprovalQueueResponse:
        rows = find_visible_proposals(
            store=self._store,
            directory=self._directory,
            user=user,
            filters=ProposalFilters(),
        )
        pending = [row for row in rows if row.status == "pending"]
        decided = sorted(
            (row for row in rows if row.status in {"approved", "rejected"}),
            key=lambda row: (row.decided_at or row.updated_at, row.proposal_id),
            reverse=True,
        )
        return ProposalApprovalQueueResponse(
            can_decide=can_decide(user),
            pending=[_to_detail(row) for row in pending],
            recently_decided=[_to_detail(row) for row in decided[:recent_limit]],
        )

    def _load_visible(
        self, *, user: ActingUser, proposal_id: str
    ) -> tuple[ProposalRecord, ClinicRegionResolver]:
        proposal = self._store.get(proposal_id=proposal_id)
        region_of = ClinicRegionResolver(self._directory)
        if proposal is None or not visibility_predicate(user=user, region_of=region_of)(proposal):
            raise ProposalNotFoundError("PROPOSAL_NOT_FOUND")
        return proposal, region_of

    def _validate_clinic(self, clinic_id: str) -> list[str]:
        clinic = self._directory.get_clinic(clinic_id=clinic_id)
        if clinic is None or clinic.status != "active":
            return ["clinic_id"]
        return []

    def _validate_terms(
        self,
        *,
        total_amount: Decimal,
        currency: str,
        discount_percent: Decimal,
        items: list[ProposalItem],
        payment_terms: Optional[ProposalPaymentTerms],
    ) -> list[str]:
        offending: list[str] = []
        if total_amount < 0:
            offending.append("total_amount")
        if (currency or "").strip().upper() not in self._supported_currencies:
            offending.append("currency")
        if not _is_percentage(discount_percent):
            offending.append("discount_percent")
        for index, item in enumerate(items):
            if item.quantity < 1:
                offending.append(f"items[{index}].quantity")
            if item.unit_price < 0:
                offending.append(f"items[{index}].unit_price")
            if not _is_percentage(item.excess_percentage):
                offending.append(f"items[{index}].excess_percentage")
        if payment_terms is not None:
            if payment_terms.installment_count < 1:
                offending.append("payment_terms.installment_count")
            if not _is_percentage(payment_terms.down_payment_percentage):
                offending.append("payment_terms.down_payment_percentage")
        return offending


def _append_decision_note(notes: Optional[str], status: str, note: str) -> str:
    line = f"{_DECISION_NOTE_LABELS[status]}: {note}"
    return f"{notes}\n\n{line}" if notes else line


def _is_percentage(value: Decimal) -> bool:
    return Decimal("0") <= value <= Decimal("100")


def _to_detail(proposal: ProposalRecord) -> ProposalDetail:
    return ProposalDetail(
        proposal_id=proposal.proposal_id,
        creator_id=proposal.creator_id,
        clinic_id=proposal.clinic_id,
        status=proposal.status,
        total_amount=proposal.total_amount,
        currency=proposal.currency,
        discount_percent=proposal.discount_percent,
        notes=proposal.notes,
        items=proposal.items,
        payment_terms=proposal.payment_terms,
        campaign_id=proposal.campaign_id,
        valid_until=proposal.valid_until.isoformat() if proposal.valid_until else None,
        decided_by=proposal.decided_by,
        decided_at=proposal.decided_at.isoformat() if proposal.decided_at else None,
        created_at=proposal.created_at.isoformat(),
        updated_at=proposal.updated_at.isoformat(),
        version=proposal.version,
    )
