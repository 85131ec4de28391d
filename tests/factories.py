from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from src.core.proposals import (
    ActingUser,
    ClinicRecord,
    FixedClock,
    ProposalCreateRequest,
    ProposalLifecycleService,
    ProposalRecord,
)
from src.infrastructure.proposals import InMemoryClinicDirectory, InMemoryProposalStore

BASE_TIME = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)

ADMIN = ActingUser(id="usr_admin", role="admin")
MANAGER = ActingUser(id="usr_manager", role="manager")
RM_REGION_1 = ActingUser(id="usr_rm1", role="regional_manager", region_id="region_1")
RM_REGION_2 = ActingUser(id="usr_rm2", role="regional_manager", region_id="region_2")
RM_NO_REGION = ActingUser(id="usr_rm_none", role="regional_manager")
FIELD_USER_1 = ActingUser(id="usr_field_1", role="field_user", region_id="region_1")
FIELD_USER_2 = ActingUser(id="usr_field_2", role="field_user", region_id="region_2")


def user(user_id: str, role: str, region_id: Optional[str] = None) -> ActingUser:
    return ActingUser(id=user_id, role=role, region_id=region_id)


def clinic(
    clinic_id: str,
    region_id: Optional[str],
    status: str = "active",
    name: Optional[str] = None,
) -> ClinicRecord:
    return ClinicRecord(clinic_id=clinic_id, region_id=region_id, status=status, name=name)


def default_clinics() -> list[ClinicRecord]:
    return [
        clinic("clinic_1", "region_1"),
        clinic("clinic_2", "region_2"),
        clinic("clinic_3", "region_2"),
        clinic("clinic_closed", "region_1", status="inactive"),
        clinic("clinic_unassigned", None),
    ]


def proposal_record(
    proposal_id: str,
    *,
    creator_id: str = "usr_field_1",
    clinic_id: str = "clinic_1",
    status: str = "pending",
    total_amount: str = "1000.00",
    currency: str = "TRY",
    created_at: datetime = BASE_TIME,
    decided_by: Optional[str] = None,
    decided_at: Optional[datetime] = None,
    version: int = 1,
    notes: Optional[str] = None,
) -> ProposalRecord:
    return ProposalRecord(
        proposal_id=proposal_id,
        creator_id=creator_id,
        clinic_id=clinic_id,
        status=status,
        total_amount=Decimal(total_amount),
        currency=currency,
        notes=notes,
        decided_by=decided_by,
        decided_at=decided_at,
        created_at=created_at,
        updated_at=created_at,
        version=version,
    )


def create_request(
    clinic_id: str = "clinic_1", total_amount: str = "1500.00", **overrides
) -> ProposalCreateRequest:
    payload = {"clinic_id": clinic_id, "total_amount": total_amount, "currency": "TRY"}
    payload.update(overrides)
    return ProposalCreateRequest.model_validate(payload)


def seeded_store(records: Iterable[ProposalRecord]) -> InMemoryProposalStore:
    store = InMemoryProposalStore()
    for record in records:
        store.insert(record)
    return store


def build_service(
    *,
    store: Optional[InMemoryProposalStore] = None,
    clinics: Optional[Iterable[ClinicRecord]] = None,
    clock: Optional[FixedClock] = None,
    retention_days: int = 30,
) -> tuple[ProposalLifecycleService, InMemoryProposalStore, FixedClock]:
    store = store if store is not None else InMemoryProposalStore()
    clock = clock or FixedClock(BASE_TIME)
    service = ProposalLifecycleService(
        store=store,
        clinic_directory=InMemoryClinicDirectory(
            clinics if clinics is not None else default_clinics()
        ),
        clock=clock,
        expiry_retention=timedelta(days=retention_days),
    )
    return service, store, clock
