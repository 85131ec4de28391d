from copy import deepcopy
from threading import Lock
from typing import Iterable, Optional

from src.core.proposals.models import ClinicRecord, ProposalFilters, ProposalRecord
from src.core.proposals.repository import ProposalPredicate


class InMemoryProposalStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._proposals: dict[str, ProposalRecord] = {}

    def find(
        self, *, predicate: ProposalPredicate, filters: ProposalFilters
    ) -> list[ProposalRecord]:
        with self._lock:
            rows = list(self._proposals.values())

        rows = sorted(rows, key=lambda x: (x.created_at, x.proposal_id), reverse=True)

        if filters.status is not None:
            rows = [row for row in rows if row.status == filters.status]
        if filters.clinic_id is not None:
            rows = [row for row in rows if row.clinic_id == filters.clinic_id]
        if filters.created_by is not None:
            rows = [row for row in rows if row.creator_id == filters.created_by]
        if filters.created_from is not None:
            rows = [row for row in rows if row.created_at >= filters.created_from]
        if filters.created_to is not None:
            rows = [row for row in rows if row.created_at <= filters.created_to]
        if filters.search:
            needle = filters.search.strip().lower()
            named_clinics = set(filters.search_clinic_ids)
            rows = [
                row
                for row in rows
                if needle in _search_text(row) or row.clinic_id in named_clinics
            ]

        return [deepcopy(row) for row in rows if predicate(row)]

    def get(self, *, proposal_id: str) -> Optional[ProposalRecord]:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            return deepcopy(proposal) if proposal is not None else None

    def insert(self, proposal: ProposalRecord) -> ProposalRecord:
        with self._lock:
            if proposal.proposal_id in self._proposals:
                raise ValueError(f"duplicate proposal_id: {proposal.proposal_id}")
            self._proposals[proposal.proposal_id] = deepcopy(proposal)
        return deepcopy(proposal)

    def conditional_update(
        self,
        *,
        proposal_id: str,
        expected_version: int,
        proposal: ProposalRecord,
    ) -> Optional[ProposalRecord]:
        with self._lock:
            current = self._proposals.get(proposal_id)
            if current is None or current.version != expected_version:
                return None
            self._proposals[proposal_id] = deepcopy(proposal)
        return deepcopy(proposal)


class InMemoryClinicDirectory:
    def __init__(self, clinics: Iterable[ClinicRecord] = ()) -> None:
        self._lock = Lock()
        self._clinics: dict[str, ClinicRecord] = {clinic.clinic_id: clinic for clinic in clinics}

    def region_of(self, *, clinic_id: str) -> Optional[str]:
        clinic = self.get_clinic(clinic_id=clinic_id)
        return clinic.region_id if clinic is not None else None

    def get_clinic(self, *, clinic_id: str) -> Optional[ClinicRecord]:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            return deepcopy(clinic) if clinic is not None else None

    def search_clinic_ids(self, *, search: str) -> list[str]:
        needle = search.strip().lower()
        if not needle:
            return []
        with self._lock:
            return sorted(
                clinic.clinic_id
                for clinic in self._clinics.values()
                if clinic.name and needle in clinic.name.lower()
            )

    def upsert_clinic(self, clinic: ClinicRecord) -> None:
        with self._lock:
            self._clinics[clinic.clinic_id] = deepcopy(clinic)

    def list_clinics(self) -> list[ClinicRecord]:
        with self._lock:
            return sorted(
                (deepcopy(clinic) for clinic in self._clinics.values()),
                key=lambda item: item.clinic_id,
            )


def _search_text(proposal: ProposalRecord) -> str:
    return " ".join(
        part for part in (proposal.proposal_id, proposal.clinic_id, proposal.notes) if part
    ).lower()
