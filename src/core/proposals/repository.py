from datetime import datetime
from typing import Callable, Optional, Protocol

from src.core.proposals.models import ClinicRecord, ProposalFilters, ProposalRecord

ProposalPredicate = Callable[[ProposalRecord], bool]


class ProposalStore(Protocol):
    def find(
        self, *, predicate: ProposalPredicate, filters: ProposalFilters
    ) -> list[ProposalRecord]: ...

    def get(self, *, proposal_id: str) -> Optional[ProposalRecord]: ...

    def insert(self, proposal: ProposalRecord) -> ProposalRecord: ...

    def conditional_update(
        self,
        *,
        proposal_id: str,
        expected_version: int,
        proposal: ProposalRecord,
    ) -> Optional[ProposalRecord]: ...


class ClinicDirectory(Protocol):
    def region_of(self, *, clinic_id: str) -> Optional[str]: ...

    def get_clinic(self, *, clinic_id: str) -> Optional[ClinicRecord]: ...

    def search_clinic_ids(self, *, search: str) -> list[str]: ...


class Clock(Protocol):
    def now(self) -> datetime: ...
