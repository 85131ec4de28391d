from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional

from src.core.proposals.clock import as_utc
from src.core.proposals.models import (
    ActingUser,
    ProposalFilters,
    ProposalMonthlyCount,
    ProposalRecord,
    ProposalStatusTally,
)
from src.core.proposals.repository import ClinicDirectory, ProposalStore
from src.core.proposals.visibility import find_visible_proposals


class ProposalAggregationReporter:
    """Dashboard tallies computed over exactly the rows `list_proposals` would return.

    The window is inclusive on both ends and applies to `created_at`; an open bound means
    no restriction on that side. Naive bounds are read as UTC.
    """

    def __init__(self, *, store: ProposalStore, clinic_directory: ClinicDirectory) -> None:
        self._store = store
        self._directory = clinic_directory

    def summarize(
        self,
        *,
        user: ActingUser,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> ProposalStatusTally:
        window_start = as_utc(window_start)
        window_end = as_utc(window_end)
        if window_start is not None and window_end is not None and window_start > window_end:
            raise ValueError("window_start must not be after window_end")

        rows = find_visible_proposals(
            store=self._store,
            directory=self._directory,
            user=user,
            filters=ProposalFilters(created_from=window_start, created_to=window_end),
        )
        counts = {status: 0 for status in _TALLY_STATUSES}
        approved_sum = Decimal("0")
        approved_sum_by_currency: dict[str, Decimal] = {}
        for row in rows:
            counts[row.status] += 1
            if row.status == "approved":
                approved_sum += row.total_amount
                approved_sum_by_currency[row.currency] = (
                    approved_sum_by_currency.get(row.currency, Decimal("0")) + row.total_amount
                )

        return ProposalStatusTally(
            window_start=window_start.isoformat() if window_start else None,
            window_end=window_end.isoformat() if window_end else None,
            total_count=len(rows),
            approved_sum=approved_sum,
            approved_sum_by_currency=dict(sorted(approved_sum_by_currency.items())),
            monthly_counts=_monthly_counts(rows, window_start=window_start, window_end=window_end),
            **counts,
        )


_TALLY_STATUSES = (
    "pending",
    "approved",
    "rejected",
    "expired",
    "contract_received",
    "in_transfer",
    "delivered",
)


def _monthly_counts(
    rows: list[ProposalRecord],
    *,
    window_start: Optional[datetime],
    window_end: Optional[datetime],
) -> list[ProposalMonthlyCount]:
    created = [row.created_at.astimezone(timezone.utc) for row in rows]
    first = window_start or (min(created) if created else None)
    last = window_end or (max(created) if created else None)
    if first is None or last is None:
        return []

    per_month: dict[tuple[int, int], int] = {}
    for instant in created:
        key = (instant.year, instant.month)
        per_month[key] = per_month.get(key, 0) + 1
    return [
        ProposalMonthlyCount(month=f"{year:04d}-{month:02d}", count=per_month.get((year, month), 0))
        for year, month in _months_between(
            first.astimezone(timezone.utc), last.astimezone(timezone.utc)
        )
    ]


def _months_between(first: datetime, last: datetime) -> Iterator[tuple[int, int]]:
    year, month = first.year, first.month
    while (year, month) <= (last.year, last.month):
        yield year, month
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
