import json
from contextlib import closing
from datetime import date, datetime, timezone
from decimal import Decimal
from importlib.util import find_spec
from typing import Any, Optional

from src.core.proposals.models import (
    ClinicRecord,
    ProposalFilters,
    ProposalItem,
    ProposalPaymentTerms,
    ProposalRecord,
)
from src.core.proposals.repository import ProposalPredicate
from src.infrastructure.postgres_migrations import apply_postgres_migrations

_PROPOSAL_COLUMNS = """
                proposal_id,
                creator_id,
                clinic_id,
                status,
                total_amount,
                currency,
                discount_percent,
                notes,
                items_json,
                payment_terms_json,
                campaign_id,
                valid_until,
                decided_by,
                decided_at,
                created_at,
                updated_at,
                version
"""


class PostgresProposalStore:
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("PROPOSAL_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("PROPOSAL_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def find(
        self, *, predicate: ProposalPredicate, filters: ProposalFilters
    ) -> list[ProposalRecord]:
        where_clauses = []
        args: list[Any] = []
        if filters.status is not None:
            where_clauses.append("status = %s")
            args.append(filters.status)
        if filters.clinic_id is not None:
            where_clauses.append("clinic_id = %s")
            args.append(filters.clinic_id)
        if filters.created_by is not None:
            where_clauses.append("creator_id = %s")
            args.append(filters.created_by)
        if filters.created_from is not None:
            where_clauses.append("created_at >= %s")
            args.append(_utc_iso(filters.created_from))
        if filters.created_to is not None:
            where_clauses.append("created_at <= %s")
            args.append(_utc_iso(filters.created_to))
        if filters.search:
            pattern = f"%{_escape_like(filters.search.strip().lower())}%"
            search_sql = (
                "LOWER(proposal_id) LIKE %s ESCAPE '\\' "
                "OR LOWER(clinic_id) LIKE %s ESCAPE '\\' "
                "OR LOWER(COALESCE(notes, '')) LIKE %s ESCAPE '\\'"
            )
            args.extend([pattern, pattern, pattern])
            if filters.search_clinic_ids:
                search_sql += " OR clinic_id = ANY(%s)"
                args.append(list(filters.search_clinic_ids))
            where_clauses.append(f"({search_sql})")
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        query = f"""
            SELECT
{_PROPOSAL_COLUMNS}
            FROM proposal_records
            {where_sql}
            ORDER BY created_at DESC, proposal_id DESC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
        proposals = [_to_proposal(row) for row in rows]
        return [proposal for proposal in proposals if proposal is not None and predicate(proposal)]

    def get(self, *, proposal_id: str) -> Optional[ProposalRecord]:
        query = f"""
            SELECT
{_PROPOSAL_COLUMNS}
            FROM proposal_records
            WHERE proposal_id = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (proposal_id,)).fetchone()
        return _to_proposal(row)

    def insert(self, proposal: ProposalRecord) -> ProposalRecord:
        query = f"""
            INSERT INTO proposal_records (
{_PROPOSAL_COLUMNS}
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        with closing(self._connect()) as connection:
            connection.execute(query, _proposal_params(proposal))
            connection.commit()
        return proposal

    def conditional_update(
        self,
        *,
        proposal_id: str,
        expected_version: int,
        proposal: ProposalRecord,
    ) -> Optional[ProposalRecord]:
        query = f"""
            UPDATE proposal_records SET
                status = %s,
                total_amount = %s,
                currency = %s,
                discount_percent = %s,
                notes = %s,
                items_json = %s,
                payment_terms_json = %s,
                campaign_id = %s,
                valid_until = %s,
                decided_by = %s,
                decided_at = %s,
                updated_at = %s,
                version = %s
            WHERE proposal_id = %s AND version = %s
            RETURNING
{_PROPOSAL_COLUMNS}
        """
        params = _proposal_params(proposal)
        with closing(self._connect()) as connection:
            row = connection.execute(
                query,
                (*params[3:14], params[15], params[16], proposal_id, expected_version),
            ).fetchone()
            connection.commit()
        return _to_proposal(row)

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="proposals")


class PostgresClinicDirectory:
    """Read-only view over the `clinics` table owned by the clinic management service."""

    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("PROPOSAL_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("PROPOSAL_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn

    def region_of(self, *, clinic_id: str) -> Optional[str]:
        clinic = self.get_clinic(clinic_id=clinic_id)
        return clinic.region_id if clinic is not None else None

    def get_clinic(self, *, clinic_id: str) -> Optional[ClinicRecord]:
        query = """
            SELECT
                CAST(id AS TEXT) AS clinic_id,
                CAST(region_id AS TEXT) AS region_id,
                name,
                status
            FROM clinics
            WHERE CAST(id AS TEXT) = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (clinic_id,)).fetchone()
        if row is None:
            return None
        return ClinicRecord(
            clinic_id=row["clinic_id"],
            region_id=row["region_id"],
            name=row["name"],
            status="active" if (row["status"] or "active") == "active" else "inactive",
        )

    def search_clinic_ids(self, *, search: str) -> list[str]:
        needle = search.strip().lower()
        if not needle:
            return []
        query = """
            SELECT CAST(id AS TEXT) AS clinic_id
            FROM clinics
            WHERE LOWER(COALESCE(name, '')) LIKE %s ESCAPE '\\'
            ORDER BY clinic_id
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (f"%{_escape_like(needle)}%",)).fetchall()
        return [row["clinic_id"] for row in rows]

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _optional_utc_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return _utc_iso(value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _json_dump(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _proposal_params(proposal: ProposalRecord) -> tuple:
    return (
        proposal.proposal_id,
        proposal.creator_id,
        proposal.clinic_id,
        proposal.status,
        str(proposal.total_amount),
        proposal.currency,
        str(proposal.discount_percent),
        proposal.notes,
        _json_dump([item.model_dump(mode="json") for item in proposal.items]),
        (
            _json_dump(proposal.payment_terms.model_dump(mode="json"))
            if proposal.payment_terms is not None
            else None
        ),
        proposal.campaign_id,
        proposal.valid_until.isoformat() if proposal.valid_until is not None else None,
        proposal.decided_by,
        _optional_utc_iso(proposal.decided_at),
        _utc_iso(proposal.created_at),
        _utc_iso(proposal.updated_at),
        proposal.version,
    )


def _to_proposal(row) -> Optional[ProposalRecord]:
    if row is None:
        return None
    return ProposalRecord(
        proposal_id=row["proposal_id"],
        creator_id=row["creator_id"],
        clinic_id=row["clinic_id"],
        status=row["status"],
        total_amount=Decimal(row["total_amount"]),
        currency=row["currency"],
        discount_percent=Decimal(row["discount_percent"]),
        notes=row["notes"],
        items=[ProposalItem.model_validate(item) for item in json.loads(row["items_json"])],
        payment_terms=(
            ProposalPaymentTerms.model_validate(json.loads(row["payment_terms_json"]))
            if row["payment_terms_json"] is not None
            else None
        ),
        campaign_id=row["campaign_id"],
        valid_until=(
            date.fromisoformat(row["valid_until"]) if row["valid_until"] is not None else None
        ),
        decided_by=row["decided_by"],
        decided_at=(
            datetime.fromisoformat(row["decided_at"]) if row["decided_at"] is not None else None
        ),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        version=int(row["version"]),
    )
