import os
import warnings
from datetime import timedelta
from typing import cast

from src.core.proposals.repository import ClinicDirectory, ProposalStore
from src.core.proposals.service import (
    DEFAULT_EXPIRY_RETENTION_DAYS,
    DEFAULT_SUPPORTED_CURRENCIES,
)
from src.infrastructure.proposals import (
    EnvJsonClinicDirectory,
    InMemoryProposalStore,
    PostgresClinicDirectory,
    PostgresProposalStore,
)

BACKEND_INIT_ERRORS = (
    "PROPOSAL_POSTGRES_DSN_REQUIRED",
    "PROPOSAL_POSTGRES_DRIVER_MISSING",
    "PROPOSAL_POSTGRES_CONNECTION_FAILED",
)


def proposal_store_backend_name() -> str:
    backend = os.getenv("PROPOSAL_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend in {"POSTGRES", "IN_MEMORY"}:
        return backend
    warnings.warn(
        f"PROPOSAL_STORE_BACKEND={backend!r} is not recognized; falling back to IN_MEMORY.",
        DeprecationWarning,
        stacklevel=2,
    )
    return "IN_MEMORY"


def proposal_postgres_dsn() -> str:
    return os.getenv("PROPOSAL_POSTGRES_DSN", "").strip()


def clinic_directory_json() -> str:
    return os.getenv("CLINIC_DIRECTORY_JSON", "")


def proposal_expiry_retention() -> timedelta:
    raw = os.getenv("PROPOSAL_EXPIRY_RETENTION_DAYS", "").strip()
    try:
        days = int(raw)
    except ValueError:
        return timedelta(days=DEFAULT_EXPIRY_RETENTION_DAYS)
    if days < 1:
        return timedelta(days=DEFAULT_EXPIRY_RETENTION_DAYS)
    return timedelta(days=days)


def proposal_supported_currencies() -> frozenset[str]:
    raw = os.getenv("PROPOSAL_SUPPORTED_CURRENCIES")
    if raw is None:
        return DEFAULT_SUPPORTED_CURRENCIES
    codes = frozenset(code.strip().upper() for code in raw.split(",") if code.strip())
    return codes or DEFAULT_SUPPORTED_CURRENCIES


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_store() -> ProposalStore:
    if proposal_store_backend_name() == "POSTGRES":
        dsn = proposal_postgres_dsn()
        if not dsn:
            raise RuntimeError("PROPOSAL_POSTGRES_DSN_REQUIRED")
        try:
            return cast(ProposalStore, PostgresProposalStore(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("PROPOSAL_POSTGRES_CONNECTION_FAILED") from exc
    return cast(ProposalStore, InMemoryProposalStore())


def build_clinic_directory() -> ClinicDirectory:
    if proposal_store_backend_name() == "POSTGRES":
        dsn = proposal_postgres_dsn()
        if not dsn:
            raise RuntimeError("PROPOSAL_POSTGRES_DSN_REQUIRED")
        return cast(ClinicDirectory, PostgresClinicDirectory(dsn=dsn))
    return cast(ClinicDirectory, EnvJsonClinicDirectory(catalog_json=clinic_directory_json()))
