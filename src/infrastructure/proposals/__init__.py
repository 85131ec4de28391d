from src.infrastructure.proposals.env_json import EnvJsonClinicDirectory, parse_clinic_catalog
from src.infrastructure.proposals.in_memory import InMemoryClinicDirectory, InMemoryProposalStore
from src.infrastructure.proposals.postgres import PostgresClinicDirectory, PostgresProposalStore

__all__ = [
    "EnvJsonClinicDirectory",
    "InMemoryClinicDirectory",
    "InMemoryProposalStore",
    "PostgresClinicDirectory",
    "PostgresProposalStore",
    "parse_clinic_catalog",
]
