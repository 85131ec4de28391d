import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the proposal store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("PROPOSAL_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the proposal store (defaults to PROPOSAL_POSTGRES_DSN).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="List pending migrations without applying them; exit 1 when any are pending.",
    )
    args = parser.parse_args(argv)

    if not args.dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED:proposals")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    from src.infrastructure.postgres_migrations import (
        MIGRATION_NAMESPACES,
        apply_postgres_migrations,
        pending_migrations,
    )

    exit_code = 0
    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        for namespace in MIGRATION_NAMESPACES:
            if args.check:
                pending = pending_migrations(connection=connection, namespace=namespace)
                for migration in pending:
                    print(f"Pending migration namespace={namespace} version={migration.version}")
                if pending:
                    exit_code = 1
                continue
            applied = apply_postgres_migrations(connection=connection, namespace=namespace)
            print(f"Applied {len(applied)} migration(s) for namespace={namespace}")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
