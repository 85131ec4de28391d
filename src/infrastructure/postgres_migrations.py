"""Forward-only SQL migrations for the proposal store.

Migration files live in `postgres_migrations/<namespace>/<version>_<name>.sql` and are applied
in version order under a PostgreSQL advisory lock. Each applied file is recorded in
`schema_migrations` with its SHA-256 checksum; editing an applied file is a hard error.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MIGRATIONS_ROOT = Path(__file__).with_name("postgres_migrations")
MIGRATION_NAMESPACES = ("proposals",)

_SCHEMA_MIGRATIONS_DDL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version TEXT PRIMARY KEY,
        namespace TEXT NOT NULL,
        checksum TEXT NOT NULL,
        applied_at TEXT NOT NULL
    )
"""


@dataclass(frozen=True)
class PostgresMigration:
    namespace: str
    version: str
    sql_path: Path
    checksum: str

    @property
    def ledger_version(self) -> str:
        return f"{self.namespace}:{self.version}"


def load_migrations(*, namespace: str) -> list[PostgresMigration]:
    namespace_path = MIGRATIONS_ROOT / namespace
    if not namespace_path.is_dir():
        raise RuntimeError(f"POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:{namespace}")
    migrations = []
    for sql_path in sorted(namespace_path.glob("*.sql")):
        sql = sql_path.read_text(encoding="utf-8")
        migrations.append(
            PostgresMigration(
                namespace=namespace,
                version=sql_path.stem.split("_", maxsplit=1)[0],
                sql_path=sql_path,
                checksum=hashlib.sha256(sql.encode("utf-8")).hexdigest(),
            )
        )
    return migrations


def pending_migrations(*, connection: Any, namespace: str) -> list[PostgresMigration]:
    """Return the migrations not yet recorded, after verifying recorded checksums."""
    connection.execute(_SCHEMA_MIGRATIONS_DDL)
    applied = _applied_checksums(connection=connection, namespace=namespace)
    pending = []
    for migration in load_migrations(namespace=namespace):
        recorded = applied.get(migration.version)
        if recorded is None:
            pending.append(migration)
        elif recorded != migration.checksum:
            raise RuntimeError(
                f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{migration.version}"
            )
    return pending


def apply_postgres_migrations(*, connection: Any, namespace: str) -> list[str]:
    """Apply pending migrations for `namespace` and return the versions applied."""
    lock_key = _advisory_lock_key(namespace)
    connection.execute("SELECT pg_advisory_lock(%s::bigint)", (lock_key,))
    try:
        applied_versions = []
        for migration in pending_migrations(connection=connection, namespace=namespace):
            for statement in _split_statements(migration.sql_path.read_text(encoding="utf-8")):
                connection.execute(statement)
            connection.execute(
                """
                INSERT INTO schema_migrations (
                    version,
                    namespace,
                    checksum,
                    applied_at
                ) VALUES (%s, %s, %s, %s)
                """,
                (
                    migration.ledger_version,
                    namespace,
                    migration.checksum,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            applied_versions.append(migration.version)
        connection.commit()
        return applied_versions
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.execute("SELECT pg_advisory_unlock(%s::bigint)", (lock_key,))


def _applied_checksums(*, connection: Any, namespace: str) -> dict[str, str]:
    rows = connection.execute(
        """
        SELECT version, checksum
        FROM schema_migrations
        WHERE namespace = %s
        ORDER BY version ASC
        """,
        (namespace,),
    ).fetchall()
    prefix = f"{namespace}:"
    applied: dict[str, str] = {}
    for row in rows:
        version = str(row["version"]).removeprefix(prefix)
        checksum = str(row["checksum"])
        if applied.get(version, checksum) != checksum:
            raise RuntimeError(f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{version}")
        applied[version] = checksum
    return applied


def _split_statements(sql: str) -> list[str]:
    return [statement.strip() for statement in sql.split(";") if statement.strip()]


def _advisory_lock_key(namespace: str) -> int:
    digest = hashlib.sha256(namespace.encode("utf-8")).digest()[:8]
    return int.from_bytes(digest, byteorder="big", signed=True)
