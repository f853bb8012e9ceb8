from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from portal.store.config import StoreConfig, load_store_config

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Stable advisory lock key so concurrent replicas never migrate at the same time.
MIGRATION_LOCK_KEY = 604118273341  # bigint


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    checksum: str
    sql: str


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.exists():
        return []
    migrations: List[Migration] = []
    for p in sorted(x for x in directory.iterdir() if x.is_file() and x.name.endswith(".sql")):
        raw = p.read_bytes()
        migrations.append(
            Migration(
                version=p.name.split("_", 1)[0],
                path=p,
                checksum=hashlib.sha256(raw).hexdigest(),
                sql=raw.decode("utf-8"),
            )
        )
    return migrations


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def apply_migrations(*, dsn: str, migrations: Optional[Iterable[Migration]] = None) -> Tuple[int, List[str]]:
    """
    Apply pending migrations, one transaction each.

    Returns: (applied_count, applied_versions)
    """
    migs = list(migrations) if migrations is not None else load_migrations()
    applied_versions: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                  version text PRIMARY KEY,
                  checksum text NOT NULL,
                  applied_at timestamptz NOT NULL DEFAULT now()
                );
                """)
            applied = {str(r[0]): str(r[1]) for r in conn.execute("SELECT version, checksum FROM schema_migrations;")}

            for m in migs:
                prev = applied.get(m.version)
                if prev is not None:
                    if prev != m.checksum:
                        raise RuntimeError(
                            f"Migration checksum mismatch for {m.version}: db={prev[:12]} file={m.checksum[:12]}"
                        )
                    continue
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations(version, checksum) VALUES (%s, %s);",
                        (m.version, m.checksum),
                    )
                applied_versions.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))

    return len(applied_versions), applied_versions


def maybe_auto_migrate(cfg: Optional[StoreConfig] = None) -> Tuple[bool, str]:
    """
    Auto-migrate on startup when DB_AUTO_MIGRATE=1 and Postgres is configured.

    Returns: (did_attempt, message)
    """
    cfg = cfg or load_store_config()
    if not cfg.auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    if not cfg.has_database:
        return False, "Postgres DSN not configured"
    try:
        n, versions = apply_migrations(dsn=cfg.dsn)
    except Exception as e:
        return True, f"Migration failed: {e}"
    if n:
        return True, f"Applied {n} migration(s): {', '.join(versions)}"
    return True, "No pending migrations"
