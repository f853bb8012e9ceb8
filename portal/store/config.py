"""Where the user store lives.

`POSTGRES_DSN` (or `DATABASE_URL`) wins; otherwise the DSN is assembled from
`POSTGRES_HOST`/`POSTGRES_PORT`/`POSTGRES_DB`/`POSTGRES_USER`/`POSTGRES_PASSWORD`.
With neither, `dsn` is None and the service keeps users in memory.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUTHY = ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class StoreConfig:
    dsn: Optional[str] = None
    auto_migrate: bool = False

    @property
    def has_database(self) -> bool:
        return bool(self.dsn)


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def _dsn_from_parts() -> Optional[str]:
    host, db = _env("POSTGRES_HOST"), _env("POSTGRES_DB")
    user, password = _env("POSTGRES_USER"), _env("POSTGRES_PASSWORD")
    if not (host and db and user and password):
        return None
    port = _env("POSTGRES_PORT")
    # make_conninfo quotes passwords with spaces or quotes in them.
    from psycopg.conninfo import make_conninfo

    return make_conninfo(
        host=host,
        port=int(port) if port.isdigit() else 5432,
        dbname=db,
        user=user,
        password=password,
    )


def load_store_config() -> StoreConfig:
    return StoreConfig(
        dsn=_env("POSTGRES_DSN") or _env("DATABASE_URL") or _dsn_from_parts(),
        auto_migrate=_env("DB_AUTO_MIGRATE").lower() in _TRUTHY,
    )
