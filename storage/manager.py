# storage/manager.py
from __future__ import annotations
from typing import Any

from storage.base import StorageManager
from storage.sqlite_backend import SQLiteStorage


def get_storage(backend: str, **opts: Any) -> StorageManager:
    """
    Factory for storage backends. Accepts flexible option names.
      - sqlite: db_path | sqlite_path | path
      - postgres: dsn or individual psycopg2 connect kwargs
    """
    b = (backend or "").lower()
    if b == "sqlite":
        db_path = opts.get("db_path") or opts.get("sqlite_path") or opts.get("path") or "data/pool_events.db"
        return SQLiteStorage(db_path)
    elif b in ("postgres", "postgresql", "pg"):
        # psycopg2 is only loaded when a postgres backend is requested
        from storage.postgres_backend import PostgresStorage
        dsn = opts.get("dsn") or opts.get("pg_dsn")
        extra = {k: v for k, v in opts.items() if k not in ("dsn", "pg_dsn", "sqlite_path", "db_path", "path")}
        return PostgresStorage(dsn=dsn, **extra)
    else:
        raise ValueError(f"Unknown storage backend: {backend!r}")


def storage_from_settings(db_settings) -> StorageManager:
    if db_settings.driver == "sqlite":
        return get_storage("sqlite", sqlite_path=db_settings.sqlite_path)
    return get_storage("postgres", dsn=db_settings.dsn)
