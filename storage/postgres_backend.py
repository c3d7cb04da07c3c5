from typing import Any, Optional, Sequence

import psycopg2

from .base import StorageManager


class PostgresStorage(StorageManager):
    dialect = "postgres"
    placeholder = "%s"
    db_errors = (psycopg2.Error,)

    def __init__(self, dsn: Optional[str] = None, **connect_kwargs: Any):
        super().__init__()
        self.dsn = dsn
        self.connect_kwargs = connect_kwargs

    def connect(self):
        if self.dsn:
            return psycopg2.connect(self.dsn, **self.connect_kwargs)
        return psycopg2.connect(**self.connect_kwargs)

    def insert_ignore_sql(self, table: str, columns: Sequence[str]) -> str:
        marks = ", ".join("%s" for _ in columns)
        return (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({marks}) "
            "ON CONFLICT DO NOTHING"
        )

    def to_db_numeric(self, value: Any) -> int:
        # psycopg2 adapts Python int to an exact numeric literal
        return int(value)
