from __future__ import annotations

import os
import sqlite3
from typing import Any, Sequence

from storage.base import StorageManager


def _as_decstr(v) -> str:
    """Return a base 10 string for any int like or hex string value."""
    if v is None:
        raise ValueError("numeric value is required")
    if isinstance(v, str) and v.startswith("0x"):
        return str(int(v, 16))
    return str(int(v))


class SQLiteStorage(StorageManager):
    dialect = "sqlite"
    placeholder = "?"
    db_errors = (sqlite3.Error,)

    def __init__(self, path: str):
        super().__init__()
        self.path = path

    def connect(self) -> sqlite3.Connection:
        parent = os.path.dirname(self.path)
        if parent and self.path != ":memory:":
            os.makedirs(parent, exist_ok=True)
        con = sqlite3.connect(self.path)
        # enforced per connection, must be set outside a transaction
        con.execute("PRAGMA foreign_keys = ON")
        return con

    def insert_ignore_sql(self, table: str, columns: Sequence[str]) -> str:
        marks = ",".join("?" for _ in columns)
        return f"INSERT OR IGNORE INTO {table}({', '.join(columns)}) VALUES({marks})"

    def to_db_numeric(self, value: Any) -> str:
        # stored as base 10 text to avoid 64 bit overflow
        return _as_decstr(value)
