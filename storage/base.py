# storage/base.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from storage.schema import NUMERIC_COLUMNS, all_ddl


class StorageManager:
    """
    DB-API backed store shared by the SQLite and Postgres backends.

    Subclasses provide connect(), the dialect name, the parameter placeholder,
    the insert-or-ignore statement and the numeric adapter.
    """

    dialect: str = ""
    placeholder: str = "?"
    db_errors: Tuple[type, ...] = ()

    def __init__(self):
        self.conn = None

    # connection lifecycle

    def connect(self):
        raise NotImplementedError

    def setup(self) -> None:
        """Open the connection and create tables and indexes if missing. Non destructive."""
        if self.conn is None:
            self.conn = self.connect()
        with self.transaction() as cur:
            for stmt in all_ddl(self.dialect):
                cur.execute(stmt)

    def _ensure(self) -> None:
        if self.conn is not None:
            return
        self.setup()

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Yield a cursor inside one database transaction. Commits on normal exit,
        rolls back and re-raises on any exception.
        """
        self._ensure()
        cur = self.conn.cursor()
        try:
            yield cur
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()
        finally:
            cur.close()

    # dialect hooks

    def insert_ignore_sql(self, table: str, columns: Sequence[str]) -> str:
        raise NotImplementedError

    def to_db_numeric(self, value: int) -> Any:
        raise NotImplementedError

    # writes

    def insert_ignore(self, cur, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        """Insert rows, skipping primary key duplicates. Returns the number of rows actually inserted."""
        if not rows:
            return 0
        sql = self.insert_ignore_sql(table, columns)
        inserted = 0
        for row in rows:
            cur.execute(sql, tuple(row))
            inserted += max(cur.rowcount, 0)
        return inserted

    # reads

    def _query(self, sql: str, params: Tuple = ()) -> List[Dict[str, Any]]:
        self._ensure()
        cur = self.conn.cursor()
        try:
            cur.execute(sql, params)
            names = [d[0] for d in cur.description]
            rows = cur.fetchall()
        finally:
            cur.close()
        # reads run outside the writer; end the implicit read transaction
        self.conn.commit()
        return [self._from_db(dict(zip(names, r))) for r in rows]

    @staticmethod
    def _from_db(row: Dict[str, Any]) -> Dict[str, Any]:
        out = {}
        for k, v in row.items():
            if isinstance(v, memoryview):
                v = v.tobytes()
            elif k in NUMERIC_COLUMNS and v is not None:
                v = int(v)
            out[k] = v
        return out

    def max_block_number(self) -> Optional[int]:
        rows = self._query("SELECT MAX(block_number) AS max_block FROM blocks")
        v = rows[0]["max_block"] if rows else None
        return int(v) if v is not None else None

    def read_block(self, block_number: int) -> Optional[Dict[str, Any]]:
        p = self.placeholder
        rows = self._query(
            f"SELECT block_number, block_timestamp FROM blocks WHERE block_number = {p}",
            (int(block_number),),
        )
        return rows[0] if rows else None

    def query_blocks(self, start: int, end: int) -> List[Dict[str, Any]]:
        p = self.placeholder
        return self._query(
            "SELECT block_number, block_timestamp FROM blocks "
            f"WHERE block_number BETWEEN {p} AND {p} ORDER BY block_number",
            (int(start), int(end)),
        )

    def fetch_rows(self, table: str, order_by: str = "") -> List[Dict[str, Any]]:
        sql = f"SELECT * FROM {table}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        return self._query(sql)

    def count_rows(self, table: str) -> int:
        rows = self._query(f"SELECT COUNT(*) AS n FROM {table}")
        return int(rows[0]["n"])
