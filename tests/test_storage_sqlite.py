import sqlite3

import pytest

from storage.manager import get_storage
from storage.schema import EVENT_TABLES
from storage.sqlite_backend import SQLiteStorage


def test_sqlite_setup_creates_schema(tmp_path):
    ss = SQLiteStorage(str(tmp_path / "test.db"))
    ss.setup()
    names = {r[0] for r in ss.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"blocks", "transactions", *EVENT_TABLES} <= names
    idx = {r[0] for r in ss.conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
    assert "swap_events_contract_time_idx" in idx
    assert "mint_events_owner_idx" in idx
    # setup is non destructive and repeatable
    ss.setup()


def test_sqlite_write_read_block(storage):
    with storage.transaction() as cur:
        assert storage.insert_ignore(cur, "blocks", ["block_number", "block_timestamp"], [(5, 12345)]) == 1
    got = storage.read_block(5)
    assert got == {"block_number": 5, "block_timestamp": 12345}
    assert storage.read_block(6) is None


def test_sqlite_insert_ignore_skips_duplicates(storage):
    cols = ["block_number", "block_timestamp"]
    with storage.transaction() as cur:
        storage.insert_ignore(cur, "blocks", cols, [(1, 10), (2, 20)])
    with storage.transaction() as cur:
        assert storage.insert_ignore(cur, "blocks", cols, [(2, 99), (3, 30)]) == 1
    assert storage.count_rows("blocks") == 3
    # first write wins, rows are never updated
    assert storage.read_block(2)["block_timestamp"] == 20


def test_sqlite_query_blocks_and_max(storage):
    assert storage.max_block_number() is None
    with storage.transaction() as cur:
        storage.insert_ignore(cur, "blocks", ["block_number", "block_timestamp"], [(i, i * 10) for i in range(3)])
    lst = storage.query_blocks(0, 2)
    assert len(lst) == 3
    assert lst[1]["block_number"] == 1
    assert storage.max_block_number() == 2


def test_sqlite_foreign_keys_enforced(storage):
    with pytest.raises(sqlite3.IntegrityError):
        with storage.transaction() as cur:
            storage.insert_ignore(
                cur, "transactions",
                ["transaction_hash", "block_number", "transaction_index", "transaction_sender"],
                [(b"\x01" * 32, 42, 0, b"\x02" * 20)],
            )
    assert storage.count_rows("transactions") == 0


def test_sqlite_transaction_rolls_back(storage):
    with pytest.raises(RuntimeError):
        with storage.transaction() as cur:
            storage.insert_ignore(cur, "blocks", ["block_number", "block_timestamp"], [(1, 1)])
            raise RuntimeError("boom")
    assert storage.max_block_number() is None


def test_get_storage_factory(tmp_path):
    st = get_storage("sqlite", sqlite_path=str(tmp_path / "f.db"))
    assert isinstance(st, SQLiteStorage)
    with pytest.raises(ValueError):
        get_storage("mysql")
